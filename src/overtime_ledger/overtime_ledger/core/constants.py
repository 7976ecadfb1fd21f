"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
The paid-overtime cap is part of the persisted contract; changing it changes
how historical summaries are interpreted.
"""

MINUTES_PER_HOUR = 60

PAID_LIMIT_HOURS = 72
PAID_LIMIT_MINUTES = PAID_LIMIT_HOURS * MINUTES_PER_HOUR  # 4320

LUNCH_MINUTES = 60
DEFAULT_BASE_HOURS = 8
DEFAULT_DEPARTMENT = "General"
DEFAULT_WORKER_ROLE = "worker"
