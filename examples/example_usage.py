"""Example: driving the ledger service directly (no Flask, no MySQL).

Controllers are a thin layer; the overtime rules live in LedgerService.
"""

from src.overtime_ledger.overtime_ledger.common.datetime_utils import format_minutes
from src.overtime_ledger.overtime_ledger.container import build_memory_container
from src.overtime_ledger.overtime_ledger.core.exceptions import NoOvertimeToRecord
from src.overtime_ledger.overtime_ledger.workers.model import Worker


def main():
    container = build_memory_container([Worker(worker_id=1, name="Ana Torres", employee_code="W-001")])
    service = container.ledger_service

    outcome = service.add_entry(1, "2024-03-04", "08:00", "19:30")
    print("recorded", format_minutes(outcome.split.overtime_minutes), "of overtime")

    # Overnight shift: end before start rolls into the next day.
    outcome = service.add_entry(1, "2024-03-05", "22:00", "09:00", deduct_lunch=False)
    print("overnight", outcome.breakdown.overnight, format_minutes(outcome.split.overtime_minutes))

    try:
        service.add_entry(1, "2024-03-06", "09:00", "17:00")
    except NoOvertimeToRecord as e:
        print(e)

    view = service.get_worker_month_summary(1, 3, 2024)
    print("paid", format_minutes(view.total_paid_minutes), "remaining", format_minutes(view.remaining_paid_minutes))


if __name__ == "__main__":
    main()
