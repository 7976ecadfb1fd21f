from __future__ import annotations


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidTimeWindow(ValidationError):
    """Raised when a date or clock string cannot be parsed."""


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""


class WorkerNotFound(NotFoundError):
    def __init__(self, worker_id: int):
        super().__init__("Worker not found")
        self.worker_id = worker_id


class EntryNotFound(NotFoundError):
    def __init__(self, entry_id: int):
        super().__init__("Work entry not found")
        self.entry_id = entry_id


class NoOvertimeToRecord(DomainError):
    """Worked time stays within the base hours; nothing is stored.

    Not a system failure: carries the worked/base breakdown so callers can
    explain the outcome to the user.
    """

    def __init__(
        self,
        *,
        total_worked_minutes: int,
        base_hours_per_day: float,
        base_minutes: int,
        lunch_minutes: int,
    ):
        hours, minutes = divmod(int(total_worked_minutes), 60)
        base_label = f"{base_hours_per_day:g}h"
        super().__init__(
            f"No overtime to record. Worker worked {hours}h {minutes}m, "
            f"which is within the {base_label} base hours."
        )
        self.total_worked_minutes = int(total_worked_minutes)
        self.base_hours_per_day = base_hours_per_day
        self.base_minutes = int(base_minutes)
        self.lunch_minutes = int(lunch_minutes)

    def as_dict(self) -> dict:
        return {
            "total_worked_minutes": self.total_worked_minutes,
            "base_hours_per_day": self.base_hours_per_day,
            "base_minutes": self.base_minutes,
            "lunch_minutes_deducted": self.lunch_minutes,
            "overtime_minutes": 0,
        }


class DuplicateEntry(DomainError):
    """Raised when a worker logs the same date/start/end window twice."""

    def __init__(self, message: str = "Duplicate work entry for this worker/date/time combination"):
        super().__init__(message)


class StorageFailure(Exception):
    """Any underlying persistence error. Never retried inside the engine."""


class PartialLedgerUpdate(StorageFailure):
    """An entry write and its summary increment diverged.

    The atomicity boundary was violated (e.g. rollback failed after a write);
    the affected key needs operator attention and a recompute.
    """

    def __init__(self, message: str, *, key=None):
        super().__init__(message)
        self.key = key
