from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Optional

from ..core.constants import PAID_LIMIT_MINUTES
from ..overtime.splitter import OvertimeSplit


@dataclass(frozen=True)
class SummaryKey:
    """Aggregation key: one MonthlySummary row per (worker, month, year)."""

    worker_id: int
    month: int
    year: int

    @classmethod
    def for_date(cls, worker_id: int, work_date: date) -> "SummaryKey":
        return cls(worker_id=int(worker_id), month=work_date.month, year=work_date.year)


@dataclass(frozen=True)
class SummaryDelta:
    overtime_minutes: int = 0
    paid_minutes: int = 0
    unpaid_minutes: int = 0

    @property
    def is_zero(self) -> bool:
        return not (self.overtime_minutes or self.paid_minutes or self.unpaid_minutes)

    def __neg__(self) -> "SummaryDelta":
        return SummaryDelta(-self.overtime_minutes, -self.paid_minutes, -self.unpaid_minutes)

    def __sub__(self, other: "SummaryDelta") -> "SummaryDelta":
        return SummaryDelta(
            self.overtime_minutes - other.overtime_minutes,
            self.paid_minutes - other.paid_minutes,
            self.unpaid_minutes - other.unpaid_minutes,
        )


@dataclass(frozen=True)
class NewWorkEntry:
    """Entry values computed by the reconciler, before the store assigns an id."""

    worker_id: int
    date: date
    start_time: str
    end_time: str
    deduct_lunch: bool
    total_worked_minutes: int
    base_minutes_deducted: int
    overtime_minutes: int
    paid_minutes: int
    unpaid_minutes: int
    notes: str = ""

    @property
    def month(self) -> int:
        return self.date.month

    @property
    def year(self) -> int:
        return self.date.year


@dataclass(frozen=True)
class WorkEntry:
    """Domain entity: one clock-in/clock-out record with its stored derivations."""

    entry_id: int
    worker_id: int
    date: date
    start_time: str
    end_time: str
    deduct_lunch: bool
    total_worked_minutes: int
    base_minutes_deducted: int
    overtime_minutes: int
    paid_minutes: int
    unpaid_minutes: int
    month: int
    year: int
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> SummaryKey:
        return SummaryKey(self.worker_id, self.month, self.year)

    @property
    def contribution(self) -> SummaryDelta:
        return SummaryDelta(self.overtime_minutes, self.paid_minutes, self.unpaid_minutes)

    @property
    def window(self) -> tuple[int, date, str, str]:
        return (self.worker_id, self.date, self.start_time, self.end_time)

    def with_values(self, values: NewWorkEntry, *, updated_at: Optional[datetime] = None) -> "WorkEntry":
        return replace(
            self,
            start_time=values.start_time,
            end_time=values.end_time,
            deduct_lunch=values.deduct_lunch,
            total_worked_minutes=values.total_worked_minutes,
            base_minutes_deducted=values.base_minutes_deducted,
            overtime_minutes=values.overtime_minutes,
            paid_minutes=values.paid_minutes,
            unpaid_minutes=values.unpaid_minutes,
            notes=values.notes,
            updated_at=updated_at or self.updated_at,
        )


@dataclass(frozen=True)
class MonthlySummary:
    """Denormalized rollup of all entries for one aggregation key."""

    worker_id: int
    month: int
    year: int
    total_overtime_minutes: int = 0
    total_paid_minutes: int = 0
    total_unpaid_minutes: int = 0

    @property
    def key(self) -> SummaryKey:
        return SummaryKey(self.worker_id, self.month, self.year)

    @property
    def totals(self) -> SummaryDelta:
        return SummaryDelta(self.total_overtime_minutes, self.total_paid_minutes, self.total_unpaid_minutes)

    @classmethod
    def empty(cls, key: SummaryKey) -> "MonthlySummary":
        return cls(worker_id=key.worker_id, month=key.month, year=key.year)

    def plus(self, delta: SummaryDelta) -> "MonthlySummary":
        return replace(
            self,
            total_overtime_minutes=self.total_overtime_minutes + delta.overtime_minutes,
            total_paid_minutes=self.total_paid_minutes + delta.paid_minutes,
            total_unpaid_minutes=self.total_unpaid_minutes + delta.unpaid_minutes,
        )


@dataclass(frozen=True)
class Breakdown:
    """How worked minutes were derived; returned to callers for display."""

    total_worked_minutes: int
    lunch_minutes_deducted: int
    base_hours_per_day: float
    base_minutes_deducted: int
    overnight: bool


@dataclass(frozen=True)
class EntryOutcome:
    entry: WorkEntry
    breakdown: Breakdown
    split: OvertimeSplit

    @property
    def remaining_paid_minutes_after(self) -> int:
        return self.split.remaining_paid_after


@dataclass(frozen=True)
class SummaryView:
    """Read projection of a summary (zeros when the row does not exist)."""

    worker_id: int
    month: int
    year: int
    total_overtime_minutes: int
    total_paid_minutes: int
    total_unpaid_minutes: int
    remaining_paid_minutes: int
    worker_name: Optional[str] = None
    employee_code: Optional[str] = None
    department: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: MonthlySummary, *, worker=None, paid_limit: int = PAID_LIMIT_MINUTES) -> "SummaryView":
        return cls(
            worker_id=summary.worker_id,
            month=summary.month,
            year=summary.year,
            total_overtime_minutes=summary.total_overtime_minutes,
            total_paid_minutes=summary.total_paid_minutes,
            total_unpaid_minutes=summary.total_unpaid_minutes,
            remaining_paid_minutes=max(paid_limit - summary.total_paid_minutes, 0),
            worker_name=getattr(worker, "name", None),
            employee_code=getattr(worker, "employee_code", None),
            department=getattr(worker, "department", None),
        )


@dataclass(frozen=True)
class EntryListing:
    entries: list[WorkEntry]
    totals: SummaryDelta = field(default_factory=SummaryDelta)
    workers: dict = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class WorkerAllowance:
    worker_id: int
    name: str
    employee_code: Optional[str]
    department: str
    used_minutes: int
    remaining_minutes: int

    @property
    def used_hours(self) -> float:
        return round(self.used_minutes / 60, 2)

    @property
    def remaining_hours(self) -> float:
        return round(self.remaining_minutes / 60, 2)


@dataclass(frozen=True)
class SummaryDrift:
    """Stored totals vs a fresh sum of the key's entries."""

    key: SummaryKey
    stored: Optional[SummaryDelta]
    recomputed: SummaryDelta
    entry_count: int

    @property
    def missing_row(self) -> bool:
        return self.stored is None


@dataclass(frozen=True)
class WorkerSummaryReport:
    """All of a worker's monthly rows plus the allowance for the current month."""

    summaries: list[SummaryView]
    current_month: SummaryView
