from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.constants import MINUTES_PER_HOUR, PAID_LIMIT_MINUTES


@dataclass(frozen=True)
class OvertimeSplit:
    base_minutes: int
    overtime_minutes: int
    paid_minutes: int
    unpaid_minutes: int
    remaining_paid_before: int

    @property
    def remaining_paid_after(self) -> int:
        return max(self.remaining_paid_before - self.paid_minutes, 0)


class OvertimeSplitter:
    """Splits an entry's overtime into paid/unpaid against the monthly cap."""

    def __init__(self, *, paid_limit_minutes: int = PAID_LIMIT_MINUTES):
        self._paid_limit = int(paid_limit_minutes)

    @property
    def paid_limit_minutes(self) -> int:
        return self._paid_limit

    @staticmethod
    def base_minutes(base_hours_per_day: float) -> int:
        return int(round(float(base_hours_per_day) * MINUTES_PER_HOUR))

    def overtime_minutes(self, total_worked_minutes: int, base_hours_per_day: float) -> int:
        return max(int(total_worked_minutes) - self.base_minutes(base_hours_per_day), 0)

    def split(self, total_worked_minutes: int, base_hours_per_day: float, already_paid_minutes: int) -> Optional[OvertimeSplit]:
        """Return the split, or None when there is no overtime at all.

        `already_paid_minutes` is the month's paid total *excluding* the entry
        being split; the caller computes it (see LedgerService.update_entry).
        """

        overtime = self.overtime_minutes(total_worked_minutes, base_hours_per_day)
        if overtime == 0:
            return None

        remaining = max(self._paid_limit - int(already_paid_minutes), 0)
        paid = min(overtime, remaining)
        return OvertimeSplit(
            base_minutes=self.base_minutes(base_hours_per_day),
            overtime_minutes=overtime,
            paid_minutes=paid,
            unpaid_minutes=overtime - paid,
            remaining_paid_before=remaining,
        )
