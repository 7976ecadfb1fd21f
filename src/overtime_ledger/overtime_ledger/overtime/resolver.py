from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from ..common.datetime_utils import format_clock, parse_clock, parse_iso_date
from ..core.constants import LUNCH_MINUTES


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime
    raw_minutes: int
    lunch_minutes: int
    worked_minutes: int

    @property
    def overnight(self) -> bool:
        return self.end.date() > self.start.date()

    @property
    def start_clock(self) -> str:
        return format_clock(self.start.time())

    @property
    def end_clock(self) -> str:
        return format_clock(self.end.time())


class TimeWindowResolver:
    """Turns a calendar date plus start/end clock strings into worked minutes.

    Rules:
    - if end is not strictly after start, end falls on the next calendar day
      (the only rollover; multi-day spans are not supported);
    - duration is rounded half-up to a whole minute;
    - the lunch deduction is subtracted and floored at zero.
    """

    def __init__(self, *, lunch_minutes: int = LUNCH_MINUTES):
        self._lunch_minutes = int(lunch_minutes)

    def resolve_window(self, work_date: date | str, start_time: str, end_time: str, deduct_lunch: bool = True) -> TimeWindow:
        day = parse_iso_date(work_date)
        start = datetime.combine(day, parse_clock(start_time))
        end = datetime.combine(day, parse_clock(end_time))
        if end <= start:
            end += timedelta(days=1)

        raw_minutes = math.floor((end - start).total_seconds() / 60 + 0.5)
        lunch = self._lunch_minutes if deduct_lunch else 0
        worked = max(raw_minutes - lunch, 0)
        return TimeWindow(
            start=start,
            end=end,
            raw_minutes=raw_minutes,
            lunch_minutes=min(lunch, raw_minutes),
            worked_minutes=worked,
        )

    def resolve(self, work_date: date | str, start_time: str, end_time: str, deduct_lunch: bool = True) -> int:
        return self.resolve_window(work_date, start_time, end_time, deduct_lunch).worked_minutes
