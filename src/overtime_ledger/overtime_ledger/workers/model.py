from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.constants import DEFAULT_BASE_HOURS, DEFAULT_DEPARTMENT, DEFAULT_WORKER_ROLE


@dataclass(frozen=True)
class Worker:
    """Domain entity: a shift worker.

    Owned by the external worker store; the ledger only reads it.
    """

    worker_id: int
    name: str
    employee_code: Optional[str] = None
    department: str = DEFAULT_DEPARTMENT
    role: str = DEFAULT_WORKER_ROLE
    base_hours_per_day: float = DEFAULT_BASE_HOURS

    @property
    def effective_base_hours(self) -> float:
        # Missing/zero base hours fall back to the default working day.
        return float(self.base_hours_per_day or DEFAULT_BASE_HOURS)
