from __future__ import annotations

from typing import Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, storage_errors
from .model import Worker
from .repository import WorkerRepository

_COLUMNS = "worker_id, name, employee_code, department, role, base_hours_per_day"


def _row_to_worker(r: dict) -> Worker:
    return Worker(
        worker_id=int(r["worker_id"]),
        name=r["name"],
        employee_code=r.get("employee_code"),
        department=r.get("department") or "General",
        role=r.get("role") or "worker",
        base_hours_per_day=float(r.get("base_hours_per_day") or 0),
    )


class MySQLWorkerRepository(WorkerRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, worker_id: int) -> Optional[Worker]:
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM workers WHERE worker_id=%s", (int(worker_id),))
            row = fetchone(cur)
            return _row_to_worker(row) if row else None

    def list_all(self) -> Sequence[Worker]:
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM workers ORDER BY name ASC, worker_id ASC")
            return [_row_to_worker(r) for r in fetchall(cur)]
