from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator, Optional, Sequence

import mysql.connector

from ..common.datetime_utils import now_local
from ..core.exceptions import PartialLedgerUpdate
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key, storage_errors
from .model import MonthlySummary, NewWorkEntry, SummaryDelta, SummaryKey, WorkEntry
from .repository import LedgerRepository, LedgerUnitOfWork

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = """
    entry_id, worker_id, `date`, start_time, end_time, deduct_lunch,
    total_worked_minutes, base_minutes_deducted, overtime_minutes, paid_minutes, unpaid_minutes,
    `month`, `year`, notes, created_at, updated_at
"""

_SUMMARY_COLUMNS = "worker_id, `month`, `year`, total_overtime_minutes, total_paid_minutes, total_unpaid_minutes"


def _row_to_entry(r: dict) -> WorkEntry:
    return WorkEntry(
        entry_id=int(r["entry_id"]),
        worker_id=int(r["worker_id"]),
        date=r["date"],
        start_time=r["start_time"],
        end_time=r["end_time"],
        deduct_lunch=bool(r["deduct_lunch"]),
        total_worked_minutes=int(r["total_worked_minutes"]),
        base_minutes_deducted=int(r["base_minutes_deducted"]),
        overtime_minutes=int(r["overtime_minutes"]),
        paid_minutes=int(r["paid_minutes"]),
        unpaid_minutes=int(r["unpaid_minutes"]),
        month=int(r["month"]),
        year=int(r["year"]),
        notes=r.get("notes") or "",
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def _row_to_summary(r: dict) -> MonthlySummary:
    return MonthlySummary(
        worker_id=int(r["worker_id"]),
        month=int(r["month"]),
        year=int(r["year"]),
        total_overtime_minutes=int(r["total_overtime_minutes"]),
        total_paid_minutes=int(r["total_paid_minutes"]),
        total_unpaid_minutes=int(r["total_unpaid_minutes"]),
    )


def _filters(worker_id, month, year) -> tuple[str, tuple]:
    clauses: list[str] = []
    params: list[object] = []
    if worker_id is not None:
        clauses.append("worker_id=%s")
        params.append(int(worker_id))
    if month is not None:
        clauses.append("`month`=%s")
        params.append(int(month))
    if year is not None:
        clauses.append("`year`=%s")
        params.append(int(year))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, tuple(params)


class _MySQLUnitOfWork(LedgerUnitOfWork):
    """One transaction (READ COMMITTED) scoped to an aggregation key."""

    def __init__(self, cur, key: SummaryKey, clock: Callable):
        self._cur = cur
        self._key = key
        self._clock = clock
        self.dirty = False

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        with storage_errors():
            self._cur.execute(f"SELECT {_ENTRY_COLUMNS} FROM work_entries WHERE entry_id=%s FOR UPDATE", (int(entry_id),))
            row = fetchone(self._cur)
        return _row_to_entry(row) if row else None

    def _select_summary_for_update(self) -> Optional[dict]:
        self._cur.execute(
            f"SELECT {_SUMMARY_COLUMNS} FROM overtime_summaries WHERE worker_id=%s AND `month`=%s AND `year`=%s FOR UPDATE",
            (self._key.worker_id, self._key.month, self._key.year),
        )
        return fetchone(self._cur)

    def lock_summary(self) -> Optional[MonthlySummary]:
        with storage_errors():
            row = self._select_summary_for_update()
            if row:
                return _row_to_summary(row)

            # No row yet: insert a zero placeholder so there is something to lock.
            # It disappears on rollback; a concurrent creator shows up as a duplicate key.
            try:
                self._cur.execute(
                    "INSERT INTO overtime_summaries(worker_id, `month`, `year`) VALUES(%s,%s,%s)",
                    (self._key.worker_id, self._key.month, self._key.year),
                )
            except mysql.connector.IntegrityError as exc:
                if not is_duplicate_key(exc):
                    raise
                row = self._select_summary_for_update()
                return _row_to_summary(row) if row else None
            return None

    def create_entry(self, data: NewWorkEntry) -> WorkEntry:
        now = self._clock()
        with storage_errors(duplicates=True):
            self._cur.execute(
                """
                INSERT INTO work_entries(
                    worker_id, `date`, start_time, end_time, deduct_lunch,
                    total_worked_minutes, base_minutes_deducted, overtime_minutes, paid_minutes, unpaid_minutes,
                    `month`, `year`, notes, created_at, updated_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    data.worker_id,
                    data.date,
                    data.start_time,
                    data.end_time,
                    int(data.deduct_lunch),
                    data.total_worked_minutes,
                    data.base_minutes_deducted,
                    data.overtime_minutes,
                    data.paid_minutes,
                    data.unpaid_minutes,
                    data.month,
                    data.year,
                    data.notes,
                    now,
                    now,
                ),
            )
            entry_id = int(self._cur.lastrowid)
        self.dirty = True
        return WorkEntry(
            entry_id=entry_id,
            worker_id=data.worker_id,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            deduct_lunch=data.deduct_lunch,
            total_worked_minutes=data.total_worked_minutes,
            base_minutes_deducted=data.base_minutes_deducted,
            overtime_minutes=data.overtime_minutes,
            paid_minutes=data.paid_minutes,
            unpaid_minutes=data.unpaid_minutes,
            month=data.month,
            year=data.year,
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )

    def save_entry(self, entry: WorkEntry) -> WorkEntry:
        now = self._clock()
        with storage_errors(duplicates=True):
            self._cur.execute(
                """
                UPDATE work_entries
                SET start_time=%s, end_time=%s, deduct_lunch=%s,
                    total_worked_minutes=%s, base_minutes_deducted=%s,
                    overtime_minutes=%s, paid_minutes=%s, unpaid_minutes=%s,
                    notes=%s, updated_at=%s
                WHERE entry_id=%s
                """,
                (
                    entry.start_time,
                    entry.end_time,
                    int(entry.deduct_lunch),
                    entry.total_worked_minutes,
                    entry.base_minutes_deducted,
                    entry.overtime_minutes,
                    entry.paid_minutes,
                    entry.unpaid_minutes,
                    entry.notes,
                    now,
                    entry.entry_id,
                ),
            )
        self.dirty = True
        return replace(entry, updated_at=now)

    def delete_entry(self, entry_id: int) -> bool:
        with storage_errors():
            self._cur.execute("DELETE FROM work_entries WHERE entry_id=%s", (int(entry_id),))
            deleted = self._cur.rowcount > 0
        self.dirty = self.dirty or deleted
        return deleted

    def increment_summary(self, delta: SummaryDelta) -> None:
        with storage_errors():
            self._cur.execute(
                f"""
                INSERT INTO overtime_summaries({_SUMMARY_COLUMNS})
                VALUES(%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    total_overtime_minutes = total_overtime_minutes + VALUES(total_overtime_minutes),
                    total_paid_minutes = total_paid_minutes + VALUES(total_paid_minutes),
                    total_unpaid_minutes = total_unpaid_minutes + VALUES(total_unpaid_minutes)
                """,
                (
                    self._key.worker_id,
                    self._key.month,
                    self._key.year,
                    delta.overtime_minutes,
                    delta.paid_minutes,
                    delta.unpaid_minutes,
                ),
            )
        self.dirty = True

    def replace_summary(self, totals: SummaryDelta) -> None:
        with storage_errors():
            self._cur.execute(
                f"""
                INSERT INTO overtime_summaries({_SUMMARY_COLUMNS})
                VALUES(%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE
                    total_overtime_minutes = VALUES(total_overtime_minutes),
                    total_paid_minutes = VALUES(total_paid_minutes),
                    total_unpaid_minutes = VALUES(total_unpaid_minutes)
                """,
                (
                    self._key.worker_id,
                    self._key.month,
                    self._key.year,
                    totals.overtime_minutes,
                    totals.paid_minutes,
                    totals.unpaid_minutes,
                ),
            )
        self.dirty = True

    def list_key_entries(self) -> Sequence[WorkEntry]:
        with storage_errors():
            self._cur.execute(
                f"""
                SELECT {_ENTRY_COLUMNS} FROM work_entries
                WHERE worker_id=%s AND `month`=%s AND `year`=%s
                ORDER BY `date` DESC, created_at DESC
                FOR UPDATE
                """,
                (self._key.worker_id, self._key.month, self._key.year),
            )
            return [_row_to_entry(r) for r in fetchall(self._cur)]


class MySQLLedgerRepository(LedgerRepository):
    def __init__(self, conn_factory: DatabaseConnection, *, clock: Callable = now_local):
        self._conn_factory = conn_factory
        self._clock = clock

    @contextmanager
    def unit_of_work(self, key: SummaryKey) -> Iterator[_MySQLUnitOfWork]:
        with storage_errors():
            conn = self._conn_factory.connect()
        try:
            with storage_errors():
                conn.start_transaction(isolation_level="READ COMMITTED")
                cur = conn.cursor(dictionary=True)
            uow = _MySQLUnitOfWork(cur, key, self._clock)
            try:
                yield uow
            except Exception as exc:
                self._rollback(conn, uow, key, exc)
                raise
            try:
                with storage_errors():
                    conn.commit()
            except Exception as exc:
                self._rollback(conn, uow, key, exc)
                raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn, uow: _MySQLUnitOfWork, key: SummaryKey, cause: Exception) -> None:
        try:
            conn.rollback()
        except mysql.connector.Error as rb_exc:
            if uow.dirty:
                raise PartialLedgerUpdate(
                    f"Rollback failed for worker {key.worker_id} {key.month}/{key.year} after: {cause}",
                    key=key,
                ) from rb_exc
            logger.warning("Rollback failed before any write (worker=%s %s/%s): %s", key.worker_id, key.month, key.year, rb_exc)

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_ENTRY_COLUMNS} FROM work_entries WHERE entry_id=%s", (int(entry_id),))
            row = fetchone(cur)
            return _row_to_entry(row) if row else None

    def get_summary(self, key: SummaryKey) -> Optional[MonthlySummary]:
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM overtime_summaries WHERE worker_id=%s AND `month`=%s AND `year`=%s",
                (key.worker_id, key.month, key.year),
            )
            row = fetchone(cur)
            return _row_to_summary(row) if row else None

    def list_entries(self, *, worker_id=None, month=None, year=None) -> Sequence[WorkEntry]:
        where, params = _filters(worker_id, month, year)
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM work_entries {where} ORDER BY `date` DESC, created_at DESC, entry_id DESC",
                params,
            )
            return [_row_to_entry(r) for r in fetchall(cur)]

    def list_summaries(self, *, worker_id=None, month=None, year=None) -> Sequence[MonthlySummary]:
        where, params = _filters(worker_id, month, year)
        with storage_errors(), db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_SUMMARY_COLUMNS} FROM overtime_summaries {where} ORDER BY `year` DESC, `month` DESC, worker_id ASC",
                params,
            )
            return [_row_to_summary(r) for r in fetchall(cur)]
