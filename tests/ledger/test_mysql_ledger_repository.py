from __future__ import annotations

from datetime import date, datetime

import mysql.connector
import pytest
from mysql.connector import errorcode

from src.overtime_ledger.overtime_ledger.core.exceptions import DuplicateEntry, PartialLedgerUpdate, StorageFailure
from src.overtime_ledger.overtime_ledger.ledger.model import NewWorkEntry, SummaryDelta, SummaryKey
from src.overtime_ledger.overtime_ledger.ledger.mysql_ledger_repository import MySQLLedgerRepository

KEY = SummaryKey(1, 3, 2024)
NOW = datetime(2024, 3, 4, 20, 0)


class FakeCursor:
    def __init__(self, script=None):
        self.executed: list[tuple[str, tuple]] = []
        self._script = list(script or [])
        self._rows: list[dict] = []
        self.lastrowid = 0
        self.rowcount = 0

    def execute(self, sql, params=()):
        self.executed.append((" ".join(sql.split()), params))
        outcome = self._script.pop(0) if self._script else None
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, list):
            self._rows = outcome
        elif isinstance(outcome, int):
            self.lastrowid = outcome
            self.rowcount = 1
        else:
            self._rows = []

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)

    def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor, *, rollback_error=None, commit_error=None):
        self._cursor = cursor
        self._rollback_error = rollback_error
        self._commit_error = commit_error
        self.isolation_level = None
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def start_transaction(self, isolation_level=None):
        self.isolation_level = isolation_level

    def cursor(self, dictionary=False):
        return self._cursor

    def commit(self):
        if self._commit_error:
            raise self._commit_error
        self.committed = True

    def rollback(self):
        if self._rollback_error:
            raise self._rollback_error
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeConnFactory:
    def __init__(self, conn):
        self._conn = conn

    def connect(self):
        return self._conn


def _repo(conn):
    return MySQLLedgerRepository(FakeConnFactory(conn), clock=lambda: NOW)


def _new_entry():
    return NewWorkEntry(
        worker_id=1,
        date=date(2024, 3, 4),
        start_time="08:00",
        end_time="19:30",
        deduct_lunch=True,
        total_worked_minutes=630,
        base_minutes_deducted=480,
        overtime_minutes=150,
        paid_minutes=150,
        unpaid_minutes=0,
    )


def _dup_error():
    return mysql.connector.IntegrityError(msg="Duplicate entry", errno=errorcode.ER_DUP_ENTRY)


def test_unit_of_work_commits_in_read_committed():
    cur = FakeCursor(script=[None, None, 42, None])
    conn = FakeConnection(cur)

    with _repo(conn).unit_of_work(KEY) as uow:
        assert uow.lock_summary() is None
        entry = uow.create_entry(_new_entry())
        uow.increment_summary(entry.contribution)

    assert conn.isolation_level == "READ COMMITTED"
    assert conn.committed and conn.closed
    assert entry.entry_id == 42
    assert entry.created_at == NOW
    assert "FOR UPDATE" in cur.executed[0][0]
    assert cur.executed[1][0].startswith("INSERT INTO overtime_summaries(worker_id, `month`, `year`)")
    assert "ON DUPLICATE KEY UPDATE" in cur.executed[3][0]
    assert cur.executed[3][1] == (1, 3, 2024, 150, 150, 0)


def test_placeholder_race_relocks_existing_row():
    row = {
        "worker_id": 1,
        "month": 3,
        "year": 2024,
        "total_overtime_minutes": 90,
        "total_paid_minutes": 90,
        "total_unpaid_minutes": 0,
    }
    cur = FakeCursor(script=[None, _dup_error(), [row]])
    conn = FakeConnection(cur)

    with _repo(conn).unit_of_work(KEY) as uow:
        summary = uow.lock_summary()

    assert summary.total_paid_minutes == 90


def test_duplicate_key_on_insert_becomes_duplicate_entry():
    cur = FakeCursor(script=[_dup_error()])
    conn = FakeConnection(cur)

    with pytest.raises(DuplicateEntry):
        with _repo(conn).unit_of_work(KEY) as uow:
            uow.create_entry(_new_entry())

    assert conn.rolled_back and not conn.committed


def test_other_mysql_errors_become_storage_failure():
    cur = FakeCursor(script=[mysql.connector.OperationalError(msg="Lock wait timeout exceeded", errno=1205)])
    conn = FakeConnection(cur)

    with pytest.raises(StorageFailure) as exc:
        with _repo(conn).unit_of_work(KEY) as uow:
            uow.lock_summary()

    assert isinstance(exc.value.__cause__, mysql.connector.OperationalError)
    assert conn.rolled_back


def test_failed_rollback_after_write_is_partial_update():
    cur = FakeCursor()
    conn = FakeConnection(cur, rollback_error=mysql.connector.InterfaceError(msg="connection lost"))

    with pytest.raises(PartialLedgerUpdate) as exc:
        with _repo(conn).unit_of_work(KEY) as uow:
            uow.increment_summary(SummaryDelta(10, 10, 0))
            raise RuntimeError("entry write failed")

    assert exc.value.key == KEY
    assert isinstance(exc.value.__cause__, mysql.connector.InterfaceError)
    assert conn.closed


def test_failed_rollback_before_any_write_keeps_original_error():
    cur = FakeCursor()
    conn = FakeConnection(cur, rollback_error=mysql.connector.InterfaceError(msg="connection lost"))

    with pytest.raises(RuntimeError):
        with _repo(conn).unit_of_work(KEY):
            raise RuntimeError("validation failed")


def test_failed_commit_is_storage_failure():
    cur = FakeCursor(script=[None])
    conn = FakeConnection(cur, commit_error=mysql.connector.OperationalError(msg="gone away"))

    with pytest.raises(StorageFailure):
        with _repo(conn).unit_of_work(KEY) as uow:
            uow.increment_summary(SummaryDelta(10, 10, 0))

    assert conn.rolled_back
