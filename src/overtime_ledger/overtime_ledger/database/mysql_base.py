from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import mysql.connector
from mysql.connector import errorcode

from ..core.exceptions import DuplicateEntry, StorageFailure
from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def storage_errors(*, duplicates: bool = False):
    """Translate mysql-connector errors into the ledger's taxonomy.

    Duplicate-key violations become DuplicateEntry when `duplicates` is set;
    everything else becomes StorageFailure (original chained as __cause__).
    """

    try:
        yield
    except mysql.connector.IntegrityError as exc:
        if duplicates and exc.errno == errorcode.ER_DUP_ENTRY:
            raise DuplicateEntry() from exc
        raise StorageFailure(f"Storage integrity error: {exc.msg}") from exc
    except mysql.connector.Error as exc:
        raise StorageFailure(f"Storage error: {exc.msg}") from exc


def is_duplicate_key(exc: BaseException) -> bool:
    return isinstance(exc, mysql.connector.IntegrityError) and exc.errno == errorcode.ER_DUP_ENTRY


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])
