from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .database.connection import DBConfig, DatabaseConnection
from .ledger.memory_ledger_repository import InMemoryLedgerRepository
from .ledger.mysql_ledger_repository import MySQLLedgerRepository
from .ledger.repository import LedgerRepository
from .ledger.service import LedgerService
from .workers.memory_worker_repository import InMemoryWorkerRepository
from .workers.model import Worker
from .workers.mysql_worker_repository import MySQLWorkerRepository
from .workers.repository import WorkerRepository


@dataclass(frozen=True)
class Container:
    ledger_repo: LedgerRepository
    workers_repo: WorkerRepository

    ledger_service: LedgerService

    # Only set for the MySQL backend.
    conn: Optional[DatabaseConnection] = None


def build_container(*, db_config: dict) -> Container:
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
    )
    conn = DatabaseConnection(config)

    ledger_repo = MySQLLedgerRepository(conn)
    workers_repo = MySQLWorkerRepository(conn)
    ledger_service = LedgerService(ledger_repo, workers_repo)

    return Container(
        conn=conn,
        ledger_repo=ledger_repo,
        workers_repo=workers_repo,
        ledger_service=ledger_service,
    )


def build_memory_container(workers: Iterable[Worker] = ()) -> Container:
    ledger_repo = InMemoryLedgerRepository()
    workers_repo = InMemoryWorkerRepository(workers)
    return Container(
        ledger_repo=ledger_repo,
        workers_repo=workers_repo,
        ledger_service=LedgerService(ledger_repo, workers_repo),
    )
