from __future__ import annotations

from datetime import date

import pytest

from src.overtime_ledger.overtime_ledger.core.exceptions import DuplicateEntry, PartialLedgerUpdate
from src.overtime_ledger.overtime_ledger.ledger.memory_ledger_repository import InMemoryLedgerRepository
from src.overtime_ledger.overtime_ledger.ledger.model import NewWorkEntry, SummaryDelta, SummaryKey
from src.overtime_ledger.overtime_ledger.ledger.service import LedgerService
from src.overtime_ledger.overtime_ledger.workers.memory_worker_repository import InMemoryWorkerRepository
from src.overtime_ledger.overtime_ledger.workers.model import Worker

KEY = SummaryKey(1, 3, 2024)


def _new_entry(day: int = 4, end: str = "19:30") -> NewWorkEntry:
    return NewWorkEntry(
        worker_id=1,
        date=date(2024, 3, day),
        start_time="08:00",
        end_time=end,
        deduct_lunch=True,
        total_worked_minutes=630,
        base_minutes_deducted=480,
        overtime_minutes=150,
        paid_minutes=150,
        unpaid_minutes=0,
    )


def _service(repo):
    return LedgerService(repo, InMemoryWorkerRepository([Worker(worker_id=1, name="Ana Torres")]))


def test_staged_writes_are_visible_inside_the_unit_of_work():
    repo = InMemoryLedgerRepository()
    with repo.unit_of_work(KEY) as uow:
        entry = uow.create_entry(_new_entry())
        uow.increment_summary(entry.contribution)

        assert uow.get_entry(entry.entry_id) == entry
        assert uow.lock_summary().total_paid_minutes == 150
        assert repo.get_entry(entry.entry_id) is None

    assert repo.get_entry(entry.entry_id) == entry
    assert repo.get_summary(KEY).total_paid_minutes == 150


def test_exception_discards_staged_writes():
    repo = InMemoryLedgerRepository()
    with pytest.raises(RuntimeError):
        with repo.unit_of_work(KEY) as uow:
            entry = uow.create_entry(_new_entry())
            uow.increment_summary(entry.contribution)
            raise RuntimeError("boom")

    assert repo.list_entries() == []
    assert repo.get_summary(KEY) is None


def test_duplicate_window_inside_one_unit_of_work():
    repo = InMemoryLedgerRepository()
    with pytest.raises(DuplicateEntry):
        with repo.unit_of_work(KEY) as uow:
            uow.create_entry(_new_entry())
            uow.create_entry(_new_entry())

    assert repo.list_entries() == []


def test_failed_summary_step_leaves_no_entry(monkeypatch):
    repo = InMemoryLedgerRepository()

    def failing_summary(*args, **kwargs):
        raise RuntimeError("summary write failed")

    monkeypatch.setattr(repo, "_apply_summary", failing_summary)

    with pytest.raises(RuntimeError):
        _service(repo).add_entry(1, "2024-03-04", "08:00", "19:30")

    assert repo.list_entries() == []
    assert repo.get_summary(KEY) is None


def test_failed_summary_step_on_delete_restores_entry(monkeypatch):
    repo = InMemoryLedgerRepository()
    svc = _service(repo)
    added = svc.add_entry(1, "2024-03-04", "08:00", "19:30")

    def failing_summary(*args, **kwargs):
        raise RuntimeError("summary write failed")

    monkeypatch.setattr(repo, "_apply_summary", failing_summary)

    with pytest.raises(RuntimeError):
        svc.delete_entry(added.entry.entry_id)

    assert repo.get_entry(added.entry.entry_id) == added.entry
    assert repo.get_summary(KEY).total_paid_minutes == 150


def test_failed_undo_raises_partial_update(monkeypatch):
    repo = InMemoryLedgerRepository()

    def failing_summary(*args, **kwargs):
        raise RuntimeError("summary write failed")

    def failing_remove(entry_id):
        raise OSError("undo failed")

    monkeypatch.setattr(repo, "_apply_summary", failing_summary)
    monkeypatch.setattr(repo, "_remove_entry", failing_remove)

    with pytest.raises(PartialLedgerUpdate) as exc:
        _service(repo).add_entry(1, "2024-03-04", "08:00", "19:30")

    assert exc.value.key == KEY
    assert isinstance(exc.value.__cause__, OSError)


def test_replace_summary_overrides_running_totals():
    repo = InMemoryLedgerRepository()
    with repo.unit_of_work(KEY) as uow:
        uow.increment_summary(SummaryDelta(10, 10, 0))
    with repo.unit_of_work(KEY) as uow:
        uow.replace_summary(SummaryDelta(3, 2, 1))

    assert repo.get_summary(KEY).totals == SummaryDelta(3, 2, 1)


def test_listing_order_and_filters():
    repo = InMemoryLedgerRepository()
    with repo.unit_of_work(KEY) as uow:
        first = uow.create_entry(_new_entry(day=4))
        second = uow.create_entry(_new_entry(day=9))
        same_day = uow.create_entry(_new_entry(day=9, end="20:00"))

    assert [e.entry_id for e in repo.list_entries(worker_id=1)] == [same_day.entry_id, second.entry_id, first.entry_id]
    assert repo.list_entries(worker_id=2) == []
    assert repo.list_entries(month=4, year=2024) == []
