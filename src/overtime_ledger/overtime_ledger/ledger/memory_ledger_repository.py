from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator, Optional, Sequence

from ..common.datetime_utils import now_local
from ..core.exceptions import DuplicateEntry, PartialLedgerUpdate, StorageFailure
from .model import MonthlySummary, NewWorkEntry, SummaryDelta, SummaryKey, WorkEntry
from .repository import LedgerRepository, LedgerUnitOfWork

_DELETED = object()


def _sort_entries(entries) -> list[WorkEntry]:
    return sorted(entries, key=lambda e: (e.date, e.created_at or e.updated_at, e.entry_id), reverse=True)


class _MemoryUnitOfWork(LedgerUnitOfWork):
    """Stages writes; nothing reaches the store until commit."""

    def __init__(self, store: "InMemoryLedgerRepository", key: SummaryKey):
        self._store = store
        self._key = key
        self._entries: dict[int, object] = {}
        self._delta = SummaryDelta()
        self._touched_summary = False
        self._replacement: Optional[SummaryDelta] = None

    @property
    def dirty(self) -> bool:
        return bool(self._entries) or self._touched_summary

    # reads

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        staged = self._entries.get(int(entry_id))
        if staged is _DELETED:
            return None
        if staged is not None:
            return staged  # type: ignore[return-value]
        return self._store.get_entry(entry_id)

    def lock_summary(self) -> Optional[MonthlySummary]:
        current = self._store.get_summary(self._key)
        if self._replacement is not None:
            current = MonthlySummary.empty(self._key).plus(self._replacement)
        if self._touched_summary:
            current = (current or MonthlySummary.empty(self._key)).plus(self._delta)
        return current

    def list_key_entries(self) -> Sequence[WorkEntry]:
        merged = {e.entry_id: e for e in self._store.list_entries(
            worker_id=self._key.worker_id, month=self._key.month, year=self._key.year
        )}
        for entry_id, staged in self._entries.items():
            if staged is _DELETED:
                merged.pop(entry_id, None)
            else:
                merged[entry_id] = staged  # type: ignore[assignment]
        return _sort_entries(merged.values())

    # writes

    def _check_unique(self, window, *, exclude_id: Optional[int]) -> None:
        for entry in self.list_key_entries():
            if entry.entry_id != exclude_id and entry.window == window:
                raise DuplicateEntry()

    def create_entry(self, data: NewWorkEntry) -> WorkEntry:
        now = self._store.clock()
        entry = WorkEntry(
            entry_id=self._store.allocate_id(),
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
        self._check_unique(entry.window, exclude_id=None)
        self._entries[entry.entry_id] = entry
        return entry

    def save_entry(self, entry: WorkEntry) -> WorkEntry:
        if self.get_entry(entry.entry_id) is None:
            raise StorageFailure(f"Cannot save missing entry {entry.entry_id}")
        self._check_unique(entry.window, exclude_id=entry.entry_id)
        saved = replace(entry, updated_at=self._store.clock())
        self._entries[entry.entry_id] = saved
        return saved

    def delete_entry(self, entry_id: int) -> bool:
        if self.get_entry(entry_id) is None:
            return False
        self._entries[int(entry_id)] = _DELETED
        return True

    def increment_summary(self, delta: SummaryDelta) -> None:
        self._touched_summary = True
        self._delta = SummaryDelta(
            self._delta.overtime_minutes + delta.overtime_minutes,
            self._delta.paid_minutes + delta.paid_minutes,
            self._delta.unpaid_minutes + delta.unpaid_minutes,
        )

    def replace_summary(self, totals: SummaryDelta) -> None:
        self._replacement = totals
        self._delta = SummaryDelta()
        self._touched_summary = True

    # commit

    def commit(self) -> None:
        if not self.dirty:
            return
        delta = self._delta if self._touched_summary else None
        self._store.apply(self._key, self._entries, self._replacement, delta)


class InMemoryLedgerRepository(LedgerRepository):
    """Process-local ledger store.

    Backs the tests and LEDGER_BACKEND=memory. Units of work for the same key
    are expected to be serialized by the caller (LedgerService holds a
    KeyedLock); commits themselves are applied under a store-wide lock.
    """

    def __init__(self, *, clock: Callable = now_local):
        self._lock = threading.RLock()
        self._entries: dict[int, WorkEntry] = {}
        self._summaries: dict[SummaryKey, MonthlySummary] = {}
        self._next_id = 1
        self.clock = clock

    def allocate_id(self) -> int:
        with self._lock:
            entry_id = self._next_id
            self._next_id += 1
            return entry_id

    @contextmanager
    def unit_of_work(self, key: SummaryKey) -> Iterator[_MemoryUnitOfWork]:
        uow = _MemoryUnitOfWork(self, key)
        yield uow
        # An exception above skips the commit; staged writes are dropped.
        uow.commit()

    # reads

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        with self._lock:
            return self._entries.get(int(entry_id))

    def get_summary(self, key: SummaryKey) -> Optional[MonthlySummary]:
        with self._lock:
            return self._summaries.get(key)

    def list_entries(self, *, worker_id=None, month=None, year=None) -> Sequence[WorkEntry]:
        with self._lock:
            rows = [
                e
                for e in self._entries.values()
                if (worker_id is None or e.worker_id == int(worker_id))
                and (month is None or e.month == int(month))
                and (year is None or e.year == int(year))
            ]
        return _sort_entries(rows)

    def list_summaries(self, *, worker_id=None, month=None, year=None) -> Sequence[MonthlySummary]:
        with self._lock:
            rows = [
                s
                for s in self._summaries.values()
                if (worker_id is None or s.worker_id == int(worker_id))
                and (month is None or s.month == int(month))
                and (year is None or s.year == int(year))
            ]
        return sorted(rows, key=lambda s: (-s.year, -s.month, s.worker_id))

    # apply (all-or-nothing)

    def apply(
        self,
        key: SummaryKey,
        staged_entries: dict[int, object],
        replacement: Optional[SummaryDelta],
        delta: Optional[SummaryDelta],
    ) -> None:
        with self._lock:
            undo: list[Callable[[], None]] = []
            try:
                for entry_id, staged in staged_entries.items():
                    previous = self._entries.get(entry_id)
                    if staged is _DELETED:
                        self._remove_entry(entry_id)
                    else:
                        self._put_entry(staged)  # type: ignore[arg-type]
                    if previous is None:
                        undo.append(lambda entry_id=entry_id: self._remove_entry(entry_id))
                    else:
                        undo.append(lambda previous=previous: self._put_entry(previous))

                if delta is not None:
                    previous_summary = self._summaries.get(key)
                    self._apply_summary(key, replacement, delta)
                    undo.append(lambda: self._restore_summary(key, previous_summary))
            except Exception as exc:
                self._undo(key, undo, exc)
                raise

    def _undo(self, key: SummaryKey, undo: list[Callable[[], None]], cause: Exception) -> None:
        try:
            for step in reversed(undo):
                step()
        except Exception as undo_exc:
            raise PartialLedgerUpdate(
                f"Ledger for worker {key.worker_id} {key.month}/{key.year} left partially updated: {cause}",
                key=key,
            ) from undo_exc

    def _put_entry(self, entry: WorkEntry) -> None:
        for other in self._entries.values():
            if other.entry_id != entry.entry_id and other.window == entry.window:
                raise DuplicateEntry()
        self._entries[entry.entry_id] = entry

    def _remove_entry(self, entry_id: int) -> None:
        self._entries.pop(entry_id, None)

    def _apply_summary(self, key: SummaryKey, replacement: Optional[SummaryDelta], delta: SummaryDelta) -> None:
        if replacement is not None:
            base = MonthlySummary.empty(key).plus(replacement)
        else:
            base = self._summaries.get(key) or MonthlySummary.empty(key)
        self._summaries[key] = base.plus(delta)

    def _restore_summary(self, key: SummaryKey, previous: Optional[MonthlySummary]) -> None:
        if previous is None:
            self._summaries.pop(key, None)
        else:
            self._summaries[key] = previous
