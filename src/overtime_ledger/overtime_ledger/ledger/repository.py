from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Optional, Protocol, Sequence

from .model import MonthlySummary, NewWorkEntry, SummaryDelta, SummaryKey, WorkEntry


class LedgerUnitOfWork(Protocol):
    """Writes scoped to one aggregation key; committed together or not at all.

    Obtained from LedgerRepository.unit_of_work(key). Reads made through the
    unit of work see its own pending writes.
    """

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        raise NotImplementedError

    def lock_summary(self) -> Optional[MonthlySummary]:
        """Read the key's summary and hold it against concurrent writers.

        Returns None when no row exists yet (treated as zero by callers).
        """

        raise NotImplementedError

    def create_entry(self, data: NewWorkEntry) -> WorkEntry:
        raise NotImplementedError

    def save_entry(self, entry: WorkEntry) -> WorkEntry:
        raise NotImplementedError

    def delete_entry(self, entry_id: int) -> bool:
        raise NotImplementedError

    def increment_summary(self, delta: SummaryDelta) -> None:
        """Upsert the key's summary, adding `delta` to each running total."""

        raise NotImplementedError

    def replace_summary(self, totals: SummaryDelta) -> None:
        """Overwrite the key's totals. Only used by the administrative recompute."""

        raise NotImplementedError

    def list_key_entries(self) -> Sequence[WorkEntry]:
        raise NotImplementedError


class LedgerRepository(Protocol):
    """Persistence for WorkEntry rows and their MonthlySummary aggregates."""

    def unit_of_work(self, key: SummaryKey) -> AbstractContextManager[LedgerUnitOfWork]:
        raise NotImplementedError

    def get_entry(self, entry_id: int) -> Optional[WorkEntry]:
        raise NotImplementedError

    def get_summary(self, key: SummaryKey) -> Optional[MonthlySummary]:
        raise NotImplementedError

    def list_entries(
        self,
        *,
        worker_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Sequence[WorkEntry]:
        """Entries ordered by date desc, then created_at desc."""

        raise NotImplementedError

    def list_summaries(
        self,
        *,
        worker_id: Optional[int] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Sequence[MonthlySummary]:
        """Summaries ordered by year desc, month desc, worker_id asc."""

        raise NotImplementedError
