from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.validators import clean_notes, optional_month_year, require_id, require_month, require_year
from ..core.exceptions import EntryNotFound, NoOvertimeToRecord, PartialLedgerUpdate, WorkerNotFound
from ..overtime.resolver import TimeWindow, TimeWindowResolver
from ..overtime.splitter import OvertimeSplit, OvertimeSplitter
from ..workers.model import Worker
from ..workers.repository import WorkerRepository
from .locks import KeyedLock
from .model import (
    Breakdown,
    EntryListing,
    EntryOutcome,
    MonthlySummary,
    NewWorkEntry,
    SummaryDelta,
    SummaryDrift,
    SummaryKey,
    SummaryView,
    WorkEntry,
    WorkerAllowance,
    WorkerSummaryReport,
)
from .repository import LedgerRepository

logger = logging.getLogger(__name__)


def _sum_contributions(entries: Iterable[WorkEntry]) -> SummaryDelta:
    overtime = paid = unpaid = 0
    for e in entries:
        overtime += e.overtime_minutes
        paid += e.paid_minutes
        unpaid += e.unpaid_minutes
    return SummaryDelta(overtime, paid, unpaid)


class LedgerService:
    """Owns the WorkEntry life cycle and keeps MonthlySummary rows consistent.

    Every create/update/delete runs under a per-key lock and inside one storage
    unit of work, so the cap-aware split and the summary increment are
    serialized per (worker, month, year) and land together or not at all.
    Summaries are maintained by deltas; reads never recompute them.
    """

    def __init__(
        self,
        ledger: LedgerRepository,
        workers: WorkerRepository,
        *,
        resolver: Optional[TimeWindowResolver] = None,
        splitter: Optional[OvertimeSplitter] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._ledger = ledger
        self._workers = workers
        self._resolver = resolver or TimeWindowResolver()
        self._splitter = splitter or OvertimeSplitter()
        self._locks = locks or KeyedLock()

    @property
    def paid_limit_minutes(self) -> int:
        return self._splitter.paid_limit_minutes

    # ---- helpers ----

    def _get_worker(self, worker_id: int) -> Worker:
        worker = self._workers.get_by_id(worker_id)
        if not worker:
            raise WorkerNotFound(worker_id)
        return worker

    def _ensure_overtime(self, window: TimeWindow, base_hours: float) -> None:
        if self._splitter.overtime_minutes(window.worked_minutes, base_hours) == 0:
            raise NoOvertimeToRecord(
                total_worked_minutes=window.worked_minutes,
                base_hours_per_day=base_hours,
                base_minutes=self._splitter.base_minutes(base_hours),
                lunch_minutes=window.lunch_minutes,
            )

    @staticmethod
    def _breakdown(window: TimeWindow, base_hours: float, split: OvertimeSplit) -> Breakdown:
        return Breakdown(
            total_worked_minutes=window.worked_minutes,
            lunch_minutes_deducted=window.lunch_minutes,
            base_hours_per_day=base_hours,
            base_minutes_deducted=split.base_minutes,
            overnight=window.overnight,
        )

    @staticmethod
    def _entry_values(
        *,
        worker_id: int,
        work_date: date,
        start_time: str,
        end_time: str,
        deduct_lunch: bool,
        notes: str,
        window: TimeWindow,
        split: OvertimeSplit,
    ) -> NewWorkEntry:
        return NewWorkEntry(
            worker_id=worker_id,
            date=work_date,
            start_time=start_time,
            end_time=end_time,
            deduct_lunch=deduct_lunch,
            total_worked_minutes=window.worked_minutes,
            base_minutes_deducted=split.base_minutes,
            overtime_minutes=split.overtime_minutes,
            paid_minutes=split.paid_minutes,
            unpaid_minutes=split.unpaid_minutes,
            notes=notes,
        )

    def _view(self, summary: MonthlySummary, worker: Optional[Worker] = None) -> SummaryView:
        return SummaryView.from_summary(summary, worker=worker, paid_limit=self.paid_limit_minutes)

    # ---- life cycle ----

    def add_entry(
        self,
        worker_id: int,
        work_date: date | str,
        start_time: str,
        end_time: str,
        deduct_lunch: bool = True,
        notes: Optional[str] = "",
    ) -> EntryOutcome:
        worker = self._get_worker(require_id(worker_id, "worker_id"))
        day = parse_iso_date(work_date)
        window = self._resolver.resolve_window(day, start_time, end_time, bool(deduct_lunch))
        base_hours = worker.effective_base_hours
        self._ensure_overtime(window, base_hours)

        key = SummaryKey.for_date(worker.worker_id, day)
        try:
            with self._locks.hold(key), self._ledger.unit_of_work(key) as uow:
                summary = uow.lock_summary()
                already_paid = summary.total_paid_minutes if summary else 0
                split = self._splitter.split(window.worked_minutes, base_hours, already_paid)

                entry = uow.create_entry(
                    self._entry_values(
                        worker_id=worker.worker_id,
                        work_date=day,
                        start_time=window.start_clock,
                        end_time=window.end_clock,
                        deduct_lunch=bool(deduct_lunch),
                        notes=clean_notes(notes),
                        window=window,
                        split=split,
                    )
                )
                uow.increment_summary(entry.contribution)
        except PartialLedgerUpdate:
            logger.error("Partial ledger update while adding entry (worker=%s %s/%s)", key.worker_id, key.month, key.year)
            raise

        logger.info(
            "Added entry %s (worker=%s %s/%s): overtime=%s paid=%s unpaid=%s",
            entry.entry_id, key.worker_id, key.month, key.year,
            split.overtime_minutes, split.paid_minutes, split.unpaid_minutes,
        )
        return EntryOutcome(entry=entry, breakdown=self._breakdown(window, base_hours, split), split=split)

    def update_entry(
        self,
        entry_id: int,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        deduct_lunch: Optional[bool] = None,
        notes: Optional[str] = None,
    ) -> EntryOutcome:
        """Full recompute of an entry; omitted values keep what is stored.

        Omitting `deduct_lunch` keeps the entry's stored lunch flag (it does not
        reset to True). Times are stored in canonical HH:MM form.

        The paid baseline excludes this entry's own paid minutes, and the summary
        receives the difference between new and old values, never absolutes.
        """

        entry_id = require_id(entry_id, "entry_id")
        existing = self._ledger.get_entry(entry_id)
        if not existing:
            raise EntryNotFound(entry_id)
        worker = self._get_worker(existing.worker_id)

        new_start = (start_time or "").strip() or existing.start_time
        new_end = (end_time or "").strip() or existing.end_time
        new_lunch = existing.deduct_lunch if deduct_lunch is None else bool(deduct_lunch)
        new_notes = existing.notes if notes is None else clean_notes(notes)

        window = self._resolver.resolve_window(existing.date, new_start, new_end, new_lunch)
        base_hours = worker.effective_base_hours
        self._ensure_overtime(window, base_hours)

        key = existing.key
        try:
            with self._locks.hold(key), self._ledger.unit_of_work(key) as uow:
                current = uow.get_entry(entry_id)
                if not current:
                    raise EntryNotFound(entry_id)

                summary = uow.lock_summary()
                if summary is None:
                    logger.warning(
                        "Summary missing for worker=%s %s/%s while updating entry %s; using zero baseline",
                        key.worker_id, key.month, key.year, entry_id,
                    )
                paid_without_entry = max((summary.total_paid_minutes if summary else 0) - current.paid_minutes, 0)
                split = self._splitter.split(window.worked_minutes, base_hours, paid_without_entry)

                values = self._entry_values(
                    worker_id=current.worker_id,
                    work_date=current.date,
                    start_time=window.start_clock,
                    end_time=window.end_clock,
                    deduct_lunch=new_lunch,
                    notes=new_notes,
                    window=window,
                    split=split,
                )
                saved = uow.save_entry(current.with_values(values))
                delta = saved.contribution - current.contribution
                if not delta.is_zero:
                    uow.increment_summary(delta)
        except PartialLedgerUpdate:
            logger.error("Partial ledger update while updating entry %s (worker=%s %s/%s)", entry_id, key.worker_id, key.month, key.year)
            raise

        logger.info(
            "Updated entry %s (worker=%s %s/%s): delta overtime=%+d paid=%+d unpaid=%+d",
            entry_id, key.worker_id, key.month, key.year,
            delta.overtime_minutes, delta.paid_minutes, delta.unpaid_minutes,
        )
        return EntryOutcome(entry=saved, breakdown=self._breakdown(window, base_hours, split), split=split)

    def delete_entry(self, entry_id: int) -> WorkEntry:
        entry_id = require_id(entry_id, "entry_id")
        existing = self._ledger.get_entry(entry_id)
        if not existing:
            raise EntryNotFound(entry_id)

        key = existing.key
        try:
            with self._locks.hold(key), self._ledger.unit_of_work(key) as uow:
                current = uow.get_entry(entry_id)
                if not current:
                    raise EntryNotFound(entry_id)

                if uow.lock_summary() is None:
                    logger.warning(
                        "Summary missing for worker=%s %s/%s while deleting entry %s",
                        key.worker_id, key.month, key.year, entry_id,
                    )
                # Reversal is taken from the stored values before the row goes away.
                uow.increment_summary(-current.contribution)
                uow.delete_entry(entry_id)
        except PartialLedgerUpdate:
            logger.error("Partial ledger update while deleting entry %s (worker=%s %s/%s)", entry_id, key.worker_id, key.month, key.year)
            raise

        logger.info(
            "Deleted entry %s (worker=%s %s/%s): reversed overtime=%s paid=%s unpaid=%s",
            entry_id, key.worker_id, key.month, key.year,
            current.overtime_minutes, current.paid_minutes, current.unpaid_minutes,
        )
        return current

    # ---- read projections ----

    def get_entry(self, entry_id: int) -> WorkEntry:
        entry = self._ledger.get_entry(require_id(entry_id, "entry_id"))
        if not entry:
            raise EntryNotFound(entry_id)
        return entry

    def get_worker_month_summary(self, worker_id: int, month: int, year: int) -> SummaryView:
        key = SummaryKey(require_id(worker_id, "worker_id"), require_month(month), require_year(year))
        summary = self._ledger.get_summary(key) or MonthlySummary.empty(key)
        return self._view(summary, self._workers.get_by_id(key.worker_id))

    def get_all_worker_summaries(self, month: int, year: int) -> list[SummaryView]:
        month, year = require_month(month), require_year(year)
        workers = {w.worker_id: w for w in self._workers.list_all()}
        return [self._view(s, workers.get(s.worker_id)) for s in self._ledger.list_summaries(month=month, year=year)]

    def list_worker_summaries(
        self,
        worker_id: int,
        month: Optional[int] = None,
        year: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> WorkerSummaryReport:
        worker_id = require_id(worker_id, "worker_id")
        month, year = optional_month_year(month, year)
        worker = self._workers.get_by_id(worker_id)

        rows = self._ledger.list_summaries(worker_id=worker_id, month=month, year=year)
        today = today or now_local().date()
        current_key = SummaryKey.for_date(worker_id, today)
        current = self._ledger.get_summary(current_key) or MonthlySummary.empty(current_key)
        return WorkerSummaryReport(
            summaries=[self._view(s, worker) for s in rows],
            current_month=self._view(current, worker),
        )

    def list_worker_entries(self, worker_id: int, month: Optional[int] = None, year: Optional[int] = None) -> EntryListing:
        worker_id = require_id(worker_id, "worker_id")
        month, year = optional_month_year(month, year)
        entries = list(self._ledger.list_entries(worker_id=worker_id, month=month, year=year))
        worker = self._workers.get_by_id(worker_id)
        return EntryListing(
            entries=entries,
            totals=_sum_contributions(entries),
            workers={worker_id: worker} if worker else {},
        )

    def list_entries(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        department: Optional[str] = None,
    ) -> EntryListing:
        month, year = optional_month_year(month, year)
        workers = {w.worker_id: w for w in self._workers.list_all()}
        entries = list(self._ledger.list_entries(month=month, year=year))
        if department:
            entries = [e for e in entries if e.worker_id in workers and workers[e.worker_id].department == department]
        return EntryListing(entries=entries, totals=_sum_contributions(entries), workers=workers)

    def list_worker_allowances(self, month: int, year: int) -> list[WorkerAllowance]:
        month, year = require_month(month), require_year(year)
        paid_by_worker = {s.worker_id: s.total_paid_minutes for s in self._ledger.list_summaries(month=month, year=year)}
        out: list[WorkerAllowance] = []
        for w in self._workers.list_all():
            used = paid_by_worker.get(w.worker_id, 0)
            out.append(
                WorkerAllowance(
                    worker_id=w.worker_id,
                    name=w.name,
                    employee_code=w.employee_code,
                    department=w.department,
                    used_minutes=used,
                    remaining_minutes=max(self.paid_limit_minutes - used, 0),
                )
            )
        return out

    # ---- administrative audit / repair (outside the hot path) ----

    def audit_month(self, month: int, year: int) -> list[SummaryDrift]:
        """Compare stored summaries with a fresh sum of their entries."""

        month, year = require_month(month), require_year(year)
        by_key: dict[SummaryKey, list[WorkEntry]] = defaultdict(list)
        for e in self._ledger.list_entries(month=month, year=year):
            by_key[e.key].append(e)
        stored = {s.key: s for s in self._ledger.list_summaries(month=month, year=year)}

        drifts: list[SummaryDrift] = []
        for key in sorted(set(by_key) | set(stored), key=lambda k: k.worker_id):
            drift = self._drift(key, stored.get(key), by_key.get(key, []))
            if drift:
                drifts.append(drift)
        if drifts:
            logger.warning("Audit %s/%s: %d summary row(s) drifted from their entries", month, year, len(drifts))
        return drifts

    @staticmethod
    def _drift(key: SummaryKey, summary: Optional[MonthlySummary], entries: list[WorkEntry]) -> Optional[SummaryDrift]:
        fresh = _sum_contributions(entries)
        if summary is None:
            if not entries:
                return None
            return SummaryDrift(key=key, stored=None, recomputed=fresh, entry_count=len(entries))
        if summary.totals == fresh:
            return None
        return SummaryDrift(key=key, stored=summary.totals, recomputed=fresh, entry_count=len(entries))

    def recompute_month(self, month: int, year: int) -> list[SummaryDrift]:
        """Rewrite drifting summaries from their entries; returns what was repaired."""

        repaired: list[SummaryDrift] = []
        for candidate in self.audit_month(month, year):
            key = candidate.key
            with self._locks.hold(key), self._ledger.unit_of_work(key) as uow:
                entries = list(uow.list_key_entries())
                drift = self._drift(key, uow.lock_summary(), entries)
                if drift is None:
                    continue
                uow.replace_summary(drift.recomputed)
            logger.warning(
                "Recomputed summary worker=%s %s/%s: %s -> %s",
                key.worker_id, key.month, key.year, drift.stored, drift.recomputed,
            )
            repaired.append(drift)
        return repaired
