from __future__ import annotations

import logging
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from ..common.datetime_utils import minutes_to_hours
from ..core.exceptions import (
    DuplicateEntry,
    NoOvertimeToRecord,
    NotFoundError,
    PartialLedgerUpdate,
    StorageFailure,
    ValidationError,
)
from ..container import Container
from .model import EntryListing, EntryOutcome, SummaryDelta, SummaryDrift, SummaryView, WorkEntry, WorkerAllowance

logger = logging.getLogger(__name__)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _entry_json(entry: WorkEntry, worker=None) -> dict:
    data = {
        "id": entry.entry_id,
        "worker_id": entry.worker_id,
        "date": entry.date.isoformat(),
        "start_time": entry.start_time,
        "end_time": entry.end_time,
        "deduct_lunch": entry.deduct_lunch,
        "total_worked_minutes": entry.total_worked_minutes,
        "base_minutes_deducted": entry.base_minutes_deducted,
        "overtime_minutes": entry.overtime_minutes,
        "paid_minutes": entry.paid_minutes,
        "unpaid_minutes": entry.unpaid_minutes,
        "month": entry.month,
        "year": entry.year,
        "notes": entry.notes,
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
    }
    if worker is not None:
        data["worker"] = {
            "name": worker.name,
            "employee_code": worker.employee_code,
            "department": worker.department,
        }
    return data


def _totals_json(totals: SummaryDelta) -> dict:
    return {
        "overtime_minutes": totals.overtime_minutes,
        "paid_minutes": totals.paid_minutes,
        "unpaid_minutes": totals.unpaid_minutes,
        "overtime_hours": minutes_to_hours(totals.overtime_minutes),
        "paid_hours": minutes_to_hours(totals.paid_minutes),
        "unpaid_hours": minutes_to_hours(totals.unpaid_minutes),
    }


def _outcome_json(outcome: EntryOutcome) -> dict:
    b = outcome.breakdown
    return {
        "entry": _entry_json(outcome.entry),
        "breakdown": {
            "total_worked_minutes": b.total_worked_minutes,
            "lunch_minutes_deducted": b.lunch_minutes_deducted,
            "base_hours_per_day": b.base_hours_per_day,
            "base_minutes_deducted": b.base_minutes_deducted,
            "overnight": b.overnight,
            "overtime_minutes": outcome.split.overtime_minutes,
            "paid_minutes": outcome.split.paid_minutes,
            "unpaid_minutes": outcome.split.unpaid_minutes,
        },
        "remaining_paid_minutes": outcome.remaining_paid_minutes_after,
    }


def _summary_json(view: SummaryView) -> dict:
    return {
        "worker_id": view.worker_id,
        "month": view.month,
        "year": view.year,
        "total_overtime_minutes": view.total_overtime_minutes,
        "total_paid_minutes": view.total_paid_minutes,
        "total_unpaid_minutes": view.total_unpaid_minutes,
        "remaining_paid_minutes": view.remaining_paid_minutes,
        "worker_name": view.worker_name,
        "employee_code": view.employee_code,
        "department": view.department,
    }


def _listing_json(listing: EntryListing) -> dict:
    return {
        "count": listing.count,
        "entries": [_entry_json(e, listing.workers.get(e.worker_id)) for e in listing.entries],
        "totals": _totals_json(listing.totals),
    }


def _allowance_json(a: WorkerAllowance) -> dict:
    return {
        "worker_id": a.worker_id,
        "name": a.name,
        "employee_code": a.employee_code,
        "department": a.department,
        "used_paid_minutes": a.used_minutes,
        "remaining_paid_minutes": a.remaining_minutes,
        "used_paid_hours": a.used_hours,
        "remaining_paid_hours": a.remaining_hours,
    }


def _drift_json(d: SummaryDrift) -> dict:
    return {
        "worker_id": d.key.worker_id,
        "month": d.key.month,
        "year": d.key.year,
        "missing_row": d.missing_row,
        "entry_count": d.entry_count,
        "stored": _totals_json(d.stored) if d.stored is not None else None,
        "recomputed": _totals_json(d.recomputed),
    }


def register(app: Flask, container: Container) -> None:
    service = container.ledger_service

    def api_errors(view):
        """Map ledger exceptions to JSON error responses."""

        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except NoOvertimeToRecord as e:
                return jsonify({"success": False, "message": str(e), "breakdown": e.as_dict()}), 400
            except ValidationError as e:
                return jsonify({"success": False, "message": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"success": False, "message": str(e)}), 404
            except DuplicateEntry as e:
                return jsonify({"success": False, "message": str(e)}), 409
            except PartialLedgerUpdate as e:
                logger.exception("Ledger needs operator attention")
                return jsonify({"success": False, "message": str(e), "operator_attention": True}), 500
            except StorageFailure as e:
                logger.exception("Storage failure")
                return jsonify({"success": False, "message": str(e)}), 503

        return wrapper

    def _body() -> dict:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    @app.route("/api/worklogs", methods=["POST"], endpoint="worklogs_create")
    @api_errors
    def worklogs_create():
        data = _body()
        missing = [f for f in ("worker_id", "date", "start_time", "end_time") if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        outcome = service.add_entry(
            data["worker_id"],
            data["date"],
            data["start_time"],
            data["end_time"],
            deduct_lunch=bool(data.get("deduct_lunch", True)),
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "message": "Work entry recorded", **_outcome_json(outcome)}), 201

    @app.route("/api/worklogs", methods=["GET"], endpoint="worklogs_list")
    @api_errors
    def worklogs_list():
        listing = service.list_entries(
            request.args.get("month"),
            request.args.get("year"),
            department=request.args.get("department") or None,
        )
        return jsonify({"success": True, **_listing_json(listing)})

    @app.route("/api/worklogs/<int:worker_id>", methods=["GET"], endpoint="worklogs_by_worker")
    @api_errors
    def worklogs_by_worker(worker_id: int):
        listing = service.list_worker_entries(worker_id, request.args.get("month"), request.args.get("year"))
        return jsonify({"success": True, **_listing_json(listing)})

    @app.route("/api/worklogs/<int:entry_id>", methods=["PUT"], endpoint="worklogs_update")
    @api_errors
    def worklogs_update(entry_id: int):
        data = _body()
        deduct_lunch = data.get("deduct_lunch")
        outcome = service.update_entry(
            entry_id,
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            deduct_lunch=None if deduct_lunch is None else bool(deduct_lunch),
            notes=data.get("notes"),
        )
        return jsonify({"success": True, "message": "Work entry updated", **_outcome_json(outcome)})

    @app.route("/api/worklogs/<int:entry_id>", methods=["DELETE"], endpoint="worklogs_delete")
    @api_errors
    def worklogs_delete(entry_id: int):
        entry = service.delete_entry(entry_id)
        return jsonify({"success": True, "message": "Work entry deleted", "entry": _entry_json(entry)})

    @app.route("/api/worklogs/summary/<int:worker_id>", methods=["GET"], endpoint="worklogs_summary")
    @api_errors
    def worklogs_summary(worker_id: int):
        report = service.list_worker_summaries(worker_id, request.args.get("month"), request.args.get("year"))
        current = report.current_month
        return jsonify(
            {
                "success": True,
                "summaries": [_summary_json(s) for s in report.summaries],
                "current_month": {
                    "month": current.month,
                    "year": current.year,
                    "used_paid_minutes": current.total_paid_minutes,
                    "remaining_paid_minutes": current.remaining_paid_minutes,
                    "paid_limit_minutes": service.paid_limit_minutes,
                },
            }
        )

    @app.route("/api/overtime/<int:worker_id>/<int:month>/<int:year>", methods=["GET"], endpoint="overtime_worker_month")
    @api_errors
    def overtime_worker_month(worker_id: int, month: int, year: int):
        view = service.get_worker_month_summary(worker_id, month, year)
        return jsonify({"success": True, "summary": _summary_json(view)})

    @app.route("/api/overtime/all/<int:month>/<int:year>", methods=["GET"], endpoint="overtime_all")
    @api_errors
    def overtime_all(month: int, year: int):
        views = service.get_all_worker_summaries(month, year)
        return jsonify({"success": True, "count": len(views), "summaries": [_summary_json(v) for v in views]})

    @app.route("/api/overtime/audit/<int:month>/<int:year>", methods=["GET"], endpoint="overtime_audit")
    @api_errors
    def overtime_audit(month: int, year: int):
        drifts = service.audit_month(month, year)
        return jsonify({"success": True, "count": len(drifts), "drifts": [_drift_json(d) for d in drifts]})

    @app.route("/api/overtime/recalculate/<int:month>/<int:year>", methods=["POST"], endpoint="overtime_recalculate")
    @api_errors
    def overtime_recalculate(month: int, year: int):
        repaired = service.recompute_month(month, year)
        return jsonify(
            {
                "success": True,
                "message": f"Recalculated {len(repaired)} summary row(s)",
                "repaired": [_drift_json(d) for d in repaired],
            }
        )

    @app.route("/api/workers/allowances", methods=["GET"], endpoint="workers_allowances")
    @api_errors
    def workers_allowances():
        month = request.args.get("month")
        year = request.args.get("year")
        if month in (None, "") or year in (None, ""):
            raise ValidationError("Both month and year are required")
        rows = service.list_worker_allowances(month, year)
        return jsonify({"success": True, "count": len(rows), "workers": [_allowance_json(r) for r in rows]})
