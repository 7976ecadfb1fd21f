from __future__ import annotations

import pytest

from src.overtime_ledger.overtime_ledger.container import build_memory_container
from src.overtime_ledger.overtime_ledger.core.constants import PAID_LIMIT_MINUTES
from src.overtime_ledger.overtime_ledger.core.exceptions import PartialLedgerUpdate, StorageFailure
from src.overtime_ledger.overtime_ledger.ledger.model import SummaryDelta
from src.overtime_ledger.overtime_ledger.main import create_app
from src.overtime_ledger.overtime_ledger.workers.model import Worker


@pytest.fixture
def container():
    return build_memory_container(
        [
            Worker(worker_id=1, name="Ana Torres", employee_code="W-001", department="Assembly"),
            Worker(worker_id=2, name="Chen Wei", employee_code="W-003", department="Packaging"),
        ]
    )


@pytest.fixture
def client(monkeypatch, container):
    monkeypatch.setenv("APP_ENV", "testing")
    app = create_app(container)
    return app.test_client()


def _post_entry(client, **overrides):
    body = {"worker_id": 1, "date": "2024-03-04", "start_time": "08:00", "end_time": "19:30"}
    body.update(overrides)
    return client.post("/api/worklogs", json=body)


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.get_json() == {"status": "ok"}


def test_create_entry(client):
    res = _post_entry(client, notes="stocktake")

    assert res.status_code == 201
    data = res.get_json()
    assert data["entry"]["overtime_minutes"] == 150
    assert data["entry"]["date"] == "2024-03-04"
    assert data["breakdown"]["lunch_minutes_deducted"] == 60
    assert data["remaining_paid_minutes"] == PAID_LIMIT_MINUTES - 150


def test_create_without_overtime_returns_breakdown(client):
    res = _post_entry(client, end_time="16:00")

    assert res.status_code == 400
    data = res.get_json()
    assert data["message"].startswith("No overtime to record.")
    assert data["breakdown"]["total_worked_minutes"] == 420
    assert data["breakdown"]["overtime_minutes"] == 0


def test_create_duplicate_conflicts(client):
    assert _post_entry(client).status_code == 201
    assert _post_entry(client).status_code == 409


def test_create_for_unknown_worker(client):
    assert _post_entry(client, worker_id=42).status_code == 404


@pytest.mark.parametrize(
    "body",
    [
        {"worker_id": 1, "date": "2024-03-04", "start_time": "08:00"},
        {"worker_id": 1, "date": "2024-03-04", "start_time": "8 am", "end_time": "19:30"},
        {"worker_id": 1, "date": "04-03-2024", "start_time": "08:00", "end_time": "19:30"},
    ],
)
def test_create_with_bad_input(client, body):
    assert client.post("/api/worklogs", json=body).status_code == 400


def test_non_json_body_is_rejected(client):
    res = client.post("/api/worklogs", data="worker_id=1", content_type="text/plain")
    assert res.status_code == 400


def test_update_and_delete(client):
    entry_id = _post_entry(client).get_json()["entry"]["id"]

    res = client.put(f"/api/worklogs/{entry_id}", json={"end_time": "21:00"})
    assert res.status_code == 200
    assert res.get_json()["entry"]["overtime_minutes"] == 240

    res = client.delete(f"/api/worklogs/{entry_id}")
    assert res.status_code == 200

    summary = client.get("/api/overtime/1/3/2024").get_json()["summary"]
    assert summary["total_overtime_minutes"] == 0
    assert summary["remaining_paid_minutes"] == PAID_LIMIT_MINUTES


def test_update_and_delete_missing_entry(client):
    assert client.put("/api/worklogs/999", json={"end_time": "21:00"}).status_code == 404
    assert client.delete("/api/worklogs/999").status_code == 404


def test_listings(client):
    _post_entry(client)
    _post_entry(client, worker_id=2)

    res = client.get("/api/worklogs?month=3&year=2024&department=Packaging")
    data = res.get_json()
    assert res.status_code == 200
    assert data["count"] == 1
    assert data["entries"][0]["worker"]["name"] == "Chen Wei"

    data = client.get("/api/worklogs/1?month=3&year=2024").get_json()
    assert data["count"] == 1
    assert data["totals"]["overtime_minutes"] == 150
    assert data["totals"]["overtime_hours"] == 2.5


def test_worker_listing_needs_month_and_year(client):
    assert client.get("/api/worklogs/1?month=3").status_code == 400


def test_summaries(client):
    _post_entry(client)

    data = client.get("/api/worklogs/summary/1").get_json()
    assert [s["month"] for s in data["summaries"]] == [3]
    assert data["current_month"]["paid_limit_minutes"] == PAID_LIMIT_MINUTES

    data = client.get("/api/overtime/all/3/2024").get_json()
    assert data["count"] == 1
    assert data["summaries"][0]["worker_name"] == "Ana Torres"

    assert client.get("/api/overtime/1/13/2024").status_code == 400


def test_allowances(client):
    _post_entry(client)

    res = client.get("/api/workers/allowances?month=3&year=2024")
    rows = {r["worker_id"]: r for r in res.get_json()["workers"]}
    assert rows[1]["used_paid_minutes"] == 150
    assert rows[2]["remaining_paid_hours"] == 72.0

    assert client.get("/api/workers/allowances?month=3").status_code == 400


def test_audit_and_recalculate(client, container):
    _post_entry(client)
    with container.ledger_repo.unit_of_work(container.ledger_repo.list_summaries()[0].key) as uow:
        uow.replace_summary(SummaryDelta(1, 1, 0))

    data = client.get("/api/overtime/audit/3/2024").get_json()
    assert data["count"] == 1
    assert data["drifts"][0]["recomputed"]["overtime_minutes"] == 150

    res = client.post("/api/overtime/recalculate/3/2024")
    assert res.status_code == 200
    assert len(res.get_json()["repaired"]) == 1
    assert client.get("/api/overtime/audit/3/2024").get_json()["count"] == 0


def test_storage_failure_maps_to_503(client, container, monkeypatch):
    def unavailable(*args, **kwargs):
        raise StorageFailure("Storage error: Lost connection")

    monkeypatch.setattr(container.ledger_service, "get_worker_month_summary", unavailable)
    assert client.get("/api/overtime/1/3/2024").status_code == 503


def test_partial_update_needs_operator_attention(client, container, monkeypatch):
    def partial(*args, **kwargs):
        raise PartialLedgerUpdate("Ledger left partially updated")

    monkeypatch.setattr(container.ledger_service, "add_entry", partial)
    res = _post_entry(client)

    assert res.status_code == 500
    assert res.get_json()["operator_attention"] is True
