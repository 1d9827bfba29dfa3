"""Integration tests for /sync routes."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from routesync.api.deps import get_coordinator
from routesync.api.main import create_app
from routesync.db.engine import get_session
from routesync.db.store import RouteStore
from routesync.errors import NotAuthorized, SourceUnavailable, StoreIOError
from routesync.sync.coordinator import SyncCoordinator
from routesync.sync.ingestion import IngestionService
from routesync.sync.watermark import WatermarkStore

NOW = datetime(2025, 1, 20, 12, 0)


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture(name="coordinator")
def coordinator_fixture(engine, fake_source, tmp_path, clock):
    return SyncCoordinator(
        ingestion=IngestionService(fake_source),
        store=RouteStore(engine),
        watermark=WatermarkStore(tmp_path / "state"),
        concurrency=2,
        deadline_seconds=5.0,
        clock=clock,
    )


@pytest.fixture(name="client")
def client_fixture(engine, coordinator):
    app = create_app()

    def override_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    with TestClient(app) as c:
        yield c


class TestTriggerSync:
    def test_first_sync_runs(self, client, fake_source, make_record, make_trace):
        fake_source.workouts = [make_record("w1")]
        fake_source.traces = {"w1": make_trace(3)}

        resp = client.post("/sync")

        assert resp.status_code == 200
        body = resp.json()
        assert body["ran"] is True
        assert body["workouts_synced"] == 1
        assert body["workouts_failed"] == 0
        assert body["last_sync_date"] == NOW.isoformat()

    def test_second_sync_throttled(self, client):
        client.post("/sync")
        resp = client.post("/sync")
        assert resp.status_code == 200
        assert resp.json()["ran"] is False
        assert resp.json()["workouts_synced"] is None

    def test_force_ignores_interval(self, client, clock):
        client.post("/sync")
        clock.now += timedelta(minutes=1)
        resp = client.post("/sync", json={"force": True})
        assert resp.json()["ran"] is True

    def test_explicit_min_interval(self, client, clock):
        client.post("/sync")
        clock.now += timedelta(minutes=10)
        assert client.post("/sync", json={"min_interval": 300}).json()["ran"] is True

    @pytest.mark.parametrize("exc,status", [
        (NotAuthorized("revoked"), 401),
        (SourceUnavailable("maintenance"), 503),
    ])
    def test_source_errors_mapped(self, client, fake_source, exc, status):
        fake_source.list_error = exc
        resp = client.post("/sync")
        assert resp.status_code == status
        assert str(exc) in resp.json()["detail"]

    def test_store_error_is_500(self, client, coordinator, monkeypatch):
        def broken_transaction():
            raise StoreIOError("disk full")

        monkeypatch.setattr(coordinator.store, "transaction", broken_transaction)
        resp = client.post("/sync")
        assert resp.status_code == 500
        assert "disk full" in resp.json()["detail"]


class TestInitialSync:
    def test_loads_when_empty(self, client, fake_source, make_record):
        fake_source.workouts = [make_record("w1"), make_record("w2")]
        resp = client.post("/sync/initial")
        assert resp.status_code == 200
        assert resp.json()["ran"] is True
        assert resp.json()["workouts_synced"] == 2

    def test_noop_when_data_present(self, client, fake_source, seeded_workout):
        resp = client.post("/sync/initial")
        assert resp.status_code == 200
        assert resp.json()["ran"] is False
        assert fake_source.calls == []


class TestSyncStatus:
    def test_never_run(self, client):
        resp = client.get("/sync/status")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "never_run"
        assert body["mode"] == "idle"
        assert body["last_sync_date"] is None

    def test_after_sync(self, client, fake_source, make_record):
        fake_source.workouts = [make_record("w1")]
        client.post("/sync")

        body = client.get("/sync/status").json()
        assert body["status"] == "success"
        assert body["workouts_synced"] == 1
        assert body["last_sync_date"] == NOW.isoformat()

    def test_after_failure(self, client, fake_source):
        fake_source.list_error = SourceUnavailable("down")
        client.post("/sync")

        body = client.get("/sync/status").json()
        assert body["status"] == "error"
        assert "down" in body["error_message"]
