"""Integration tests for /routes."""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from routesync.api.deps import get_query_service
from routesync.api.main import create_app
from routesync.db.store import RouteStore
from routesync.models.records import ActivityType
from routesync.query.service import RouteQueryService


@pytest.fixture(name="client")
def client_fixture(engine):
    app = create_app()
    service = RouteQueryService(RouteStore(engine))
    app.dependency_overrides[get_query_service] = lambda: service
    with TestClient(app) as c:
        yield c


@pytest.fixture(name="seeded_routes")
def seeded_routes_fixture(engine, make_record, make_trace):
    store = RouteStore(engine)
    rows = [
        (make_record("run", ActivityType.RUNNING, datetime(2025, 1, 15, 7, 30)), make_trace(3)),
        (make_record("ride", ActivityType.CYCLING, datetime(2025, 1, 16, 17, 0)), make_trace(2)),
        (make_record("mill", ActivityType.RUNNING, datetime(2025, 1, 17, 6, 0), is_indoor=True), []),
    ]
    with store.transaction() as tx:
        for record, trace in rows:
            workout = tx.upsert_workout(record.external_id, record.metadata())
            tx.replace_route_points(workout, trace)
        tx.commit()


class TestListRoutes:
    def test_empty(self, client):
        resp = client.get("/routes")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_newest_first(self, client, seeded_routes):
        ids = [w["external_id"] for w in client.get("/routes").json()]
        assert ids == ["mill", "ride", "run"]

    def test_filter_by_activity_type(self, client, seeded_routes):
        resp = client.get("/routes", params={"activity_type": "cycling"})
        assert [w["external_id"] for w in resp.json()] == ["ride"]

    def test_filter_by_several_types(self, client, seeded_routes):
        resp = client.get("/routes", params=[("activity_type", "cycling"), ("activity_type", "running")])
        assert len(resp.json()) == 3

    def test_filter_by_date(self, client, seeded_routes):
        resp = client.get("/routes", params={"date": "2025-01-15"})
        assert [w["external_id"] for w in resp.json()] == ["run"]

    def test_filter_by_range(self, client, seeded_routes):
        resp = client.get(
            "/routes",
            params={"start": "2025-01-15T08:00:00", "end": "2025-01-17T06:00:00"},
        )
        assert [w["external_id"] for w in resp.json()] == ["ride"]

    def test_invalid_activity_type_rejected(self, client):
        resp = client.get("/routes", params={"activity_type": "swimming"})
        assert resp.status_code == 422


class TestDisplayAndSummary:
    def test_display_omits_routes_without_points(self, client, seeded_routes):
        body = client.get("/routes/display").json()
        assert {r["id"] for r in body} == {"run", "ride"}

    def test_display_payload(self, client, seeded_routes):
        ride = next(r for r in client.get("/routes/display").json() if r["id"] == "ride")
        assert ride["activity_type"] == "cycling"
        assert ride["color"] == "#4CD964"
        assert len(ride["polyline"]) == 2
        assert len(ride["polyline"][0]) == 2

    def test_summary(self, client, seeded_routes):
        body = client.get("/routes/summary").json()
        assert [s["id"] for s in body] == ["mill", "ride", "run"]
        mill = body[0]
        assert mill["is_indoor"] is True
        assert mill["formatted_date"] == "Jan 17, 2025 6:00 AM"


class TestRenameRoute:
    def test_rename(self, client, seeded_routes):
        resp = client.patch("/routes/run", json={"name": "Tempo Tuesday"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Tempo Tuesday"
        names = {w["external_id"]: w["name"] for w in client.get("/routes").json()}
        assert names["run"] == "Tempo Tuesday"

    def test_rename_missing_is_404(self, client):
        resp = client.patch("/routes/nope", json={"name": "x"})
        assert resp.status_code == 404
