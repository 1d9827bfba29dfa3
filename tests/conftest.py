"""Shared test fixtures."""
import asyncio
from datetime import datetime, timedelta
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from routesync.models.workout import RoutePoint, Workout  # noqa: F401
from routesync.models.sync import SyncLog  # noqa: F401
from routesync.models.records import ActivityType, TraceChunk, TracePoint, WorkoutRecord

BASE_TIME = datetime(2025, 1, 15, 7, 30)


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="seeded_workout")
def seeded_workout_fixture(test_session: Session) -> Workout:
    """A persisted running Workout with three route points."""
    workout = Workout(
        external_id="1234567890",
        name="Morning Run",
        activity_type="running",
        start_date=BASE_TIME,
        end_date=BASE_TIME + timedelta(hours=1),
        distance_meters=8046.72,
        duration_seconds=3600.0,
        calories_kcal=612.0,
    )
    test_session.add(workout)
    test_session.commit()
    test_session.refresh(workout)
    for i in range(3):
        test_session.add(RoutePoint(
            workout_id=workout.id,
            sequence=i,
            latitude=47.606 + i * 0.001,
            longitude=-122.332,
            timestamp=BASE_TIME + timedelta(seconds=i * 60),
        ))
    test_session.commit()
    return workout


# ─── Record / trace builders ──────────────────────────────────────────────────

def _make_record(
    external_id: str,
    activity_type: ActivityType = ActivityType.RUNNING,
    start: datetime = BASE_TIME,
    is_indoor: bool = False,
    name: str = "",
) -> WorkoutRecord:
    return WorkoutRecord(
        external_id=external_id,
        activity_type=activity_type,
        start_date=start,
        end_date=start + timedelta(minutes=30),
        name=name or f"Workout {external_id}",
        distance_meters=5000.0,
        duration_seconds=1800.0,
        is_indoor=is_indoor,
    )


def _make_trace(
    n: int,
    start: datetime = BASE_TIME,
    lat0: float = 47.606,
    lon0: float = -122.332,
    lat_step: float = 0.001,
):
    """n points heading north, one per 10 s. 0.001° of latitude ≈ 111 m."""
    return [
        TracePoint(
            latitude=lat0 + i * lat_step,
            longitude=lon0,
            timestamp=start + timedelta(seconds=i * 10),
        )
        for i in range(n)
    ]


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def make_trace():
    return _make_trace


# ─── Fake activity source ─────────────────────────────────────────────────────

class FakeActivitySource:
    """
    In-memory ActivitySource.

    Tests set `workouts`, `traces` (external_id → points) and `trace_errors`
    (external_id → exception); every call is recorded in `calls`.
    """

    def __init__(self):
        self.workouts = []
        self.traces = {}
        self.trace_errors = {}
        self.list_error = None
        self.trace_delay = 0.0
        self.chunk_size = 2
        self.calls = []

    async def request_authorization(self) -> bool:
        self.calls.append(("request_authorization",))
        return True

    async def query_workouts(self, activity_types, start=None, end=None):
        types = set(activity_types)
        self.calls.append(("query_workouts", types))
        if self.list_error is not None:
            raise self.list_error
        return [w for w in self.workouts if w.activity_type in types]

    async def query_workouts_since(self, ts):
        self.calls.append(("query_workouts_since", ts))
        if self.list_error is not None:
            raise self.list_error
        return [w for w in self.workouts if w.start_date > ts]

    async def query_trace(self, workout_id):
        self.calls.append(("query_trace", workout_id))
        if self.trace_delay:
            await asyncio.sleep(self.trace_delay)
        if workout_id in self.trace_errors:
            raise self.trace_errors[workout_id]
        points = self.traces.get(workout_id, [])
        for i in range(0, len(points), self.chunk_size):
            yield TraceChunk(points=points[i:i + self.chunk_size])
        yield TraceChunk(done=True)

    def trace_calls(self):
        return [c[1] for c in self.calls if c[0] == "query_trace"]


@pytest.fixture
def fake_source() -> FakeActivitySource:
    return FakeActivitySource()
