"""
RouteStore: durable keyed storage for workouts and their route points.

Reads open a short-lived Session per call. Writes go through a
StoreTransaction: one Session for the whole sync cycle, committed once.

Idempotency: workouts are keyed by external_id (unique constraint). An
upsert of an existing external_id refreshes its metadata in place and
keeps the same row id. Re-syncing a workout replaces its route points
entirely, so repeated syncs of overlapping ranges never duplicate points.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from routesync.errors import StoreIOError
from routesync.models.records import TracePoint
from routesync.models.workout import RoutePoint, Workout

logger = logging.getLogger(__name__)


class StoreTransaction:
    """
    A single write context for one sync cycle.

    Not safe for concurrent use: callers funnel all writes through one
    task at a time. Use as a context manager; anything not committed is
    rolled back on exit.
    """

    def __init__(self, engine):
        self._session = Session(engine)
        self._committed = False
        self.workouts_staged = 0

    def __enter__(self) -> "StoreTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._committed:
            self.rollback()
        self._session.close()

    def upsert_workout(self, external_id: str, metadata: Dict[str, Any]) -> Workout:
        """
        Insert or refresh the workout keyed by external_id. An existing
        workout keeps its name; every other column is refreshed.

        Returns:
            The Workout row, flushed so its id can own route points.

        Raises:
            StoreIOError: if the lookup or flush fails.
        """
        try:
            existing = self._session.exec(
                select(Workout).where(Workout.external_id == external_id)
            ).first()
            if existing:
                # The display name is set once on insert and then owned by the user.
                for k, v in metadata.items():
                    if k != "name":
                        setattr(existing, k, v)
                existing.synced_at = datetime.utcnow()
                workout = existing
            else:
                workout = Workout(external_id=external_id, **metadata)
            self._session.add(workout)
            self._session.flush()
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to upsert workout {external_id}: {exc}") from exc
        self.workouts_staged += 1
        return workout

    def append_route_points(self, workout: Workout, points: Sequence[TracePoint]) -> None:
        """Append points after any already stored for this workout."""
        try:
            start = self._session.exec(
                select(func.count()).select_from(RoutePoint).where(
                    RoutePoint.workout_id == workout.id
                )
            ).one()
            for offset, pt in enumerate(points):
                self._session.add(RoutePoint(
                    workout_id=workout.id,
                    sequence=start + offset,
                    latitude=pt.latitude,
                    longitude=pt.longitude,
                    timestamp=pt.timestamp,
                ))
            self._session.flush()
        except SQLAlchemyError as exc:
            raise StoreIOError(
                f"Failed to add route points for workout {workout.external_id}: {exc}"
            ) from exc

    def replace_route_points(self, workout: Workout, points: Sequence[TracePoint]) -> None:
        """Delete this workout's stored points, then append `points`."""
        try:
            existing = self._session.exec(
                select(RoutePoint).where(RoutePoint.workout_id == workout.id)
            ).all()
            for rp in existing:
                self._session.delete(rp)
            self._session.flush()
        except SQLAlchemyError as exc:
            raise StoreIOError(
                f"Failed to clear route points for workout {workout.external_id}: {exc}"
            ) from exc
        self.append_route_points(workout, points)

    def commit(self) -> None:
        """
        Durably commit everything staged in this transaction.

        Raises:
            StoreIOError: on any database failure. The transaction is rolled back.
        """
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self.rollback()
            raise StoreIOError(f"Commit failed: {exc}") from exc
        self._committed = True
        logger.debug("Committed %d workouts", self.workouts_staged)

    def rollback(self) -> None:
        try:
            self._session.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed")


class RouteStore:
    """Query and write access to the workout/route point tables."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def transaction(self) -> StoreTransaction:
        return StoreTransaction(self.engine)

    def fetch_all(self, *conditions) -> List[Workout]:
        """Workouts matching all `conditions` (SQL expressions), newest first."""
        with Session(self.engine) as s:
            stmt = select(Workout)
            for condition in conditions:
                stmt = stmt.where(condition)
            return list(s.exec(stmt.order_by(Workout.start_date.desc())).all())

    def get_workout(self, external_id: str) -> Optional[Workout]:
        with Session(self.engine) as s:
            return s.exec(
                select(Workout).where(Workout.external_id == external_id)
            ).first()

    def count_workouts(self) -> int:
        with Session(self.engine) as s:
            return s.exec(select(func.count()).select_from(Workout)).one()

    def is_empty(self) -> bool:
        return self.count_workouts() == 0

    def route_points(self, workout_ids: Iterable[int]) -> Dict[int, List[RoutePoint]]:
        """Route points for each workout id, ordered by timestamp, in one query."""
        ids = list(workout_ids)
        result: Dict[int, List[RoutePoint]] = defaultdict(list)
        if not ids:
            return result
        with Session(self.engine) as s:
            rows = s.exec(
                select(RoutePoint)
                .where(RoutePoint.workout_id.in_(ids))
                .order_by(RoutePoint.workout_id, RoutePoint.timestamp, RoutePoint.sequence)
            ).all()
        for row in rows:
            result[row.workout_id].append(row)
        return result

    def rename_workout(self, external_id: str, name: str) -> Optional[Workout]:
        """Set a workout's display name. Returns None if no such workout."""
        try:
            with Session(self.engine) as s:
                workout = s.exec(
                    select(Workout).where(Workout.external_id == external_id)
                ).first()
                if workout is None:
                    logger.warning("Workout not found for rename: %s", external_id)
                    return None
                workout.name = name
                s.add(workout)
                s.commit()
                s.refresh(workout)
                return workout
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to rename workout {external_id}: {exc}") from exc

    def clear(self) -> None:
        """Delete every workout and route point."""
        try:
            with Session(self.engine) as s:
                for rp in s.exec(select(RoutePoint)).all():
                    s.delete(rp)
                s.flush()
                for workout in s.exec(select(Workout)).all():
                    s.delete(workout)
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to clear store: {exc}") from exc
        logger.info("Route store cleared")
