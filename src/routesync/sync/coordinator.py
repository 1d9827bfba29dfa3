"""
SyncCoordinator: throttled, single-flight fetch → simplify → persist cycles.

Flow for one cycle:
  1. Capture cycle_start = now; create SyncLog (status="running")
  2. List workouts started after the watermark (source errors propagate)
  3. Per workout, concurrently (bounded by a semaphore): fetch trace,
     simplify_by_distance, stage upsert + route points into the ONE
     StoreTransaction for this cycle (staging is serialized by a lock)
  4. Wait for all workouts; a failed workout is recorded, not staged
  5. Commit the transaction once
  6. Advance the watermark to cycle_start; SyncLog → "success"/"partial"

On a failure in steps 2, 5, a store error in 3, or the cycle deadline:
the transaction is rolled back, the SyncLog is marked "error", the
watermark is NOT advanced and the error is re-raised. The next due cycle
retries the same range.

cycle_start (not commit time) becomes the watermark so workouts created
while the cycle runs are picked up by the next one.
"""
import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from routesync.db.store import RouteStore, StoreTransaction
from routesync.errors import PartialFetchFailure, StoreIOError, SyncDeadlineExceeded
from routesync.geo.simplify import DEFAULT_TOLERANCE_METERS, simplify_by_distance
from routesync.models.records import WorkoutRecord
from routesync.models.sync import SyncLog
from routesync.sync.ingestion import IngestionService
from routesync.sync.watermark import WatermarkStore

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 8


def default_concurrency() -> int:
    return min(os.cpu_count() or 1, MAX_CONCURRENCY)


class SyncMode(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass(frozen=True)
class SyncStatus:
    """Immutable snapshot of coordinator state, safe to hand to any thread."""

    mode: SyncMode
    last_sync_date: Optional[datetime]

    @property
    def is_syncing(self) -> bool:
        return self.mode is SyncMode.SYNCING


@dataclass
class SyncOutcome:
    """What one committed cycle did."""

    cycle_start: datetime
    workouts_synced: int = 0
    points_stored: int = 0
    failures: List[PartialFetchFailure] = field(default_factory=list)


StatusListener = Callable[[SyncStatus], None]


class SyncCoordinator:
    """Owns the sync watermark and runs sync cycles one at a time."""

    def __init__(
        self,
        ingestion: IngestionService,
        store: RouteStore,
        watermark: WatermarkStore,
        *,
        concurrency: Optional[int] = None,
        tolerance_meters: float = DEFAULT_TOLERANCE_METERS,
        deadline_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Args:
            ingestion: IngestionService wrapping the activity source.
            store: RouteStore the cycle commits into.
            watermark: WatermarkStore holding the last committed cycle start.
            concurrency: Max workouts processed at once (default: cores, capped at 8).
            tolerance_meters: simplify_by_distance tolerance for stored traces.
            deadline_seconds: Per-cycle deadline; None disables it.
            clock: Returns "now" as naive UTC (injectable for tests).
        """
        self.ingestion = ingestion
        self.store = store
        self.watermark = watermark
        self.concurrency = max(1, concurrency or default_concurrency())
        self.tolerance_meters = tolerance_meters
        self.deadline_seconds = deadline_seconds
        self._clock = clock

        self._lock: Optional[asyncio.Lock] = None
        self._mode = SyncMode.IDLE
        self._listeners: List[StatusListener] = []
        self.last_outcome: Optional[SyncOutcome] = None

    # ─── Observable state ─────────────────────────────────────────────────────

    @property
    def last_sync_date(self) -> Optional[datetime]:
        return self.watermark.load()

    @property
    def status(self) -> SyncStatus:
        return SyncStatus(mode=self._mode, last_sync_date=self.last_sync_date)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """
        Call `listener` with a fresh SyncStatus on every state change.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_mode(self, mode: SyncMode) -> None:
        self._mode = mode
        snapshot = self.status
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Sync status listener failed")

    @property
    def _sync_lock(self) -> asyncio.Lock:
        # Created on first use so it belongs to the running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    # ─── Public operations ────────────────────────────────────────────────────

    async def sync_if_due(self, min_interval: float = 3600.0) -> bool:
        """
        Run one incremental cycle if more than `min_interval` seconds have
        passed since the watermark.

        Returns:
            True if a cycle ran and committed. False if it was not due or
            another cycle is already running (nothing is fetched or written).

        Raises:
            SourceUnavailable, NotAuthorized: from the activity source.
            StoreIOError: commit failed (watermark unchanged).
            SyncDeadlineExceeded: cycle ran too long (watermark unchanged).
        """
        if self._sync_lock.locked():
            logger.info("Sync already in progress; skipping")
            return False

        async with self._sync_lock:
            now = self._clock()
            since = self.last_sync_date
            if since is not None and (now - since).total_seconds() <= min_interval:
                logger.info(
                    "Skipping sync: less than %s seconds since last sync", min_interval
                )
                return False

            logger.info("Starting sync since %s", since.isoformat() if since else "the beginning")
            await self._run_cycle(now, lambda: self.ingestion.list_since(since))
            return True

    async def ensure_initial_data(self) -> bool:
        """
        Load all history if the store is empty; otherwise do nothing.

        Returns:
            True if the store already had data or the initial load
            committed. False if another cycle is already running.
        """
        if not self.store.is_empty():
            logger.info("Found %d existing workouts", self.store.count_workouts())
            return True
        logger.info("No workouts stored, performing initial load")
        return await self.full_sync()

    async def full_sync(self) -> bool:
        """
        Unthrottled historical fetch across all configured activity types.
        Stored workouts are refreshed in place, their points replaced.

        Returns:
            True if the cycle committed, False if another cycle is running.
        """
        if self._sync_lock.locked():
            logger.info("Sync already in progress; skipping full sync")
            return False

        async with self._sync_lock:
            await self._run_cycle(self._clock(), self.ingestion.list_initial)
            return True

    # ─── Cycle ────────────────────────────────────────────────────────────────

    async def _run_cycle(
        self,
        cycle_start: datetime,
        list_workouts: Callable[[], Awaitable[List[WorkoutRecord]]],
    ) -> SyncOutcome:
        self._set_mode(SyncMode.SYNCING)
        try:
            log = self._create_sync_log(cycle_start)
            try:
                outcome = await self._with_deadline(
                    self._collect_and_commit(cycle_start, list_workouts)
                )
            except Exception as exc:
                logger.error("Sync cycle failed: %s", exc)
                try:
                    self._finish_sync_log(
                        log, status="error", error_message=str(exc) or repr(exc)
                    )
                except StoreIOError:
                    logger.exception("Could not record failed sync cycle")
                raise

            self.watermark.advance(cycle_start)
            self.last_outcome = outcome
            self._finish_sync_log(
                log,
                status="partial" if outcome.failures else "success",
                workouts_synced=outcome.workouts_synced,
                workouts_failed=len(outcome.failures),
                error_message="; ".join(str(f) for f in outcome.failures) or None,
            )
            logger.info(
                "Sync committed: %d workouts, %d points, %d failed",
                outcome.workouts_synced,
                outcome.points_stored,
                len(outcome.failures),
            )
            return outcome
        finally:
            self._set_mode(SyncMode.IDLE)

    async def _with_deadline(self, coro: Awaitable[SyncOutcome]) -> SyncOutcome:
        if self.deadline_seconds is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.deadline_seconds)
        except asyncio.TimeoutError as exc:
            raise SyncDeadlineExceeded(
                f"Sync cycle exceeded {self.deadline_seconds}s deadline"
            ) from exc

    async def _collect_and_commit(
        self,
        cycle_start: datetime,
        list_workouts: Callable[[], Awaitable[List[WorkoutRecord]]],
    ) -> SyncOutcome:
        records = await list_workouts()
        outcome = SyncOutcome(cycle_start=cycle_start)

        with self.store.transaction() as tx:
            await self._stage_all(records, tx, outcome)
            tx.commit()
        return outcome

    async def _stage_all(
        self,
        records: List[WorkoutRecord],
        tx: StoreTransaction,
        outcome: SyncOutcome,
    ) -> None:
        """Process every workout; wait for all of them before returning."""
        semaphore = asyncio.Semaphore(self.concurrency)
        stage_lock = asyncio.Lock()

        async def process(record: WorkoutRecord) -> int:
            async with semaphore:
                trace = await self.ingestion.fetch_trace(record)
            simplified = simplify_by_distance(trace, self.tolerance_meters)
            async with stage_lock:
                handle = tx.upsert_workout(record.external_id, record.metadata())
                tx.replace_route_points(handle, simplified)
            return len(simplified)

        results = await asyncio.gather(
            *(process(r) for r in records), return_exceptions=True
        )

        store_error: Optional[StoreIOError] = None
        for record, result in zip(records, results):
            if isinstance(result, StoreIOError):
                store_error = store_error or result
            elif isinstance(result, PartialFetchFailure):
                logger.warning("%s", result)
                outcome.failures.append(result)
            elif isinstance(result, Exception):
                logger.warning("Workout %s failed: %s", record.external_id, result)
                outcome.failures.append(PartialFetchFailure(record.external_id, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.workouts_synced += 1
                outcome.points_stored += result

        if store_error is not None:
            raise store_error

    # ─── Sync log ─────────────────────────────────────────────────────────────

    def _create_sync_log(self, started_at: datetime) -> SyncLog:
        log = SyncLog(started_at=started_at, status="running")
        try:
            with Session(self.store.engine) as s:
                s.add(log)
                s.commit()
                s.refresh(log)
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to create sync log: {exc}") from exc
        return log

    def _finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        workouts_synced: int = 0,
        workouts_failed: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        try:
            with Session(self.store.engine) as s:
                db_log = s.get(SyncLog, log.id)
                db_log.status = status
                db_log.finished_at = self._clock()
                db_log.workouts_synced = workouts_synced
                db_log.workouts_failed = workouts_failed
                db_log.error_message = error_message
                s.add(db_log)
                s.commit()
        except SQLAlchemyError as exc:
            raise StoreIOError(f"Failed to update sync log {log.id}: {exc}") from exc
