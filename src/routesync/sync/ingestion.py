"""
IngestionService: turns activity source output into canonical records.

Listing workouts is all-or-nothing: SourceUnavailable / NotAuthorized from
the source propagate unmodified. Fetching traces is per item: one
workout's failure is recorded as a PartialFetchFailure and the rest of the
batch continues.

Indoor workouts keep their metadata but never have a trace fetched.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
)

from routesync.errors import PartialFetchFailure
from routesync.models.records import ActivityType, TraceChunk, TracePoint, WorkoutRecord

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_TYPES = (
    ActivityType.WALKING,
    ActivityType.RUNNING,
    ActivityType.CYCLING,
    ActivityType.HIKING,
)
DEFAULT_CONCURRENCY = 4


class ActivitySource(Protocol):
    """The external fitness-data source consumed by ingestion."""

    async def request_authorization(self) -> bool: ...

    async def query_workouts(
        self,
        activity_types: Iterable[ActivityType],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkoutRecord]: ...

    async def query_workouts_since(self, ts: datetime) -> List[WorkoutRecord]: ...

    def query_trace(self, workout_id: str) -> AsyncIterator[TraceChunk]: ...


@dataclass
class FetchedWorkout:
    """A workout record together with its raw (unsimplified) trace."""

    record: WorkoutRecord
    trace: List[TracePoint] = field(default_factory=list)


@dataclass
class IngestionResult:
    workouts: List[FetchedWorkout] = field(default_factory=list)
    failures: List[PartialFetchFailure] = field(default_factory=list)


def _dedupe(records: Iterable[WorkoutRecord]) -> List[WorkoutRecord]:
    """One record per external_id; the last one seen wins."""
    by_id: Dict[str, WorkoutRecord] = {}
    for record in records:
        by_id[record.external_id] = record
    return list(by_id.values())


class IngestionService:
    """Fetches workouts and traces from an ActivitySource."""

    def __init__(
        self,
        source: ActivitySource,
        activity_types: Sequence[ActivityType] = DEFAULT_ACTIVITY_TYPES,
        concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """
        Args:
            source: The activity source (GarminActivitySource or a mock in tests).
            activity_types: Types that are synced; everything else is ignored.
            concurrency: Max simultaneous trace fetches in fetch_initial/fetch_since.
        """
        self.source = source
        self.activity_types = tuple(ActivityType(t) for t in activity_types)
        self._concurrency = max(1, concurrency)

    # ─── Listing ──────────────────────────────────────────────────────────────

    async def list_initial(
        self, activity_types: Optional[Sequence[ActivityType]] = None
    ) -> List[WorkoutRecord]:
        """Every workout of the requested (default: configured) types."""
        types = tuple(activity_types) if activity_types else self.activity_types
        records = await self.source.query_workouts(types)
        result = _dedupe(r for r in records if r.activity_type in types)
        logger.info("Listed %d workouts across %d activity types", len(result), len(types))
        return result

    async def list_since(self, watermark: Optional[datetime]) -> List[WorkoutRecord]:
        """Workouts of the configured types starting after `watermark`."""
        if watermark is None:
            return await self.list_initial()
        records = await self.source.query_workouts_since(watermark)
        result = _dedupe(r for r in records if r.activity_type in self.activity_types)
        logger.info("Listed %d workouts since %s", len(result), watermark.isoformat())
        return result

    # ─── Traces ───────────────────────────────────────────────────────────────

    async def fetch_trace(self, record: WorkoutRecord) -> List[TracePoint]:
        """
        Accumulate a workout's streamed trace into one timestamp-ordered list.

        Segments arrive one after another; the concatenation is stable-sorted
        by timestamp. An empty result is a valid outcome (no GPS recorded).

        Raises:
            PartialFetchFailure: the stream failed or ended without its done chunk.
        """
        if record.is_indoor:
            return []

        points: List[TracePoint] = []
        done = False
        try:
            async for chunk in self.source.query_trace(record.external_id):
                points.extend(chunk.points)
                if chunk.done:
                    done = True
                    break
        except Exception as exc:
            raise PartialFetchFailure(record.external_id, exc) from exc

        if not done:
            raise PartialFetchFailure(
                record.external_id, EOFError("trace stream ended before done")
            )

        points.sort(key=lambda p: p.timestamp)
        if not points:
            logger.debug("Workout %s has no route data", record.external_id)
        return points

    async def fetch_initial(
        self, activity_types: Optional[Sequence[ActivityType]] = None
    ) -> IngestionResult:
        """Every workout of the requested types, each with its raw trace."""
        return await self._with_traces(await self.list_initial(activity_types))

    async def fetch_since(self, watermark: Optional[datetime]) -> IngestionResult:
        """Workouts started after `watermark`, each with its raw trace."""
        return await self._with_traces(await self.list_since(watermark))

    async def _with_traces(self, records: List[WorkoutRecord]) -> IngestionResult:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(record: WorkoutRecord) -> List[TracePoint]:
            async with semaphore:
                return await self.fetch_trace(record)

        traces = await asyncio.gather(
            *(fetch(r) for r in records), return_exceptions=True
        )

        result = IngestionResult()
        for record, trace in zip(records, traces):
            if isinstance(trace, PartialFetchFailure):
                logger.warning("%s", trace)
                result.failures.append(trace)
            elif isinstance(trace, BaseException):
                raise trace
            else:
                result.workouts.append(FetchedWorkout(record=record, trace=trace))
        return result
