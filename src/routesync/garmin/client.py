"""
Garmin Connect activity source.

garminconnect is synchronous; every call runs in the default thread pool
executor so it doesn't block the asyncio event loop.

Authentication is handled via GarminAuth (tokens on disk). The first data
call connects lazily; request_authorization() connects eagerly.

Library errors are translated at this boundary:
    GarminConnectAuthenticationError          → NotAuthorized
    GarminConnectConnectionError / TooManyRequests → SourceUnavailable
"""
import asyncio
import io
import logging
import tempfile
import zipfile
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, List, Optional

import garminconnect

from routesync.errors import MalformedSample, NotAuthorized, SourceUnavailable
from routesync.garmin.auth import GarminAuth
from routesync.garmin.fit_parser import FitParseError, parse_fit_trace
from routesync.garmin.normalizer import GARMIN_QUERY_TYPES, normalize_workout
from routesync.models.records import ActivityType, TraceChunk, TracePoint, WorkoutRecord

logger = logging.getLogger(__name__)

# Lower bound for "all history" queries
EARLIEST_QUERY_DATE = date(2000, 1, 1)
DEFAULT_CHUNK_SIZE = 500
# Garmin filters the activity list by the user's local calendar date, not UTC
QUERY_DATE_PADDING = timedelta(days=1)


class GarminActivitySource:
    """
    Async activity source over garminconnect.Garmin.

    Yields canonical WorkoutRecords and streams GPS traces in chunks.
    """

    def __init__(self, auth: GarminAuth, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Args:
            auth: GarminAuth pointing at the saved token directory.
            chunk_size: Maximum points per streamed TraceChunk.
        """
        self._auth = auth
        self._chunk_size = max(1, chunk_size)
        self._api: Optional[garminconnect.Garmin] = None

    # ─── Authorization ───────────────────────────────────────────────────────

    async def request_authorization(self) -> bool:
        """
        Restore the saved session and validate it with Garmin's servers.

        Raises:
            NotAuthorized: no saved session, or it has expired.
            SourceUnavailable: Garmin could not be reached.
        """
        loop = asyncio.get_event_loop()
        try:
            self._api = await loop.run_in_executor(None, self._auth.build_client)
        except garminconnect.GarminConnectConnectionError as exc:
            raise SourceUnavailable(f"Garmin Connect unreachable: {exc}") from exc
        return True

    async def _run(self, fn_name: str, *args, **kwargs):
        """Run a garminconnect method in the thread pool, mapping its errors."""
        if self._api is None:
            await self.request_authorization()
        fn = getattr(self._api, fn_name)
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))
        except garminconnect.GarminConnectAuthenticationError as exc:
            raise NotAuthorized(f"Garmin rejected the session: {exc}") from exc
        except (
            garminconnect.GarminConnectConnectionError,
            garminconnect.GarminConnectTooManyRequestsError,
        ) as exc:
            raise SourceUnavailable(f"Garmin Connect unavailable: {exc}") from exc

    # ─── Workouts ─────────────────────────────────────────────────────────────

    async def query_workouts(
        self,
        activity_types: Iterable[ActivityType],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[WorkoutRecord]:
        """
        Workouts of the given types starting in [start, end).

        One Garmin request per activity type. Garmin filters by local
        calendar date, so the requested window is padded by a day on each
        side; the exact bounds are applied client-side.
        """
        start_day = (start - QUERY_DATE_PADDING).date() if start else EARLIEST_QUERY_DATE
        end_day = ((end or datetime.utcnow()) + QUERY_DATE_PADDING).date()

        records: List[WorkoutRecord] = []
        for activity_type in activity_types:
            raw = await self._run(
                "get_activities_by_date",
                start_day.isoformat(),
                end_day.isoformat(),
                GARMIN_QUERY_TYPES[ActivityType(activity_type)],
            )
            records.extend(self._normalize_all(raw))

        return [
            r for r in records
            if (start is None or r.start_date >= start)
            and (end is None or r.start_date < end)
        ]

    async def query_workouts_since(self, ts: datetime) -> List[WorkoutRecord]:
        """All workouts starting strictly after `ts`, any type."""
        raw = await self._run(
            "get_activities_by_date",
            (ts - QUERY_DATE_PADDING).date().isoformat(),
            (datetime.utcnow() + QUERY_DATE_PADDING).date().isoformat(),
        )
        return [r for r in self._normalize_all(raw) if r.start_date > ts]

    def _normalize_all(self, raw_items: Any) -> List[WorkoutRecord]:
        """Normalize a page of activities, skipping malformed items."""
        if not isinstance(raw_items, list):
            raise SourceUnavailable(
                f"Unexpected activity list response: {type(raw_items).__name__}"
            )
        records = []
        for raw in raw_items:
            try:
                records.append(normalize_workout(raw))
            except MalformedSample as exc:
                logger.warning("Skipping malformed activity: %s", exc)
        return records

    # ─── Traces ───────────────────────────────────────────────────────────────

    async def query_trace(self, workout_id: str) -> AsyncIterator[TraceChunk]:
        """
        Stream a workout's GPS trace.

        Yields TraceChunks of at most chunk_size points, segment by segment,
        then a final TraceChunk(done=True). Every call re-downloads, so an
        interrupted stream can be restarted from the beginning.
        """
        segments = await self._download_trace(workout_id)
        for segment in segments:
            for i in range(0, len(segment), self._chunk_size):
                yield TraceChunk(points=segment[i:i + self._chunk_size])
        yield TraceChunk(done=True)

    async def _download_trace(self, workout_id: str) -> List[List[TracePoint]]:
        """
        Download the ORIGINAL activity file and parse its GPS segments.

        Garmin's ORIGINAL download is a zip holding one .fit file. It is
        extracted to a temp file for fitparse, then the temp file is deleted.
        """
        # Must explicitly pass ORIGINAL format; the default is TCX, which is not a FIT file.
        data = await self._run(
            "download_activity",
            workout_id,
            dl_fmt=garminconnect.Garmin.ActivityDownloadFormat.ORIGINAL,
        )
        fit_bytes = _extract_fit(data)

        with tempfile.NamedTemporaryFile(suffix=".fit", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(fit_bytes)

        try:
            segments = parse_fit_trace(tmp_path)
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.debug(
            "Workout %s: %d segments, %d points",
            workout_id, len(segments), sum(len(s) for s in segments),
        )
        return segments


def _extract_fit(data: bytes) -> bytes:
    """Return the .fit payload from a download (zip archive or raw FIT bytes)."""
    buf = io.BytesIO(data)
    if not zipfile.is_zipfile(buf):
        return data
    with zipfile.ZipFile(buf) as zf:
        names = [n for n in zf.namelist() if n.lower().endswith(".fit")]
        if not names:
            raise FitParseError("Activity download contains no .fit file")
        return zf.read(names[0])
