"""
RouteQueryService: read-side projections over the route store.

Independent of sync timing: every call reads whatever is committed.
Polylines are rebuilt on every call; callers that need caching memoize
the results themselves.

All date filtering matches the workout's start_date.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, List, Optional, Tuple

from routesync.db.store import RouteStore
from routesync.geo.polyline import build_polyline
from routesync.models.records import ActivityType
from routesync.models.workout import Workout

logger = logging.getLogger(__name__)

_COLORS = {
    ActivityType.WALKING: "#007AFF",  # blue
    ActivityType.RUNNING: "#FF3B30",  # red
    ActivityType.CYCLING: "#4CD964",  # green
    ActivityType.HIKING: "#FF9500",   # orange
}
_DEFAULT_COLOR = "#8E8E93"  # gray


@dataclass(frozen=True)
class FilterCriteria:
    """
    Route filter.

    date:            one calendar day, [00:00, next day 00:00)
    start / end:     explicit range, start <= start_date < end
    activity_types:  None → every type; an empty set matches nothing
    search_text:     carried for callers; not applied here
    """

    date: Optional[date] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    activity_types: Optional[FrozenSet[ActivityType]] = None
    search_text: str = ""

    def conditions(self) -> list:
        """SQL conditions for Workout rows matching this filter."""
        conds = []
        if self.date is not None:
            day_start = datetime.combine(self.date, time.min)
            conds.append(Workout.start_date >= day_start)
            conds.append(Workout.start_date < day_start + timedelta(days=1))
        if self.start is not None:
            conds.append(Workout.start_date >= self.start)
        if self.end is not None:
            conds.append(Workout.start_date < self.end)
        if self.activity_types is not None:
            conds.append(
                Workout.activity_type.in_([t.value for t in self.activity_types])
            )
        return conds


@dataclass(frozen=True)
class RouteDisplayInfo:
    """A route ready to draw on a map."""

    id: str
    activity_type: ActivityType
    polyline: List[Tuple[float, float]]

    @property
    def color(self) -> str:
        return _COLORS.get(self.activity_type, _DEFAULT_COLOR)


@dataclass(frozen=True)
class RouteSummaryInfo:
    """A route's metadata for list views."""

    id: str
    activity_type: ActivityType
    date: datetime
    is_indoor: bool
    name: str = ""

    @property
    def formatted_date(self) -> str:
        """e.g. "Jan 15, 2025 7:30 AM"."""
        hour = self.date.hour % 12 or 12
        meridiem = "AM" if self.date.hour < 12 else "PM"
        return (
            f"{self.date.strftime('%b')} {self.date.day}, {self.date.year} "
            f"{hour}:{self.date.minute:02d} {meridiem}"
        )


def _activity_type(workout: Workout) -> ActivityType:
    try:
        return ActivityType(workout.activity_type)
    except ValueError:
        return ActivityType.OTHER


class RouteQueryService:
    """Filtered reads and display/summary projections."""

    def __init__(self, store: RouteStore):
        self.store = store

    def get_routes(self, criteria: Optional[FilterCriteria] = None) -> List[Workout]:
        """Workouts matching `criteria`, newest start_date first."""
        conditions = criteria.conditions() if criteria else []
        workouts = self.store.fetch_all(*conditions)
        logger.debug("Fetched %d workouts", len(workouts))
        return workouts

    def get_display_info(
        self, criteria: Optional[FilterCriteria] = None
    ) -> List[RouteDisplayInfo]:
        """One polyline per matching workout; workouts without points are skipped."""
        workouts = self.get_routes(criteria)
        points_by_workout = self.store.route_points(w.id for w in workouts)

        infos = []
        for workout in workouts:
            points = points_by_workout.get(workout.id)
            if not points:
                continue
            infos.append(RouteDisplayInfo(
                id=workout.external_id,
                activity_type=_activity_type(workout),
                polyline=build_polyline(points),
            ))
        return infos

    def get_summary_info(
        self, criteria: Optional[FilterCriteria] = None
    ) -> List[RouteSummaryInfo]:
        """Metadata-only projection, newest first."""
        summaries = [
            RouteSummaryInfo(
                id=w.external_id,
                activity_type=_activity_type(w),
                date=w.start_date,
                is_indoor=w.is_indoor,
                name=w.name,
            )
            for w in self.get_routes(criteria)
        ]
        return sorted(summaries, key=lambda s: s.date, reverse=True)
