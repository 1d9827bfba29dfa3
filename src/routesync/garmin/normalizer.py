"""
Garmin API response normalizer.

Converts raw activity dicts from garminconnect into WorkoutRecord values.
No DB access and no network here. Callers handle fetching and persistence.

Garmin list items (get_activities_by_date) are flat:

    {
        "activityId": 17345678901,
        "activityName": "Seattle Running",
        "activityType": {"typeKey": "running", ...},
        "startTimeGMT": "2025-01-15 07:30:00",
        "duration": 3600.0,
        "distance": 8046.72,
        "calories": 612.0,
        ...
    }

Detail objects (get_activity_evaluation) nest the same values under
summaryDTO / activityTypeDTO and use "YYYY-MM-DDTHH:MM:SS.f" timestamps.
Both shapes are accepted.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from routesync.errors import MalformedSample
from routesync.models.records import ActivityType, WorkoutRecord

# Garmin typeKey → our activity type. Unlisted keys map to OTHER.
_TYPE_KEYS = {
    "walking": ActivityType.WALKING,
    "casual_walking": ActivityType.WALKING,
    "speed_walking": ActivityType.WALKING,
    "indoor_walking": ActivityType.WALKING,
    "running": ActivityType.RUNNING,
    "street_running": ActivityType.RUNNING,
    "track_running": ActivityType.RUNNING,
    "trail_running": ActivityType.RUNNING,
    "treadmill_running": ActivityType.RUNNING,
    "indoor_running": ActivityType.RUNNING,
    "virtual_run": ActivityType.RUNNING,
    "cycling": ActivityType.CYCLING,
    "road_biking": ActivityType.CYCLING,
    "mountain_biking": ActivityType.CYCLING,
    "gravel_cycling": ActivityType.CYCLING,
    "e_bike_fitness": ActivityType.CYCLING,
    "e_bike_mountain": ActivityType.CYCLING,
    "indoor_cycling": ActivityType.CYCLING,
    "virtual_ride": ActivityType.CYCLING,
    "hiking": ActivityType.HIKING,
    "mountaineering": ActivityType.HIKING,
}

_INDOOR_TYPE_KEYS = {
    "indoor_walking",
    "treadmill_running",
    "indoor_running",
    "virtual_run",
    "indoor_cycling",
    "virtual_ride",
}

# Garmin's per-type activity filter values for get_activities_by_date()
GARMIN_QUERY_TYPES = {
    ActivityType.WALKING: "walking",
    ActivityType.RUNNING: "running",
    ActivityType.CYCLING: "cycling",
    ActivityType.HIKING: "hiking",
    ActivityType.OTHER: "other",
}

_DEFAULT_NAME_PREFIX = {
    ActivityType.WALKING: "Walk",
    ActivityType.RUNNING: "Run",
    ActivityType.CYCLING: "Ride",
    ActivityType.HIKING: "Hike",
}


def parse_garmin_datetime(s: str) -> datetime:
    """Parse "YYYY-MM-DD HH:MM:SS" or "YYYY-MM-DDTHH:MM:SS.f" (naive UTC)."""
    s = s.strip()
    if "T" in s:
        base = s.split(".")[0]  # drop fractional seconds
        return datetime.strptime(base, "%Y-%m-%dT%H:%M:%S")
    return datetime.strptime(s, "%Y-%m-%d %H:%M:%S")


def activity_type_from_key(type_key: str) -> ActivityType:
    return _TYPE_KEYS.get(type_key, ActivityType.OTHER)


def is_indoor_key(type_key: str) -> bool:
    return type_key in _INDOOR_TYPE_KEYS


def default_workout_name(activity_type: ActivityType, start: datetime) -> str:
    """e.g. "Run on Jan 15, 2025 7:30 AM"."""
    prefix = _DEFAULT_NAME_PREFIX.get(activity_type, "Workout")
    hour = start.hour % 12 or 12
    meridiem = "AM" if start.hour < 12 else "PM"
    return (
        f"{prefix} on {start.strftime('%b')} {start.day}, {start.year} "
        f"{hour}:{start.minute:02d} {meridiem}"
    )


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def normalize_workout(raw: Dict[str, Any]) -> WorkoutRecord:
    """
    Normalize one Garmin activity dict into a WorkoutRecord.

    Args:
        raw: A get_activities_by_date() list item or a detail object.

    Returns:
        WorkoutRecord keyed by the Garmin activityId.

    Raises:
        MalformedSample: if the id or start time is missing or unparsable,
            or a numeric field is not numeric.
    """
    if not isinstance(raw, dict):
        raise MalformedSample(f"Expected activity dict, got {type(raw).__name__}")

    activity_id = raw.get("activityId")
    if activity_id in (None, ""):
        raise MalformedSample(
            "Activity has no 'activityId'. Keys present: " + str(list(raw.keys()))
        )

    # get_activities_by_date() → "activityType"; detail → "activityTypeDTO"
    activity_type = raw.get("activityType") or raw.get("activityTypeDTO") or {}
    if isinstance(activity_type, dict):
        type_key = activity_type.get("typeKey", "")
    else:
        type_key = str(activity_type)

    summary = raw.get("summaryDTO") or raw

    # Prefer true UTC (GMT); fall back to the local timestamp.
    time_str = (
        raw.get("startTimeGMT")
        or summary.get("startTimeGMT")
        or raw.get("startTimeLocal")
        or summary.get("startTimeLocal")
    )
    if not time_str:
        raise MalformedSample(f"Activity {activity_id} has no start time")

    try:
        start = parse_garmin_datetime(str(time_str))
        duration = _optional_float(summary.get("duration", raw.get("duration")))
        elapsed = _optional_float(
            summary.get("elapsedDuration", raw.get("elapsedDuration"))
        )
        distance = _optional_float(summary.get("distance", raw.get("distance")))
        calories = _optional_float(summary.get("calories", raw.get("calories")))
    except (TypeError, ValueError) as exc:
        raise MalformedSample(f"Activity {activity_id}: {exc}") from exc

    kind = activity_type_from_key(type_key)
    span = elapsed if elapsed is not None else duration
    end = start + timedelta(seconds=span) if span is not None else start

    return WorkoutRecord(
        external_id=str(activity_id),
        activity_type=kind,
        start_date=start,
        end_date=end,
        name=raw.get("activityName") or default_workout_name(kind, start),
        distance_meters=distance,
        duration_seconds=duration,
        calories_kcal=calories,
        is_indoor=is_indoor_key(type_key),
    )
