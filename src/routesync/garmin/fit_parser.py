"""
FIT file parser: extracts the GPS trace from a Garmin .fit file.

Only 'record' messages carrying a timestamp and both position fields
become TracePoints. Records without a GPS fix (indoor, tunnel, warm-up
before lock) are skipped.

A trace is returned as a list of segments. A new segment starts after
each timer stop event, so pausing the watch splits the route into
disjoint pieces:

    event(timer, start) record record ... event(timer, stop_all)
    event(timer, start) record record ...

Garmin stores lat/lon as 32-bit signed "semicircles":
    degrees = semicircles * (180 / 2^31)
"""
from pathlib import Path
from typing import List

import fitparse

from routesync.errors import MalformedSample
from routesync.models.records import TracePoint

_SEMICIRCLE_TO_DEGREES = 180.0 / (2**31)

_TIMER_STOP_TYPES = {"stop", "stop_all", "stop_disable", "stop_disable_all"}


class FitParseError(MalformedSample):
    """Raised when a FIT file cannot be parsed."""


def parse_fit_trace(path: Path) -> List[List[TracePoint]]:
    """
    Parse a .fit file into GPS trace segments.

    Args:
        path: Path to the .fit file

    Returns:
        Non-empty segments of TracePoints, each in file order. An activity
        without GPS returns [].

    Raises:
        FitParseError: if the file doesn't exist or is not a valid FIT file
    """
    if not path.exists():
        raise FitParseError(f"FIT file not found: {path}")

    try:
        fit = fitparse.FitFile(str(path))
        messages = list(fit.get_messages(["record", "event"]))
    except Exception as exc:
        raise FitParseError(f"Failed to parse FIT file {path}: {exc}") from exc

    segments: List[List[TracePoint]] = []
    current: List[TracePoint] = []

    for message in messages:
        values = message.get_values()

        if message.name == "event":
            if values.get("event") == "timer" and values.get("event_type") in _TIMER_STOP_TYPES:
                if current:
                    segments.append(current)
                current = []
            continue

        timestamp = values.get("timestamp")
        raw_lat = values.get("position_lat")
        raw_lon = values.get("position_long")
        if timestamp is None or raw_lat is None or raw_lon is None:
            continue

        current.append(TracePoint(
            latitude=raw_lat * _SEMICIRCLE_TO_DEGREES,
            longitude=raw_lon * _SEMICIRCLE_TO_DEGREES,
            timestamp=timestamp,
        ))

    if current:
        segments.append(current)
    return segments
