"""
Trace simplification.

Two pure point-reduction algorithms over a timestamp-ordered trace:

  simplify_by_distance: O(n) greedy pass. Keeps a point only when it is
      more than `tolerance` meters (haversine) from the last kept point.
      The first and last points are always kept.

  simplify_rdp: Ramer–Douglas–Peucker. Keeps the point of maximum
      perpendicular deviation from the first→last chord while that
      deviation exceeds `epsilon`, recursing on both halves.

RDP units: deviation is measured treating longitude/latitude as planar
x/y, so `epsilon` is in DEGREES, not meters (0.0001° ≈ 11 m of latitude).
This local-flatness approximation is only meaningful over short spans.

Both functions are total: empty input → [], one point → that point.
Neither mutates its input.
"""
import logging
import math
from typing import List, Sequence, Tuple

from routesync.geo.distance import point_distance
from routesync.models.records import TracePoint

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_METERS = 10.0
DEFAULT_EPSILON_DEGREES = 0.0001


def simplify_by_distance(
    points: Sequence[TracePoint],
    tolerance: float = DEFAULT_TOLERANCE_METERS,
) -> List[TracePoint]:
    """
    Greedy distance-threshold simplification.

    Args:
        points: Trace ordered by timestamp.
        tolerance: Minimum spacing in meters between consecutive kept points.

    Returns:
        Simplified trace. output[0] == points[0] and output[-1] == points[-1];
        every consecutive pair except possibly the last one is more than
        `tolerance` meters apart.
    """
    if not points:
        return []

    simplified = [points[0]]
    for point in points[1:-1]:
        if point_distance(point, simplified[-1]) > tolerance:
            simplified.append(point)
    if len(points) > 1:
        # The true endpoint is kept even when it is within tolerance.
        simplified.append(points[-1])

    logger.debug(
        "Trace simplified from %d to %d points (%.1f%% reduction)",
        len(points),
        len(simplified),
        (1.0 - len(simplified) / len(points)) * 100.0,
    )
    return simplified


def perpendicular_distance(
    point: TracePoint, line_start: TracePoint, line_end: TracePoint
) -> float:
    """
    Planar distance (degrees) from `point` to the line through the chord.

    Longitude is x, latitude is y. When the chord is degenerate (closed
    loop: start and end coincide) the distance to line_start is used.
    """
    x, y = point.longitude, point.latitude
    x1, y1 = line_start.longitude, line_start.latitude
    x2, y2 = line_end.longitude, line_end.latitude

    # Line equation Ax + By + C = 0
    a = y2 - y1
    b = x1 - x2
    if a == 0 and b == 0:
        return math.hypot(x - x1, y - y1)
    c = x2 * y1 - x1 * y2
    return abs(a * x + b * y + c) / math.sqrt(a * a + b * b)


def simplify_rdp(
    points: Sequence[TracePoint],
    epsilon: float = DEFAULT_EPSILON_DEGREES,
) -> List[TracePoint]:
    """
    Ramer–Douglas–Peucker simplification.

    Args:
        points: Trace ordered by timestamp.
        epsilon: Maximum tolerated deviation, in degrees (see module doc).
            A negative epsilon keeps every point.

    Returns:
        Simplified trace. Endpoints are kept; inputs of length <= 2 are
        returned unchanged. Re-simplifying the output with the same epsilon
        returns it unchanged.

    Worst case O(n²), typically O(n log n). Sub-ranges are processed from
    an explicit stack, so long traces do not hit the recursion limit.
    """
    if len(points) <= 2:
        return list(points)

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    pending: List[Tuple[int, int]] = [(0, len(points) - 1)]

    while pending:
        start, end = pending.pop()
        if end - start < 2:
            continue

        dmax = -1.0
        index = start + 1
        for i in range(start + 1, end):
            d = perpendicular_distance(points[i], points[start], points[end])
            if d > dmax:
                index = i
                dmax = d

        if dmax > epsilon:
            keep[index] = True
            pending.append((start, index))
            pending.append((index, end))

    return [p for p, kept in zip(points, keep) if kept]
