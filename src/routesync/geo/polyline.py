"""Polyline construction for map display."""
from typing import Iterable, List, Protocol, Tuple


class HasCoordinate(Protocol):
    latitude: float
    longitude: float


def build_polyline(points: Iterable[HasCoordinate]) -> List[Tuple[float, float]]:
    """(lat, lon) pairs in the order given. Callers sort by timestamp first."""
    return [(p.latitude, p.longitude) for p in points]
