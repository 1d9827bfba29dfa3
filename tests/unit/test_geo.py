"""Tests for haversine distance and polyline construction."""
from datetime import datetime

import pytest

from routesync.geo.distance import EARTH_RADIUS_M, haversine_meters, point_distance
from routesync.geo.polyline import build_polyline
from routesync.models.records import TracePoint


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_meters(47.606, -122.332, 47.606, -122.332) == 0.0

    def test_one_degree_latitude(self):
        # 1° along a meridian = R * π / 180 ≈ 111.2 km
        assert haversine_meters(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_194.9, abs=1.0)

    def test_symmetric(self):
        d1 = haversine_meters(47.606, -122.332, 47.620, -122.349)
        d2 = haversine_meters(47.620, -122.349, 47.606, -122.332)
        assert d1 == pytest.approx(d2)

    def test_antipodal_is_half_circumference(self):
        d = haversine_meters(0.0, 0.0, 0.0, 180.0)
        assert d == pytest.approx(EARTH_RADIUS_M * 3.141592653589793, rel=1e-9)

    def test_point_distance_matches_haversine(self):
        t = datetime(2025, 1, 15, 7, 30)
        a = TracePoint(latitude=47.606, longitude=-122.332, timestamp=t)
        b = TracePoint(latitude=47.607, longitude=-122.331, timestamp=t)
        assert point_distance(a, b) == haversine_meters(47.606, -122.332, 47.607, -122.331)


class TestBuildPolyline:
    def test_empty(self):
        assert build_polyline([]) == []

    def test_lat_lon_pairs_in_order(self, make_trace):
        trace = make_trace(3)
        assert build_polyline(trace) == [
            (trace[0].latitude, trace[0].longitude),
            (trace[1].latitude, trace[1].longitude),
            (trace[2].latitude, trace[2].longitude),
        ]
