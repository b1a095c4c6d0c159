"""Tests for the rectangle and polygon containment paths."""

import math

import numpy as np
import pytest
from shapely.geometry import Point

from satzone.geo.containment import (
    BBoxTable,
    centroid_of,
    point_in_polygon,
    rect_contains,
    region_contains,
)
from satzone.geo.lonlat import GeoPoint
from satzone.geo.tile_grid import Rectangle, Region


def make_region(region_id, lat_min, lat_max, lon_min, lon_max):
    rect = Rectangle(lat_min, lat_max, lon_min, lon_max)
    return Region(id=region_id, rect=rect, corners=rect.corners(), row=region_id)


class TestRectContains:
    """Tests for the rectangle test."""

    def test_scenario_two_degree_square(self):
        rect = Rectangle(-1.0, 1.0, -1.0, 1.0)
        assert rect_contains(rect, 0.5, 0.5)
        assert not rect_contains(rect, 1.5, 0.0)

    @pytest.mark.parametrize(
        "lat, lon",
        [(-1.0, 0.0), (1.0, 0.0), (0.0, -1.0), (0.0, 1.0), (1.0, 1.0), (-1.0, -1.0)],
    )
    def test_boundary_is_inside(self, lat, lon):
        assert rect_contains(Rectangle(-1.0, 1.0, -1.0, 1.0), lat, lon)

    def test_tolerance(self):
        rect = Rectangle(-1.0, 1.0, -1.0, 1.0)
        assert rect_contains(rect, 1.0 + 1e-13, 0.0)
        assert not rect_contains(rect, 1.0 + 1e-9, 0.0)
        assert rect_contains(rect, 0.0, 1.0 + 1e-9, eps=1e-6)

    def test_dateline_wrap(self):
        rect = Rectangle(-10.0, 10.0, 170.0, -170.0)
        assert rect_contains(rect, 0.0, 179.0)
        assert rect_contains(rect, 0.0, -179.0)
        assert rect_contains(rect, 0.0, 180.0)
        assert rect_contains(rect, 0.0, -180.0)
        assert rect_contains(rect, 0.0, 170.0)
        assert rect_contains(rect, 0.0, -170.0)
        assert not rect_contains(rect, 0.0, 0.0)
        assert not rect_contains(rect, 0.0, 169.0)
        assert not rect_contains(rect, 0.0, -169.0)

    def test_unnormalized_bounds(self):
        """Bounds past 180 behave like their folded values."""
        rect = Rectangle(-10.0, 10.0, 170.0, 190.0)
        assert rect_contains(rect, 0.0, 185.0)
        assert rect_contains(rect, 0.0, -175.0)
        assert not rect_contains(rect, 0.0, 0.0)

    @pytest.mark.parametrize(
        "lat, lon",
        [(math.nan, 0.0), (0.0, math.nan), (math.inf, 0.0), (0.0, -math.inf)],
    )
    def test_non_finite_is_outside(self, lat, lon):
        assert not rect_contains(Rectangle(-90.0, 90.0, -180.0, 179.9), lat, lon)


class TestPointInPolygon:
    """Tests for the ray-casting path."""

    def test_interior_and_exterior(self):
        corners = Rectangle(-1.0, 1.0, -1.0, 1.0).corners()
        assert point_in_polygon(corners, 0.5, 0.5)
        assert not point_in_polygon(corners, 1.5, 0.0)

    def test_degenerate_ring(self):
        assert not point_in_polygon([GeoPoint(0, 0), GeoPoint(1, 1)], 0.5, 0.5)

    def test_agrees_with_shapely_off_the_boundary(self):
        rng = np.random.default_rng(5)
        for _ in range(200):
            lat_min, lon_min = rng.uniform(-60, 60), rng.uniform(-170, 160)
            region = make_region(0, lat_min, lat_min + rng.uniform(0.5, 5),
                                 lon_min, lon_min + rng.uniform(0.5, 5))
            poly = region.polygon
            for lat, lon in rng.uniform(-1, 1, (20, 2)) * 6 + [lat_min, lon_min]:
                if poly.boundary.distance(Point(lon, lat)) < 1e-9:
                    continue
                assert point_in_polygon(region.corners, lat, lon) == poly.contains(Point(lon, lat))

    def test_boundary_differs_from_rectangle_test(self):
        """North and east edges are outside for ray casting, inside for the rectangle."""
        region = make_region(0, -1.0, 1.0, -1.0, 1.0)
        north = (1.0, 0.0)
        east = (0.0, 1.0)
        south = (-1.0, 0.0)
        west = (0.0, -1.0)
        for lat, lon in (north, east):
            assert region_contains(region, lat, lon)
            assert not region_contains(region, lat, lon, use_polygon=True)
        for lat, lon in (south, west):
            assert region_contains(region, lat, lon)
            assert region_contains(region, lat, lon, use_polygon=True)


class TestCentroid:
    """Tests for region centres."""

    def test_from_rectangle(self):
        rect = Rectangle(0.0, 2.0, 10.0, 14.0)
        assert centroid_of(rect.corners(), rect) == GeoPoint(1.0, 12.0)

    def test_from_corners_only(self):
        corners = Rectangle(0.0, 2.0, 10.0, 14.0).corners()
        assert centroid_of(corners) == GeoPoint(1.0, 12.0)


class TestBBoxTable:
    """Tests for the prefilter."""

    def test_size(self):
        table = BBoxTable([make_region(0, 0, 1, 0, 1), make_region(1, 5, 6, 5, 6)])
        assert len(table) == 2
        assert table.wraps.tolist() == [False, False]

    def test_rejects_far_points(self):
        table = BBoxTable([make_region(0, 0, 1, 0, 1)])
        assert not table.may_contain(0, 5.0, 0.5)
        assert not table.may_contain(0, 0.5, 5.0)
        assert table.may_contain(0, 0.5, 0.5)

    def test_never_rejects_a_contained_point(self):
        rng = np.random.default_rng(9)
        regions = []
        for i in range(300):
            lat_min = rng.uniform(-80, 70)
            lon_min = rng.uniform(-180, 180)
            regions.append(make_region(
                i, lat_min, lat_min + rng.uniform(0.1, 10),
                lon_min, lon_min + rng.uniform(0.1, 20),
            ))
        table = BBoxTable(regions)
        assert table.wraps.any()

        for region in regions:
            r = region.rect
            probes = [
                (r.lat_min, r.lon_min), (r.lat_max, r.lon_max),
                (r.lat_min, r.lon_max), (r.lat_max, r.lon_min),
                (0.5 * (r.lat_min + r.lat_max), r.centroid.lon),
            ]
            for lat, lon in probes:
                if rect_contains(r, lat, lon):
                    assert table.may_contain(region.id, lat, lon)
