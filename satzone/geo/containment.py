"""
Point-in-region tests.

Two paths are provided:

``rect_contains``
    O(1) test against a :class:`Rectangle`.  Latitude is checked first,
    then longitude on normalized values; a wrapped rectangle is the union
    of its two spans.  Bounds are inclusive with a tolerance of ``EPS``.

``point_in_polygon``
    Even-odd ray casting on the corner ring (x = lon, y = lat), planar.
    It is *not* boundary-inclusive: a point lying exactly on the north or
    east edge of an axis-aligned rectangle is reported outside, whereas
    ``rect_contains`` reports it inside.  Both are kept as they are.

``BBoxTable`` is a numpy cache of every region's bounds, used as a
cheap prefilter before the exact test.
"""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .lonlat import GeoPoint, normalize_lon
from .tile_grid import Rectangle, Region

EPS = 1e-12


def rect_contains(rect: Rectangle, lat: float, lon: float, eps: float = EPS) -> bool:
    # written so NaN fails the comparison
    if not rect.lat_min - eps <= lat <= rect.lat_max + eps:
        return False
    a = normalize_lon(rect.lon_min)
    b = normalize_lon(rect.lon_max)
    x = normalize_lon(lon)
    if a <= b:
        return a - eps <= x <= b + eps
    return x >= a - eps or x <= b + eps


def point_in_polygon(corners: Sequence[GeoPoint], lat: float, lon: float) -> bool:
    inside = False
    n = len(corners)
    if n < 3:
        return False
    j = n - 1
    for i in range(n):
        yi, xi = corners[i]
        yj, xj = corners[j]
        if (yi > lat) != (yj > lat):
            x_int = xi + (lat - yi) * (xj - xi) / (yj - yi)
            if lon < x_int:
                inside = not inside
        j = i
    return inside


def centroid_of(corners: Sequence[GeoPoint], rect: Optional[Rectangle] = None) -> GeoPoint:
    """Region centre: rectangle midpoint when known, else mean of corners 0 and 2."""
    if rect is not None:
        return rect.centroid
    return GeoPoint(
        0.5 * (corners[0].lat + corners[2].lat),
        0.5 * (corners[0].lon + corners[2].lon),
    )


def region_contains(region: Region, lat: float, lon: float, use_polygon: bool = False) -> bool:
    if use_polygon:
        return point_in_polygon(region.corners, lat, lon)
    return rect_contains(region.rect, lat, lon)


class BBoxTable:
    """Per-region bounding boxes in contiguous arrays.

    Built once before a classification run and only read afterwards, so
    the slice workers can share it without locking.  The prefilter is
    slightly wider than the exact tests (``pad``) so it never rejects a
    point either of them would accept.
    """

    def __init__(self, regions: Sequence[Region], pad: float = 1e-9):
        n = len(regions)
        self.lat_min = np.empty(n, np.float64)
        self.lat_max = np.empty(n, np.float64)
        self.lon_min = np.empty(n, np.float64)
        self.lon_max = np.empty(n, np.float64)
        self.wraps = np.zeros(n, bool)
        for i, region in enumerate(regions):
            r = region.rect
            a = normalize_lon(r.lon_min)
            b = normalize_lon(r.lon_max)
            self.lat_min[i] = r.lat_min - pad
            self.lat_max[i] = r.lat_max + pad
            self.lon_min[i] = a - pad
            self.lon_max[i] = b + pad
            self.wraps[i] = a > b
        # plain lists index faster than numpy scalars on the per-point path
        self._rows = list(zip(
            self.lat_min.tolist(), self.lat_max.tolist(),
            self.lon_min.tolist(), self.lon_max.tolist(),
            self.wraps.tolist(),
        ))

    def __len__(self) -> int:
        return len(self._rows)

    def may_contain(self, region_id: int, lat: float, lon: float) -> bool:
        la0, la1, lo0, lo1, wraps = self._rows[region_id]
        if lat < la0 or lat > la1:
            return False
        if wraps:
            return True
        x = normalize_lon(lon)
        return lo0 <= x <= lo1

