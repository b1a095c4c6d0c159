"""
Longitude/latitude helpers shared by the grid, the containment tests and
the POI range computation.

All longitudes are folded into the half-open interval [-180, 180) before
they are compared.  Great-circle range uses the haversine formula on a
spherical Earth (R = 6371 km); bearing is the spherical forward azimuth.

Usage
-----
    from satzone.geo.lonlat import normalize_lon, haversine_km, bearing_deg
    normalize_lon(190.0)            # -170.0
    haversine_km(0, 0, 0, 1)        # ~111.19
    bearing_deg(0, 0, 1, 0)         # 0.0 (due north)
"""
from __future__ import annotations

import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0

# Kilometres per degree, used to turn a tile size in km into degrees
KM_PER_DEG_LAT = 110.574
KM_PER_DEG_LON_EQUATOR = 111.320

# Smallest |cos(lat)| allowed when scaling longitude near the poles
_MIN_COSLAT = 1e-6


class GeoPoint(NamedTuple):
    """A latitude/longitude pair in degrees."""
    lat: float
    lon: float


def normalize_lon(lon: float) -> float:
    """Fold *lon* into [-180, 180).  Idempotent."""
    if -180.0 <= lon < 180.0:
        return lon
    if not math.isfinite(lon):
        return math.nan
    x = math.fmod(lon + 180.0, 360.0)
    if x < 0.0:
        x += 360.0
    x -= 180.0
    # fmod of a tiny negative value can round back up to exactly +180
    if x >= 180.0:
        x -= 360.0
    return x


def clamp_lat(lat: float) -> float:
    if lat > 90.0:
        return 90.0
    if lat < -90.0:
        return -90.0
    return lat


def km_to_deg(half_km: float, lat: float) -> GeoPoint:
    """Convert a distance in km into (dlat, dlon) degrees at latitude *lat*.

    The longitude scale uses cos(lat), clamped away from zero so a tile
    centred on a pole does not blow up to an infinite width.
    """
    coslat = math.cos(math.radians(lat))
    if abs(coslat) < _MIN_COSLAT:
        coslat = -_MIN_COSLAT if coslat < 0 else _MIN_COSLAT
    dlat = half_km / KM_PER_DEG_LAT
    dlon = half_km / (KM_PER_DEG_LON_EQUATOR * coslat)
    return GeoPoint(dlat, abs(dlon))


def haversine_km(
    lat1: float, lon1: float, lat2: float, lon2: float,
    radius_km: float = EARTH_RADIUS_KM,
) -> float:
    """Great-circle distance between two points in kilometres."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dlat = p2 - p1
    dlon = math.radians(lon2 - lon1)
    h = (math.sin(dlat / 2.0) ** 2
         + math.cos(p1) * math.cos(p2) * math.sin(dlon / 2.0) ** 2)
    h = min(max(h, 0.0), 1.0)
    return 2.0 * radius_km * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Forward azimuth from point 1 to point 2, in [0, 360)."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dlon = math.radians(lon2 - lon1)
    y = math.sin(dlon) * math.cos(p2)
    x = math.cos(p1) * math.sin(p2) - math.sin(p1) * math.cos(p2) * math.cos(dlon)
    theta = math.degrees(math.atan2(y, x))
    result = math.fmod(theta + 360.0, 360.0)
    if result >= 360.0:
        result -= 360.0
    return result


def format_bearing(bearing: float) -> str:
    """Render a bearing for tables, e.g. ``"123.4°"``."""
    return f"{bearing:.1f}°"
