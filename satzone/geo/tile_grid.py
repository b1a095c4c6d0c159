"""
Region model and the uniform spatial grid index.

The sphere is cut into equirectangular cells of ``cell_deg`` degrees
(1° by default: 180 rows × 360 columns).  Cells are indexed by
(row, col) where row 0 is the southernmost band (lat -90) and col 0 is
the westernmost band (lon -180).

Each cell keeps an ordered bucket of region ids whose bounding rectangle
overlaps it.  A rectangle that wraps the antimeridian is inserted as two
spans, ``[lon_min, 180)`` and ``[-180, lon_max]``, so each span maps to a
monotonically increasing column range.

Usage
-----
    grid = SpatialGrid.build(store.regions)
    print(f"{grid.cell_count} cells indexed")
    for region_id in grid.candidates(lat=48.85, lon=2.35):
        ...
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon, mapping

from .lonlat import GeoPoint, clamp_lat, km_to_deg, normalize_lon

DEFAULT_CELL_DEG = 1.0

# Upper edge used for the eastern half of a dateline-split rectangle
_SEAM_EDGE = 180.0 - 1e-9


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned lat/lon rectangle.

    ``lon_min > lon_max`` (after normalization) means the rectangle wraps
    the antimeridian and covers ``[lon_min, 180) ∪ [-180, lon_max]``.
    """

    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @property
    def wraps(self) -> bool:
        return normalize_lon(self.lon_min) > normalize_lon(self.lon_max)

    def corners(self) -> Tuple[GeoPoint, GeoPoint, GeoPoint, GeoPoint]:
        """Corner points in SW, SE, NE, NW order."""
        return (
            GeoPoint(self.lat_min, self.lon_min),
            GeoPoint(self.lat_min, self.lon_max),
            GeoPoint(self.lat_max, self.lon_max),
            GeoPoint(self.lat_max, self.lon_min),
        )

    @property
    def centroid(self) -> GeoPoint:
        lat_c = 0.5 * (self.lat_min + self.lat_max)
        a = normalize_lon(self.lon_min)
        b = normalize_lon(self.lon_max)
        if a > b:
            # midpoint of the wrapped interval [a, b + 360]
            return GeoPoint(lat_c, normalize_lon(0.5 * (a + b + 360.0)))
        return GeoPoint(lat_c, 0.5 * (self.lon_min + self.lon_max))

    @classmethod
    def from_corners(cls, corners: Sequence[GeoPoint]) -> "Rectangle":
        lats = [p.lat for p in corners]
        lons = [p.lon for p in corners]
        return cls(min(lats), max(lats), min(lons), max(lons))

    @classmethod
    def square(cls, center_lat: float, center_lon: float, tile_km: float) -> "Rectangle":
        """Square tile of *tile_km* edge around a centre.

        Latitudes are clamped to the poles.  When the half-width in
        longitude reaches 180° (tiles close to a pole) the tile covers
        every longitude and comes back as the full circle
        ``[-180, 180)``; otherwise the ends are normalized and may wrap.
        """
        dlat, dlon = km_to_deg(tile_km * 0.5, center_lat)
        if dlon >= 180.0:
            lon_min, lon_max = -180.0, _SEAM_EDGE
        else:
            lon_min = normalize_lon(center_lon - dlon)
            lon_max = normalize_lon(center_lon + dlon)
        return cls(clamp_lat(center_lat - dlat), clamp_lat(center_lat + dlat), lon_min, lon_max)


@dataclass(frozen=True)
class Region:
    """One tile loaded from CSV.

    ``id`` is the dense index into the owning TileStore; ``row`` is the
    zero-based data row of the CSV line the region came from.
    """

    id: int
    rect: Rectangle
    corners: Tuple[GeoPoint, ...]
    label: Optional[str] = None
    row: int = -1

    @property
    def polygon(self) -> Polygon:
        """Corner ring as a shapely Polygon in (lon, lat) order.

        Planar geometry: a dateline-wrapped region comes out as the
        complementary strip, so callers that care must check ``rect.wraps``.
        """
        return Polygon([(p.lon, p.lat) for p in self.corners])


class CellKey(NamedTuple):
    row: int
    col: int


class SpatialGrid:
    """Uniform lat/lon bucket index over region ids.

    The grid stores ids only; the regions themselves stay in the
    TileStore.  Buckets keep insertion order, which is CSV row order for
    a fresh build.
    """

    def __init__(self, cell_deg: float = DEFAULT_CELL_DEG):
        if not cell_deg > 0.0:
            raise ValueError("cell_deg must be positive")
        self.cell_deg = float(cell_deg)
        self.n_rows = int(math.floor(180.0 / self.cell_deg))
        self.n_cols = int(math.floor(360.0 / self.cell_deg))
        self._buckets: Dict[CellKey, List[int]] = {}

    @classmethod
    def build(
        cls,
        regions: Iterable[Region],
        cell_deg: float = DEFAULT_CELL_DEG,
    ) -> "SpatialGrid":
        grid = cls(cell_deg)
        for region in regions:
            grid.insert(region.id, region.rect)
        return grid

    def reset(self) -> None:
        """Drop every bucket."""
        self._buckets = {}

    @property
    def cell_count(self) -> int:
        """Number of non-empty cells."""
        return len(self._buckets)

    # ── Cell mapping ─────────────────────────────────────────────────

    def cell_of(self, lat: float, lon: float) -> CellKey:
        """Cell holding (lat, lon).  Raises ValueError for NaN/inf input."""
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValueError(f"non-finite coordinate ({lat}, {lon})")
        lat = clamp_lat(lat)
        lon = normalize_lon(lon)
        r = int(math.floor((lat + 90.0) / self.cell_deg))
        c = int(math.floor((lon + 180.0) / self.cell_deg))
        # clamp: lat=+90 and float error at the seam land one cell out
        r = min(max(r, 0), self.n_rows - 1)
        c = min(max(c, 0), self.n_cols - 1)
        return CellKey(r, c)

    def cells_of(
        self, lats: np.ndarray, lons: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized :meth:`cell_of` for arrays of finite coordinates."""
        lats = np.clip(np.asarray(lats, dtype=np.float64), -90.0, 90.0)
        lons = np.asarray(lons, dtype=np.float64)
        in_range = (lons >= -180.0) & (lons < 180.0)
        folded = np.mod(lons + 180.0, 360.0) - 180.0
        folded[folded >= 180.0] -= 360.0
        lons = np.where(in_range, lons, folded)
        rows = np.floor((lats + 90.0) / self.cell_deg).astype(np.int64)
        cols = np.floor((lons + 180.0) / self.cell_deg).astype(np.int64)
        np.clip(rows, 0, self.n_rows - 1, out=rows)
        np.clip(cols, 0, self.n_cols - 1, out=cols)
        return rows, cols

    # ── Insertion ────────────────────────────────────────────────────

    def insert(self, region_id: int, rect: Rectangle) -> None:
        """Add *region_id* to every cell its rectangle overlaps."""
        a = normalize_lon(rect.lon_min)
        b = normalize_lon(rect.lon_max)
        if a <= b:
            self._insert_span(region_id, rect.lat_min, rect.lat_max, a, b)
        else:
            self._insert_span(region_id, rect.lat_min, rect.lat_max, a, _SEAM_EDGE)
            self._insert_span(region_id, rect.lat_min, rect.lat_max, -180.0, b)

    def _insert_span(
        self,
        region_id: int,
        lat_min: float,
        lat_max: float,
        lon_a: float,
        lon_b: float,
    ) -> None:
        r0, c0 = self.cell_of(lat_min, lon_a)
        r1, c1 = self.cell_of(lat_max, lon_b)
        for r in range(r0, r1 + 1):
            for c in range(c0, c1 + 1):
                bucket = self._buckets.setdefault(CellKey(r, c), [])
                # both halves of a near-global wrapped span can hit one cell
                if not bucket or bucket[-1] != region_id:
                    bucket.append(region_id)

    # ── Queries ──────────────────────────────────────────────────────

    def bucket(self, key: CellKey) -> Tuple[int, ...]:
        return tuple(self._buckets.get(key, ()))

    def candidates_for_cell(self, row: int, col: int) -> List[int]:
        """Region ids indexed in the 3×3 neighbourhood of (row, col).

        Deduplicated and sorted ascending, i.e. in CSV row order.
        Columns wrap around the seam; rows stop at the poles.
        """
        found = set()
        for dr in (-1, 0, 1):
            r = row + dr
            if r < 0 or r >= self.n_rows:
                continue
            for dc in (-1, 0, 1):
                bucket = self._buckets.get((r, (col + dc) % self.n_cols))
                if bucket:
                    found.update(bucket)
        return sorted(found)

    def candidates(self, lat: float, lon: float) -> List[int]:
        """Candidate ids around (lat, lon); none for NaN/inf coordinates."""
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return []
        row, col = self.cell_of(lat, lon)
        return self.candidates_for_cell(row, col)


def regions_to_geojson(regions: Iterable[Region]) -> dict:
    """Export regions as a GeoJSON FeatureCollection for debugging."""
    features = []
    for region in regions:
        centroid = region.rect.centroid
        features.append({
            "type": "Feature",
            "properties": {
                "id": region.id,
                "row": region.row,
                "label": region.label,
                "wraps": region.rect.wraps,
                "centroid_lon": round(centroid.lon, 6),
                "centroid_lat": round(centroid.lat, 6),
            },
            "geometry": mapping(region.polygon),
        })

    return {
        "type": "FeatureCollection",
        "features": features,
    }
