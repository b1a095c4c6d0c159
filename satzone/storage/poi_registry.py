"""
POI name/type side table and the single-POI append contract.

The POI CSV carries ``Name,Type`` in its first two columns.  Names are
kept apart from the regions themselves, keyed by the CSV data row so a
row with unusable bounds cannot shift every later name by one.

Appending a POI writes one row

    Name,Type,Tile_km,Center_Lat,Center_Lon,Lat_min,Lat_max,Lon_min,Lon_max

with a header first when the file is new or empty.  Inputs are validated
before the file is touched.

Usage
-----
    registry = PoiRegistry.load("data/Points_of_Interests.csv")
    registry.row_of("Kourou")         # 12
    rect = append_poi_row(path, "X", "City", 10.0, 10.0, 20.0)
"""
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..geo.tile_grid import Rectangle

log = logging.getLogger(__name__)

POI_HEADER = [
    "Name", "Type", "Tile_km", "Center_Lat", "Center_Lon",
    "Lat_min", "Lat_max", "Lon_min", "Lon_max",
]


class ValidationError(ValueError):
    """POI input rejected before anything was written."""


@dataclass(frozen=True)
class PoiEntry:
    name: str
    type: str
    row: int


class PoiRegistry:
    """Names and types of POI tiles, in CSV order."""

    def __init__(self) -> None:
        self._entries: List[PoiEntry] = []
        self._by_row: Dict[int, PoiEntry] = {}
        self._first_row: Dict[str, int] = {}

    @classmethod
    def load(cls, csv_path: Union[str, Path]) -> "PoiRegistry":
        """Read ``Name,Type`` pairs.  A missing file gives an empty registry."""
        registry = cls()
        path = Path(csv_path)
        try:
            with path.open("r", encoding="utf-8-sig", errors="replace", newline="") as f:
                reader = csv.reader(f)
                if next(reader, None) is None:
                    return registry
                for row_no, fields in enumerate(reader):
                    name = fields[0].strip() if fields else ""
                    if not name:
                        continue
                    kind = fields[1].strip() if len(fields) > 1 else ""
                    registry.add(name, kind, row_no)
        except OSError as exc:
            log.warning("Could not open POI CSV '%s': %s", path, exc)
            return registry

        log.info("PoiRegistry loaded %d names from %s", len(registry), path)
        return registry

    def add(self, name: str, kind: str, row: int) -> PoiEntry:
        entry = PoiEntry(name=name, type=kind, row=row)
        self._entries.append(entry)
        self._by_row[row] = entry
        self._first_row.setdefault(name, row)
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._first_row

    def names(self) -> List[str]:
        return [e.name for e in self._entries]

    def types(self) -> List[str]:
        return [e.type for e in self._entries]

    def entry_for_row(self, row: int) -> Optional[PoiEntry]:
        return self._by_row.get(row)

    def row_of(self, name: str) -> Optional[int]:
        """Data row of the first POI called *name*, or None."""
        return self._first_row.get(name)


def compute_poi_bounds(center_lat: float, center_lon: float, tile_km: float) -> Rectangle:
    """Square tile of *tile_km* edge around a centre, in degrees.

    Raises
    ------
    ValidationError
        Non-finite input, latitude outside [-90, 90], longitude outside
        [-180, 180] or a tile size that is not positive.
    """
    if not (math.isfinite(center_lat) and -90.0 <= center_lat <= 90.0):
        raise ValidationError("latitude must be a finite value in [-90, 90]")
    if not (math.isfinite(center_lon) and -180.0 <= center_lon <= 180.0):
        raise ValidationError("longitude must be a finite value in [-180, 180]")
    if not (math.isfinite(tile_km) and tile_km > 0.0):
        raise ValidationError("tile size must be positive")

    return Rectangle.square(center_lat, center_lon, tile_km)


def _needs_leading_newline(path: Path) -> bool:
    with path.open("rb") as f:
        f.seek(-1, 2)
        return f.read(1) not in (b"\n", b"\r")


def append_poi_row(
    csv_path: Union[str, Path],
    name: str,
    kind: str,
    tile_km: float,
    center_lat: float,
    center_lon: float,
) -> Rectangle:
    """Validate, then append one POI row to *csv_path*.

    Returns the tile rectangle that was written.
    """
    if not name or not name.strip():
        raise ValidationError("name is required")
    rect = compute_poi_bounds(center_lat, center_lon, tile_km)

    path = Path(csv_path)
    is_new = not path.exists() or path.stat().st_size == 0
    lead = "" if is_new else ("\n" if _needs_leading_newline(path) else "")
    with path.open("a", encoding="utf-8", newline="") as f:
        if lead:
            f.write(lead)
        writer = csv.writer(f, lineterminator="\n")
        if is_new:
            writer.writerow(POI_HEADER)
        writer.writerow([
            name.strip(), (kind or "").strip(),
            *(f"{v:.10f}" for v in (
                tile_km, center_lat, center_lon,
                rect.lat_min, rect.lat_max, rect.lon_min, rect.lon_max,
            )),
        ])

    log.info("Appended POI %r (%s) to %s", name, kind, path)
    return rect
