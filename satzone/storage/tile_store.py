"""
In-memory tile storage loaded from CSV.

Three layouts are understood:

``poi`` (preferred)
    Header with ``Lat_min, Lat_max, Lon_min, Lon_max`` (any case, any
    position), giving exact bounds.
``poi`` (fallback)
    Header with ``Center_Lat, Center_Lon, Tile_km``, a square tile of
    ``Tile_km`` edge converted to degrees at the centre latitude.
``territory``
    Fixed positions: [3] centre lon, [4] centre lat, [5] width °,
    [6] height °, optional [7] country label.

``layout="auto"`` picks a POI layout when the header names its columns
and falls back to the territory layout otherwise.

Region ids are dense integers in CSV row order.  Rows with missing or
non-numeric fields are skipped and counted, never fatal.

Usage
-----
    store = TileStore.load("data/territories.csv")
    print(len(store), "regions")
    region = store.region_at(0)
    store.labels_for(region.id)     # "France"
"""
from __future__ import annotations

import csv
import logging
import math
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..geo.tile_grid import Rectangle, Region

log = logging.getLogger(__name__)

LAYOUTS = ("auto", "territory", "poi")

_BOUNDS_COLUMNS = ("lat_min", "lat_max", "lon_min", "lon_max")
_CENTER_COLUMNS = ("center_lat", "center_lon", "tile_km")

# Territory layout column positions
_T_LON, _T_LAT, _T_WIDTH, _T_HEIGHT, _T_LABEL = 3, 4, 5, 6, 7


class LoadError(Exception):
    """A tile file could not be turned into a TileStore."""


class TileFileMissingError(LoadError):
    """The file does not exist or cannot be read."""


class TileFileEmptyError(LoadError):
    """The file has no header row (zero regions)."""


def _to_float(value: str) -> float:
    v = float(value.strip())
    if not math.isfinite(v):
        raise ValueError(f"non-finite value {value!r}")
    return v


class _RowParser:
    """Turns one split CSV row into (Rectangle, label) for a fixed layout."""

    def __init__(self, header: Sequence[str], layout: str):
        names = {h.strip().lower(): i for i, h in reversed(list(enumerate(header)))}
        self.bounds_idx: Optional[Tuple[int, ...]] = None
        self.center_idx: Optional[Tuple[int, ...]] = None

        if layout in ("auto", "poi"):
            if all(c in names for c in _BOUNDS_COLUMNS):
                self.bounds_idx = tuple(names[c] for c in _BOUNDS_COLUMNS)
            elif all(c in names for c in _CENTER_COLUMNS):
                self.center_idx = tuple(names[c] for c in _CENTER_COLUMNS)
            elif layout == "poi":
                raise LoadError(
                    "POI layout needs Lat_min/Lat_max/Lon_min/Lon_max or "
                    "Center_Lat/Center_Lon/Tile_km columns"
                )

        if self.bounds_idx:
            self.layout = "poi-bounds"
        elif self.center_idx:
            self.layout = "poi-center"
        else:
            self.layout = "territory"

    def parse(self, fields: List[str]) -> Tuple[Rectangle, Optional[str]]:
        """Raise ValueError / IndexError for a malformed row."""
        if self.bounds_idx:
            lat_min, lat_max, lon_min, lon_max = (
                _to_float(fields[i]) for i in self.bounds_idx
            )
            if lat_min > lat_max:
                raise ValueError("lat_min > lat_max")
            return Rectangle(lat_min, lat_max, lon_min, lon_max), None

        if self.center_idx:
            lat_c, lon_c, tile_km = (_to_float(fields[i]) for i in self.center_idx)
            if tile_km <= 0.0:
                raise ValueError("tile size must be positive")
            return Rectangle.square(lat_c, lon_c, tile_km), None

        lon_c = _to_float(fields[_T_LON])
        lat_c = _to_float(fields[_T_LAT])
        w = _to_float(fields[_T_WIDTH])
        h = _to_float(fields[_T_HEIGHT])
        label = fields[_T_LABEL].strip() if len(fields) > _T_LABEL else ""
        rect = Rectangle.from_corners(
            Rectangle(lat_c - h / 2, lat_c + h / 2, lon_c - w / 2, lon_c + w / 2).corners()
        )
        return rect, label


class TileStore:
    """Owns the regions and their labels.

    Only :meth:`append` mutates a store after construction.  Returned
    :class:`Region` objects are frozen.
    """

    def __init__(self, source: Optional[Path] = None, layout: str = "territory"):
        self.source = source
        self.layout = layout
        self.skipped_rows = 0
        self._regions: List[Region] = []
        self._by_row: Dict[int, int] = {}
        self._next_row = 0

    # ── Loading ──────────────────────────────────────────────────────

    @classmethod
    def load(cls, csv_path: Union[str, Path], layout: str = "auto") -> "TileStore":
        """Read *csv_path* into a new store.

        Raises
        ------
        TileFileMissingError
            The file is missing or unreadable.
        TileFileEmptyError
            The file has no header line.
        LoadError
            ``layout="poi"`` and the header has no usable columns.
        """
        if layout not in LAYOUTS:
            raise ValueError(f"unknown layout {layout!r}; expected one of {LAYOUTS}")
        path = Path(csv_path)
        try:
            with path.open("r", encoding="utf-8-sig", errors="replace", newline="") as f:
                reader = csv.reader(f)
                header = next(reader, None)
                if header is None:
                    raise TileFileEmptyError(f"{path}: empty file, no header row")
                parser = _RowParser(header, layout)
                store = cls(source=path, layout=parser.layout)
                for row_no, fields in enumerate(reader):
                    store._next_row = row_no + 1
                    try:
                        rect, label = parser.parse(fields)
                    except (ValueError, IndexError) as exc:
                        store.skipped_rows += 1
                        log.debug("%s: skipping data row %d: %s", path.name, row_no, exc)
                        continue
                    store._add(rect, label, row_no)
        except OSError as exc:
            raise TileFileMissingError(f"cannot read tile CSV '{path}': {exc}") from exc

        log.info(
            "TileStore loaded %d regions from %s (%s layout, %d rows skipped)",
            len(store), path, store.layout, store.skipped_rows,
        )
        return store

    def _add(self, rect: Rectangle, label: Optional[str], row: int) -> Region:
        region = Region(
            id=len(self._regions),
            rect=rect,
            corners=rect.corners(),
            label=label,
            row=row,
        )
        self._regions.append(region)
        self._by_row[row] = region.id
        return region

    def append(self, rect: Rectangle, label: Optional[str] = None) -> Region:
        """Add one region after all existing ones; earlier ids are untouched."""
        row = self._next_row
        self._next_row += 1
        region = self._add(rect, label, row)
        log.info("TileStore appended region %d (row %d)", region.id, row)
        return region

    # ── Accessors ────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._regions)

    def __iter__(self) -> Iterator[Region]:
        return iter(tuple(self._regions))

    @property
    def regions(self) -> Tuple[Region, ...]:
        return tuple(self._regions)

    def region_at(self, region_id: int) -> Region:
        if region_id < 0:
            raise IndexError(f"region id {region_id} out of range")
        return self._regions[region_id]

    def labels_for(self, region_id: int) -> Optional[str]:
        return self.region_at(region_id).label

    def labels(self) -> List[Optional[str]]:
        """Labels aligned one-to-one with :attr:`regions`."""
        return [r.label for r in self._regions]

    def region_for_row(self, row: int) -> Optional[Region]:
        rid = self._by_row.get(row)
        return None if rid is None else self._regions[rid]
