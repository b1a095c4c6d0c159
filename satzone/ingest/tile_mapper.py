"""
Spatial mapper: the queryable index over one tile file.

An :class:`Index` bundles the TileStore that owns the regions, the
SpatialGrid built from them and, for POI files, the name registry.  It
is built in one go by :meth:`Index.load` and is read-only afterwards,
except for :meth:`Index.append_poi` which adds a single tile and indexes
only that tile's cells.

:class:`IndexHolder` publishes the current Index to other threads.  A
reload builds a complete new Index first and swaps the reference under
a lock, so a reader sees either the old store+grid or the new pair,
never a mix.  A failed reload leaves the old Index in place.

Usage
-----
    from satzone.ingest.tile_mapper import Index
    index = Index.load("data/Points_of_Interests.csv")
    region = index.find_region(lat=5.16, lon=-52.65)
    index.registry.entry_for_row(region.row).name     # "Kourou"
"""
from __future__ import annotations

import logging
import math
import threading
from pathlib import Path
from typing import Optional, Union

from ..geo.containment import rect_contains
from ..geo.tile_grid import DEFAULT_CELL_DEG, Region, SpatialGrid
from ..storage.poi_registry import PoiEntry, PoiRegistry, append_poi_row
from ..storage.tile_store import TileStore

log = logging.getLogger(__name__)


class Index:
    """TileStore + SpatialGrid (+ PoiRegistry) for one tile file."""

    def __init__(
        self,
        store: TileStore,
        grid: SpatialGrid,
        registry: Optional[PoiRegistry] = None,
    ):
        self.store = store
        self.grid = grid
        self.registry = registry

    @classmethod
    def load(
        cls,
        csv_path: Union[str, Path],
        layout: str = "auto",
        names_path: Optional[Union[str, Path]] = None,
        cell_deg: float = DEFAULT_CELL_DEG,
    ) -> "Index":
        """Load a tile CSV and build its grid.

        POI files also get a name registry, read from *names_path* or,
        by default, from the tile file itself.
        """
        store = TileStore.load(csv_path, layout=layout)
        grid = SpatialGrid.build(store.regions, cell_deg=cell_deg)
        registry = None
        if store.layout.startswith("poi"):
            registry = PoiRegistry.load(names_path or csv_path)
        log.info(
            "Index built: %d regions in %d grid cells (%.1f° cells)",
            len(store), grid.cell_count, grid.cell_deg,
        )
        return cls(store, grid, registry)

    @property
    def is_poi(self) -> bool:
        return self.registry is not None

    def __len__(self) -> int:
        return len(self.store)

    # ── Lookups ──────────────────────────────────────────────────────

    def find_region(self, lat: float, lon: float) -> Optional[Region]:
        """First region (CSV order) containing the point, or None."""
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return None
        for rid in self.grid.candidates(lat, lon):
            region = self.store.region_at(rid)
            if rect_contains(region.rect, lat, lon):
                return region
        return None

    def poi_entry(self, region: Region) -> Optional[PoiEntry]:
        if self.registry is None:
            return None
        return self.registry.entry_for_row(region.row)

    def resolve_name(self, name: str) -> Optional[int]:
        """Region id of the first POI called *name*, or None."""
        if self.registry is None:
            return None
        row = self.registry.row_of(name)
        if row is None:
            return None
        region = self.store.region_for_row(row)
        return None if region is None else region.id

    # ── Mutation ─────────────────────────────────────────────────────

    def append_poi(
        self,
        name: str,
        kind: str,
        center_lat: float,
        center_lon: float,
        tile_km: float,
        csv_path: Optional[Union[str, Path]] = None,
    ) -> Region:
        """Write a new POI row, then index it without a full rebuild.

        The caller must make sure no classification is running against
        this Index (see ``ClassificationRunner.append_poi``).
        """
        path = csv_path or self.store.source
        if path is None:
            raise ValueError("no POI CSV path to append to")
        rect = append_poi_row(path, name, kind, tile_km, center_lat, center_lon)
        region = self.store.append(rect)
        self.grid.insert(region.id, region.rect)
        if self.registry is None:
            self.registry = PoiRegistry()
        self.registry.add(name.strip(), (kind or "").strip(), region.row)
        log.info("Indexed new POI %r as region %d", name, region.id)
        return region


class IndexHolder:
    """Thread-safe owner of the current :class:`Index`."""

    def __init__(self, index: Optional[Index] = None):
        self._lock = threading.Lock()
        self._index = index
        self._load_args: Optional[dict] = None

    @property
    def current(self) -> Optional[Index]:
        with self._lock:
            return self._index

    def load(self, csv_path: Union[str, Path], **kwargs) -> Index:
        """Build a new Index and publish it.  On error the old one stays."""
        index = Index.load(csv_path, **kwargs)
        with self._lock:
            self._index = index
            self._load_args = dict(kwargs, csv_path=csv_path)
        return index

    def reload(self) -> Index:
        if self._load_args is None:
            raise RuntimeError("nothing loaded yet")
        args = dict(self._load_args)
        return self.load(args.pop("csv_path"), **args)

    def cleanup(self) -> None:
        """Forget the current Index.  Runs still holding it finish on it."""
        with self._lock:
            self._index = None
            self._load_args = None
        log.info("Index released")
