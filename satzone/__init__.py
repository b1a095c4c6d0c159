"""
satzone: classify satellite ground-track samples against CSV-defined
geographic tiles.

Provides:
- Tile loading from territory / POI CSV files (storage.tile_store)
- POI name/type side table and the append contract (storage.poi_registry)
- 1° equirectangular bucket index with dateline-split insertion (geo.tile_grid)
- Rectangle and ray-casting containment tests (geo.containment)
- Cancellable, sliced parallel classification (classify.worker)
- Command line front end (main)
"""

__version__ = "0.3.0"
