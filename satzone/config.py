"""
Runtime configuration for the classifier.

Settings live in a flat JSON object; every key is optional and unknown
keys are rejected so a typo does not silently fall back to a default.

    {
      "cell_deg": 1.0,
      "max_workers": 4,
      "poi_csv": "data/Points_of_Interests.csv"
    }

Command line flags override whatever the file sets.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union


@dataclass
class FilterConfig:
    cell_deg: float = 1.0
    eps: float = 1e-12
    min_workers: int = 2
    max_workers: int = 8
    pass_gap_s: float = 30.0        # gap that starts a new pass in the output
    earth_radius_km: float = 6371.0
    territory_csv: Optional[str] = None
    poi_csv: Optional[str] = None


_INT_KEYS = ("min_workers", "max_workers")
_PATH_KEYS = ("territory_csv", "poi_csv")


def _type_ok(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if key in _PATH_KEYS:
        return value is None or isinstance(value, str)
    if key in _INT_KEYS:
        return isinstance(value, int)
    return isinstance(value, (int, float))


def load_config(path: Optional[Union[str, Path]] = None) -> FilterConfig:
    """Read a JSON config file; ``None`` gives the defaults."""
    if path is None:
        return FilterConfig()
    cfg_path = Path(path)
    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"{cfg_path}: expected a JSON object")

    known = {f.name for f in fields(FilterConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise KeyError(f"Unknown config key(s) in {cfg_path.name}: {', '.join(unknown)}")

    for key, value in raw.items():
        if not _type_ok(key, value):
            raise ValueError(
                f"{cfg_path.name}: {key} has the wrong type ({type(value).__name__})"
            )

    cfg = FilterConfig(**raw)
    if cfg.cell_deg <= 0 or 180.0 % cfg.cell_deg:
        raise ValueError("cell_deg must be a positive divisor of 180")
    if not 2 <= cfg.min_workers <= cfg.max_workers <= 8:
        raise ValueError("need 2 <= min_workers <= max_workers <= 8")
    return cfg
