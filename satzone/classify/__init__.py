"""Parallel classification of sample streams against a tile Index."""
from .worker import (
    ALL_TERRITORY,
    AnyRegion,
    Cancelled,
    CancelToken,
    ClassificationRunner,
    LabelFilter,
    Match,
    NameFilter,
    classify,
    split_passes,
    worker_count,
)

__all__ = [
    "ALL_TERRITORY",
    "AnyRegion",
    "Cancelled",
    "CancelToken",
    "ClassificationRunner",
    "LabelFilter",
    "Match",
    "NameFilter",
    "classify",
    "split_passes",
    "worker_count",
]
