"""Sample stream ingestion: ground-track samplers and sample CSV files."""
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Tuple, Union

log = logging.getLogger(__name__)

_TIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S")


@dataclass(frozen=True)
class Sample:
    """One time-tagged sub-satellite point.

    ``payload`` is carried through classification untouched (the original
    time string, a row id, ...).
    """
    timestamp: float
    lat: float
    lon: float
    payload: Any = None


def sample_track(
    position_fn: Callable[[float], Tuple[float, float]],
    start_ts: float,
    duration_s: float,
    step_s: float,
) -> List[Sample]:
    """Sample ``position_fn(t) -> (lat, lon)`` from start to start+duration.

    Both ends are included.  The propagator behind *position_fn* is not
    part of this package.
    """
    if not step_s > 0:
        raise ValueError("step_s must be positive")
    if duration_s < 0:
        raise ValueError("duration_s must not be negative")
    n = int(math.floor(duration_s / step_s + 1e-9))
    samples = []
    for k in range(n + 1):
        t = start_ts + k * step_s
        lat, lon = position_fn(t)
        samples.append(Sample(timestamp=t, lat=float(lat), lon=float(lon)))
    return samples


def parse_time(text: str) -> float:
    """UTC ``YYYY-MM-DD HH:MM:SS`` (or with slashes) → epoch seconds."""
    text = text.strip()
    for fmt in _TIME_FORMATS:
        try:
            dt = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return dt.replace(tzinfo=timezone.utc).timestamp()
    raise ValueError(f"unrecognised time {text!r}")


def format_time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(_TIME_FORMATS[0])


def read_samples_csv(csv_path: Union[str, Path]) -> List[Sample]:
    """Read ``Time,Lat,Lon`` rows.  The original time string is the payload."""
    path = Path(csv_path)
    samples: List[Sample] = []
    skipped = 0
    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.reader(f)
        next(reader, None)
        for fields in reader:
            try:
                samples.append(Sample(
                    timestamp=parse_time(fields[0]),
                    lat=float(fields[1]),
                    lon=float(fields[2]),
                    payload=fields[0].strip(),
                ))
            except (ValueError, IndexError):
                skipped += 1

    log.info("Read %d samples from %s (%d rows skipped)", len(samples), path, skipped)
    return samples
