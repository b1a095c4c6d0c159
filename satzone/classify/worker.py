"""
Bulk classification of ground-track samples against an Index.

The sample list is cut into N contiguous slices (N in [2, 8], from the
CPU count) and the slices run concurrently, one thread each.  The
threads share the interpreter lock, so the pure-Python loops do not
run in parallel.  Slices only read the shared Index and the
bounding-box table built at the start of the call, and append to
their own output list; the lists are joined in slice order after every
slice has finished, so results keep input order.

Per sample
──────────
  cell of (lat, lon)
    → 3×3 neighbourhood candidates, ascending region id (= CSV order)
    → mode eligibility (label / resolved POI name)
    → bbox prefilter
    → rect_contains  (or point_in_polygon with use_polygon=True)
    → first hit wins; range/bearing from the region centre for POI modes

Samples with NaN/inf coordinates never match and never raise.

Cancellation
────────────
Every slice polls the CancelToken before each sample.  If the token is
set by the time all slices have returned, ``classify`` raises
:class:`Cancelled` and drops whatever the slices had produced.

Usage
-----
    token = CancelToken()
    matches = classify(samples, index, LabelFilter("France"), token)
    for p in split_passes(matches):
        print(p[0].sample.timestamp, len(p))
"""
from __future__ import annotations

import logging
import math
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..geo.containment import EPS, BBoxTable, point_in_polygon, rect_contains
from ..geo.lonlat import EARTH_RADIUS_KM, bearing_deg, format_bearing, haversine_km
from ..geo.tile_grid import Region
from ..ingest import Sample
from ..ingest.tile_mapper import Index, IndexHolder

log = logging.getLogger(__name__)

# Label that makes LabelFilter accept every territory ("all land")
ALL_TERRITORY = "Territory"

MIN_WORKERS = 2
MAX_WORKERS = 8


# ---------------------------------------------------------------------------
# Modes, results, cancellation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnyRegion:
    """First containing region wins.  ``ranging`` adds range/bearing."""
    ranging: bool = False


@dataclass(frozen=True)
class LabelFilter:
    """Only regions labelled *label* are eligible (``"Territory"``: all)."""
    label: str


@dataclass(frozen=True)
class NameFilter:
    """Only the first POI called *name* is tested.  Always ranged.

    An empty name means every POI; an unknown name matches nothing.
    """
    name: str


Mode = Union[AnyRegion, LabelFilter, NameFilter]


@dataclass(frozen=True)
class Match:
    sample: Sample
    region_id: int
    label: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    distance_km: Optional[float] = None
    bearing_deg: Optional[float] = None

    @property
    def bearing_text(self) -> str:
        return "" if self.bearing_deg is None else format_bearing(self.bearing_deg)


class Cancelled(Exception):
    """The run was cancelled; no results are returned."""


class CancelToken:
    """Cooperative cancellation flag shared by the driver and its slices."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Slicing
# ---------------------------------------------------------------------------

def worker_count(
    workers: Optional[int] = None,
    min_workers: int = MIN_WORKERS,
    max_workers: int = MAX_WORKERS,
) -> int:
    """Number of slices to use: *workers* or the CPU count, clamped."""
    n = workers if workers is not None else (os.cpu_count() or min_workers)
    return max(min_workers, min(max_workers, n))


def plan_slices(n_points: int, n_workers: int) -> List[Tuple[int, int]]:
    """Contiguous (start, stop) ranges of equal size, the last one shorter."""
    if n_points <= 0:
        return []
    per = -(-n_points // n_workers)
    return [(s, min(s + per, n_points)) for s in range(0, n_points, per)]


@dataclass
class _RunContext:
    regions: Tuple[Region, ...]
    index: Index
    bboxes: BBoxTable
    eligible: Optional[List[bool]]
    fixed: Optional[int]
    ranging: bool
    use_polygon: bool
    eps: float
    radius_km: float
    cancel: CancelToken
    abort: threading.Event


def _prepare(
    index: Index, regions: Sequence[Region], mode: Mode
) -> Tuple[Optional[List[bool]], Optional[int], bool, bool]:
    """Resolve *mode* into (eligible mask, fixed region id, ranging, matches_nothing)."""
    if isinstance(mode, AnyRegion):
        return None, None, mode.ranging, False
    if isinstance(mode, LabelFilter):
        if mode.label == ALL_TERRITORY:
            return None, None, False, False
        return [r.label == mode.label for r in regions], None, False, False
    if isinstance(mode, NameFilter):
        if not mode.name:
            return None, None, True, False
        rid = index.resolve_name(mode.name)
        return None, rid, True, rid is None
    raise TypeError(f"unsupported mode {mode!r}")


def _run_slice(ctx: _RunContext, points: Sequence[Sample]) -> Optional[List[Match]]:
    n = len(points)
    lats = np.fromiter((p.lat for p in points), dtype=np.float64, count=n)
    lons = np.fromiter((p.lon for p in points), dtype=np.float64, count=n)
    finite = np.isfinite(lats) & np.isfinite(lons)
    rows, cols = ctx.index.grid.cells_of(
        np.where(finite, lats, 0.0), np.where(finite, lons, 0.0)
    )
    finite_l = finite.tolist()
    rows_l = rows.tolist()
    cols_l = cols.tolist()

    grid = ctx.index.grid
    regions = ctx.regions
    n_regions = len(regions)
    eligible = ctx.eligible
    may_contain = ctx.bboxes.may_contain
    fixed_ids = [ctx.fixed] if ctx.fixed is not None else None
    out: List[Match] = []

    for i, sample in enumerate(points):
        if ctx.cancel.cancelled or ctx.abort.is_set():
            return None
        if not finite_l[i]:
            continue
        lat = sample.lat
        lon = sample.lon
        ids = fixed_ids if fixed_ids is not None else grid.candidates_for_cell(rows_l[i], cols_l[i])

        hit: Optional[Region] = None
        for rid in ids:
            # ids appended after this run started are not in the snapshot
            if rid >= n_regions:
                continue
            if eligible is not None and not eligible[rid]:
                continue
            if not may_contain(rid, lat, lon):
                continue
            region = regions[rid]
            if ctx.use_polygon:
                inside = point_in_polygon(region.corners, lat, lon)
            else:
                inside = rect_contains(region.rect, lat, lon, ctx.eps)
            if inside:
                hit = region
                break

        if hit is None:
            continue
        out.append(_make_match(ctx, sample, hit))
    return out


def _make_match(ctx: _RunContext, sample: Sample, region: Region) -> Match:
    entry = ctx.index.poi_entry(region)
    distance = bearing = None
    if ctx.ranging:
        centre = region.rect.centroid
        distance = haversine_km(centre.lat, centre.lon, sample.lat, sample.lon, ctx.radius_km)
        bearing = bearing_deg(centre.lat, centre.lon, sample.lat, sample.lon)
    return Match(
        sample=sample,
        region_id=region.id,
        label=region.label,
        name=entry.name if entry else None,
        type=entry.type if entry else None,
        distance_km=distance,
        bearing_deg=bearing,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def classify(
    points: Sequence[Sample],
    index: Index,
    mode: Optional[Mode] = None,
    cancel: Optional[CancelToken] = None,
    *,
    workers: Optional[int] = None,
    use_polygon: bool = False,
    eps: float = EPS,
    radius_km: float = EARTH_RADIUS_KM,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> List[Match]:
    """Classify *points* against *index*; only matched samples are returned.

    Parameters
    ----------
    points : sequence of Sample
        Read only.  Output keeps this order.
    index : Index
        Must not be mutated while the call runs.
    mode : AnyRegion | LabelFilter | NameFilter
        Defaults to ``AnyRegion()``.
    cancel : CancelToken, optional
        Polled before every sample.
    workers : int, optional
        Slice count before clamping to [2, 8]; defaults to the CPU count.
    use_polygon : bool
        Use ray casting on the corners instead of the rectangle test.
    progress_callback : callable, optional
        Called with (completed_slices, total_slices) on the calling
        thread as slices finish.

    Raises
    ------
    Cancelled
        *cancel* was set before the run completed.
    """
    mode = mode if mode is not None else AnyRegion()
    cancel = cancel or CancelToken()
    if cancel.cancelled:
        raise Cancelled("cancelled before start")

    regions = index.store.regions
    eligible, fixed, ranging, matches_nothing = _prepare(index, regions, mode)
    if matches_nothing:
        log.info("No POI named %r; nothing can match", getattr(mode, "name", None))
        return []
    if not points or not regions:
        return []

    ctx = _RunContext(
        regions=regions,
        index=index,
        bboxes=BBoxTable(regions, pad=max(1e-9, 2.0 * eps)),
        eligible=eligible,
        fixed=fixed,
        ranging=ranging,
        use_polygon=use_polygon,
        eps=eps,
        radius_km=radius_km,
        cancel=cancel,
        abort=threading.Event(),
    )

    n_workers = worker_count(workers)
    slices = plan_slices(len(points), n_workers)
    t0 = time.perf_counter()
    log.info(
        "Classifying %d samples against %d regions: %d slices of <= %d (%s)",
        len(points), len(regions), len(slices), slices[0][1] - slices[0][0], mode,
    )

    with ThreadPoolExecutor(max_workers=len(slices), thread_name_prefix="satzone-slice") as executor:
        futures: List[Future] = [
            executor.submit(_run_slice, ctx, points[start:stop])
            for start, stop in slices
        ]
        done = 0
        try:
            for future in as_completed(futures):
                future.result()
                done += 1
                if progress_callback is not None:
                    progress_callback(done, len(futures))
        except BaseException:
            ctx.abort.set()
            raise

    if cancel.cancelled:
        log.info("Classification cancelled after %d/%d slices", done, len(futures))
        raise Cancelled("classification cancelled")

    matches: List[Match] = []
    for future in futures:
        matches.extend(future.result())

    log.info(
        "Classified %d samples: %d matches in %.2f s",
        len(points), len(matches), time.perf_counter() - t0,
    )
    return matches


def split_passes(matches: Sequence[Match], gap_s: float = 30.0) -> List[List[Match]]:
    """Group matches into passes, breaking wherever the time gap exceeds *gap_s*."""
    passes: List[List[Match]] = []
    last_t: Optional[float] = None
    for m in matches:
        t = m.sample.timestamp
        if last_t is None or not math.isfinite(t) or t - last_t > gap_s:
            passes.append([])
        passes[-1].append(m)
        last_t = t
    return passes


class ClassificationRunner:
    """Runs one classification at a time in the background.

    Starting a run cancels and waits for the previous one; appending a
    POI does the same before the Index is touched.
    """

    def __init__(
        self,
        holder: IndexHolder,
        workers: Optional[int] = None,
        use_polygon: bool = False,
    ):
        self._holder = holder
        self._workers = workers
        self._use_polygon = use_polygon
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="satzone-run")
        self._future: Optional[Future] = None
        self._token: Optional[CancelToken] = None

    def start(self, points: Sequence[Sample], mode: Optional[Mode] = None) -> Future:
        """Start a new run; the returned Future yields matches or raises Cancelled."""
        with self._lock:
            self._cancel_and_wait_locked()
            index = self._holder.current
            if index is None:
                raise RuntimeError("no tiles loaded")
            token = CancelToken()
            self._token = token
            self._future = self._executor.submit(
                classify, points, index, mode, token,
                workers=self._workers, use_polygon=self._use_polygon,
            )
            return self._future

    def cancel(self) -> None:
        with self._lock:
            self._cancel_and_wait_locked()

    def _cancel_and_wait_locked(self) -> None:
        if self._token is not None:
            self._token.cancel()
        if self._future is not None:
            try:
                self._future.result()
            except Cancelled:
                pass
            except Exception:
                log.exception("Previous classification failed")
        self._future = None
        self._token = None

    def append_poi(
        self,
        name: str,
        kind: str,
        center_lat: float,
        center_lon: float,
        tile_km: float,
    ) -> Region:
        with self._lock:
            self._cancel_and_wait_locked()
            index = self._holder.current
            if index is None:
                raise RuntimeError("no tiles loaded")
            return index.append_poi(name, kind, center_lat, center_lon, tile_km)

    def shutdown(self) -> None:
        self.cancel()
        self._executor.shutdown(wait=True)
