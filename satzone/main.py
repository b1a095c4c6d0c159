from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, TextIO

from .classify import (
    ALL_TERRITORY,
    AnyRegion,
    CancelToken,
    LabelFilter,
    Match,
    NameFilter,
    classify,
    split_passes,
    worker_count,
)
from .config import FilterConfig, load_config
from .geo.tile_grid import regions_to_geojson
from .ingest import format_time, read_samples_csv
from .ingest.tile_mapper import Index
from .logger import setup_logging
from .storage.poi_registry import ValidationError, append_poi_row
from .storage.tile_store import LAYOUTS, LoadError

log = logging.getLogger(__name__)

TERRITORY_COLUMNS = ["Time", "Lat", "Lon", "Region", "Label"]
POI_COLUMNS = ["Time", "Lat", "Lon", "Region", "Name", "Type", "Range_km", "Bearing"]


@contextmanager
def _open_out(path: Optional[str]) -> Iterator[TextIO]:
    if path is None:
        yield sys.stdout
        return
    with open(path, "w", encoding="utf-8", newline="") as f:
        yield f


def _time_text(m: Match) -> str:
    if m.sample.payload is not None:
        return str(m.sample.payload)
    return format_time(m.sample.timestamp)


def write_matches(
    out: TextIO,
    matches: Sequence[Match],
    poi: bool,
    gap_s: float,
) -> None:
    """CSV of matches, one blank line between passes."""
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(POI_COLUMNS if poi else TERRITORY_COLUMNS)
    for n, group in enumerate(split_passes(matches, gap_s)):
        if n:
            out.write("\n")
        for m in group:
            row = [_time_text(m), f"{m.sample.lat:.6f}", f"{m.sample.lon:.6f}", m.region_id]
            if poi:
                rng = "" if m.distance_km is None else f"{m.distance_km:.1f}"
                row += [m.name or "", m.type or "", rng, m.bearing_text]
            else:
                row.append(m.label or "")
            writer.writerow(row)


def _tiles_path(args: argparse.Namespace, fallback: Optional[str]) -> str:
    path = args.tiles or fallback
    if not path:
        raise LoadError("no tile CSV given (use --tiles or set it in the config file)")
    return path


def _run_classification(
    args: argparse.Namespace,
    cfg: FilterConfig,
    tiles: str,
    layout: str,
    mode,
) -> int:
    index = Index.load(tiles, layout=layout, cell_deg=cfg.cell_deg)
    samples = read_samples_csv(args.samples)
    token = CancelToken()
    workers = worker_count(args.workers, cfg.min_workers, cfg.max_workers)
    try:
        matches = classify(
            samples, index, mode, token,
            workers=workers,
            use_polygon=args.polygon,
            eps=cfg.eps,
            radius_km=cfg.earth_radius_km,
        )
    except KeyboardInterrupt:
        token.cancel()
        log.warning("Classification interrupted")
        return 130

    with _open_out(args.out) as out:
        write_matches(out, matches, poi=index.is_poi, gap_s=cfg.pass_gap_s)
    log.info("%d of %d samples matched", len(matches), len(samples))
    return 0


# ── Subcommands ──────────────────────────────────────────────────────

def cmd_territory(args: argparse.Namespace, cfg: FilterConfig) -> int:
    tiles = _tiles_path(args, cfg.territory_csv)
    mode = LabelFilter(args.country) if args.country else LabelFilter(ALL_TERRITORY)
    return _run_classification(args, cfg, tiles, "territory", mode)


def cmd_poi(args: argparse.Namespace, cfg: FilterConfig) -> int:
    tiles = _tiles_path(args, cfg.poi_csv)
    mode = NameFilter(args.name) if args.name else AnyRegion(ranging=True)
    return _run_classification(args, cfg, tiles, "poi", mode)


def cmd_add_poi(args: argparse.Namespace, cfg: FilterConfig) -> int:
    tiles = _tiles_path(args, cfg.poi_csv)
    rect = append_poi_row(tiles, args.name, args.type, args.tile_km, args.lat, args.lon)
    print(
        f"Added {args.name!r}: lat [{rect.lat_min:.6f}, {rect.lat_max:.6f}] "
        f"lon [{rect.lon_min:.6f}, {rect.lon_max:.6f}]"
        + (" (wraps the dateline)" if rect.wraps else "")
    )
    return 0


def cmd_geojson(args: argparse.Namespace, cfg: FilterConfig) -> int:
    tiles = _tiles_path(args, cfg.poi_csv if args.layout == "poi" else cfg.territory_csv)
    index = Index.load(tiles, layout=args.layout, cell_deg=cfg.cell_deg)
    collection = regions_to_geojson(index.store.regions)
    with _open_out(args.out) as out:
        json.dump(collection, out, indent=2)
    log.info("Wrote %d features", len(collection["features"]))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="satzone",
        description=(
            "Classify satellite ground-track samples against tile CSVs.\n"
            "  territory – which country/territory tile each sample is over\n"
            "  poi       – which point-of-interest tile, with range and bearing\n"
            "  add-poi   – append a square POI tile to a POI CSV\n"
            "  geojson   – export tiles as a GeoJSON FeatureCollection"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="JSON config file (see satzone.config).")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default INFO).")
    parser.add_argument("--log-dir", help="Also write satzone.log into this directory.")
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of classification slices (clamped to the configured range).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def _classify_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--tiles", help="Tile CSV (default from config).")
        p.add_argument("--samples", required=True, help="Samples CSV with Time,Lat,Lon.")
        p.add_argument("--out", help="Output CSV (default stdout).")
        p.add_argument(
            "--polygon",
            action="store_true",
            help="Ray-cast the tile corners instead of the rectangle test.",
        )

    p = sub.add_parser("territory", help="Classify samples against territory tiles.")
    _classify_args(p)
    p.add_argument(
        "--country",
        help=f"Only this label ('{ALL_TERRITORY}' or omitted: any territory).",
    )
    p.set_defaults(func=cmd_territory)

    p = sub.add_parser("poi", help="Classify samples against POI tiles.")
    _classify_args(p)
    p.add_argument("--name", help="Only the POI with this name (default: all).")
    p.set_defaults(func=cmd_poi)

    p = sub.add_parser("add-poi", help="Append a POI tile.")
    p.add_argument("--tiles", help="POI CSV (default from config).")
    p.add_argument("--name", required=True)
    p.add_argument("--type", default="")
    p.add_argument("--lat", type=float, required=True, help="Centre latitude.")
    p.add_argument("--lon", type=float, required=True, help="Centre longitude.")
    p.add_argument("--tile-km", type=float, required=True, help="Tile edge in km.")
    p.set_defaults(func=cmd_add_poi)

    p = sub.add_parser("geojson", help="Export tiles as GeoJSON.")
    p.add_argument("--tiles", help="Tile CSV (default from config).")
    p.add_argument("--layout", choices=LAYOUTS, default="auto")
    p.add_argument("--out", help="Output file (default stdout).")
    p.set_defaults(func=cmd_geojson)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_dir)

    try:
        cfg = load_config(args.config)
    except (OSError, KeyError, ValueError) as exc:
        log.error("Cannot read config: %s", exc)
        return 1

    try:
        return args.func(args, cfg)
    except LoadError as exc:
        log.error("%s", exc)
        return 1
    except ValidationError as exc:
        log.error("Invalid POI: %s", exc)
        return 2
    except OSError as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
