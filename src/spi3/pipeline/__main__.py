#!/usr/bin/env python3
"""spi3.pipeline

Pipeline CLI for the SPI-3 drought sampler.

This is one of two spi3 subsystem CLIs:
- spi3.ingest   → inspect the daily precipitation archive (verify)
- spi3.pipeline → run the SPI pipeline and region statistics (this file)

Design notes:
- Config comes from one YAML (see config/spi3.yaml), validated before any
  raster is read
- Lazy-imports the raster stack inside handlers to keep CLI startup fast
- --dry-run prints the plan without reading rasters
- Export failures are reported after the analytic results are complete

Examples:
  # Full run: SPI-3, drought composite, training points, exports
  python -m spi3.pipeline run --config config/spi3.yaml --seed 42

  # Region statistics of any GeoTIFF over the configured study area
  python -m spi3.pipeline stats --raster data/processed/spi3/SPI3_Drought_Composite_Clipped.tif \
    --reducer combined
"""

from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from spi3.config import (
    DEFAULT_CONFIG_YAML,
    OutputConfig,
    PipelineConfig,
    format_bbox,
    load_pipeline_config,
)
from spi3.errors import ExportTooLargeError, Spi3Error


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="spi3.pipeline",
        description="SPI-3 drought composite and training-point sampler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_YAML,
        help=f"Path to pipeline YAML (default: {DEFAULT_CONFIG_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without reading rasters",
    )

    sub = ap.add_subparsers(dest="command", required=True)

    # --- run ---
    run = sub.add_parser("run", help="Run the full pipeline and write exports")
    run.add_argument("--seed", type=int, default=None, help="Sampling seed (overrides config)")
    run.add_argument("--out-dir", type=Path, default=None, help="Output directory (overrides config)")
    run.add_argument("--no-export", action="store_true", help="Skip CSV/GeoTIFF exports")
    run.add_argument("--json", action="store_true", help="Emit the report as JSON to stdout")

    # --- stats ---
    stats = sub.add_parser("stats", help="Reduce a GeoTIFF over the study area")
    stats.add_argument("--raster", type=Path, required=True, help="Input GeoTIFF")
    stats.add_argument("--band", default=None, help="Band name (default: first band)")
    stats.add_argument(
        "--reducer",
        default="combined",
        choices=["mean", "min", "max", "combined"],
        help="Reducer (default: combined)",
    )
    stats.add_argument("--scale", type=float, default=None, help="Scale in metres (default from config)")
    stats.add_argument("--strict", action="store_true", help="Fail on partial coverage (best_effort off)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _apply_overrides(cfg: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    if args.seed is not None:
        cfg = replace(cfg, seed=args.seed)
    if args.out_dir is not None:
        cfg = replace(cfg, output=replace(cfg.output, dir=args.out_dir))
    return cfg


def _print_plan(cfg: PipelineConfig) -> None:
    print("[dry-run] Would run SPI pipeline:")
    print(f"  Range: {cfg.start} .. {cfg.end} ({cfg.window_months}-month window)")
    print(f"  Source: {cfg.source.directory} ({cfg.source.pattern}, band={cfg.source.band})")
    if cfg.source.bounds:
        print(f"  Source bounds: {format_bbox(cfg.source.bounds)}")
    aoi = cfg.study_area
    print(f"  Study area: {aoi.path or (format_bbox(aoi.bounds) if aoi.bounds else 'unset')}")
    print(f"  Periods: {', '.join(p.name for p in cfg.periods)}")
    print(f"  Classes: {', '.join(f'{c.class_id}={c.label}' for c in cfg.classes)}")
    print(f"  Samples/class: {cfg.num_samples_per_class} (seed={cfg.seed})")
    print(f"  Output dir: {cfg.output.dir}")


def _handle_run(cfg: PipelineConfig, args: argparse.Namespace) -> int:
    cfg = _apply_overrides(cfg, args)
    if args.dry_run:
        _print_plan(cfg)
        return 0
    if cfg.source.directory is None:
        raise SystemExit("Config has no source.directory")

    # Lazy import: keeps CLI startup fast, avoids loading geopandas until needed
    from spi3.export import write_geotiff, write_samples_csv, write_series_csv
    from spi3.geo.stats import region_series
    from spi3.geo.study_area import load_study_area
    from spi3.ingest.daily_store import GeoTiffDailyStore
    from spi3.pipeline.report import build_report, print_report
    from spi3.pipeline.run import run_pipeline

    geometry = load_study_area(cfg.study_area)
    store = GeoTiffDailyStore(cfg.source.directory, pattern=cfg.source.pattern, bounds=cfg.source.bounds)
    result = run_pipeline(cfg, store, geometry)

    report = build_report(result, geometry, cfg)
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    else:
        print_report(report)

    if args.no_export:
        return 0

    out: OutputConfig = cfg.output
    write_samples_csv(result.samples, out.dir / out.samples_csv, value_column=cfg.spi_band)
    series = region_series(result.spi, geometry, scale=cfg.scale, best_effort=cfg.best_effort)
    write_series_csv(series, out.dir / out.series_csv, value_column=cfg.spi_band)
    try:
        write_geotiff(result.composite, out.dir / out.composite_tif, max_pixels=out.max_pixels)
    except ExportTooLargeError as e:
        # Results above are complete; only the raster export is refused
        print(f"  - warning: composite not exported: {e}")
        return 1
    return 0


def _handle_stats(cfg: PipelineConfig, args: argparse.Namespace) -> int:
    if not args.raster.exists():
        raise SystemExit(f"Raster not found: {args.raster}")
    if args.dry_run:
        print(f"[dry-run] Would reduce {args.raster} ({args.reducer}) over the study area")
        return 0

    from spi3.geo.stats import reduce_region
    from spi3.geo.study_area import load_study_area
    from spi3.ingest.daily_store import read_raster

    geometry = load_study_area(cfg.study_area)
    try:
        image = read_raster(args.raster, args.band)
    except KeyError as e:
        raise SystemExit(str(e)) from e
    summary = reduce_region(
        image,
        geometry,
        scale=args.scale if args.scale is not None else cfg.scale,
        reducer=args.reducer,
        best_effort=not args.strict,
    )
    print(json.dumps(summary, indent=2))
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for spi3.pipeline CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "run": _handle_run,
        "stats": _handle_stats,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        cfg = load_pipeline_config(args.config)
        return handler(cfg, args)
    except Spi3Error as e:
        raise SystemExit(f"{type(e).__name__}: {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
