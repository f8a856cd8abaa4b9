#!/usr/bin/env python3
"""spi3.ingest

Archive inspection CLI for the SPI pipeline.

The daily precipitation archive itself is produced elsewhere (e.g. CHIRPS
daily GeoTIFFs downloaded in bulk). This CLI only checks that what is on
disk covers what the pipeline will ask for.

Examples:
  # Does the archive cover the configured range (plus the look-back window)?
  python -m spi3.ingest verify

  # Machine-readable
  python -m spi3.ingest verify --json
"""

from __future__ import annotations

import argparse
import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from spi3.config import DEFAULT_CONFIG_YAML, PipelineConfig, load_pipeline_config
from spi3.errors import Spi3Error
from spi3.index.aggregate import clipped_window, fetch_range, month_starts


def verify_archive(cfg: PipelineConfig) -> Dict[str, Any]:
    """Best-effort coverage check of the daily archive.

    Rules:
    - The directory must exist and hold dated files.
    - Every monthly window must contain at least one file (else the
      aggregation stage will raise DataGapError).
    - Missing days inside the fetch range are counted, not fatal.
    """
    if cfg.source.directory is None:
        return {"ok": False, "reason": "config has no source.directory"}

    from spi3.ingest.daily_store import GeoTiffDailyStore

    store = GeoTiffDailyStore(cfg.source.directory, pattern=cfg.source.pattern)
    try:
        index = store.index()
    except (FileNotFoundError, ValueError) as e:
        return {"ok": False, "reason": str(e)}

    first, last, count = store.coverage()
    fetch_start, fetch_end = fetch_range(cfg.start, cfg.end, cfg.window_months)
    n_days = (fetch_end - fetch_start).days
    present = sum(1 for d in index if fetch_start <= d < fetch_end)

    empty_months: List[str] = []
    for month in month_starts(cfg.start, cfg.end):
        w_start, w_end = clipped_window(month, fetch_start, cfg.window_months)
        if not any(w_start <= d < w_end for d in index):
            empty_months.append(f"{month:%Y-%m}")

    return {
        "ok": count > 0 and not empty_months,
        "directory": str(cfg.source.directory),
        "files": count,
        "first": str(first) if first else None,
        "last": str(last) if last else None,
        "fetch_range": [str(fetch_start), str(fetch_end - timedelta(days=1))],
        "missing_days": n_days - present,
        "empty_windows": empty_months,
    }


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="spi3.ingest", description="Daily precipitation archive checks")

    # Global args (available for all subcommands)
    ap.add_argument("--config", type=Path, default=DEFAULT_CONFIG_YAML, help=f"Path to pipeline YAML (default: {DEFAULT_CONFIG_YAML})")

    sub = ap.add_subparsers(dest="command", required=True)

    # --- verify ---
    ver = sub.add_parser("verify", help="Check the archive covers the configured date range")
    ver.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    try:
        cfg = load_pipeline_config(args.config)
    except Spi3Error as e:
        raise SystemExit(f"{type(e).__name__}: {e}") from e

    if args.command == "verify":
        r = verify_archive(cfg)
        if args.json:
            print(json.dumps(r, indent=2))
        else:
            status = "OK" if r.get("ok") else "MISSING"
            print(f"[{status}] {r.get('directory', cfg.source.directory)}")
            if "reason" in r:
                print(f"  - reason: {r['reason']}")
            else:
                print(f"  - files: {r['files']} ({r['first']} .. {r['last']})")
                print(f"  - needed: {r['fetch_range'][0]} .. {r['fetch_range'][1]}")
                print(f"  - missing days: {r['missing_days']}")
                for m in r["empty_windows"]:
                    print(f"    - no data in window for {m}")
        return 0 if r.get("ok") else 2

    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
