#!/usr/bin/env python3
"""report.py

Region summaries and per-class counts for a finished pipeline run.

build_report() gathers everything as a plain dict (JSON-friendly);
print_report() renders it as tagged console lines. Neither feeds back into
the analytic results.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from shapely.geometry.base import BaseGeometry

from spi3.config import PipelineConfig
from spi3.geo.stats import reduce_region
from spi3.pipeline.run import PipelineResult


def _one(summary: Dict[str, Optional[float]]) -> Optional[float]:
    return next(iter(summary.values()), None)


def build_report(result: PipelineResult, geometry: BaseGeometry, cfg: PipelineConfig) -> Dict[str, Any]:
    kw = dict(scale=cfg.scale, best_effort=cfg.best_effort)
    clim = result.climatology
    band = cfg.spi_band

    counts = result.samples.count_by_class()
    return {
        "precipitation": {
            "mean": _one(reduce_region(clim.mean, geometry, reducer="mean", **kw)),
            "std": _one(reduce_region(clim.std, geometry, reducer="mean", **kw)),
            "max": _one(reduce_region(clim.maximum, geometry, reducer="max", **kw)),
            "min": _one(reduce_region(clim.minimum, geometry, reducer="min", **kw)),
        },
        "periods": {
            name: None if img is None else reduce_region(img, geometry, reducer="combined", **kw)
            for name, img in result.period_means.items()
        },
        "composite": reduce_region(result.composite, geometry, reducer="combined", **kw),
        "spi_images": len(result.spi),
        "pooled_images": result.pooled_count,
        "spi_max": _one(reduce_region(result.spi_max, geometry, reducer="max", **kw)),
        "spi_min": _one(reduce_region(result.spi_min, geometry, reducer="min", **kw)),
        "samples": {
            "total": len(result.samples),
            "by_class": {
                c.class_id: {"label": c.label, "count": counts.get(c.class_id, 0)} for c in cfg.classes
            },
            "shortfalls": [
                {"class": w.class_id, "requested": w.requested, "available": w.available}
                for w in result.samples.warnings
            ],
        },
        "band": band,
    }


def _fmt(v: Optional[float]) -> str:
    return "n/a" if v is None else f"{v:.4f}"


def print_report(report: Dict[str, Any]) -> None:
    band = report["band"]
    p = report["precipitation"]
    print(f"[CLIM] mean 3-month precipitation: {_fmt(p['mean'])}")
    print(f"[CLIM] std of 3-month precipitation: {_fmt(p['std'])}")
    print(f"[CLIM] max 3-month precipitation: {_fmt(p['max'])}")
    print(f"[CLIM] min 3-month precipitation: {_fmt(p['min'])}")

    for name, stats in report["periods"].items():
        if stats is None:
            print(f"[PERIOD] {name}: no images")
            continue
        print(
            f"[PERIOD] {name}: min={_fmt(stats[f'{band}_min'])} "
            f"max={_fmt(stats[f'{band}_max'])} mean={_fmt(stats[f'{band}_mean'])}"
        )

    comp = report["composite"]
    print(f"[PERIOD] composite ({report['pooled_images']} pooled): "
          f"min={_fmt(comp[f'{band}_min'])} max={_fmt(comp[f'{band}_max'])}")
    print(f"[SPI] total {band} images: {report['spi_images']}")
    print(f"[SPI] maximum {band} value: {_fmt(report['spi_max'])}")
    print(f"[SPI] minimum {band} value: {_fmt(report['spi_min'])}")

    s = report["samples"]
    print(f"[SAMPLE] total training points: {s['total']}")
    for class_id, info in s["by_class"].items():
        print(f"  - class {class_id} ({info['label']}): {info['count']}")
