#!/usr/bin/env python3

from __future__ import annotations

import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Optional

import numpy as np
from rasterio.transform import from_origin
from shapely.geometry import box

# Ensure we can import from src without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from spi3.raster import RasterImage, RasterSequence  # noqa: E402

# Small EPSG:4326 grid: 0.05 deg pixels, upper-left corner at (36.0E, 4.0N)
ORIGIN = (36.0, 4.0)
RES = 0.05
TRANSFORM = from_origin(ORIGIN[0], ORIGIN[1], RES, RES)


def make_image(data, timestamp: Optional[date] = None, band: str = "precipitation") -> RasterImage:
    return RasterImage(
        data=np.asarray(data, dtype=float),
        band_names=(band,),
        crs="EPSG:4326",
        transform=TRANSFORM,
        timestamp=timestamp,
    )


def make_daily(
    start: date,
    end: date,
    value: Callable[[date], np.ndarray],
) -> RasterSequence:
    """Daily sequence over [start, end) with pixels given by value(day)."""
    images = []
    d = start
    while d < end:
        images.append(make_image(value(d), timestamp=d))
        d += timedelta(days=1)
    return RasterSequence(tuple(images))


def grid_box(rows: int, cols: int):
    """Polygon covering a rows x cols grid at ORIGIN (with a margin)."""
    return box(
        ORIGIN[0] - RES,
        ORIGIN[1] - RES * (rows + 1),
        ORIGIN[0] + RES * (cols + 1),
        ORIGIN[1] + RES,
    )

