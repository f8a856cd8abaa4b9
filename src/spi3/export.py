#!/usr/bin/env python3
"""export.py

Export sinks for pipeline results:
- training points → flat CSV (longitude, latitude, SPI-3, class)
- clipped composite → GeoTIFF in EPSG:4326, refused above a pixel cap
- regional SPI series → CSV (date, SPI-3)

Exports never modify the in-memory results; a failed export leaves them valid.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import rasterio
from rasterio.crs import CRS

from spi3.errors import ExportTooLargeError
from spi3.raster import RasterImage
from spi3.sampling import SampleSet

EXPORT_CRS = "EPSG:4326"
DEFAULT_MAX_PIXELS = 1e13


def _ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def write_samples_csv(samples: SampleSet, out_path: Path, value_column: str = "SPI-3") -> Path:
    """Write one row per sample: longitude, latitude, <value_column>, class."""
    _ensure_dir(out_path.parent)
    df = pd.DataFrame(
        {
            "longitude": [s.longitude for s in samples.samples],
            "latitude": [s.latitude for s in samples.samples],
            value_column: [s.spi_value for s in samples.samples],
            "class": [s.class_id for s in samples.samples],
        }
    )
    df.to_csv(out_path, index=False)
    print(f"[EXPORT] {len(df)} samples -> {out_path}")
    return out_path


def write_geotiff(
    image: RasterImage,
    out_path: Path,
    *,
    max_pixels: float = DEFAULT_MAX_PIXELS,
    nodata: float = np.nan,
) -> Path:
    """Write image as a float32 GeoTIFF.

    Raises:
        ExportTooLargeError: rows * cols * bands exceeds max_pixels (nothing written).
        ValueError: image is not in EPSG:4326 (no reprojection on export).
    """
    rows, cols = image.shape
    n_pixels = rows * cols * len(image.band_names)
    if n_pixels > max_pixels:
        raise ExportTooLargeError(n_pixels, max_pixels)
    if CRS.from_user_input(image.crs) != CRS.from_user_input(EXPORT_CRS):
        raise ValueError(f"Export expects {EXPORT_CRS} rasters, got {image.crs}")

    profile = {
        "driver": "GTiff",
        "height": rows,
        "width": cols,
        "count": len(image.band_names),
        "dtype": "float32",
        "crs": EXPORT_CRS,
        "transform": image.transform,
        "nodata": nodata,
        "compress": "deflate",
    }
    _ensure_dir(out_path.parent)
    with rasterio.open(out_path, "w", **profile) as dst:
        dst.write(image.data.astype(np.float32))
        for i, name in enumerate(image.band_names, start=1):
            dst.set_band_description(i, name)
    print(f"[EXPORT] {rows}x{cols} raster -> {out_path}")
    return out_path


def write_series_csv(
    series: List[Tuple[date, Optional[float]]],
    out_path: Path,
    value_column: str = "SPI-3",
) -> Path:
    """Write a (date, value) series as CSV."""
    _ensure_dir(out_path.parent)
    df = pd.DataFrame(series, columns=["date", value_column])
    df.to_csv(out_path, index=False)
    print(f"[EXPORT] {len(df)} series rows -> {out_path}")
    return out_path
