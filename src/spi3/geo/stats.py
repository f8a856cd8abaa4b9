#!/usr/bin/env python3
"""stats.py

Region statistics: reduce a raster to scalar summaries over a geometry.

Reducers:
- mean / min / max   → {"<band>": value}
- combined           → {"<band>_min": .., "<band>_max": .., "<band>_mean": ..}

"combined" runs the three reducers over the same pixel set, so its numbers
are identical to calling each reducer on its own.

best_effort (default True) reduces whatever valid pixels the geometry covers.
With best_effort=False, a geometry that extends past the raster or covers
masked (NaN) pixels raises DataGapError instead.

A reduction over zero valid pixels returns None, not NaN.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Tuple

import numpy as np
from rasterio.transform import array_bounds
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from spi3.errors import DataGapError
from spi3.geo.study_area import inside_mask
from spi3.raster import RasterImage, RasterSequence, coarsen_to_scale

RegionSummary = Dict[str, Optional[float]]

REDUCERS = ("mean", "min", "max", "combined")

_FUNCS = {
    "min": np.min,
    "max": np.max,
    "mean": np.mean,
}


def _reduce(values: np.ndarray, how: str) -> Optional[float]:
    if values.size == 0:
        return None
    return float(_FUNCS[how](values))


def raster_footprint(image: RasterImage) -> BaseGeometry:
    rows, cols = image.shape
    return box(*array_bounds(rows, cols, image.transform))


def reduce_region(
    image: RasterImage,
    geometry: BaseGeometry,
    *,
    scale: Optional[float] = None,
    reducer: str = "mean",
    band: Optional[str] = None,
    best_effort: bool = True,
) -> RegionSummary:
    """Summarize image over geometry.

    Args:
        image: Raster to reduce (all bands unless `band` is given).
        geometry: Region in the raster CRS.
        scale: Target pixel scale in metres (None = native grid).
        reducer: One of REDUCERS.
        band: Restrict to a single band.
        best_effort: Reduce partial coverage instead of failing.

    Returns:
        RegionSummary keyed by band name (and reducer suffix for "combined").
    """
    if reducer not in REDUCERS:
        raise ValueError(f"Unknown reducer '{reducer}'. Expected one of {REDUCERS}")

    img = coarsen_to_scale(image, scale)
    inside = inside_mask(img, geometry)
    bands = [band] if band is not None else list(img.band_names)

    if not best_effort and not raster_footprint(img).contains(geometry):
        raise DataGapError("Geometry extends beyond the raster extent (best_effort=False)")

    summary: RegionSummary = {}
    for name in bands:
        arr = img.band(name)
        covered = inside & ~np.isnan(arr)
        if not best_effort and np.count_nonzero(covered) != np.count_nonzero(inside):
            raise DataGapError(
                f"Band '{name}' has masked pixels inside the geometry (best_effort=False)"
            )
        values = arr[covered]
        if reducer == "combined":
            for how in ("min", "max", "mean"):
                summary[f"{name}_{how}"] = _reduce(values, how)
        else:
            summary[name] = _reduce(values, reducer)
    return summary


def region_series(
    sequence: RasterSequence,
    geometry: BaseGeometry,
    *,
    scale: Optional[float] = None,
    best_effort: bool = True,
) -> List[Tuple[date, Optional[float]]]:
    """Regional mean of the first band at every timestamp of a sequence."""
    series: List[Tuple[date, Optional[float]]] = []
    for img in sequence:
        name = img.band_names[0]
        stats = reduce_region(img, geometry, scale=scale, reducer="mean", band=name, best_effort=best_effort)
        series.append((img.timestamp, stats[name]))  # type: ignore[arg-type]
    return series
