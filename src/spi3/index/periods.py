#!/usr/bin/env python3
"""periods.py

Drought-period compositing of the SPI sequence.

Per period, the sequence is filtered to [start, end) and averaged over time.
The combined composite pools the filtered images of all periods by
concatenation, in period order, and averages the pool:

    pool = filter(p1) + filter(p2) + ...      # not a set union
    composite = mean(pool)                    # then clipped to the study area

An image matched by two overlapping periods therefore counts twice in the
pooled mean. Callers that expect a de-duplicated union will get different
numbers.

The all-time per-pixel max/min SPI are taken over the whole sequence,
independent of any period.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry.base import BaseGeometry

from spi3.config import DroughtPeriod
from spi3.errors import DataGapError
from spi3.geo.study_area import clip
from spi3.raster import RasterImage, RasterSequence


@dataclass(frozen=True)
class PeriodComposite:
    composite: RasterImage
    period_means: Dict[str, Optional[RasterImage]]
    period_counts: Dict[str, int]
    pooled_count: int


def nanmean_or_nan(stack: np.ndarray) -> np.ndarray:
    """Mean over axis 0 ignoring NaN; pixels with no valid value stay NaN."""
    valid = ~np.isnan(stack)
    count = valid.sum(axis=0)
    total = np.where(valid, stack, 0.0).sum(axis=0)
    return np.divide(total, count, out=np.full(count.shape, np.nan), where=count > 0)


def temporal_mean(images: Sequence[RasterImage], band_name: str) -> RasterImage:
    """Pixel-wise mean of a list of images (duplicates count individually)."""
    if not images:
        raise ValueError("temporal_mean needs at least one image")
    stack = np.stack([img.band() for img in images])
    return images[0].derive(nanmean_or_nan(stack), [band_name])


def composite_periods(
    spi: RasterSequence,
    periods: Sequence[DroughtPeriod],
    geometry: Optional[BaseGeometry] = None,
) -> PeriodComposite:
    """Per-period means plus the pooled, study-area clipped composite.

    Raises:
        DataGapError: No SPI image falls inside any period.
    """
    band_name = spi[0].band_names[0] if len(spi) else "SPI-3"
    pool: List[RasterImage] = []
    means: Dict[str, Optional[RasterImage]] = {}
    counts: Dict[str, int] = {}

    for period in periods:
        matched = spi.filter_date(period.start, period.end)
        counts[period.name] = len(matched)
        if len(matched) == 0:
            print(f"  - warning: period '{period.name}' matches no SPI image")
            means[period.name] = None
            continue
        means[period.name] = temporal_mean(matched.images, band_name)
        pool.extend(matched.images)

    if not pool:
        raise DataGapError("No SPI images fall inside any drought period")

    composite = temporal_mean(pool, band_name)
    if geometry is not None:
        composite = clip(composite, geometry)

    print(f"[PERIOD] composite of {len(pool)} pooled image(s) from {len(periods)} period(s)")
    return PeriodComposite(
        composite=composite,
        period_means=means,
        period_counts=counts,
        pooled_count=len(pool),
    )


def spi_extremes(spi: RasterSequence) -> Tuple[RasterImage, RasterImage]:
    """All-time per-pixel (max, min) SPI rasters over the full sequence."""
    stack = spi.stack()
    valid = ~np.isnan(stack)
    has_data = valid.any(axis=0)
    hi = np.where(has_data, np.where(valid, stack, -np.inf).max(axis=0), np.nan)
    lo = np.where(has_data, np.where(valid, stack, np.inf).min(axis=0), np.nan)
    template = spi[0]
    suffix = template.band_names[0].replace("-", "_")
    return template.derive(hi, [f"Max_{suffix}"]), template.derive(lo, [f"Min_{suffix}"])
