#!/usr/bin/env python3
"""climatology.py

Per-pixel climatology of the aggregated precipitation sequence.

Mean, standard deviation, maximum and minimum over every month of the
sequence (the full inter-annual sample; no sub-period). NaN values are
skipped pixel by pixel.

Standard deviation uses Bessel's correction (ddof=1) by default. A pixel
with no more than ddof valid months gets std 0: zero variance is legal here
and handled by the SPI floor downstream, so nothing is clamped.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from spi3.raster import RasterImage, RasterSequence


@dataclass(frozen=True)
class Climatology:
    mean: RasterImage
    std: RasterImage
    maximum: RasterImage
    minimum: RasterImage
    ddof: int = 1


def estimate_climatology(aggregated: RasterSequence, *, ddof: int = 1) -> Climatology:
    """Reduce the aggregated sequence to its per-pixel statistics."""
    stack = aggregated.stack()
    valid = ~np.isnan(stack)
    count = valid.sum(axis=0)
    filled = np.where(valid, stack, 0.0)
    has_data = count > 0

    mean = np.divide(filled.sum(axis=0), count, out=np.full(count.shape, np.nan), where=has_data)

    sq_dev = np.where(valid, (stack - mean) ** 2, 0.0).sum(axis=0)
    dof = count - ddof
    std = np.zeros(count.shape)
    np.sqrt(np.divide(sq_dev, dof, out=np.zeros(count.shape), where=dof > 0), out=std)
    std[~has_data] = np.nan

    maximum = np.where(has_data, np.where(valid, stack, -np.inf).max(axis=0), np.nan)
    minimum = np.where(has_data, np.where(valid, stack, np.inf).min(axis=0), np.nan)

    template = aggregated[0]
    return Climatology(
        mean=template.derive(mean, ["precipitation"]),
        std=template.derive(std, ["precipitation"]),
        maximum=template.derive(maximum, ["max_precipitation"]),
        minimum=template.derive(minimum, ["min_precipitation"]),
        ddof=ddof,
    )
