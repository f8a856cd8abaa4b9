#!/usr/bin/env python3
"""spi.py

Standardize aggregated precipitation against its climatology:

    SPI = (A - mean) / std'      std' = std if std > 0 else floor

The floor replaces zero (and undefined) deviations pixel by pixel, after the
climatology is complete. It is never a global scalar substitution.
"""

from __future__ import annotations

import numpy as np

from spi3.index.climatology import Climatology
from spi3.raster import RasterSequence

DEFAULT_STD_FLOOR = 0.001


def guarded_std(std: np.ndarray, floor: float = DEFAULT_STD_FLOOR) -> np.ndarray:
    """std where std > 0, floor elsewhere."""
    if not floor > 0:
        raise ValueError(f"floor must be positive, got {floor}")
    return np.where(std > 0, std, floor)


def standardize(
    aggregated: RasterSequence,
    climatology: Climatology,
    *,
    floor: float = DEFAULT_STD_FLOOR,
    band_name: str = "SPI-3",
) -> RasterSequence:
    """Pointwise, timestamp-preserving SPI transform of every aggregated image."""
    mean = climatology.mean.band()
    std = guarded_std(climatology.std.band(), floor)

    out = tuple(
        img.derive((img.band() - mean) / std, [band_name], timestamp=img.timestamp)
        for img in aggregated
    )
    n_floored = int(np.count_nonzero(~(climatology.std.band() > 0)))
    print(f"[SPI] {len(out)} {band_name} images; {n_floored} pixel(s) use std floor {floor:g}")
    return RasterSequence(out)
