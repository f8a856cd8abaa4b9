#!/usr/bin/env python3
"""spi3.raster

In-memory raster types used by every pipeline stage.

A RasterImage is a (bands, rows, cols) float64 array on one grid
(CRS + affine transform), with an optional timestamp. Masked pixels are NaN.
A RasterSequence is a time-ascending tuple of RasterImages on the same grid.

Both are immutable: arrays are copied on construction and flagged read-only.

Design notes:
- Grids are never reprojected here. Two rasters are compatible only if
  shape, CRS and transform are identical.
- Timestamps are datetime.date (monthly/daily data has no time-of-day).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine

# Metres per degree at the equator (used to express geographic pixel size in metres)
METERS_PER_DEGREE = 111_320.0


@dataclass(frozen=True)
class RasterImage:
    data: np.ndarray
    band_names: Tuple[str, ...]
    crs: str
    transform: Affine
    timestamp: Optional[date] = None

    def __post_init__(self) -> None:
        arr = np.array(self.data, dtype=np.float64)
        if arr.ndim == 2:
            arr = arr[np.newaxis, ...]
        if arr.ndim != 3:
            raise ValueError(f"Raster data must be 2-D or 3-D, got shape {arr.shape}")
        names = tuple(self.band_names)
        if len(names) != arr.shape[0]:
            raise ValueError(f"{len(names)} band names for {arr.shape[0]} bands")
        arr.setflags(write=False)
        object.__setattr__(self, "data", arr)
        object.__setattr__(self, "band_names", names)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape[1], self.data.shape[2]

    def band(self, name: Optional[str] = None) -> np.ndarray:
        """Return one band as a 2-D array (first band if name is None)."""
        if name is None:
            return self.data[0]
        try:
            return self.data[self.band_names.index(name)]
        except ValueError:
            raise KeyError(f"Band '{name}' not in {list(self.band_names)}") from None

    def same_grid(self, other: "RasterImage") -> bool:
        if self.shape != other.shape or not self.transform.almost_equals(other.transform):
            return False
        return self.crs == other.crs or CRS.from_user_input(self.crs) == CRS.from_user_input(other.crs)

    def derive(
        self,
        data: np.ndarray,
        band_names: Sequence[str],
        timestamp: Optional[date] = None,
    ) -> "RasterImage":
        """New raster on this grid with different pixels/bands."""
        return RasterImage(
            data=data,
            band_names=tuple(band_names),
            crs=self.crs,
            transform=self.transform,
            timestamp=timestamp,
        )

    def rename(self, *band_names: str) -> "RasterImage":
        return self.derive(self.data, band_names, timestamp=self.timestamp)


@dataclass(frozen=True)
class RasterSequence:
    images: Tuple[RasterImage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        images = tuple(self.images)
        prev: Optional[date] = None
        for img in images:
            if img.timestamp is None:
                raise ValueError("Sequence images must carry a timestamp")
            if prev is not None and img.timestamp <= prev:
                raise ValueError(
                    f"Sequence must be strictly time-ascending ({img.timestamp} after {prev})"
                )
            if not img.same_grid(images[0]):
                raise ValueError(f"Image at {img.timestamp} is not on the sequence grid")
            prev = img.timestamp
        object.__setattr__(self, "images", images)

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self) -> Iterator[RasterImage]:
        return iter(self.images)

    def __getitem__(self, i: int) -> RasterImage:
        return self.images[i]

    @property
    def timestamps(self) -> Tuple[date, ...]:
        return tuple(img.timestamp for img in self.images)  # type: ignore[misc]

    def filter_date(self, start: date, end: date) -> "RasterSequence":
        """Images with start <= timestamp < end."""
        return RasterSequence(
            tuple(img for img in self.images if start <= img.timestamp < end)  # type: ignore[operator]
        )

    def stack(self, band: Optional[str] = None) -> np.ndarray:
        """Stack one band over time → (time, rows, cols)."""
        if not self.images:
            raise ValueError("Cannot stack an empty sequence")
        return np.stack([img.band(band) for img in self.images])


# -----------------------------------------------------------------------------
# Grid scale helpers
# -----------------------------------------------------------------------------
# Reducers and the sampler take a target scale in metres (default 1000).
# Coarser targets are served by nearest-neighbour
# subsampling of the native grid; finer targets use the native grid.

def pixel_scale_m(image: RasterImage) -> float:
    """Native pixel size in metres (x resolution)."""
    res = abs(image.transform.a)
    if CRS.from_user_input(image.crs).is_geographic:
        return res * METERS_PER_DEGREE
    return res


def coarsen_to_scale(image: RasterImage, scale: Optional[float]) -> RasterImage:
    """Nearest-neighbour view of image at a coarser scale (metres)."""
    if scale is None:
        return image
    # tolerance so an exact multiple of the native size is not floored down
    factor = int(np.floor(scale / pixel_scale_m(image) + 1e-9))
    if factor <= 1:
        return image
    off = factor // 2
    data = image.data[:, off::factor, off::factor]
    # coarse cell centres sit on the centres of the sampled native pixels
    shift = off + 0.5 - factor / 2.0
    return RasterImage(
        data=data,
        band_names=image.band_names,
        crs=image.crs,
        transform=image.transform * Affine.translation(shift, shift) * Affine.scale(factor),
        timestamp=image.timestamp,
    )
