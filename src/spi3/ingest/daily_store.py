#!/usr/bin/env python3
"""daily_store.py

Raster stores: the boundary between the SPI pipeline and the precipitation
archive.

A store answers one question:

    fetch(band, start, end) -> RasterSequence   # start <= t < end

An empty sequence is a legal answer (no data for that range); it is the
aggregation stage that decides whether a gap is fatal.

Two implementations:
- GeoTiffDailyStore: a directory of daily GeoTIFFs (e.g. CHIRPS daily
  chirps-v2.0.2005.01.01.tif), dated by filename, optionally window-read to
  an AOI bbox.
- MemoryStore: wraps an existing RasterSequence (tests, notebooks).

Required deps (typical conda geo stack): rasterio, numpy
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

import numpy as np
import rasterio
from rasterio.warp import transform_bounds
from rasterio.windows import from_bounds

from spi3.raster import RasterImage, RasterSequence

BBox = Tuple[float, float, float, float]

# 2005.01.01 / 2005-01-01 / 2005_01_01 / 20050101 somewhere in the file name
_DATE_RE = re.compile(r"(?<!\d)(\d{4})[._-]?(\d{2})[._-]?(\d{2})(?!\d)")


class RasterStore(Protocol):
    """Store interface consumed by the pipeline."""

    def fetch(self, band: str, start: date, end: date) -> RasterSequence:
        ...


def date_from_name(name: str) -> Optional[date]:
    """Parse the acquisition date embedded in a file name, or None."""
    for m in _DATE_RE.finditer(name):
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            continue
    return None


def _safe_round_window(win):
    """Round window offsets/lengths to integers (GDAL prefers integer windows)."""
    return win.round_offsets().round_lengths()


def read_raster(
    path: Path,
    band: Optional[str] = None,
    *,
    timestamp: Optional[date] = None,
    bounds: Optional[BBox] = None,
) -> RasterImage:
    """Read one band of a GeoTIFF into a RasterImage (nodata → NaN).

    The band is looked up by description. Single-band files and files with no
    band descriptions fall back to band 1. With `bounds` (EPSG:4326) only that
    window is read.

    Raises:
        KeyError: A multi-band file names its bands and none matches `band`.
    """
    with rasterio.open(path) as src:
        if src.crs is None:
            raise ValueError(f"Raster has no CRS: {path}")

        descriptions = list(src.descriptions)
        if band in descriptions:
            band_index = descriptions.index(band) + 1
        elif band is None or src.count == 1 or not any(descriptions):
            band_index = 1
        else:
            raise KeyError(f"Band '{band}' not in {path} (bands: {descriptions})")
        name = band or descriptions[0] or "b1"

        window = None
        transform = src.transform
        if bounds is not None:
            bbox = bounds
            if str(src.crs).upper() not in ("EPSG:4326", "WGS84"):
                # transform_bounds densifies edges to avoid weird warps
                bbox = transform_bounds("EPSG:4326", src.crs, *bbox, densify_pts=21)
            window = _safe_round_window(from_bounds(*bbox, transform=src.transform))
            transform = src.window_transform(window)

        data = src.read(band_index, window=window, boundless=window is not None, masked=True)
        return RasterImage(
            data=np.ma.filled(data.astype(np.float64), np.nan),
            band_names=(name,),
            crs=src.crs.to_string(),
            transform=transform,
            timestamp=timestamp,
        )


class MemoryStore:
    """Serve images from an in-memory sequence."""

    def __init__(self, sequence: RasterSequence):
        self.sequence = sequence

    def fetch(self, band: str, start: date, end: date) -> RasterSequence:
        sub = self.sequence.filter_date(start, end)
        return RasterSequence(
            tuple(img.derive(img.band(band)[np.newaxis], [band], timestamp=img.timestamp) for img in sub)
        )


class GeoTiffDailyStore:
    """Directory of single-date GeoTIFFs, one per day.

    Parameters
    ----------
    directory : Path
        Folder holding the daily files.
    pattern : str
        Glob used to list files (default "*.tif").
    bounds : (xmin, ymin, xmax, ymax) | None
        AOI in EPSG:4326. When given, only that window is read from each file.
    """

    def __init__(self, directory: Path, pattern: str = "*.tif", bounds: Optional[BBox] = None):
        self.directory = Path(directory)
        self.pattern = pattern
        self.bounds = bounds
        self._index: Optional[Dict[date, Path]] = None

    def index(self) -> Dict[date, Path]:
        """Map acquisition date → file. Files without a date are ignored."""
        if self._index is None:
            if not self.directory.is_dir():
                raise FileNotFoundError(f"Raster directory not found: {self.directory}")
            found: Dict[date, Path] = {}
            for p in sorted(self.directory.glob(self.pattern)):
                d = date_from_name(p.name)
                if d is None:
                    continue
                if d in found:
                    raise ValueError(f"Two files for {d}: {found[d].name}, {p.name}")
                found[d] = p
            self._index = dict(sorted(found.items()))
        return self._index

    def coverage(self) -> Tuple[Optional[date], Optional[date], int]:
        """(first date, last date, file count) of the directory."""
        idx = self.index()
        if not idx:
            return None, None, 0
        dates = list(idx)
        return dates[0], dates[-1], len(dates)

    def fetch(self, band: str, start: date, end: date) -> RasterSequence:
        images: List[RasterImage] = [
            read_raster(p, band, timestamp=d, bounds=self.bounds)
            for d, p in self.index().items()
            if start <= d < end
        ]
        return RasterSequence(tuple(images))
