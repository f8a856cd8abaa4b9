#!/usr/bin/env python3
"""sampling.py

Class-balanced stratified point sampling of the drought composite.

For each drought class [min, max), the composite is masked to the pixels
inside the study area whose SPI falls in the interval, and up to
`num_per_class` of them are drawn uniformly at random without replacement.
Each class returns its own immutable subset; the final SampleSet is their
concatenation in class order (no de-duplication by location).

A class with fewer eligible pixels than requested returns what it has and
records an InsufficientSamplesWarning on the SampleSet. Nothing is raised,
padded or retried.

Randomness: one numpy SeedSequence per run, spawned into one independent
stream per class. seed=None draws fresh entropy (non-deterministic); any
integer seed reproduces the same samples for the same inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
from rasterio.transform import xy
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from spi3.config import DroughtClass
from spi3.errors import InsufficientSamplesWarning
from spi3.geo.study_area import inside_mask
from spi3.raster import RasterImage, coarsen_to_scale

DEFAULT_SAMPLES_PER_CLASS = 200


@dataclass(frozen=True)
class Sample:
    longitude: float
    latitude: float
    spi_value: float
    class_id: int

    @property
    def geometry(self) -> Point:
        return Point(self.longitude, self.latitude)


@dataclass(frozen=True)
class SampleSet:
    samples: Tuple[Sample, ...]
    requested_per_class: int
    warnings: Tuple[InsufficientSamplesWarning, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.samples)

    def filter_class(self, class_id: int) -> Tuple[Sample, ...]:
        return tuple(s for s in self.samples if s.class_id == class_id)

    def count_by_class(self) -> Dict[int, int]:
        counts: Dict[int, int] = {}
        for s in self.samples:
            counts[s.class_id] = counts.get(s.class_id, 0) + 1
        return counts

    def to_geodataframe(self, value_column: str = "SPI-3", crs: str = "EPSG:4326") -> gpd.GeoDataFrame:
        """Samples as points with longitude/latitude/<SPI>/class columns."""
        lon = [s.longitude for s in self.samples]
        lat = [s.latitude for s in self.samples]
        return gpd.GeoDataFrame(
            {
                "longitude": lon,
                "latitude": lat,
                value_column: [s.spi_value for s in self.samples],
                "class": [s.class_id for s in self.samples],
            },
            geometry=gpd.points_from_xy(lon, lat),
            crs=crs,
        )


def sample_class(
    composite: RasterImage,
    inside: np.ndarray,
    drought_class: DroughtClass,
    num: int,
    rng: np.random.Generator,
) -> Tuple[Tuple[Sample, ...], int]:
    """Draw up to num points for one class. Returns (samples, eligible pixel count)."""
    values = composite.band()
    eligible = inside & (values >= drought_class.min_value) & (values < drought_class.max_value)
    rows, cols = np.nonzero(eligible)
    available = rows.size

    k = min(num, available)
    if k == 0:
        return (), available
    picks = np.sort(rng.choice(available, size=k, replace=False))
    rows, cols = rows[picks], cols[picks]

    xs, ys = xy(composite.transform, rows, cols, offset="center")
    samples = tuple(
        Sample(
            longitude=float(x),
            latitude=float(y),
            spi_value=float(values[r, c]),
            class_id=drought_class.class_id,
        )
        for x, y, r, c in zip(np.atleast_1d(xs), np.atleast_1d(ys), rows, cols)
    )
    return samples, available


def sample_classes(
    composite: RasterImage,
    geometry: BaseGeometry,
    classes: Sequence[DroughtClass],
    *,
    num_per_class: int = DEFAULT_SAMPLES_PER_CLASS,
    seed: Optional[int] = None,
    scale: Optional[float] = None,
) -> SampleSet:
    """Stratified, class-balanced sample of the composite.

    Args:
        composite: Clipped SPI composite (first band is sampled).
        geometry: Study area; only pixel centres inside it are eligible.
        classes: Drought classes (pairwise disjoint intervals).
        num_per_class: Target number of points per class.
        seed: Random seed (None = non-deterministic).
        scale: Sampling scale in metres (None = native grid).

    Returns:
        SampleSet with per-class shortfalls recorded in `warnings`.
    """
    grid = coarsen_to_scale(composite, scale)
    inside = inside_mask(grid, geometry)
    streams = np.random.SeedSequence(seed).spawn(len(classes))

    subsets: List[Tuple[Sample, ...]] = []
    shortfalls: List[InsufficientSamplesWarning] = []
    for drought_class, ss in zip(classes, streams):
        subset, available = sample_class(grid, inside, drought_class, num_per_class, np.random.default_rng(ss))
        subsets.append(subset)
        if available < num_per_class:
            w = InsufficientSamplesWarning(drought_class.class_id, drought_class.label, num_per_class, available)
            shortfalls.append(w)
            print(f"  - warning: {w}")

    samples = tuple(s for subset in subsets for s in subset)
    print(f"[SAMPLE] {len(samples)} training points across {len(classes)} class(es)")
    return SampleSet(samples=samples, requested_per_class=num_per_class, warnings=tuple(shortfalls))
