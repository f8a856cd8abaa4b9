#!/usr/bin/env python3
"""run.py

The SPI-3 drought sampling pipeline as one pure function.

    store → aggregate_rolling → estimate_climatology → standardize
          → composite_periods / spi_extremes → sample_classes

Every stage takes fully materialized inputs and returns new immutable
outputs; nothing is shared or mutated between stages. The config must
already be validated (spi3.config.validate_config).

Exports and reporting live elsewhere (spi3.export, spi3.pipeline.report)
so a failed export cannot invalidate these results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from shapely.geometry.base import BaseGeometry

from spi3.config import PipelineConfig
from spi3.errors import DataGapError
from spi3.index.aggregate import aggregate_rolling, fetch_range
from spi3.index.climatology import Climatology, estimate_climatology
from spi3.index.periods import composite_periods, spi_extremes
from spi3.index.spi import standardize
from spi3.ingest.daily_store import RasterStore
from spi3.raster import RasterImage, RasterSequence
from spi3.sampling import SampleSet, sample_classes


@dataclass(frozen=True)
class PipelineResult:
    aggregated: RasterSequence
    climatology: Climatology
    spi: RasterSequence
    period_means: Dict[str, Optional[RasterImage]]
    pooled_count: int
    composite: RasterImage
    spi_max: RasterImage
    spi_min: RasterImage
    samples: SampleSet


def run_pipeline(cfg: PipelineConfig, store: RasterStore, geometry: BaseGeometry) -> PipelineResult:
    """Run every analytic stage for one validated config.

    Raises:
        DataGapError: The store has nothing for the range, a monthly window,
            or the drought periods.
    """
    band = cfg.source.band
    fetch_start, fetch_end = fetch_range(cfg.start, cfg.end, cfg.window_months)
    daily = store.fetch(band, fetch_start, fetch_end)
    if len(daily) == 0:
        raise DataGapError(f"Store returned no '{band}' rasters for [{fetch_start}, {fetch_end})")
    print(f"[STORE] {len(daily)} daily rasters {daily.timestamps[0]} .. {daily.timestamps[-1]}")

    aggregated = aggregate_rolling(daily, cfg.start, cfg.end, window_months=cfg.window_months, band=band)
    climatology = estimate_climatology(aggregated, ddof=cfg.ddof)
    spi = standardize(aggregated, climatology, floor=cfg.std_floor, band_name=cfg.spi_band)

    periods = composite_periods(spi, cfg.periods, geometry)
    spi_max, spi_min = spi_extremes(spi)

    samples = sample_classes(
        periods.composite,
        geometry,
        cfg.classes,
        num_per_class=cfg.num_samples_per_class,
        seed=cfg.seed,
        scale=cfg.scale,
    )

    return PipelineResult(
        aggregated=aggregated,
        climatology=climatology,
        spi=spi,
        period_means=periods.period_means,
        pooled_count=periods.pooled_count,
        composite=periods.composite,
        spi_max=spi_max,
        spi_min=spi_min,
        samples=samples,
    )
