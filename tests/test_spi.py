#!/usr/bin/env python3

from __future__ import annotations

from datetime import date

import numpy as np
import pytest

from conftest import make_daily, make_image
from spi3.index.aggregate import aggregate_rolling, month_starts
from spi3.index.climatology import estimate_climatology
from spi3.index.spi import guarded_std, standardize
from spi3.raster import RasterSequence


def _monthly(values):
    """Sequence of aggregated rasters, one per month from 2005-01."""
    months = month_starts(date(2005, 1, 1), date(2030, 12, 1))
    return RasterSequence(tuple(make_image(v, timestamp=m) for v, m in zip(values, months)))


@pytest.fixture
def aggregated():
    rng = np.random.default_rng(0)
    values = rng.gamma(2.0, 50.0, size=(24, 3, 4))
    values[:, 0, 0] = 42.0  # zero-variance pixel
    values[5, 2, 3] = np.nan  # one missing month
    return _monthly(values), values


def test_climatology_matches_numpy(aggregated):
    seq, values = aggregated
    clim = estimate_climatology(seq)

    np.testing.assert_allclose(clim.mean.band(), np.nanmean(values, axis=0))
    np.testing.assert_allclose(clim.std.band(), np.nanstd(values, axis=0, ddof=1))
    np.testing.assert_array_equal(clim.maximum.band(), np.nanmax(values, axis=0))
    np.testing.assert_array_equal(clim.minimum.band(), np.nanmin(values, axis=0))
    assert clim.mean.timestamp is None
    assert clim.maximum.band_names == ("max_precipitation",)
    assert clim.minimum.band_names == ("min_precipitation",)


def test_population_std_when_ddof_zero(aggregated):
    seq, values = aggregated
    clim = estimate_climatology(seq, ddof=0)
    np.testing.assert_allclose(clim.std.band(), np.nanstd(values, axis=0, ddof=0))


def test_zero_variance_is_not_clamped(aggregated):
    seq, _ = aggregated
    clim = estimate_climatology(seq)
    assert clim.std.band()[0, 0] == 0.0


def test_single_month_gives_zero_std():
    clim = estimate_climatology(_monthly([np.full((2, 2), 7.0)]))
    assert np.all(clim.std.band() == 0.0)


def test_spi_exact_where_std_positive(aggregated):
    seq, _ = aggregated
    clim = estimate_climatology(seq)
    spi = standardize(seq, clim)

    mean, std = clim.mean.band(), clim.std.band()
    positive = std > 0
    for a, s in zip(seq, spi):
        expected = (a.band() - mean) / std
        assert np.array_equal(s.band()[positive], expected[positive], equal_nan=True)


def test_spi_uses_floor_where_std_zero(aggregated):
    seq, _ = aggregated
    clim = estimate_climatology(seq)
    spi = standardize(seq, clim, floor=0.001)

    mean = clim.mean.band()
    for a, s in zip(seq, spi):
        assert s.band()[0, 0] == (a.band()[0, 0] - mean[0, 0]) / 0.001


def test_spi_preserves_timestamps_and_renames_band(aggregated):
    seq, _ = aggregated
    spi = standardize(seq, estimate_climatology(seq), band_name="SPI-3")
    assert len(spi) == len(seq)
    assert spi.timestamps == seq.timestamps
    assert all(img.band_names == ("SPI-3",) for img in spi)


def test_constant_precipitation_gives_zero_spi():
    # 3 months of identical 3x3 aggregates: std is 0 everywhere, SPI is 0 everywhere
    seq = _monthly([np.full((3, 3), 10.0 * 90)] * 3)
    clim = estimate_climatology(seq)
    assert np.all(clim.std.band() == 0.0)

    spi = standardize(seq, clim, floor=0.001)
    for a, s in zip(seq, spi):
        assert np.array_equal(s.band(), (a.band() - clim.mean.band()) / 0.001)
        assert np.all(s.band() == 0.0)


def test_spi_from_constant_daily_precipitation():
    # column 0 never rains (zero variance), the rest get 2 mm every day
    def value(d):
        arr = np.full((2, 3), 2.0)
        arr[:, 0] = 0.0
        return arr

    daily = make_daily(date(2005, 1, 1), date(2005, 7, 1), value)
    agg = aggregate_rolling(daily, date(2005, 1, 1), date(2005, 6, 30))
    clim = estimate_climatology(agg)
    spi = standardize(agg, clim, floor=0.001)

    sums = agg.stack()
    # Jan and Feb windows are truncated at the range start
    np.testing.assert_array_equal(sums[:, 0, 1], 2.0 * np.array([1, 32, 60, 60, 62, 62]))
    std = np.std(sums, axis=0, ddof=1)
    expected = (sums - sums.mean(axis=0)) / np.where(std > 0, std, 0.001)
    np.testing.assert_allclose(spi.stack(), expected)
    assert np.all(clim.std.band()[:, 0] == 0.0)
    assert np.all(spi.stack()[:, :, 0] == 0.0)


def test_guarded_std_is_pixelwise():
    std = np.array([[0.0, 2.0], [np.nan, 0.5]])
    out = guarded_std(std, 0.001)
    np.testing.assert_array_equal(out, [[0.001, 2.0], [0.001, 0.5]])


def test_guarded_std_rejects_non_positive_floor():
    with pytest.raises(ValueError):
        guarded_std(np.zeros((1, 1)), 0.0)
