#!/usr/bin/env python3

from __future__ import annotations

from datetime import date

import numpy as np
import pytest
from rasterio.transform import xy
from shapely.geometry import box

from conftest import ORIGIN, RES, grid_box, make_image
from spi3.errors import DataGapError
from spi3.geo.stats import reduce_region, region_series
from spi3.raster import RasterSequence, coarsen_to_scale, pixel_scale_m

VALUES = np.arange(12, dtype=float).reshape(3, 4)


def test_single_reducers():
    img = make_image(VALUES, band="SPI-3")
    area = grid_box(3, 4)
    assert reduce_region(img, area, reducer="mean") == {"SPI-3": pytest.approx(5.5)}
    assert reduce_region(img, area, reducer="min") == {"SPI-3": 0.0}
    assert reduce_region(img, area, reducer="max") == {"SPI-3": 11.0}


def test_combined_matches_separate_reducers():
    rng = np.random.default_rng(3)
    img = make_image(rng.normal(size=(6, 6)), band="SPI-3")
    area = grid_box(6, 6)
    combined = reduce_region(img, area, reducer="combined")
    for how in ("min", "max", "mean"):
        assert combined[f"SPI-3_{how}"] == reduce_region(img, area, reducer=how)["SPI-3"]


def test_only_pixels_inside_geometry_count():
    img = make_image(VALUES)
    # first row only
    area = box(ORIGIN[0], ORIGIN[1] - RES, ORIGIN[0] + 4 * RES, ORIGIN[1])
    assert reduce_region(img, area, reducer="max") == {"precipitation": 3.0}


def test_best_effort_reduces_partial_coverage():
    values = VALUES.copy()
    values[0, 0] = np.nan
    img = make_image(values)
    assert reduce_region(img, grid_box(3, 4), reducer="min") == {"precipitation": 1.0}


def test_strict_mode_rejects_masked_pixels():
    values = VALUES.copy()
    values[0, 0] = np.nan
    img = make_image(values)
    inner = box(ORIGIN[0], ORIGIN[1] - 3 * RES, ORIGIN[0] + 4 * RES, ORIGIN[1])
    with pytest.raises(DataGapError):
        reduce_region(img, inner, reducer="mean", best_effort=False)


def test_strict_mode_rejects_geometry_past_raster():
    img = make_image(VALUES)
    with pytest.raises(DataGapError):
        reduce_region(img, grid_box(3, 4), reducer="mean", best_effort=False)


def test_strict_mode_accepts_full_coverage():
    img = make_image(VALUES)
    inner = box(ORIGIN[0], ORIGIN[1] - 3 * RES, ORIGIN[0] + 4 * RES, ORIGIN[1])
    assert reduce_region(img, inner, reducer="mean", best_effort=False) == {"precipitation": pytest.approx(5.5)}


def test_no_valid_pixels_gives_none():
    img = make_image(np.full((2, 2), np.nan))
    assert reduce_region(img, grid_box(2, 2), reducer="combined") == {
        "precipitation_min": None,
        "precipitation_max": None,
        "precipitation_mean": None,
    }


def test_unknown_reducer():
    with pytest.raises(ValueError):
        reduce_region(make_image(VALUES), grid_box(3, 4), reducer="median")


def test_coarser_scale_subsamples_grid():
    img = make_image(np.arange(36, dtype=float).reshape(6, 6))
    native = pixel_scale_m(img)
    coarse = coarsen_to_scale(img, native * 3)
    # nearest-neighbour: centre pixel of each 3x3 block
    np.testing.assert_array_equal(coarse.band(), [[7.0, 10.0], [25.0, 28.0]])
    assert coarse.transform.a == pytest.approx(3 * RES)
    assert coarsen_to_scale(img, native / 2) is img


@pytest.mark.parametrize("factor", [2, 3, 4])
def test_coarse_pixel_centres_match_sampled_pixels(factor):
    img = make_image(np.arange(64, dtype=float).reshape(8, 8))
    coarse = coarsen_to_scale(img, pixel_scale_m(img) * factor)
    off = factor // 2
    assert coarse.band()[1, 1] == img.band()[off + factor, off + factor]
    assert xy(coarse.transform, 1, 1) == pytest.approx(xy(img.transform, off + factor, off + factor))


def test_region_series():
    seq = RasterSequence(
        (
            make_image(np.full((2, 2), 1.0), timestamp=date(2005, 1, 1), band="SPI-3"),
            make_image(np.full((2, 2), -1.0), timestamp=date(2005, 2, 1), band="SPI-3"),
        )
    )
    assert region_series(seq, grid_box(2, 2)) == [(date(2005, 1, 1), 1.0), (date(2005, 2, 1), -1.0)]
