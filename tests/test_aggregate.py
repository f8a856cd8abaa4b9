#!/usr/bin/env python3

from __future__ import annotations

from datetime import date

import numpy as np
import pytest

from conftest import make_daily
from spi3.errors import DataGapError
from spi3.index.aggregate import (
    add_months,
    aggregate_rolling,
    clipped_window,
    fetch_range,
    month_starts,
    window_bounds,
)
from spi3.raster import RasterSequence


@pytest.mark.parametrize(
    "start,end,expected",
    [
        (date(2005, 1, 1), date(2005, 1, 31), 1),
        (date(2005, 1, 1), date(2005, 3, 1), 3),
        (date(2005, 1, 1), date(2024, 12, 31), 240),
        (date(2005, 11, 1), date(2006, 2, 28), 4),
    ],
)
def test_month_count(start, end, expected):
    months = month_starts(start, end)
    assert len(months) == expected
    assert all(m.day == 1 for m in months)
    assert months == sorted(months)


def test_add_months_crosses_years():
    assert add_months(date(2005, 1, 1), -2) == date(2004, 11, 1)
    assert add_months(date(2005, 12, 1), 1) == date(2006, 1, 1)


def test_window_is_two_months_back_to_day_after_anchor():
    assert window_bounds(date(2005, 3, 1)) == (date(2005, 1, 1), date(2005, 3, 2))
    assert window_bounds(date(2005, 1, 1)) == (date(2004, 11, 1), date(2005, 1, 2))


def test_fetch_range_starts_at_range_start():
    assert fetch_range(date(2005, 1, 1), date(2005, 12, 31)) == (date(2005, 1, 1), date(2005, 12, 2))


def test_clipped_window_stops_at_range_start():
    assert clipped_window(date(2005, 1, 1), date(2005, 1, 1)) == (date(2005, 1, 1), date(2005, 1, 2))
    assert clipped_window(date(2005, 2, 1), date(2005, 1, 1)) == (date(2005, 1, 1), date(2005, 2, 2))
    assert clipped_window(date(2005, 4, 1), date(2005, 1, 1)) == window_bounds(date(2005, 4, 1))


def test_rolling_sum_counts_days_in_window():
    # one unit per day starting on the range start
    daily = make_daily(date(2005, 1, 1), date(2005, 6, 1), lambda d: np.ones((2, 3)))
    agg = aggregate_rolling(daily, date(2005, 1, 1), date(2005, 4, 30))

    assert len(agg) == 4
    assert agg.timestamps == (date(2005, 1, 1), date(2005, 2, 1), date(2005, 3, 1), date(2005, 4, 1))
    # Jan: truncated window → only Jan 1
    # Feb: Jan 1 .. Feb 1 → 32 days
    # Mar: Jan 1 .. Mar 1 → 31 + 28 + 1
    # Apr: Feb 1 .. Apr 1 → 28 + 31 + 1
    expected = [1, 32, 60, 60]
    for img, n in zip(agg, expected):
        assert np.all(img.band() == n)
        assert img.band_names == ("precipitation",)


def test_rolling_sum_skips_nan_days():
    def value(d):
        arr = np.full((1, 2), 2.0)
        if d.day == 1:
            arr[0, 0] = np.nan
        return arr

    daily = make_daily(date(2005, 1, 1), date(2005, 2, 1), value)
    agg = aggregate_rolling(daily, date(2005, 1, 1), date(2005, 1, 1))
    # only Jan 1 in the window, and pixel (0, 0) is NaN there
    assert np.isnan(agg[0].band()[0, 0])
    assert agg[0].band()[0, 1] == 2.0


def test_window_without_any_data_raises():
    daily = make_daily(date(2005, 1, 1), date(2005, 2, 1), lambda d: np.ones((1, 1)))
    with pytest.raises(DataGapError):
        aggregate_rolling(daily, date(2005, 1, 1), date(2005, 6, 30))


def test_empty_daily_sequence_raises():
    with pytest.raises(DataGapError):
        aggregate_rolling(RasterSequence(), date(2005, 1, 1), date(2005, 1, 31))


def test_daily_data_before_start_is_ignored():
    # archive reaches back a full year; the first windows are still truncated
    daily = make_daily(date(2004, 1, 1), date(2005, 6, 1), lambda d: np.ones((2, 3)))
    agg = aggregate_rolling(daily, date(2005, 1, 1), date(2005, 4, 30))
    for img, n in zip(agg, [1, 32, 60, 60]):
        assert np.all(img.band() == n)
