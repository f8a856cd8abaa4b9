#!/usr/bin/env python3
"""aggregate.py

Rolling monthly precipitation sums from a daily raster sequence.

For each calendar month M in the requested range, the aggregated raster is
the pixel-wise sum of daily rasters dated in

    [first day of M - (window - 1) months, first day of M + 1 day)

The end bound is exclusive, so day 1 of M itself is included. Daily data is
limited to the range first: windows never reach before the first month, so
the earliest months get a truncated window even when older data exists.
That is accepted, not an error: those values are statistically weaker.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import List, Tuple

import numpy as np

from spi3.errors import DataGapError
from spi3.raster import RasterImage, RasterSequence


def add_months(d: date, n: int) -> date:
    """Shift a first-of-month date by n calendar months."""
    k = d.year * 12 + (d.month - 1) + n
    return date(k // 12, k % 12 + 1, 1)


def month_starts(start: date, end: date) -> List[date]:
    """First day of every calendar month from start's month to end's month."""
    first = date(start.year, start.month, 1)
    n = (end.year - first.year) * 12 + (end.month - first.month)
    return [add_months(first, i) for i in range(n + 1)]


def window_bounds(month: date, window_months: int = 3) -> Tuple[date, date]:
    """Half-open daily window [start, end) feeding the aggregate for month."""
    return add_months(month, -(window_months - 1)), month + timedelta(days=1)


def clipped_window(month: date, range_start: date, window_months: int = 3) -> Tuple[date, date]:
    """window_bounds(month) with its start limited to range_start."""
    w_start, w_end = window_bounds(month, window_months)
    return max(w_start, range_start), w_end


def fetch_range(start: date, end: date, window_months: int = 3) -> Tuple[date, date]:
    """Daily range [first month, end of last window) used to aggregate [start, end]."""
    months = month_starts(start, end)
    return months[0], window_bounds(months[-1], window_months)[1]


def nansum_or_nan(stack: np.ndarray) -> np.ndarray:
    """Sum over axis 0 ignoring NaN; pixels with no valid value stay NaN."""
    valid = ~np.isnan(stack)
    total = np.where(valid, stack, 0.0).sum(axis=0)
    return np.where(valid.any(axis=0), total, np.nan)


def aggregate_rolling(
    daily: RasterSequence,
    start: date,
    end: date,
    *,
    window_months: int = 3,
    band: str = "precipitation",
) -> RasterSequence:
    """Build the monthly rolling-sum sequence.

    Args:
        daily: Daily precipitation sequence (images before start are ignored).
        start: First month of the range (first day of month).
        end: Any date inside the last month of the range (inclusive).
        window_months: Window length in calendar months.
        band: Band to sum; the output band carries the same name.

    Returns:
        One image per calendar month, timestamped on the first of the month.

    Raises:
        DataGapError: A month's window contains no daily image at all.
    """
    months = month_starts(start, end)
    out: List[RasterImage] = []
    for month in months:
        w_start, w_end = clipped_window(month, months[0], window_months)
        window = daily.filter_date(w_start, w_end)
        if len(window) == 0:
            raise DataGapError(
                f"No daily rasters in [{w_start}, {w_end}) for month {month:%Y-%m}"
            )
        total = nansum_or_nan(window.stack(band))
        out.append(window[0].derive(total, [band], timestamp=month))

    print(f"[AGG] {len(out)} monthly {window_months}-month sums ({months[0]:%Y-%m} .. {months[-1]:%Y-%m})")
    return RasterSequence(tuple(out))
