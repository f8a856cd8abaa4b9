#!/usr/bin/env python3
"""spi3.errors

Error kinds shared by the SPI pipeline.

- DataGapError         → a required window/period has no raster coverage
- ConfigurationError   → bad YAML, overlapping classes, degenerate dates
- ExportTooLargeError  → raster export above the pixel cap
- InsufficientSamplesWarning → a class yielded fewer points than requested

The warning is never raised by the sampler; instances travel with the
SampleSet so callers can inspect them.
"""

from __future__ import annotations


class Spi3Error(Exception):
    """Base class for pipeline errors."""


class DataGapError(Spi3Error):
    """No source coverage for a required window."""


class ConfigurationError(Spi3Error, ValueError):
    """Malformed configuration, detected before the pipeline runs."""


class ExportTooLargeError(Spi3Error):
    """Raster export exceeds the configured pixel cap."""

    def __init__(self, n_pixels: int, max_pixels: float):
        super().__init__(
            f"Export of {n_pixels} pixels exceeds max_pixels={max_pixels:g}"
        )
        self.n_pixels = n_pixels
        self.max_pixels = max_pixels


class InsufficientSamplesWarning(UserWarning):
    """A drought class had fewer eligible pixels than requested."""

    def __init__(self, class_id: int, label: str, requested: int, available: int):
        super().__init__(
            f"class {class_id} ({label}): {available} eligible pixels, {requested} requested"
        )
        self.class_id = class_id
        self.label = label
        self.requested = requested
        self.available = available
