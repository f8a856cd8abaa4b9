#!/usr/bin/env python3
"""spi3.config

Pipeline configuration: YAML loading, parsing into frozen dataclasses, and
validation.

The configuration is loaded once, validated before any raster is read, and
never mutated afterwards (use dataclasses.replace() for CLI overrides).

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Structural problems raise ConfigurationError from validate_config(),
  before the pipeline touches any data.
- Drought periods and classes default to the Marsabit study setup when the
  YAML omits them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from spi3.errors import ConfigurationError

BBox = Tuple[float, float, float, float]


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises ConfigurationError on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise ConfigurationError(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected YAML mapping at {path}")
    return data


# -----------------------------------------------------------------------------
# Bounding box utilities
# -----------------------------------------------------------------------------

def coerce_bbox(x: Any) -> Optional[BBox]:
    """Try to coerce [xmin, ymin, xmax, ymax] into a bbox tuple.

    Returns None if input is invalid or missing.
    """
    if x is None:
        return None
    if isinstance(x, (list, tuple)) and len(x) == 4:
        try:
            xmin, ymin, xmax, ymax = map(float, x)
        except (TypeError, ValueError):
            return None
        return (xmin, ymin, xmax, ymax)
    return None


def format_bbox(b: BBox, precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


# -----------------------------------------------------------------------------
# Config records
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class DroughtPeriod:
    """Named half-open date interval [start, end)."""

    name: str
    start: date
    end: date


@dataclass(frozen=True)
class DroughtClass:
    """Half-open SPI interval [min_value, max_value) labelled with class_id."""

    min_value: float
    max_value: float
    label: str
    class_id: int

    def contains(self, value: float) -> bool:
        return self.min_value <= value < self.max_value


@dataclass(frozen=True)
class SourceConfig:
    directory: Optional[Path] = None
    pattern: str = "*.tif"
    band: str = "precipitation"
    bounds: Optional[BBox] = None


@dataclass(frozen=True)
class StudyAreaConfig:
    path: Optional[Path] = None
    layer: Optional[str] = None
    field: Optional[str] = None
    value: Optional[str] = None
    bounds: Optional[BBox] = None


@dataclass(frozen=True)
class OutputConfig:
    dir: Path = Path("data/processed/spi3")
    samples_csv: str = "SPI3_Training_Clipped.csv"
    composite_tif: str = "SPI3_Drought_Composite_Clipped.tif"
    series_csv: str = "SPI3_Series.csv"
    max_pixels: float = 1e13


DEFAULT_DROUGHT_PERIODS: Tuple[DroughtPeriod, ...] = (
    DroughtPeriod("2005 Drought", date(2004, 6, 1), date(2006, 1, 31)),
    DroughtPeriod("2010-2011 Drought", date(2010, 6, 1), date(2011, 12, 31)),
    DroughtPeriod("2016-2017 Drought", date(2016, 6, 1), date(2017, 12, 31)),
    DroughtPeriod("2020-2022 Drought", date(2020, 6, 1), date(2022, 12, 31)),
)

DEFAULT_DROUGHT_CLASSES: Tuple[DroughtClass, ...] = (
    DroughtClass(-0.4, -0.3, "Severe to Extreme Drought", 0),
    DroughtClass(-0.3, -0.2, "Moderate Drought", 1),
    DroughtClass(-0.2, 0.0, "Mild Drought", 2),
    DroughtClass(0.0, 0.06, "Near Normal Conditions", 3),
)


@dataclass(frozen=True)
class PipelineConfig:
    start: date
    end: date
    window_months: int = 3
    std_floor: float = 0.001
    ddof: int = 1
    scale: float = 1000.0
    num_samples_per_class: int = 200
    seed: Optional[int] = None
    best_effort: bool = True
    periods: Tuple[DroughtPeriod, ...] = DEFAULT_DROUGHT_PERIODS
    classes: Tuple[DroughtClass, ...] = DEFAULT_DROUGHT_CLASSES
    source: SourceConfig = field(default_factory=SourceConfig)
    study_area: StudyAreaConfig = field(default_factory=StudyAreaConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def spi_band(self) -> str:
        return f"SPI-{self.window_months}"


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def _as_date(x: Any, what: str) -> date:
    # PyYAML already turns unquoted ISO dates into date objects
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    if isinstance(x, str):
        try:
            return date.fromisoformat(x.strip())
        except ValueError:
            pass
    raise ConfigurationError(f"{what}: expected an ISO date (YYYY-MM-DD), got {x!r}")


def _as_path(x: Any) -> Optional[Path]:
    return Path(str(x)) if x else None


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    block = data.get(key) or {}
    if not isinstance(block, dict):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return block


def _parse_periods(raw: Any) -> Tuple[DroughtPeriod, ...]:
    if not isinstance(raw, list):
        raise ConfigurationError("'drought_periods' must be a list")
    periods: List[DroughtPeriod] = []
    for i, p in enumerate(raw):
        if not isinstance(p, dict):
            raise ConfigurationError(f"drought_periods[{i}] must be a mapping")
        periods.append(
            DroughtPeriod(
                name=str(p.get("name") or ""),
                start=_as_date(p.get("start"), f"drought_periods[{i}].start"),
                end=_as_date(p.get("end"), f"drought_periods[{i}].end"),
            )
        )
    return tuple(periods)


def _parse_classes(raw: Any) -> Tuple[DroughtClass, ...]:
    if not isinstance(raw, list):
        raise ConfigurationError("'drought_classes' must be a list")
    classes: List[DroughtClass] = []
    for i, c in enumerate(raw):
        if not isinstance(c, dict):
            raise ConfigurationError(f"drought_classes[{i}] must be a mapping")
        try:
            classes.append(
                DroughtClass(
                    min_value=float(c["min"]),
                    max_value=float(c["max"]),
                    label=str(c.get("label", "")),
                    class_id=int(c["class"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"drought_classes[{i}] needs numeric min/max and integer class: {e}") from e
    return tuple(classes)


def parse_config(data: Dict[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from a parsed YAML mapping (no validation)."""
    dr = _section(data, "date_range")
    src = _section(data, "source")
    aoi = _section(data, "study_area")
    out = _section(data, "output")

    seed = data.get("seed")
    try:
        cfg = PipelineConfig(
            start=_as_date(dr.get("start"), "date_range.start"),
            end=_as_date(dr.get("end"), "date_range.end"),
            window_months=int(data.get("window_months", 3)),
            std_floor=float(data.get("std_floor", 0.001)),
            ddof=int(data.get("ddof", 1)),
            scale=float(data.get("scale", 1000.0)),
            num_samples_per_class=int(data.get("num_samples_per_class", 200)),
            seed=None if seed is None else int(seed),
            best_effort=bool(data.get("best_effort", True)),
            periods=_parse_periods(data["drought_periods"]) if "drought_periods" in data else DEFAULT_DROUGHT_PERIODS,
            classes=_parse_classes(data["drought_classes"]) if "drought_classes" in data else DEFAULT_DROUGHT_CLASSES,
            source=SourceConfig(
                directory=_as_path(src.get("directory")),
                pattern=str(src.get("pattern", "*.tif")),
                band=str(src.get("band", "precipitation")),
                bounds=coerce_bbox(src.get("bounds")),
            ),
            study_area=StudyAreaConfig(
                path=_as_path(aoi.get("path")),
                layer=aoi.get("layer"),
                field=aoi.get("field"),
                value=None if aoi.get("value") is None else str(aoi.get("value")),
                bounds=coerce_bbox(aoi.get("bounds")),
            ),
            output=OutputConfig(
                dir=Path(str(out.get("dir", OutputConfig.dir))),
                samples_csv=str(out.get("samples_csv", OutputConfig.samples_csv)),
                composite_tif=str(out.get("composite_tif", OutputConfig.composite_tif)),
                series_csv=str(out.get("series_csv", OutputConfig.series_csv)),
                max_pixels=float(out.get("max_pixels", OutputConfig.max_pixels)),
            ),
        )
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid config value: {e}") from e
    return cfg


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def validate_classes(classes: Tuple[DroughtClass, ...]) -> None:
    """Classes must be well-formed, uniquely labelled and pairwise disjoint."""
    if not classes:
        raise ConfigurationError("At least one drought class is required")
    ids = [c.class_id for c in classes]
    if len(set(ids)) != len(ids):
        raise ConfigurationError(f"Duplicate drought class ids: {ids}")
    for c in classes:
        if not c.min_value < c.max_value:
            raise ConfigurationError(
                f"Class {c.class_id} ({c.label}): min {c.min_value} must be < max {c.max_value}"
            )
    ordered = sorted(classes, key=lambda c: c.min_value)
    for a, b in zip(ordered, ordered[1:]):
        # half-open intervals: touching bounds are fine
        if b.min_value < a.max_value:
            raise ConfigurationError(
                f"Drought classes {a.class_id} [{a.min_value}, {a.max_value}) and "
                f"{b.class_id} [{b.min_value}, {b.max_value}) overlap"
            )


def validate_periods(periods: Tuple[DroughtPeriod, ...]) -> None:
    if not periods:
        raise ConfigurationError("At least one drought period is required")
    for p in periods:
        if not p.name:
            raise ConfigurationError(f"Drought period {p.start}..{p.end} has no name")
        if not p.start < p.end:
            raise ConfigurationError(f"Drought period '{p.name}': start {p.start} must be < end {p.end}")


def validate_config(cfg: PipelineConfig) -> PipelineConfig:
    """Check a config before running anything. Returns cfg unchanged."""
    if cfg.start.day != 1:
        raise ConfigurationError(f"date_range.start must be the first day of a month, got {cfg.start}")
    if cfg.end < cfg.start:
        raise ConfigurationError(f"Degenerate date range: end {cfg.end} is before start {cfg.start}")
    if cfg.window_months < 1:
        raise ConfigurationError(f"window_months must be >= 1, got {cfg.window_months}")
    if not cfg.std_floor > 0:
        raise ConfigurationError(f"std_floor must be positive, got {cfg.std_floor}")
    if cfg.ddof < 0:
        raise ConfigurationError(f"ddof must be >= 0, got {cfg.ddof}")
    if not cfg.scale > 0:
        raise ConfigurationError(f"scale must be positive, got {cfg.scale}")
    if cfg.num_samples_per_class < 1:
        raise ConfigurationError(f"num_samples_per_class must be >= 1, got {cfg.num_samples_per_class}")
    if not cfg.output.max_pixels > 0:
        raise ConfigurationError(f"output.max_pixels must be positive, got {cfg.output.max_pixels}")
    validate_periods(cfg.periods)
    validate_classes(cfg.classes)
    return cfg


def load_pipeline_config(path: Path) -> PipelineConfig:
    """Load, parse and validate a pipeline YAML."""
    return validate_config(parse_config(load_yaml(path)))


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_CONFIG_YAML = Path("config/spi3.yaml")
