#!/usr/bin/env python3
"""study_area.py

Study-area geometry: loading it once from a vector file (or a bbox) and
masking rasters to it.

The geometry is a single shapely (Multi)Polygon in EPSG:4326, the CRS of the
precipitation rasters. It is read-only for the rest of the pipeline.

Notes:
- Vector files are read with geopandas, so anything GDAL/OGR reads works
  (GeoPackage, shapefile, GeoJSON).
- `field`/`value` pick one feature (e.g. COUNTY == "Marsabit"); otherwise
  all features are dissolved into one geometry.
"""

from __future__ import annotations

from typing import Optional

import geopandas as gpd
import numpy as np
from rasterio.features import geometry_mask
from shapely.geometry import box, mapping
from shapely.geometry.base import BaseGeometry

from spi3.config import StudyAreaConfig
from spi3.errors import ConfigurationError
from spi3.raster import RasterImage

TARGET_CRS = "EPSG:4326"


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Fix invalid geometries (geopandas >= 0.13, else buffer(0))."""
    gdf = gdf.copy()
    if hasattr(gdf.geometry, "make_valid"):
        gdf["geometry"] = gdf.geometry.make_valid()
    else:
        gdf["geometry"] = gdf.geometry.buffer(0)
    return gdf


def _dissolve(gdf: gpd.GeoDataFrame) -> BaseGeometry:
    # union_all() replaced unary_union in geopandas 1.0
    if hasattr(gdf.geometry, "union_all"):
        return gdf.geometry.union_all()
    return gdf.geometry.unary_union


def load_study_area(cfg: StudyAreaConfig) -> BaseGeometry:
    """Resolve the study-area geometry from config.

    A vector `path` wins over `bounds`. Raises ConfigurationError when
    neither is usable.
    """
    if cfg.path is not None:
        if not cfg.path.exists():
            raise ConfigurationError(f"Study area file not found: {cfg.path}")
        gdf = gpd.read_file(cfg.path, layer=cfg.layer) if cfg.layer else gpd.read_file(cfg.path)
        if gdf.crs is None:
            raise ConfigurationError(f"Study area has no CRS: {cfg.path}")

        if cfg.field:
            if cfg.field not in gdf.columns:
                raise ConfigurationError(
                    f"study_area.field '{cfg.field}' not found. Available columns: {list(gdf.columns)}"
                )
            gdf = gdf[gdf[cfg.field].astype(str) == str(cfg.value)]

        if gdf.empty:
            raise ConfigurationError(f"No study-area features selected from {cfg.path}")

        gdf = _make_valid(gdf.to_crs(TARGET_CRS))
        geom = _dissolve(gdf)
    elif cfg.bounds is not None:
        geom = box(*cfg.bounds)
    else:
        raise ConfigurationError("study_area needs either 'path' or 'bounds'")

    if geom.is_empty:
        raise ConfigurationError("Study area geometry is empty")
    return geom


def inside_mask(image: RasterImage, geometry: BaseGeometry) -> np.ndarray:
    """Boolean (rows, cols) array, True where the pixel centre is inside geometry."""
    return geometry_mask(
        [mapping(geometry)],
        out_shape=image.shape,
        transform=image.transform,
        invert=True,
    )


def clip(image: RasterImage, geometry: BaseGeometry, mask: Optional[np.ndarray] = None) -> RasterImage:
    """Mask every band of image to geometry (outside pixels become NaN)."""
    inside = inside_mask(image, geometry) if mask is None else mask
    data = np.where(inside[np.newaxis, ...], image.data, np.nan)
    return image.derive(data, image.band_names, timestamp=image.timestamp)
