"""
Area & centroid of a region.

Both are measured in a Lambert azimuthal equal-area plane centred on the
region, so a square degree near the pole is not counted like one at the
equator. Edges are densified first; a straight lon/lat edge is curved in
the projected plane.
"""
from __future__ import annotations

from dataclasses import replace
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
import shapely
from pyproj import CRS, Transformer
from shapely import segmentize

from commonground.config import DENSIFY_DEG
from commonground.geometry import Region
from commonground.models import IntersectionResult


CRS_WGS84 = "EPSG:4326"


@lru_cache(maxsize=256)
def _transformers(lat0: float, lon0: float) -> Tuple[Transformer, Transformer]:
    laea = CRS.from_proj4(
        f"+proj=laea +lat_0={lat0} +lon_0={lon0} +datum=WGS84 +units=m +no_defs"
    )
    fwd = Transformer.from_crs(CRS_WGS84, laea, always_xy=True)
    inv = Transformer.from_crs(laea, CRS_WGS84, always_xy=True)
    return fwd, inv


def _projected(region: Region):
    min_lon, min_lat, max_lon, max_lat = region.bounds
    # any centre keeps areas exact; rounding just lets the cache hit
    lat0 = round((min_lat + max_lat) / 2, 1)
    lon0 = round((min_lon + max_lon) / 2, 1)
    fwd, inv = _transformers(lat0, lon0)
    dense = segmentize(region, DENSIFY_DEG) if DENSIFY_DEG > 0 else region
    planar = shapely.transform(
        dense, lambda xy: np.column_stack(fwd.transform(xy[:, 0], xy[:, 1])))
    return planar, inv


def area_km2(region: Optional[Region]) -> float:
    """Area in km². ``None`` or an empty region measures 0."""
    if region is None or region.is_empty:
        return 0.0
    planar, _ = _projected(region)
    return max(planar.area, 0.0) / 1_000_000


def centroid(region: Optional[Region]) -> Optional[Tuple[float, float]]:
    """Area-weighted centroid as ``(latitude, longitude)``, holes excluded."""
    if region is None or region.is_empty:
        return None
    planar, inv = _projected(region)
    c = planar.centroid
    if c.is_empty:
        return None
    lon, lat = inv.transform(c.x, c.y)
    return (lat, lon)


def describe(region: Optional[Region]) -> Tuple[float, Optional[Tuple[float, float]]]:
    return area_km2(region), centroid(region)


def with_metrics(result: IntersectionResult) -> IntersectionResult:
    """Attach area and centroid to a result that carries a region."""
    if not result.has_area or result.region is None:
        return result
    area, center = describe(result.region)
    return replace(result, area_km2=area, centroid=center)
