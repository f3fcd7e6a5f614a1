"""
Helpers for turning Shapely regions into GeoJSON for rendering collaborators.
"""
from __future__ import annotations
from typing import Any

from shapely.geometry import Polygon, MultiPolygon, mapping


def _round(coords: Any, ndigits: int) -> Any:
    if isinstance(coords, (int, float)):
        return round(float(coords), ndigits)
    return [_round(c, ndigits) for c in coords]


# keep import-footprint tiny – these helpers run on every publish
def region_geojson(geom: "Polygon | MultiPolygon", precision: int = 6) -> dict:
    """
    Return the GeoJSON geometry dict for *geom*, coordinates rounded to
    *precision* decimals (6 ≈ 0.1 m).
    """
    if geom.is_empty:
        raise ValueError("Empty geometry passed to region_geojson")

    js = mapping(geom)
    return {"type": js["type"], "coordinates": _round(js["coordinates"], precision)}


def region_feature(geom: "Polygon | MultiPolygon", **properties: Any) -> dict:
    return {"type": "Feature", "geometry": region_geojson(geom),
            "properties": dict(properties)}
