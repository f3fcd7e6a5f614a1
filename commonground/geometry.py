"""
Region primitives: ingest, validation, winding and bounding boxes.

A *region* is an immutable shapely ``Polygon`` or ``MultiPolygon`` in
(lon, lat) order. Anything coming from an isochrone provider goes through
:func:`parse_region` before the intersection engine ever sees it.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Sequence, Tuple, Union

from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from commonground.errors import InvalidGeometry

logger = logging.getLogger(__name__)

Region = Union[Polygon, MultiPolygon]
BBox = Tuple[float, float, float, float]


# ─── raw GeoJSON checks ─────────────────────────────────────────────────────
def _geometry_dict(geometry: Any) -> dict:
    if isinstance(geometry, BaseGeometry):
        return dict(mapping(geometry))
    if not isinstance(geometry, dict):
        raise InvalidGeometry(f"unsupported geometry object {type(geometry).__name__}")
    if geometry.get("type") == "Feature":
        return _geometry_dict(geometry.get("geometry"))
    return geometry


def _check_ring(ring: Sequence, allow_flat: bool = False) -> List[Tuple[float, float]] | None:
    if len(ring) < 4:
        raise InvalidGeometry(f"ring has {len(ring)} points, need at least 4")
    pts = []
    for pos in ring:
        if len(pos) < 2:
            raise InvalidGeometry("position with fewer than 2 coordinates")
        lon, lat = float(pos[0]), float(pos[1])
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise InvalidGeometry("non-finite coordinate")
        pts.append((lon, lat))
    if pts[0] != pts[-1]:
        raise InvalidGeometry("ring is not closed")
    if len(set(pts[:-1])) < 3:
        raise InvalidGeometry("ring has fewer than 3 distinct vertices")
    if Polygon(pts).area == 0:
        if allow_flat:
            return None
        raise InvalidGeometry("ring has zero area")
    return pts


def _build_polygon(rings: Sequence) -> Polygon | None:
    """
    Return None for an empty component: no rings, or an outer ring that
    encloses no area. A zero-area hole is still an error.
    """
    if len(rings) == 0:
        return None
    shell = _check_ring(rings[0], allow_flat=True)
    if shell is None:
        return None
    holes = [_check_ring(r) for r in rings[1:]]
    return Polygon(shell, holes)


def _build(geometry: dict) -> Region:
    kind   = geometry.get("type")
    coords = geometry.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) == 0:
        raise InvalidGeometry("empty coordinate array")

    try:
        if kind == "Polygon":
            parts = [_build_polygon(coords)]
        elif kind == "MultiPolygon":
            parts = [_build_polygon(rings) for rings in coords]
        else:
            raise InvalidGeometry(f"unsupported geometry type {kind!r}")
    except (TypeError, ValueError) as exc:
        if isinstance(exc, InvalidGeometry):
            raise
        raise InvalidGeometry(f"malformed coordinates: {exc}") from exc

    parts = [p for p in parts if p is not None]
    if not parts:
        raise InvalidGeometry("geometry has no non-empty polygon component")

    region: Region = parts[0] if kind == "Polygon" else MultiPolygon(parts)
    if not region.is_valid:
        raise InvalidGeometry("self-intersecting or overlapping boundary")
    return region


# ─── public api ─────────────────────────────────────────────────────────────
def parse_region(geometry: Any) -> Region:
    """
    Turn a GeoJSON geometry / Feature (or a shapely geometry) into a
    validated, winding-normalized region. Raises :class:`InvalidGeometry`.
    """
    return normalize_winding(_build(_geometry_dict(geometry)))


def validate(geometry: Any) -> bool:
    """Fail-closed check: ``False`` for anything :func:`parse_region` rejects."""
    try:
        _build(_geometry_dict(geometry))
    except InvalidGeometry as exc:
        logger.debug("[Geom] rejected: %s", exc)
        return False
    return True


def normalize_winding(region: Region) -> Region:
    """Outer rings counter-clockwise, holes clockwise. Area is unchanged."""
    if isinstance(region, Polygon):
        return orient(region, sign=1.0)
    if isinstance(region, MultiPolygon):
        return MultiPolygon([orient(p, sign=1.0) for p in region.geoms])
    raise InvalidGeometry(f"not a polygonal region: {region.geom_type}")


def bounding_box(region: Region) -> BBox:
    min_lon, min_lat, max_lon, max_lat = region.bounds
    return (min_lon, min_lat, max_lon, max_lat)


def boxes_overlap(a: Region, b: Region, epsilon: float = 0.0) -> bool:
    """
    True when the boxes share more than an ``epsilon``-wide strip. Boxes
    that merely touch cannot enclose a common area.
    """
    a0, a1, a2, a3 = bounding_box(a)
    b0, b1, b2, b3 = bounding_box(b)
    return (a0 < b2 - epsilon and b0 < a2 - epsilon and
            a1 < b3 - epsilon and b1 < a3 - epsilon)


def polygon_parts(geometry: BaseGeometry) -> List[Polygon]:
    """Flatten any geometry (collections included) to its non-empty polygons."""
    if geometry is None or geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, (MultiPolygon, GeometryCollection)):
        out: List[Polygon] = []
        for g in geometry.geoms:
            out.extend(polygon_parts(g))
        return out
    return []                                   # points / lines carry no area


def from_parts(parts: Iterable[Polygon]) -> Region | None:
    parts = list(parts)
    if not parts:
        return None
    return parts[0] if len(parts) == 1 else MultiPolygon(parts)
