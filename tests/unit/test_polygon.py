"""Region → GeoJSON helpers used for published results and map layers."""

from __future__ import annotations

import inspect

import pytest
from shapely.geometry import MultiPolygon, Polygon, box

from commonground.util.polygon import region_feature, region_geojson


def test_region_geojson_rounds_coordinates():
    js = region_geojson(box(0.1234567, 0, 1, 1), precision=3)
    assert js["type"] == "Polygon"
    assert [0.123, 0.0] in js["coordinates"][0]


def test_region_geojson_keeps_every_vertex():
    ring = [(0, 0), (1, 0), (1, 1e-7), (2, 0), (2, 2), (0, 2)]
    js = region_geojson(Polygon(ring), precision=9)
    assert len(js["coordinates"][0]) == len(ring) + 1
    assert list(inspect.signature(region_geojson).parameters) == ["geom", "precision"]


def test_region_feature_carries_properties():
    feature = region_feature(MultiPolygon([box(0, 0, 1, 1), box(2, 2, 3, 3)]), id="a")
    assert feature["geometry"]["type"] == "MultiPolygon"
    assert feature["properties"] == {"id": "a"}


def test_empty_geometry_is_refused():
    with pytest.raises(ValueError):
        region_geojson(Polygon())
