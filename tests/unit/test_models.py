"""Constraint validation and the published result shape."""

from __future__ import annotations

import pytest
from shapely.geometry import box

from commonground.errors import InvalidConstraint
from commonground.models import (
    Constraint, IntersectionResult, ResultKind, TransportMode, changes_from_dict,
)

from conftest import make_constraint


def test_constraint_coerces_mode_and_keeps_id():
    c = make_constraint("ana", 59.9, 10.7, minutes=30, mode="cycling")
    assert c.mode is TransportMode.CYCLING
    assert c.id
    moved = c.with_changes(name="Ana")
    assert moved.id == c.id
    assert moved.region_key == c.region_key


@pytest.mark.parametrize("kw", [
    {"minutes": 0}, {"minutes": 61}, {"minutes": 12.5}, {"minutes": True},
    {"mode": "walking"}, {"lat": 91.0}, {"lon": -181.0}, {"lat": float("nan")},
    {"lat": "abc"}, {"lon": None}, {"lat": True},
])
def test_constraint_domain_checks(kw):
    args = dict(name="x", lat=0.0, lon=0.0, minutes=10, mode="driving")
    args.update(kw)
    with pytest.raises(InvalidConstraint):
        make_constraint(args["name"], args["lat"], args["lon"],
                        minutes=args["minutes"], mode=args["mode"])


def test_id_cannot_change():
    c = make_constraint("ana", 0, 0)
    with pytest.raises(InvalidConstraint):
        c.with_changes(id="other")


def test_from_dict_accepts_client_payload():
    c = Constraint.from_dict({
        "id": "u1", "name": "Bo", "address": "Storgata 1",
        "latitude": 59.91, "longitude": 10.75,
        "maxMinutes": 25, "transportMode": "driving",
    })
    assert (c.id, c.max_minutes, c.mode) == ("u1", 25, TransportMode.DRIVING)
    assert c.to_dict()["transportMode"] == "driving"
    assert c.to_dict()["maxMinutes"] == 25


@pytest.mark.parametrize("payload", [
    {},
    {"name": "Bo", "latitude": "north", "longitude": 1, "maxMinutes": 5, "mode": "driving"},
    {"name": "Bo", "latitude": 1, "longitude": 1, "mode": "driving"},
])
def test_from_dict_rejects_bad_payload(payload):
    with pytest.raises(InvalidConstraint):
        Constraint.from_dict(payload)


def test_changes_from_dict_maps_names():
    assert changes_from_dict({"maxMinutes": 5, "transportMode": "cycling", "bogus": 1}) == {
        "max_minutes": 5, "mode": "cycling"}


def test_result_shapes():
    assert IntersectionResult.none().to_dict()["kind"] == "none"
    assert "region" not in IntersectionResult.empty().to_dict()

    region = IntersectionResult(ResultKind.REGION, region=box(1, 1, 2, 2),
                                area_km2=12305.1, centroid=(1.5, 1.5),
                                provisional=True, pending=("b",), version=7)
    out = region.to_dict()
    assert out["kind"] == "region"
    assert out["region"]["type"] == "Polygon"
    assert out["areaKm2"] == pytest.approx(12305.1)
    assert out["centroid"] == {"latitude": 1.5, "longitude": 1.5}
    assert out["provisional"] is True
    assert out["pending"] == ["b"]
    assert out["version"] == 7
