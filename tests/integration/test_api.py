"""HTTP surface over a manager backed by the fake provider."""

from __future__ import annotations

import pytest

from commonground.app import create_app

BODY_A = {"name": "Ana", "address": "Home 1", "latitude": 1.0, "longitude": 1.0,
          "maxMinutes": 10, "transportMode": "driving"}
BODY_B = {"name": "Bo", "address": "Home 2", "latitude": 2.0, "longitude": 2.0,
          "maxMinutes": 10, "transportMode": "cycling"}


@pytest.fixture
def client(manager):
    app = create_app(manager)
    app.config.update(TESTING=True)
    return app.test_client()


@pytest.fixture
def sid(client):
    r = client.post("/api/sessions")
    assert r.status_code == 201
    return r.get_json()["sessionId"]


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.get_json()["status"] == "ok"


def test_add_two_and_read_intersection(client, manager, sid):
    r = client.post(f"/api/sessions/{sid}/constraints", json=BODY_A)
    assert r.status_code == 201
    assert r.get_json()["provisional"] is True
    client.post(f"/api/sessions/{sid}/constraints", json=BODY_B)
    assert manager.wait_for_fetches(sid, timeout=5)

    data = client.get(f"/api/sessions/{sid}/intersection").get_json()
    assert data["kind"] == "region"
    assert data["areaKm2"] > 0
    assert data["centroid"]["latitude"] == pytest.approx(1.5, abs=1e-3)
    assert data["region"]["type"] == "Polygon"
    assert data["provisional"] is False

    session = client.get(f"/api/sessions/{sid}").get_json()
    assert [c["name"] for c in session["constraints"]] == ["Ana", "Bo"]
    assert {c["regionStatus"] for c in session["constraints"]} == {"ready"}
    assert len(session["regions"]["features"]) == 2
    assert session["intersection"]["kind"] == "region"


def test_update_and_delete(client, manager, sid):
    cid = client.post(f"/api/sessions/{sid}/constraints", json=BODY_A).get_json()["constraint"]["id"]
    assert manager.wait_for_fetches(sid, timeout=5)

    r = client.put(f"/api/sessions/{sid}/constraints/{cid}", json={"name": "Ana B."})
    assert r.status_code == 200
    assert r.get_json()["constraint"]["name"] == "Ana B."
    assert r.get_json()["intersection"]["kind"] == "single"

    r = client.put(f"/api/sessions/{sid}/constraints/{cid}", json={"maxMinutes": 99})
    assert r.status_code == 400

    r = client.delete(f"/api/sessions/{sid}/constraints/{cid}")
    assert r.status_code == 200
    assert r.get_json()["success"] is True
    assert r.get_json()["intersection"] == {"kind": "none", "provisional": False,
                                            "pending": [], "version": 4}


@pytest.mark.parametrize("changes", [
    {"latitude": "abc"}, {"longitude": None}, {"maxMinutes": "ten"},
])
def test_update_with_non_numeric_field_is_rejected(client, manager, sid, changes):
    cid = client.post(f"/api/sessions/{sid}/constraints", json=BODY_A).get_json()["constraint"]["id"]
    r = client.put(f"/api/sessions/{sid}/constraints/{cid}", json=changes)
    assert r.status_code == 400
    assert "error" in r.get_json()
    assert manager.current_constraints(sid)[0].latitude == 1.0


def test_sync_endpoint(client, manager, sid):
    rows = [dict(BODY_A, id="a"), dict(BODY_B, id="b")]
    r = client.post(f"/api/sessions/{sid}/sync", json={"constraints": rows})
    assert r.status_code == 200
    assert manager.wait_for_fetches(sid, timeout=5)
    assert client.get(f"/api/sessions/{sid}/intersection").get_json()["kind"] == "region"

    r = client.post(f"/api/sessions/{sid}/sync", json={"constraints": [BODY_A]})
    assert r.status_code == 400


@pytest.mark.parametrize("method,path,body,status", [
    ("get", "/api/sessions/missing", None, 404),
    ("get", "/api/sessions/missing/intersection", None, 404),
    ("post", "/api/sessions/missing/constraints", BODY_A, 404),
    ("delete", "/api/sessions/{sid}/constraints/missing", None, 404),
    ("post", "/api/sessions/{sid}/constraints", {"name": "x"}, 400),
    ("post", "/api/sessions/{sid}/constraints", dict(BODY_A, transportMode="walking"), 400),
    ("put", "/api/sessions/{sid}/constraints/whatever", {}, 400),
    ("post", "/api/sessions/{sid}/sync", {"constraints": "nope"}, 400),
])
def test_errors(client, sid, method, path, body, status):
    r = getattr(client, method)(path.format(sid=sid), json=body)
    assert r.status_code == status
    assert "error" in r.get_json()
