"""pytest shared fixtures – fake isochrone provider, managers, shapes."""

from __future__ import annotations

import os
import tempfile
import threading

# keep the import-time cache folders out of the source tree
os.environ.setdefault("COMMONGROUND_CACHE_DIR", tempfile.mkdtemp(prefix="commonground-"))

import pytest

from commonground.errors import RegionFetchError
from commonground.models import Constraint
from commonground.sessions import ConstraintSetManager


def square_geojson(x0: float, y0: float, x1: float, y1: float) -> dict:
    """Plain-list GeoJSON, as it would come off the wire."""
    ring = [[x0, y0], [x1, y0], [x1, y1], [x0, y1], [x0, y0]]
    return {"type": "Polygon", "coordinates": [ring]}


def same_region(a, b, tol: float = 1e-9) -> bool:
    return a.symmetric_difference(b).area <= tol


class SquareProvider:
    """
    Fake isochrone: a square centred on the origin, half-width minutes/10
    degrees. Origins can be made to fail, return fixed geometry, or block
    on an event until the test releases them.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.failures: dict[tuple, Exception] = {}
        self.overrides: dict[tuple, dict] = {}
        self.gates: dict[tuple, threading.Event] = {}
        self._lock = threading.Lock()

    def hold(self, lat: float, lon: float, minutes: int) -> threading.Event:
        gate = threading.Event()
        self.gates[(lat, lon, minutes)] = gate
        return gate

    def fetch_region(self, latitude, longitude, max_minutes, mode):
        with self._lock:
            self.calls.append((latitude, longitude, max_minutes, mode))
        gate = self.gates.get((latitude, longitude, max_minutes))
        if gate is not None:
            gate.wait(5)
        if (latitude, longitude) in self.failures:
            raise self.failures[(latitude, longitude)]
        if (latitude, longitude) in self.overrides:
            return self.overrides[(latitude, longitude)]
        r = max_minutes / 10
        return square_geojson(longitude - r, latitude - r, longitude + r, latitude + r)


def make_constraint(name: str, lat: float, lon: float,
                    minutes: int = 10, mode: str = "driving", **kw) -> Constraint:
    return Constraint(name=name, latitude=lat, longitude=lon,
                      max_minutes=minutes, mode=mode, **kw)


@pytest.fixture
def provider() -> SquareProvider:
    return SquareProvider()


@pytest.fixture
def manager(provider):
    m = ConstraintSetManager(provider, lock_timeout=5)
    yield m
    m.close()


@pytest.fixture
def session_id(manager) -> str:
    return manager.create_session()


@pytest.fixture
def rate_limited() -> RegionFetchError:
    return RegionFetchError(RegionFetchError.RATE_LIMITED, "slow down")
