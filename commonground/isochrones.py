"""
Isochrone providers: where a constraint's region comes from.

The engine only needs ``fetch_region(lat, lon, minutes, mode)`` returning a
GeoJSON geometry or raising :class:`RegionFetchError`. Providers are handed
to the session manager explicitly; nothing here is a process-wide client.
"""
from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional, Protocol

import requests

from commonground.config import (
    HTTP_TIMEOUT_SEC, MAPBOX_BASE_URL, MAPBOX_TOKEN, MAX_MINUTES, MIN_MINUTES,
    REGION_DIR, REGION_TTL_H,
)
from commonground.errors import RegionFetchError
from commonground.geometry import validate
from commonground.models import TransportMode
from commonground.util import cache as c

logger = logging.getLogger(__name__)


class IsochroneProvider(Protocol):
    def fetch_region(self, latitude: float, longitude: float,
                     max_minutes: int, mode: TransportMode) -> dict:
        ...


def check_params(latitude: float, longitude: float,
                 max_minutes: int, mode) -> TransportMode:
    """Reject what no provider could answer; returns the parsed mode."""
    bad = RegionFetchError.INVALID_PARAMETERS
    if not MIN_MINUTES <= max_minutes <= MAX_MINUTES:
        raise RegionFetchError(bad, f"minutes must be between {MIN_MINUTES} and {MAX_MINUTES}")
    if not -90 <= latitude <= 90:
        raise RegionFetchError(bad, "latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise RegionFetchError(bad, "longitude must be between -180 and 180")
    try:
        return TransportMode(mode)
    except ValueError:
        raise RegionFetchError(bad, 'mode must be "driving" or "cycling"') from None


def _reason_for(status: int) -> str:
    if status == 429:
        return RegionFetchError.RATE_LIMITED
    if status in (400, 404, 422):
        return RegionFetchError.INVALID_PARAMETERS
    return RegionFetchError.UPSTREAM_UNAVAILABLE


# ─── Mapbox isochrone API ───────────────────────────────────────────────────
class MapboxIsochroneProvider:

    def __init__(self, token: str = MAPBOX_TOKEN, *,
                 base_url: str = MAPBOX_BASE_URL,
                 timeout: float = HTTP_TIMEOUT_SEC,
                 session: Optional[requests.Session] = None):
        self.token    = token
        self.base_url = base_url.rstrip("/")
        self.timeout  = timeout
        self.session  = session or requests.Session()
        if not token:
            logger.warning("[Iso] no Mapbox token configured – fetches will fail")

    def fetch_region(self, latitude: float, longitude: float,
                     max_minutes: int, mode: TransportMode) -> dict:
        mode = check_params(latitude, longitude, max_minutes, mode)
        if not self.token:
            raise RegionFetchError(RegionFetchError.UPSTREAM_UNAVAILABLE,
                                   "MAPBOX_TOKEN not configured")

        url = f"{self.base_url}/{mode.value}/{longitude},{latitude}"
        params = {
            "contours_minutes": max_minutes,
            "polygons": "true",
            "access_token": self.token,
        }
        try:
            r = self.session.get(url, params=params, timeout=self.timeout,
                                 headers={"User-Agent": "CommonGround/1.0"})
            r.raise_for_status()
            js = r.json()
        except requests.HTTPError as e:
            st = e.response.status_code if e.response is not None else 0
            reason = _reason_for(st)
            logger.warning("[Iso] HTTP %s – %s", st, reason)
            raise RegionFetchError(reason, f"Mapbox HTTP {st}") from e
        except (requests.RequestException, ValueError) as e:
            logger.warning("[Iso] EXC – %s", e)
            raise RegionFetchError(RegionFetchError.UPSTREAM_UNAVAILABLE, str(e)) from e

        features = js.get("features") or []
        if not features or not features[0].get("geometry"):
            logger.warning("[Iso] Mapbox 200 but empty. First bytes: %s", r.text[:200])
            raise RegionFetchError(RegionFetchError.UPSTREAM_UNAVAILABLE,
                                   "empty isochrone response")
        return features[0]["geometry"]


# ─── on-disk cache in front of any provider ─────────────────────────────────
class CachedIsochroneProvider:
    """
    Regions keyed by (origin, minutes, mode). Same key → same region, so a
    cache hit never changes what a full recompute would produce. Failures
    are not cached.
    """

    def __init__(self, inner: IsochroneProvider, *,
                 ttl_h: int = REGION_TTL_H, store: Path = REGION_DIR):
        self.inner = inner
        self.ttl_h = ttl_h
        self.store = store

    @staticmethod
    def cache_key(latitude: float, longitude: float,
                  max_minutes: int, mode: TransportMode) -> str:
        mode = TransportMode(mode)
        return hashlib.sha1(
            f"{latitude:.6f},{longitude:.6f}@{max_minutes}min/{mode.value}".encode()
        ).hexdigest()

    def fetch_region(self, latitude: float, longitude: float,
                     max_minutes: int, mode: TransportMode) -> dict:
        key = self.cache_key(latitude, longitude, max_minutes, mode)
        self.store.mkdir(parents=True, exist_ok=True)
        with c.with_lock(c.cache_path(key, self.store)):
            geometry = c.load(key, self.ttl_h, self.store)
            if geometry is not None and validate(geometry):
                logger.debug("[Cache] hit %s", key[:10])
                return geometry
            geometry = self.inner.fetch_region(latitude, longitude, max_minutes, mode)
            if validate(geometry):
                c.save(key, geometry, self.store)
            else:
                logger.warning("[Cache] not storing invalid region for %s", key[:10])
        return geometry
