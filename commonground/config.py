"""
Global paths and config switches.
Secrets (the Mapbox token) come from env-vars; everything else has a default.
"""
from pathlib import Path
import os

BASE_DIR   = Path(__file__).resolve().parent
CACHE_DIR  = Path(os.getenv("COMMONGROUND_CACHE_DIR", BASE_DIR / "cache"))
REGION_DIR = CACHE_DIR / "regions"

# create folders on import
for d in (CACHE_DIR, REGION_DIR):
    d.mkdir(parents=True, exist_ok=True)

# ─── isochrone provider ─────────────────────────────────────────────────────
MAPBOX_TOKEN     = os.getenv("MAPBOX_TOKEN", "").strip()
MAPBOX_BASE_URL  = os.getenv("MAPBOX_BASE_URL", "https://api.mapbox.com/isochrone/v1/mapbox")
HTTP_TIMEOUT_SEC = float(os.getenv("COMMONGROUND_HTTP_TIMEOUT", "25"))

#: domain bounds on a single commute declaration
MIN_MINUTES = 1
MAX_MINUTES = 60

# ─── intersection engine ────────────────────────────────────────────────────
#: snapping grid / boundary tolerance, in degrees (1e-9° is ~0.1 mm)
INTERSECTION_EPSILON = float(os.getenv("COMMONGROUND_EPSILON", "1e-9"))

#: max edge length (degrees) before projecting for area/centroid
DENSIFY_DEG = float(os.getenv("COMMONGROUND_DENSIFY_DEG", "0.01"))

# ─── sessions ───────────────────────────────────────────────────────────────
FETCH_WORKERS            = int(os.getenv("COMMONGROUND_FETCH_WORKERS", "8"))
#: a mutation waiting longer than this for its session gives up
SESSION_LOCK_TIMEOUT_SEC = float(os.getenv("COMMONGROUND_SESSION_LOCK_TIMEOUT", "30"))

# ─── region cache ───────────────────────────────────────────────────────────
#: gunicorn workers timeout after 600 s – keep locks safely below that
LOCK_TIMEOUT_SEC = 570

#: how long fetched regions stay fresh on disk
REGION_TTL_H  = int(os.getenv("COMMONGROUND_REGION_TTL_H", "24"))
CACHE_PURGE_D = 7
