"""
Small wrapper around json-on-disk with atomic writes & TTL checking.
"""
from __future__ import annotations
import datetime as _dt
import json, logging, os, shutil, tempfile
from pathlib import Path
from typing import Any
from filelock import FileLock

from commonground.config import REGION_DIR, CACHE_PURGE_D, LOCK_TIMEOUT_SEC

logger = logging.getLogger(__name__)

# ───────────────────────────────── helpers ──────────────────────────────────
def _now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)

def _atomic_write(path: Path, data: dict) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(path.parent))
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        json.dump(data, fh, ensure_ascii=False)
    shutil.move(tmp, path)                       # atomic rename on same FS

def _read(path: Path) -> tuple[_dt.datetime, Any]:
    meta = json.loads(path.read_text(encoding="utf-8"))
    return _dt.datetime.fromisoformat(meta["ts"]), meta["raw"]

def _purge_old_cache(store: Path) -> None:
    cutoff = _now() - _dt.timedelta(days=CACHE_PURGE_D)
    for fp in store.glob("*.json"):
        try:
            ts, _ = _read(fp)
            if ts < cutoff:
                fp.unlink(missing_ok=True)
        except (OSError, ValueError, KeyError, TypeError):
            fp.unlink(missing_ok=True)

# ───────────────────────────────── public api ───────────────────────────────
def cache_path(key: str, store: Path = REGION_DIR) -> Path:
    return store / f"{key}.json"

def load(key: str, max_age_h: int, store: Path = REGION_DIR) -> Any | None:
    fn = cache_path(key, store)
    if not fn.exists():
        return None
    try:
        ts, raw = _read(fn)
    except (ValueError, KeyError, TypeError) as exc:
        logger.warning("[Cache] unreadable %s – %s", fn.name, exc)
        return None
    if _now() - ts < _dt.timedelta(hours=max_age_h):
        return raw
    return None

def save(key: str, raw: Any, store: Path = REGION_DIR) -> None:
    store.mkdir(parents=True, exist_ok=True)
    fn = cache_path(key, store)
    payload = {"ts": _now().isoformat(), "raw": raw}
    _atomic_write(fn, payload)
    _purge_old_cache(store)

def with_lock(path: Path) -> FileLock:
    """Return a FileLock guarding *path* (json) with sane timeout."""
    return FileLock(str(path) + ".lock", timeout=LOCK_TIMEOUT_SEC)
