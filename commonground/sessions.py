"""
Constraint Set Manager – the only writer of a session's constraint set.

Every session keeps an insertion-ordered ``id → entry`` map. An entry holds
the constraint, its region (``None`` while absent) and a fetch *epoch*. The
epoch is bumped every time the region is invalidated; a fetch that comes
back with an older epoch, or for an entry that is gone, is thrown away.

Consistency policy: every change is followed by a full recompute over the
whole current set, done under the session lock, so a published result is
always a pure function of some complete snapshot. Observers that recompute
after the last change all agree, whatever order they heard about the
changes in.

Region fetches run on a thread pool and never hold the session lock.
"""
from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from commonground.config import FETCH_WORKERS, SESSION_LOCK_TIMEOUT_SEC
from commonground.errors import (
    ConstraintNotFound, InvalidConstraint, InvalidGeometry, RecomputeConflict,
    RegionFetchError, RegionUnavailable, SessionNotFound,
)
from commonground.geometry import Region, parse_region
from commonground.intersection import IntersectionEngine
from commonground.isochrones import IsochroneProvider
from commonground.metrics import with_metrics
from commonground.models import Constraint, IntersectionResult

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, IntersectionResult], None]

READY   = "ready"
PENDING = "pending"
FAILED  = "failed"


@dataclass
class _Entry:
    constraint: Constraint
    region: Optional[Region] = None
    epoch: int = 0
    error: Optional[str] = None
    future: Optional[Future] = None

    @property
    def status(self) -> str:
        if self.region is not None:
            return READY
        return FAILED if self.error else PENDING


class _Session:
    def __init__(self, session_id: str):
        self.id = session_id
        self.lock = threading.RLock()
        self.entries: Dict[str, _Entry] = {}
        self.version = 0
        self.result = IntersectionResult.none()
        self.subscribers: List[Subscriber] = []


@dataclass(frozen=True)
class ConstraintState:
    """Read-only view of one entry."""
    constraint: Constraint
    region: Optional[Region]
    status: str
    error: Optional[str] = None


@dataclass(frozen=True)
class MutationOutcome:
    constraint: Optional[Constraint]
    result: IntersectionResult
    fetches: Tuple[Future, ...] = ()

    @property
    def provisional(self) -> bool:
        return self.result.provisional


class ConstraintSetManager:

    def __init__(self, provider: IsochroneProvider, *,
                 engine: Optional[IntersectionEngine] = None,
                 executor: Optional[Executor] = None,
                 lock_timeout: float = SESSION_LOCK_TIMEOUT_SEC):
        self.provider = provider
        self.engine = engine or IntersectionEngine()
        self.lock_timeout = lock_timeout
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=FETCH_WORKERS, thread_name_prefix="region-fetch")
        self._sessions: Dict[str, _Session] = {}
        self._registry_lock = threading.Lock()

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ─── sessions ───────────────────────────────────────────────────────────
    def create_session(self, session_id: Optional[str] = None) -> str:
        session_id = session_id or uuid.uuid4().hex
        with self._registry_lock:
            self._sessions.setdefault(session_id, _Session(session_id))
        logger.info("[Session] %s created", session_id)
        return session_id

    def drop_session(self, session_id: str) -> None:
        with self._registry_lock:
            s = self._sessions.pop(session_id, None)
        if s is None:
            raise SessionNotFound(session_id)
        with s.lock:
            for entry in s.entries.values():
                if entry.future is not None:
                    entry.future.cancel()
            s.subscribers.clear()
        logger.info("[Session] %s dropped", session_id)

    def has_session(self, session_id: str) -> bool:
        with self._registry_lock:
            return session_id in self._sessions

    def _session(self, session_id: str) -> _Session:
        with self._registry_lock:
            s = self._sessions.get(session_id)
        if s is None:
            raise SessionNotFound(session_id)
        return s

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[_Session]:
        s = self._session(session_id)
        if not s.lock.acquire(timeout=self.lock_timeout):
            raise RecomputeConflict(session_id, self.lock_timeout)
        try:
            yield s
        finally:
            s.lock.release()

    # ─── mutations ──────────────────────────────────────────────────────────
    def add_constraint(self, session_id: str, constraint: Constraint) -> MutationOutcome:
        with self._locked(session_id) as s:
            if constraint.id in s.entries:
                raise InvalidConstraint(f"constraint {constraint.id} already exists")
            entry = _Entry(constraint)
            s.entries[constraint.id] = entry
            s.version += 1
            logger.info("[Session] %s add %s (%d min %s)", session_id, constraint.id,
                        constraint.max_minutes, constraint.mode.value)
            # region set is unchanged until the fetch lands
            result = self._publish(s, recompute=False)
            fetch = self._schedule(s, entry)
        return MutationOutcome(constraint, result, (fetch,))

    def update_constraint(self, session_id: str, constraint_id: str,
                          **fields) -> MutationOutcome:
        with self._locked(session_id) as s:
            entry = s.entries.get(constraint_id)
            if entry is None:
                raise ConstraintNotFound(session_id, constraint_id)
            updated = entry.constraint.with_changes(**fields)
            stale = updated.region_key != entry.constraint.region_key
            entry.constraint = updated
            s.version += 1
            fetches: Tuple[Future, ...] = ()
            if stale:
                logger.info("[Session] %s update %s – region invalidated",
                            session_id, constraint_id)
                entry.region = None
                result = self._publish(s)
                fetches = (self._schedule(s, entry),)
            else:
                result = self._publish(s)
        return MutationOutcome(updated, result, fetches)

    def remove_constraint(self, session_id: str, constraint_id: str) -> MutationOutcome:
        with self._locked(session_id) as s:
            entry = s.entries.pop(constraint_id, None)
            if entry is None:
                raise ConstraintNotFound(session_id, constraint_id)
            if entry.future is not None:
                entry.future.cancel()
            s.version += 1
            logger.info("[Session] %s remove %s", session_id, constraint_id)
            result = self._publish(s)
        return MutationOutcome(entry.constraint, result)

    # ─── convergence ────────────────────────────────────────────────────────
    def sync_constraints(self, session_id: str,
                         constraints: Sequence[Constraint]) -> MutationOutcome:
        """
        Replace the whole set with a snapshot from the change channel.
        Entries whose origin/minutes/mode are unchanged keep their region.
        """
        with self._locked(session_id) as s:
            old, fresh, stale = s.entries, {}, []
            for c in constraints:
                entry = old.get(c.id)
                if entry is None:
                    entry = _Entry(c)
                    stale.append(entry)
                elif entry.constraint.region_key != c.region_key:
                    entry.constraint = c
                    entry.region = None
                    stale.append(entry)
                else:
                    entry.constraint = c
                    # a failed region gets another try
                    if entry.region is None and (entry.future is None
                                                 or entry.future.done()):
                        stale.append(entry)
                fresh[c.id] = entry
            for cid, entry in old.items():
                if cid not in fresh and entry.future is not None:
                    entry.future.cancel()
            s.entries = fresh
            s.version += 1
            logger.info("[Session] %s sync – %d constraints, %d to fetch",
                        session_id, len(fresh), len(stale))
            result = self._publish(s)
            fetches = tuple(self._schedule(s, e) for e in stale)
        return MutationOutcome(None, result, fetches)

    def resync(self, session_id: str) -> MutationOutcome:
        """Drop every region and fetch them all again."""
        with self._locked(session_id) as s:
            for entry in s.entries.values():
                entry.region = None
            s.version += 1
            result = self._publish(s)
            fetches = tuple(self._schedule(s, e) for e in list(s.entries.values()))
        return MutationOutcome(None, result, fetches)

    def refresh(self, session_id: str) -> IntersectionResult:
        """Re-read the current set and recompute from scratch."""
        with self._locked(session_id) as s:
            return self._publish(s)

    # ─── reads ──────────────────────────────────────────────────────────────
    def current_constraints(self, session_id: str) -> List[Constraint]:
        with self._locked(session_id) as s:
            return [e.constraint for e in s.entries.values()]

    def constraint_states(self, session_id: str) -> List[ConstraintState]:
        return self.snapshot(session_id)[0]

    def snapshot(self, session_id: str) -> Tuple[List[ConstraintState], IntersectionResult]:
        """Entries and the published result, read together."""
        with self._locked(session_id) as s:
            states = [ConstraintState(e.constraint, e.region, e.status, e.error)
                      for e in s.entries.values()]
            return states, s.result

    def region_for(self, session_id: str, constraint_id: str) -> Region:
        with self._locked(session_id) as s:
            entry = s.entries.get(constraint_id)
            if entry is None:
                raise ConstraintNotFound(session_id, constraint_id)
            if entry.region is None:
                raise RegionUnavailable(entry.error or PENDING)
            return entry.region

    def current_intersection(self, session_id: str) -> IntersectionResult:
        with self._locked(session_id) as s:
            return s.result

    def subscribe(self, session_id: str, callback: Subscriber) -> Callable[[], None]:
        s = self._session(session_id)
        with s.lock:
            s.subscribers.append(callback)

        def unsubscribe() -> None:
            with s.lock:
                if callback in s.subscribers:
                    s.subscribers.remove(callback)
        return unsubscribe

    def wait_for_fetches(self, session_id: str, timeout: Optional[float] = None) -> bool:
        """Block until no region fetch is outstanding. False on timeout."""
        while True:
            with self._locked(session_id) as s:
                futures = [e.future for e in s.entries.values()
                           if e.future is not None and not e.future.done()]
            if not futures:
                return True
            _, not_done = wait(futures, timeout=timeout)
            if not_done:
                return False

    # ─── internals ──────────────────────────────────────────────────────────
    def _schedule(self, s: _Session, entry: _Entry) -> Future:
        """Invalidate *entry* and start fetching its region. Caller holds the lock."""
        if entry.future is not None:
            entry.future.cancel()
        entry.epoch += 1
        entry.region = None
        entry.error = None
        entry.future = self._executor.submit(
            self._fetch, s, entry, entry.constraint, entry.epoch)
        return entry.future

    def _fetch(self, s: _Session, entry: _Entry, constraint: Constraint,
               epoch: int) -> None:
        session_id = s.id
        region, error = None, None
        try:
            geometry = self.provider.fetch_region(
                constraint.latitude, constraint.longitude,
                constraint.max_minutes, constraint.mode)
            region = parse_region(geometry)
        except RegionFetchError as exc:
            error = exc.reason
            logger.warning("[Session] %s fetch for %s failed – %s",
                           session_id, constraint.id, exc)
        except InvalidGeometry as exc:
            error = "invalid-geometry"
            logger.warning("[Session] %s region for %s rejected – %s",
                           session_id, constraint.id, exc)
        except Exception:
            error = RegionFetchError.UPSTREAM_UNAVAILABLE
            logger.exception("[Session] %s provider crashed for %s",
                             session_id, constraint.id)
        self._install(s, entry, epoch, region, error)

    def _install(self, s: _Session, entry: _Entry, epoch: int,
                 region: Optional[Region], error: Optional[str]) -> None:
        constraint_id = entry.constraint.id
        with self._registry_lock:
            live = self._sessions.get(s.id) is s
        if not live:
            logger.info("[Session] %s dropped – discard region for %s",
                        s.id, constraint_id)
            return
        # installs wait their turn however long it takes
        with s.lock:
            # a dropped-and-recreated session or a re-added id is a new object
            if s.entries.get(constraint_id) is not entry or entry.epoch != epoch:
                logger.info("[Session] %s discard stale region for %s",
                            s.id, constraint_id)
                return
            entry.region, entry.error, entry.future = region, error, None
            s.version += 1
            self._publish(s, recompute=region is not None)

    def _publish(self, s: _Session, recompute: bool = True) -> IntersectionResult:
        """Caller holds the lock."""
        pending = tuple(cid for cid, e in s.entries.items() if e.region is None)
        if recompute:
            regions = [e.region for e in s.entries.values() if e.region is not None]
            base = with_metrics(self.engine.reduce(regions))
        else:
            base = s.result
        s.result = replace(base, provisional=bool(pending), pending=pending,
                           version=s.version)
        for callback in list(s.subscribers):
            try:
                callback(s.id, s.result)
            except Exception:
                logger.exception("[Session] %s subscriber failed", s.id)
        return s.result
