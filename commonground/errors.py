"""Error taxonomy for the constraint intersection engine."""

from __future__ import annotations


class CommonGroundError(Exception):
    """Base class for everything raised by this package."""


class InvalidGeometry(CommonGroundError, ValueError):
    """A region is malformed or degenerate and was rejected at ingest."""


class InvalidConstraint(CommonGroundError, ValueError):
    """A constraint field is missing or out of its domain."""


class RegionUnavailable(CommonGroundError):
    """A constraint has no usable region (pending or failed fetch)."""


class RegionFetchError(RegionUnavailable):
    """The isochrone provider could not produce a region."""

    INVALID_PARAMETERS   = "invalid-parameters"
    UPSTREAM_UNAVAILABLE = "upstream-unavailable"
    RATE_LIMITED         = "rate-limited"

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(f"[{reason}] {message}" if message else reason)


class RecomputeConflict(CommonGroundError):
    """A mutation could not obtain its session in time."""

    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        super().__init__(f"session {session_id} busy for more than {timeout:g}s")


class SessionNotFound(CommonGroundError, KeyError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(session_id)


class ConstraintNotFound(CommonGroundError, KeyError):
    def __init__(self, session_id: str, constraint_id: str):
        self.session_id = session_id
        self.constraint_id = constraint_id
        super().__init__(constraint_id)
