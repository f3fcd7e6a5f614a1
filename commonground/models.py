"""
Value types shared across the engine: constraints and intersection results.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from commonground.config import MAX_MINUTES, MIN_MINUTES
from commonground.errors import InvalidConstraint
from commonground.geometry import Region
from commonground.util.polygon import region_geojson


class TransportMode(str, Enum):
    DRIVING = "driving"
    CYCLING = "cycling"


#: fields whose change makes a cached region stale
REGION_FIELDS = ("latitude", "longitude", "max_minutes", "mode")


@dataclass(frozen=True)
class Constraint:
    """One party's commute declaration."""

    name: str
    latitude: float
    longitude: float
    max_minutes: int
    mode: TransportMode
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    address: str = ""

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "mode", TransportMode(self.mode))
        except ValueError:
            raise InvalidConstraint(
                f'mode must be "driving" or "cycling", got {self.mode!r}') from None
        try:
            whole = int(self.max_minutes) == self.max_minutes
        except (TypeError, ValueError):
            whole = False
        if isinstance(self.max_minutes, bool) or not whole:
            raise InvalidConstraint("maxMinutes must be an integer")
        object.__setattr__(self, "max_minutes", int(self.max_minutes))
        if not MIN_MINUTES <= self.max_minutes <= MAX_MINUTES:
            raise InvalidConstraint(
                f"maxMinutes must be between {MIN_MINUTES} and {MAX_MINUTES}")
        if isinstance(self.latitude, bool) or isinstance(self.longitude, bool):
            raise InvalidConstraint("latitude and longitude must be numbers")
        try:
            lat, lon = float(self.latitude), float(self.longitude)
        except (TypeError, ValueError):
            raise InvalidConstraint("latitude and longitude must be numbers") from None
        if not (math.isfinite(lat) and -90 <= lat <= 90):
            raise InvalidConstraint("latitude must be between -90 and 90")
        if not (math.isfinite(lon) and -180 <= lon <= 180):
            raise InvalidConstraint("longitude must be between -180 and 180")
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)
        if not self.id:
            raise InvalidConstraint("id must be non-empty")

    @property
    def region_key(self) -> Tuple[float, float, int, TransportMode]:
        return (self.latitude, self.longitude, self.max_minutes, self.mode)

    def with_changes(self, **fields: Any) -> "Constraint":
        if "id" in fields and fields["id"] != self.id:
            raise InvalidConstraint("a constraint id cannot change")
        return replace(self, **fields)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Constraint":
        """Build from the camelCase payload the web client sends."""
        try:
            kwargs = dict(
                name=str(data["name"]),
                latitude=float(data["latitude"]),
                longitude=float(data["longitude"]),
                max_minutes=data.get("maxMinutes", data.get("max_minutes")),
                mode=data.get("transportMode", data.get("mode")),
                address=str(data.get("address") or ""),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidConstraint(f"bad constraint payload: {exc}") from exc
        if kwargs["max_minutes"] is None or kwargs["mode"] is None:
            raise InvalidConstraint("maxMinutes and transportMode are required")
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "maxMinutes": self.max_minutes,
            "transportMode": self.mode.value,
        }


def changes_from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a partial camelCase payload into ``Constraint`` field names."""
    keymap = {
        "name": "name", "address": "address",
        "latitude": "latitude", "longitude": "longitude",
        "maxMinutes": "max_minutes", "max_minutes": "max_minutes",
        "transportMode": "mode", "mode": "mode",
    }
    return {keymap[k]: v for k, v in data.items() if k in keymap}


class ResultKind(str, Enum):
    NONE   = "none"       # no regions to intersect
    SINGLE = "single"     # exactly one region, returned as-is
    EMPTY  = "empty"      # regions share no area
    REGION = "region"     # the common area


@dataclass(frozen=True)
class IntersectionResult:
    kind: ResultKind
    region: Optional[Region] = None
    area_km2: float = 0.0
    centroid: Optional[Tuple[float, float]] = None     # (lat, lon)
    provisional: bool = False
    pending: Tuple[str, ...] = ()
    version: int = 0

    @classmethod
    def none(cls) -> "IntersectionResult":
        return cls(ResultKind.NONE)

    @classmethod
    def empty(cls) -> "IntersectionResult":
        return cls(ResultKind.EMPTY)

    @property
    def has_area(self) -> bool:
        return self.kind in (ResultKind.SINGLE, ResultKind.REGION)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind.value}
        if self.has_area and self.region is not None:
            out["region"]  = region_geojson(self.region)
            out["areaKm2"] = round(self.area_km2, 6)
            out["centroid"] = (
                {"latitude": self.centroid[0], "longitude": self.centroid[1]}
                if self.centroid else None
            )
        out.update(provisional=self.provisional, pending=list(self.pending),
                   version=self.version)
        return out
