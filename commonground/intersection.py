"""
Boolean intersection over an ordered set of regions.

The reduction is pairwise, left to right, and stops at the first empty
partial result. Overlays run on a precision grid of ``epsilon`` degrees so
that edges a provider *almost* shares are treated as shared: what is left
along them (lines, points, slivers thinner than ``epsilon``) is boundary,
not area.

Set intersection is commutative and associative, floating point is not.
Inputs that overlap by a few ``epsilon`` may come out empty in one order
and as a sliver in another; that is accepted.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from commonground.config import INTERSECTION_EPSILON
from commonground.geometry import (
    Region, boxes_overlap, from_parts, normalize_winding, polygon_parts,
)
from commonground.metrics import with_metrics
from commonground.models import IntersectionResult, ResultKind

logger = logging.getLogger(__name__)


class IntersectionEngine:

    def __init__(self, epsilon: float = INTERSECTION_EPSILON):
        if epsilon < 0:
            raise ValueError("epsilon must be >= 0")
        self.epsilon = epsilon

    def intersect(self, a: Region, b: Region) -> Optional[Region]:
        """Common area of *a* and *b*, or ``None`` when they share none."""
        if not boxes_overlap(a, b, self.epsilon):
            return None
        if self.epsilon > 0:
            raw = a.intersection(b, grid_size=self.epsilon)
        else:
            raw = a.intersection(b)
        region = from_parts(p for p in polygon_parts(raw) if not self._is_sliver(p))
        return normalize_winding(region) if region is not None else None

    def _is_sliver(self, part) -> bool:
        if part.area == 0:
            return True
        if self.epsilon == 0:
            return False
        # nothing survives eroding by half the tolerance
        return part.buffer(-self.epsilon / 2).is_empty

    def reduce(self, regions: Sequence[Region]) -> IntersectionResult:
        if len(regions) == 0:
            return IntersectionResult.none()
        if len(regions) == 1:
            return IntersectionResult(ResultKind.SINGLE, region=regions[0])

        acc = regions[0]
        for step, region in enumerate(regions[1:], start=2):
            acc = self.intersect(acc, region)
            if acc is None:
                logger.debug("[Engine] empty after %d of %d regions", step, len(regions))
                return IntersectionResult.empty()
        return IntersectionResult(ResultKind.REGION, region=acc)


def intersect_all(regions: Sequence[Region],
                  epsilon: float = INTERSECTION_EPSILON) -> IntersectionResult:
    """One-shot reduction with area and centroid attached."""
    return with_metrics(IntersectionEngine(epsilon).reduce(regions))
