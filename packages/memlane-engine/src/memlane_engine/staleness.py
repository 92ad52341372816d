"""Per-memory staleness against a freshness SLO.

Staleness rises slowly through a grace period (the first half of the
SLO's maximum age, topping out at 0.2) and then linearly from 0.2 to 1.0
over the remaining half. A memory is stale once its effective age
reaches the maximum age. Effective age is measured from the more recent
of creation and last access.
"""
from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from memlane_core.config import FreshnessSLOConfig
from memlane_core.types import parse_timestamp, utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from memlane_core.types import MemoryResult

GRACE_FRACTION = 0.5
GRACE_CEILING = 0.2

_DEFAULT_SLO = FreshnessSLOConfig()


@dataclass(frozen=True, slots=True)
class StalenessMetrics:
    staleness_score: float
    is_stale: bool
    age_hours: float
    age_days: float
    time_until_stale_hours: float
    stale_reason: str | None = None


def staleness_score(age_hours: float, slo: FreshnessSLOConfig | None = None) -> float:
    """Map an age in hours to a staleness score in [0, 1]."""
    slo = slo or _DEFAULT_SLO
    if math.isnan(age_hours) or age_hours <= 0:
        return 0.0
    if age_hours >= slo.max_age_hours:
        return 1.0

    grace = slo.max_age_hours * GRACE_FRACTION
    if age_hours <= grace:
        return (age_hours / grace) * GRACE_CEILING

    remaining = slo.max_age_hours - grace
    overtime = age_hours - grace
    return GRACE_CEILING + (overtime / remaining) * (1 - GRACE_CEILING)


def effective_age_hours(
    created_at: str,
    last_accessed_at: str | None,
    *,
    now: datetime | None = None,
) -> float:
    """Hours since the more recent of creation and last access.

    An unparseable creation time is treated as infinitely old.
    """
    now = now or utc_now()
    created = parse_timestamp(created_at)
    accessed = parse_timestamp(last_accessed_at)

    candidates = [t for t in (created, accessed) if t is not None]
    if not candidates:
        return math.inf
    return (now - max(candidates)).total_seconds() / 3600


def staleness_metrics(
    created_at: str,
    last_accessed_at: str | None = None,
    slo: FreshnessSLOConfig | None = None,
    *,
    now: datetime | None = None,
) -> StalenessMetrics:
    slo = slo or _DEFAULT_SLO
    age_hours = effective_age_hours(created_at, last_accessed_at, now=now)
    age_days = age_hours / 24
    is_stale = age_hours >= slo.max_age_hours

    reason = None
    if is_stale:
        age_label = "unknown" if math.isinf(age_days) else str(math.floor(age_days))
        reason = (
            f"Memory is {age_label} days old "
            f"(SLO: {math.floor(slo.max_age_hours / 24)} days)"
        )

    return StalenessMetrics(
        staleness_score=staleness_score(age_hours, slo),
        is_stale=is_stale,
        age_hours=age_hours,
        age_days=age_days,
        time_until_stale_hours=slo.max_age_hours - age_hours,
        stale_reason=reason,
    )


def annotate(
    result: MemoryResult,
    slo: FreshnessSLOConfig | None = None,
    *,
    now: datetime | None = None,
) -> MemoryResult:
    """Return a copy of ``result`` carrying its staleness metrics."""
    metrics = staleness_metrics(
        result.created_at, result.last_accessed_at, slo, now=now,
    )
    return dataclasses.replace(
        result,
        staleness_score=metrics.staleness_score,
        is_stale=metrics.is_stale,
        age_hours=metrics.age_hours,
        age_days=metrics.age_days,
        stale_reason=metrics.stale_reason,
        time_until_stale_hours=metrics.time_until_stale_hours,
    )
