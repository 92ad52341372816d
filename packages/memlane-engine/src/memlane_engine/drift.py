"""Topic drift detection over a session's memories.

Tags are the only topic signal. Three measurements feed the drift score:

- topic change rate: share of consecutive (by creation time) memory pairs
  whose tag sets have Jaccard similarity below 0.3,
- fragmentation: share of tagged memories sharing no tag with any other,
- coherence: how often tags recur across the set.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import TYPE_CHECKING

from memlane_core.config import DriftConfig
from memlane_core.types import parse_timestamp, utc_now_iso

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from memlane_core.types import MemoryObject

TOPIC_CHANGE_SIMILARITY = 0.3

_TOPIC_WEIGHT = 0.4
_FRAGMENTATION_WEIGHT = 0.3
_INCOHERENCE_WEIGHT = 0.3


@dataclass(frozen=True, slots=True)
class DriftMetrics:
    drift_score: float
    drift_detected: bool
    topic_changes: int
    coherence_score: float
    fragmentation_score: float
    last_checked_at: str


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """|a ∩ b| / |a ∪ b|, with two empty sets counting as identical."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 1.0
    return len(set_a & set_b) / len(union)


def _creation_key(memory: MemoryObject) -> tuple[int, datetime | str]:
    parsed = parse_timestamp(memory.created_at)
    # Unparseable timestamps sort last, in their original order.
    return (0, parsed) if parsed is not None else (1, "")


def count_topic_changes(memories: Sequence[MemoryObject]) -> int:
    ordered = sorted(memories, key=_creation_key)
    changes = 0
    for prev, curr in zip(ordered, ordered[1:], strict=False):
        if jaccard_similarity(prev.tags, curr.tags) < TOPIC_CHANGE_SIMILARITY:
            changes += 1
    return changes


def fragmentation_score(memories: Sequence[MemoryObject]) -> float:
    if len(memories) <= 1:
        return 0.0
    tag_owners: Counter[str] = Counter()
    for memory in memories:
        tag_owners.update(set(memory.tags))

    isolated = sum(
        1 for memory in memories
        if memory.tags and all(tag_owners[tag] == 1 for tag in set(memory.tags))
    )
    return isolated / len(memories)


def coherence_score(memories: Sequence[MemoryObject]) -> float:
    if not memories:
        return 1.0
    tag_counts: Counter[str] = Counter()
    for memory in memories:
        tag_counts.update(memory.tags)
    if not tag_counts:
        return 0.0
    avg_tag_frequency = sum(tag_counts.values()) / len(tag_counts) / len(memories)
    return min(1.0, 2 * avg_tag_frequency)


def calculate_drift_metrics(
    memories: Sequence[MemoryObject],
    thresholds: DriftConfig | None = None,
) -> DriftMetrics:
    """Compute drift metrics and the alert verdict for a memory set."""
    thresholds = thresholds or DriftConfig()
    if not memories:
        return DriftMetrics(
            drift_score=0.0,
            drift_detected=False,
            topic_changes=0,
            coherence_score=1.0,
            fragmentation_score=0.0,
            last_checked_at=utc_now_iso(),
        )

    topic_changes = count_topic_changes(memories)
    fragmentation = fragmentation_score(memories)
    coherence = coherence_score(memories)

    transitions = len(memories) - 1
    topic_change_rate = topic_changes / transitions if transitions else 0.0
    drift = min(
        1.0,
        _TOPIC_WEIGHT * topic_change_rate
        + _FRAGMENTATION_WEIGHT * fragmentation
        + _INCOHERENCE_WEIGHT * (1 - coherence),
    )

    detected = (
        drift > thresholds.max_drift_score
        or coherence < thresholds.min_coherence_score
        or fragmentation > thresholds.max_fragmentation_score
    )

    return DriftMetrics(
        drift_score=drift,
        drift_detected=detected,
        topic_changes=topic_changes,
        coherence_score=coherence,
        fragmentation_score=fragmentation,
        last_checked_at=utc_now_iso(),
    )
