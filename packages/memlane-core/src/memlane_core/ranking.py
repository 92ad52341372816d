"""Composite relevance scoring for memory retrieval.

The score of a memory for a query is a weighted sum of four signals, each
clamped to [0, 1] before weighting::

    score = w_c * task_criticality
          + w_s * semantic_similarity
          + w_i * importance
          + w_r * recency

Recency is driven by the memory's age since creation (7-day half-life).
Recent access adds a capped boost (3.5-day half-life, at most +0.2) so a
memory cannot stay "fresh" forever just because it keeps being retrieved.
"""
from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

from memlane_core.types import (
    DEFAULT_RANKING_WEIGHTS,
    MemoryResult,
    RankingWeights,
    ScoreComponents,
    parse_timestamp,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime

    from memlane_core.types import MemoryObject, MemoryQuery

CREATED_HALF_LIFE_SECONDS = 7 * 24 * 3600
ACCESS_HALF_LIFE_SECONDS = 3.5 * 24 * 3600
ACCESS_BOOST_CAP = 0.2

_WORD_RE = re.compile(r"\S+")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def recency_score(
    created_at: str,
    last_accessed_at: str | None = None,
    *,
    now: datetime | None = None,
) -> float:
    """Recency in [0, 1] from creation age, with a capped access boost.

    A creation time in the future (clock skew) scores 1. An unparseable
    creation time scores 0. Future or unparseable access times are ignored.
    """
    now = now or utc_now()

    created = parse_timestamp(created_at)
    if created is None:
        return 0.0

    age_created = (now - created).total_seconds()
    if age_created <= 0:
        return 1.0

    created_score = 0.5 ** (age_created / CREATED_HALF_LIFE_SECONDS)

    accessed = parse_timestamp(last_accessed_at)
    if accessed is None:
        return clamp(created_score)

    age_access = (now - accessed).total_seconds()
    if age_access < 0:
        return clamp(created_score)

    access_score = 0.5 ** (age_access / ACCESS_HALF_LIFE_SECONDS)
    return clamp(created_score + ACCESS_BOOST_CAP * access_score)


def memory_score(
    memory: MemoryObject,
    semantic_similarity: float,
    weights: RankingWeights | None = None,
    *,
    now: datetime | None = None,
) -> tuple[float, ScoreComponents]:
    """Score a memory and return the weighted per-signal breakdown."""
    weights = weights or DEFAULT_RANKING_WEIGHTS
    recency = recency_score(memory.created_at, memory.last_accessed_at, now=now)

    components = ScoreComponents(
        task_criticality=clamp(memory.task_criticality) * weights.task_criticality,
        semantic_similarity=clamp(semantic_similarity) * weights.semantic_similarity,
        importance=clamp(memory.importance) * weights.importance,
        recency=recency * weights.recency_decay,
    )
    score = (
        components.task_criticality
        + components.semantic_similarity
        + components.importance
        + components.recency
    )
    return score, components


# ── Similarity fallbacks ─────────────────────────────────────────────

def text_similarity(a: str, b: str) -> float:
    """Jaccard index over lowercased whitespace-separated words."""
    words_a = set(_WORD_RE.findall(a.lower()))
    words_b = set(_WORD_RE.findall(b.lower()))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity clamped to [0, 1]; 0 for mismatched or zero vectors."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return clamp(dot / norm)


def semantic_similarity(memory: MemoryObject, query: MemoryQuery) -> float:
    """Resolve the similarity signal for one memory.

    Externally supplied scores win, then embeddings, then word overlap.
    A query without any text or vector has similarity 0.
    """
    if query.semantic_scores and memory.memory_id in query.semantic_scores:
        return clamp(query.semantic_scores[memory.memory_id])
    if query.query_embedding and memory.embedding:
        return cosine_similarity(query.query_embedding, memory.embedding)
    if query.query:
        return text_similarity(query.query, memory.content)
    return 0.0


def has_similarity_signal(query: MemoryQuery) -> bool:
    return bool(query.query or query.query_embedding or query.semantic_scores)


def rank_memories(
    memories: Iterable[MemoryObject],
    query: MemoryQuery,
    *,
    now: datetime | None = None,
) -> list[MemoryResult]:
    """Score, sort (best first) and truncate candidates for a query.

    ``min_semantic_similarity`` is honoured only when the query carries a
    similarity signal. ``query.limit`` of None returns every candidate.
    """
    now = now or utc_now()
    enforce_similarity = (
        query.min_semantic_similarity is not None and has_similarity_signal(query)
    )

    results: list[MemoryResult] = []
    for memory in memories:
        similarity = semantic_similarity(memory, query)
        if enforce_similarity and similarity < query.min_semantic_similarity:
            continue
        score, components = memory_score(
            memory, similarity, query.ranking_weights, now=now,
        )
        results.append(MemoryResult(
            memory_id=memory.memory_id,
            score=score,
            score_components=components,
            semantic_similarity=similarity,
            tags=tuple(memory.tags),
            source=memory.source,
            provenance=tuple(memory.provenance),
            created_at=memory.created_at,
            last_accessed_at=memory.last_accessed_at,
            content=memory.content if query.include_content else None,
            session_id=memory.session_id,
        ))

    results.sort(key=lambda r: r.score, reverse=True)
    if query.limit is not None:
        results = results[:query.limit]
    return results
