"""Query-time retrieval with recall diagnostics.

An empty or filtered-out result is never silent: every search returns
the ranked results together with structured :class:`RecallFailure`
records explaining what went wrong. Searching never raises.
"""
from __future__ import annotations

import asyncio
import dataclasses
import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from memlane_core.config import SLOConfig
from memlane_core.logging import get_logger
from memlane_core.ranking import has_similarity_signal
from memlane_core.types import AuditAction, AuditEntry, utc_now, utc_now_iso

from memlane_engine.staleness import annotate

if TYPE_CHECKING:
    from memlane_core.types import MemoryQuery, MemoryResult
    from memlane_runtime.protocols.memory_store import MemoryStore

logger = get_logger("engine.recall")


class RecallFailureReason(enum.Enum):
    NO_MATCHES = "no_matches"
    ALL_STALE = "all_stale"
    BELOW_RELEVANCE_THRESHOLD = "below_relevance_threshold"
    CROSS_SESSION_UNAVAILABLE = "cross_session_unavailable"
    STORAGE_ERROR = "storage_error"
    TIMEOUT = "timeout"
    EMBEDDING_UNAVAILABLE = "embedding_unavailable"
    NAMESPACE_NOT_FOUND = "namespace_not_found"
    QUOTA_EXCEEDED = "quota_exceeded"


_MESSAGES: dict[RecallFailureReason, str] = {
    RecallFailureReason.NO_MATCHES: "No memories matched the query",
    RecallFailureReason.ALL_STALE: "All matching memories are stale (exceeded freshness SLO)",
    RecallFailureReason.BELOW_RELEVANCE_THRESHOLD: "No memories met the relevance threshold",
    RecallFailureReason.CROSS_SESSION_UNAVAILABLE: "Cross-session memories could not be retrieved",
    RecallFailureReason.STORAGE_ERROR: "Storage backend returned an error",
    RecallFailureReason.TIMEOUT: "Memory retrieval timed out",
    RecallFailureReason.EMBEDDING_UNAVAILABLE: (
        "Vector embeddings are not available for semantic search"
    ),
    RecallFailureReason.NAMESPACE_NOT_FOUND: "The specified namespace does not exist",
    RecallFailureReason.QUOTA_EXCEEDED: "Memory quota has been exceeded",
}

_SUGGESTIONS: dict[RecallFailureReason, tuple[str, ...]] = {
    RecallFailureReason.NO_MATCHES: (
        "Try a broader query",
        "Check if memories exist in this namespace",
    ),
    RecallFailureReason.ALL_STALE: (
        "Refresh memories with updated content",
        "Increase freshness SLO max_age_hours",
    ),
    RecallFailureReason.BELOW_RELEVANCE_THRESHOLD: (
        "Lower the relevance threshold",
        "Add more specific tags to memories",
    ),
    RecallFailureReason.CROSS_SESSION_UNAVAILABLE: (
        "Ensure cross-session tracking is enabled",
        "Check session history",
    ),
    RecallFailureReason.STORAGE_ERROR: (
        "Check storage backend connectivity",
        "Review error logs",
    ),
    RecallFailureReason.TIMEOUT: ("Reduce query scope", "Check system load"),
    RecallFailureReason.EMBEDDING_UNAVAILABLE: (
        "Enable vector embeddings",
        "Use tag-based search instead",
    ),
    RecallFailureReason.NAMESPACE_NOT_FOUND: (
        "Verify namespace configuration",
        "Initialize the namespace",
    ),
    RecallFailureReason.QUOTA_EXCEEDED: ("Delete old memories", "Upgrade storage quota"),
}


@dataclass(frozen=True, slots=True)
class RecallFailure:
    """A structured explanation for an empty or degraded search."""
    failure_id: str
    reason: RecallFailureReason
    message: str
    timestamp: str
    query: str | None = None
    namespace_key: str | None = None
    session_id: str | None = None
    filtered_count: int | None = None
    candidate_count: int | None = None
    detail: str | None = None
    suggestions: tuple[str, ...] = ()
    surfaced: bool = False


def create_recall_failure(
    reason: RecallFailureReason,
    *,
    query: str | None = None,
    namespace_key: str | None = None,
    session_id: str | None = None,
    filtered_count: int | None = None,
    candidate_count: int | None = None,
    detail: str | None = None,
) -> RecallFailure:
    return RecallFailure(
        failure_id=f"rf_{uuid.uuid4().hex[:16]}",
        reason=reason,
        message=_MESSAGES[reason],
        timestamp=utc_now_iso(),
        query=query,
        namespace_key=namespace_key,
        session_id=session_id,
        filtered_count=filtered_count,
        candidate_count=candidate_count,
        detail=detail,
        suggestions=_SUGGESTIONS[reason],
    )


@dataclass(frozen=True, slots=True)
class MemorySearchResponse:
    results: list[MemoryResult]
    failures: list[RecallFailure]
    total_candidates: int = 0
    stale_filtered: int = 0
    relevance_filtered: int = 0
    cross_session_attempted: bool = False
    cross_session_success: bool = False
    query_time_ms: float = 0.0
    explanations: dict[str, list[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return bool(self.results) and not self.failures


class MemoryRetriever:
    """Search a store and turn empty outcomes into recall diagnostics.

    The store is asked for every candidate matching the query's filters;
    staleness is annotated here against the freshness SLO, stale results
    are dropped (unless ``exclude_stale`` is False), an explicit
    ``min_semantic_similarity`` is enforced, and the limit is applied last
    so filter counts cover the whole candidate set.
    """

    def __init__(
        self,
        store: MemoryStore,
        slo_config: SLOConfig | None = None,
        *,
        timeout_seconds: float | None = None,
        exclude_stale: bool = True,
        actor_id: str = "system",
    ) -> None:
        self._store = store
        self._slo = slo_config or SLOConfig()
        self._timeout = timeout_seconds
        self._exclude_stale = exclude_stale
        self._actor_id = actor_id

    async def search(self, query: MemoryQuery) -> MemorySearchResponse:
        started = time.perf_counter()
        failure_context = {
            "query": query.query,
            "namespace_key": query.namespace.key,
            "session_id": query.current_session_id or query.session_id,
        }

        store_query = dataclasses.replace(query, limit=None, min_semantic_similarity=None)
        try:
            candidates = await asyncio.wait_for(
                self._store.search_memories(store_query), timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning(
                "Memory search timed out after %ss in %s", self._timeout, query.namespace.key,
            )
            failure = create_recall_failure(RecallFailureReason.TIMEOUT, **failure_context)
            return self._empty(failure, started)
        except Exception as exc:
            logger.warning(
                "Memory search failed in %s", query.namespace.key, exc_info=True,
            )
            failure = create_recall_failure(
                RecallFailureReason.STORAGE_ERROR, detail=str(exc), **failure_context,
            )
            return self._empty(failure, started)

        now = utc_now()
        annotated = [annotate(r, self._slo.freshness, now=now) for r in candidates]

        fresh = annotated
        if self._exclude_stale:
            fresh = [r for r in annotated if not r.is_stale]
        stale_filtered = len(annotated) - len(fresh)

        relevant = fresh
        threshold = query.min_semantic_similarity
        if threshold is not None and has_similarity_signal(query):
            relevant = [r for r in fresh if r.semantic_similarity >= threshold]
        relevance_filtered = len(fresh) - len(relevant)

        results = relevant if query.limit is None else relevant[:query.limit]

        failures: list[RecallFailure] = []
        if not annotated:
            failures.append(create_recall_failure(
                RecallFailureReason.NO_MATCHES, candidate_count=0, **failure_context,
            ))
        elif not fresh:
            failures.append(create_recall_failure(
                RecallFailureReason.ALL_STALE,
                filtered_count=stale_filtered,
                candidate_count=len(annotated),
                **failure_context,
            ))
        elif not relevant:
            failures.append(create_recall_failure(
                RecallFailureReason.BELOW_RELEVANCE_THRESHOLD,
                filtered_count=relevance_filtered,
                candidate_count=len(annotated),
                **failure_context,
            ))

        current = query.current_session_id
        attempted = (
            query.include_cross_session and current is not None and query.session_id is None
        )
        success = attempted and any(
            r.session_id is not None and r.session_id != current for r in results
        )
        if attempted and not success:
            foreign = sum(
                1 for r in annotated if r.session_id is not None and r.session_id != current
            )
            if foreign:
                failures.append(create_recall_failure(
                    RecallFailureReason.CROSS_SESSION_UNAVAILABLE,
                    filtered_count=foreign,
                    candidate_count=len(annotated),
                    **failure_context,
                ))

        await self._audit_search(query, results, failures)

        return MemorySearchResponse(
            results=results,
            failures=failures,
            total_candidates=len(annotated),
            stale_filtered=stale_filtered,
            relevance_filtered=relevance_filtered,
            cross_session_attempted=attempted,
            cross_session_success=success,
            query_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def explain(self, query: MemoryQuery) -> MemorySearchResponse:
        """Search, and attach a human-readable rationale to every result."""
        response = await self.search(query)
        explanations = {r.memory_id: _rationale(r, query) for r in response.results}
        return dataclasses.replace(response, explanations=explanations)

    def _empty(self, failure: RecallFailure, started: float) -> MemorySearchResponse:
        return MemorySearchResponse(
            results=[],
            failures=[failure],
            query_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def _audit_search(
        self,
        query: MemoryQuery,
        results: list[MemoryResult],
        failures: list[RecallFailure],
    ) -> None:
        entry = AuditEntry(
            namespace=query.namespace,
            action=AuditAction.SEARCH,
            resource_type="memory_query",
            resource_id=query.namespace.key,
            actor_id=self._actor_id,
            metadata={
                "query": query.query,
                "result_count": len(results),
                "failure_reasons": [f.reason.value for f in failures],
            },
        )
        try:
            await self._store.log_audit(entry)
        except Exception:
            logger.warning("Failed to write search audit entry", exc_info=True)


def _rationale(result: MemoryResult, query: MemoryQuery) -> list[str]:
    c = result.score_components
    lines = [
        f"score {result.score:.3f} = criticality {c.task_criticality:.3f}"
        f" + similarity {c.semantic_similarity:.3f}"
        f" + importance {c.importance:.3f} + recency {c.recency:.3f}",
    ]
    if not has_similarity_signal(query):
        lines.append("no query text or vector: similarity not scored")
    if result.staleness_score is not None:
        lines.append(
            f"staleness {result.staleness_score:.3f} at {result.age_days:.1f} days"
            f" ({result.time_until_stale_hours:.0f}h until stale)"
            if not result.is_stale else
            f"stale: {result.stale_reason}"
        )
    if query.current_session_id and result.session_id not in (None, query.current_session_id):
        lines.append(f"recalled from session {result.session_id}")
    return lines
