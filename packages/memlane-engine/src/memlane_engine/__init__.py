"""Memlane Engine: lifecycle, ranking, freshness and recall diagnostics."""
from __future__ import annotations

from memlane_core.ranking import memory_score, rank_memories, recency_score

from memlane_engine.drift import DriftMetrics, calculate_drift_metrics
from memlane_engine.lifecycle import (
    CreateMemoryInput,
    ExpireResult,
    LifecycleManager,
    MemoryUpdate,
    MergeOptions,
    MergeResult,
    merged_memory_id,
)
from memlane_engine.recall import (
    MemoryRetriever,
    MemorySearchResponse,
    RecallFailure,
    RecallFailureReason,
    create_recall_failure,
)
from memlane_engine.sessions import (
    CrossSessionStats,
    DriftCheck,
    SessionHistoryEntry,
    SessionTracker,
)
from memlane_engine.slo import (
    SLOComplianceStatus,
    SLOReport,
    SLOViolation,
    evaluate_freshness,
    evaluate_namespace_compliance,
    evaluate_relevance,
    format_slo_report,
    generate_slo_report,
)
from memlane_engine.staleness import StalenessMetrics, staleness_metrics, staleness_score
from memlane_engine.validation import (
    HeuristicMemoryValidator,
    MemoryValidator,
    ValidationResult,
)

__all__ = [
    "CreateMemoryInput",
    "CrossSessionStats",
    "DriftCheck",
    "DriftMetrics",
    "ExpireResult",
    "HeuristicMemoryValidator",
    "LifecycleManager",
    "MemoryRetriever",
    "MemorySearchResponse",
    "MemoryUpdate",
    "MemoryValidator",
    "MergeOptions",
    "MergeResult",
    "RecallFailure",
    "RecallFailureReason",
    "SLOComplianceStatus",
    "SLOReport",
    "SLOViolation",
    "SessionHistoryEntry",
    "SessionTracker",
    "StalenessMetrics",
    "ValidationResult",
    "calculate_drift_metrics",
    "create_recall_failure",
    "evaluate_freshness",
    "evaluate_namespace_compliance",
    "evaluate_relevance",
    "format_slo_report",
    "generate_slo_report",
    "memory_score",
    "merged_memory_id",
    "rank_memories",
    "recency_score",
    "staleness_metrics",
    "staleness_score",
]
