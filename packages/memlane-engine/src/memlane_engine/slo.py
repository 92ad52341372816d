"""Namespace-level freshness SLO compliance and periodic reports."""
from __future__ import annotations

import enum
import io
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from memlane_core.config import SLOConfig
from memlane_core.types import to_iso, utc_now, utc_now_iso

from memlane_engine.staleness import staleness_metrics

if TYPE_CHECKING:
    from collections.abc import Sequence

    from memlane_core.types import MemoryResult, Namespace

    from memlane_engine.recall import RecallFailure

CROSS_SESSION_TARGET_PERCENT = 90.0
CROSS_SESSION_CRITICAL_PERCENT = 70.0
CRITICAL_FRACTION_OF_TARGET = 0.8


class SLOType(enum.Enum):
    FRESHNESS = "freshness"
    RELEVANCE = "relevance"
    RECALL = "recall"
    CROSS_SESSION = "cross_session"


class Severity(enum.Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class SLOViolation:
    slo_type: SLOType
    actual_value: float
    required_value: float
    severity: Severity
    description: str


@dataclass(frozen=True, slots=True)
class FreshnessEvaluation:
    compliant: int
    total: int
    avg_staleness: float
    violations: list[SLOViolation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RelevanceEvaluation:
    compliant: int
    total: int
    violations: list[SLOViolation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SLOComplianceStatus:
    """Compliance snapshot for one namespace."""
    namespace_key: str
    is_compliant: bool
    freshness_compliance_percent: float
    relevance_compliance_percent: float
    recall_compliance_percent: float
    cross_session_success_percent: float
    failure_count: int
    evaluated_at: str
    slo_config: SLOConfig
    violations: list[SLOViolation] = field(default_factory=list)


@dataclass(slots=True)
class SLOReport:
    """Aggregate over a reporting period (usually a week)."""
    period_start: str
    period_end: str
    report_id: str = field(default_factory=lambda: f"slo_{uuid.uuid4().hex[:12]}")
    total_queries: int = 0
    fresh_queries: int = 0
    relevant_queries: int = 0
    successful_recalls: int = 0
    violating_queries: int = 0
    cross_session_attempts: int = 0
    cross_session_successes: int = 0
    total_failures: int = 0
    failures_by_reason: dict[str, int] = field(default_factory=dict)
    avg_staleness_score: float = 0.0
    avg_drift_score: float | None = None
    namespace_compliance: list[SLOComplianceStatus] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_now_iso)
    next_evaluation_at: str | None = None
    alert: bool = False

    @property
    def violation_percent(self) -> float:
        if not self.total_queries:
            return 0.0
        return self.violating_queries / self.total_queries * 100


def _target_violation(
    slo_type: SLOType, label: str, percent: float, target: float,
) -> SLOViolation:
    severity = (
        Severity.CRITICAL if percent < target * CRITICAL_FRACTION_OF_TARGET
        else Severity.WARNING
    )
    return SLOViolation(
        slo_type=slo_type,
        actual_value=percent,
        required_value=target,
        severity=severity,
        description=f"{label} compliance at {percent:.1f}%, target is {target:g}%",
    )


def _result_staleness(result: MemoryResult, config: SLOConfig) -> tuple[float, bool]:
    if result.staleness_score is not None and result.is_stale is not None:
        return result.staleness_score, result.is_stale
    metrics = staleness_metrics(result.created_at, result.last_accessed_at, config.freshness)
    return metrics.staleness_score, metrics.is_stale


def evaluate_freshness(
    results: Sequence[MemoryResult], config: SLOConfig | None = None,
) -> FreshnessEvaluation:
    """Share of results that are not stale, against the recall target.

    Results without staleness annotations are evaluated on the fly.
    """
    config = config or SLOConfig()
    if not results:
        return FreshnessEvaluation(compliant=0, total=0, avg_staleness=0.0)

    compliant = 0
    total_staleness = 0.0
    for result in results:
        score, stale = _result_staleness(result, config)
        total_staleness += min(1.0, score)
        if not stale and score < 1:
            compliant += 1

    target = config.freshness.recall_target_percent
    percent = compliant / len(results) * 100
    violations = []
    if percent < target:
        violations.append(_target_violation(SLOType.FRESHNESS, "Freshness", percent, target))

    return FreshnessEvaluation(
        compliant=compliant,
        total=len(results),
        avg_staleness=total_staleness / len(results),
        violations=violations,
    )


def evaluate_relevance(
    results: Sequence[MemoryResult], config: SLOConfig | None = None,
) -> RelevanceEvaluation:
    """Share of results at or above the relevance threshold."""
    config = config or SLOConfig()
    if not results:
        return RelevanceEvaluation(compliant=0, total=0)

    threshold = config.freshness.relevance_threshold
    compliant = sum(1 for r in results if r.semantic_similarity >= threshold)

    target = config.freshness.recall_target_percent
    percent = compliant / len(results) * 100
    violations = []
    if percent < target:
        violations.append(_target_violation(SLOType.RELEVANCE, "Relevance", percent, target))

    return RelevanceEvaluation(compliant=compliant, total=len(results), violations=violations)


def evaluate_namespace_compliance(
    namespace: Namespace,
    results: Sequence[MemoryResult],
    failures: Sequence[RecallFailure] = (),
    cross_session_attempts: int = 0,
    cross_session_successes: int = 0,
    config: SLOConfig | None = None,
) -> SLOComplianceStatus:
    """Combine freshness, relevance, recall and cross-session checks.

    Recall is 100% when the query produced results and 0% otherwise; a
    recall miss is always a warning. Cross-session recall has a fixed 90%
    target and turns critical below 70%. With no attempts it counts as 100%.

    When monitoring is disabled (``config.enabled`` is false) the
    percentages are still computed but no violations are raised.
    """
    config = config or SLOConfig()
    target = config.freshness.recall_target_percent

    freshness = evaluate_freshness(results, config)
    relevance = evaluate_relevance(results, config)
    violations = [*freshness.violations, *relevance.violations]

    recall_rate = 100.0 if results else 0.0
    if recall_rate < target:
        violations.append(SLOViolation(
            slo_type=SLOType.RECALL,
            actual_value=recall_rate,
            required_value=target,
            severity=Severity.WARNING,
            description=f"Recall rate at {recall_rate:.1f}%, target is {target:g}%",
        ))

    cross_session_rate = (
        cross_session_successes / cross_session_attempts * 100
        if cross_session_attempts > 0 else 100.0
    )
    if cross_session_rate < CROSS_SESSION_TARGET_PERCENT:
        violations.append(SLOViolation(
            slo_type=SLOType.CROSS_SESSION,
            actual_value=cross_session_rate,
            required_value=CROSS_SESSION_TARGET_PERCENT,
            severity=(
                Severity.CRITICAL if cross_session_rate < CROSS_SESSION_CRITICAL_PERCENT
                else Severity.WARNING
            ),
            description=(
                f"Cross-session recall at {cross_session_rate:.1f}%, "
                f"target is {CROSS_SESSION_TARGET_PERCENT:g}%"
            ),
        ))

    if not config.enabled:
        violations = []

    total = len(results)
    return SLOComplianceStatus(
        namespace_key=namespace.key,
        is_compliant=not violations,
        freshness_compliance_percent=freshness.compliant / total * 100 if total else 100.0,
        relevance_compliance_percent=relevance.compliant / total * 100 if total else 100.0,
        recall_compliance_percent=recall_rate,
        cross_session_success_percent=cross_session_rate,
        failure_count=len(failures),
        evaluated_at=utc_now_iso(),
        slo_config=config,
        violations=violations,
    )


def aggregate_failures(failures: Sequence[RecallFailure]) -> dict[str, int]:
    """Count recall failures per reason code."""
    return dict(Counter(f.reason.value for f in failures))


def generate_slo_report(
    period_start: str,
    period_end: str,
    query_results: Sequence[Sequence[MemoryResult]],
    failures: Sequence[RecallFailure] = (),
    cross_session_attempts: int = 0,
    cross_session_successes: int = 0,
    namespace_compliance: Sequence[SLOComplianceStatus] = (),
    avg_drift_score: float | None = None,
    config: SLOConfig | None = None,
) -> SLOReport:
    """Roll per-query result sets up into a period report.

    A query counts as fresh if any result is not stale, relevant if any
    result meets the relevance threshold, and successful if it returned
    anything. A query that is not both fresh and relevant violates the SLO;
    the report raises ``alert`` when violating queries exceed
    ``alert_threshold_percent`` and monitoring is enabled.
    ``next_evaluation_at`` is ``evaluation_interval_minutes`` after
    generation.
    """
    config = config or SLOConfig()
    threshold = config.freshness.relevance_threshold
    now = utc_now()
    report = SLOReport(
        period_start=period_start,
        period_end=period_end,
        generated_at=to_iso(now),
        next_evaluation_at=to_iso(now + timedelta(minutes=config.evaluation_interval_minutes)),
    )

    total_staleness = 0.0
    result_count = 0
    for results in query_results:
        report.total_queries += 1
        has_fresh = has_relevant = False
        for result in results:
            score, stale = _result_staleness(result, config)
            result_count += 1
            total_staleness += score
            has_fresh = has_fresh or not stale
            has_relevant = has_relevant or result.semantic_similarity >= threshold
        report.fresh_queries += has_fresh
        report.relevant_queries += has_relevant
        report.successful_recalls += bool(results)
        report.violating_queries += not (has_fresh and has_relevant)

    report.cross_session_attempts = cross_session_attempts
    report.cross_session_successes = cross_session_successes
    report.total_failures = len(failures)
    report.failures_by_reason = aggregate_failures(failures)
    report.avg_staleness_score = total_staleness / result_count if result_count else 0.0
    report.avg_drift_score = avg_drift_score
    report.namespace_compliance = list(namespace_compliance)
    report.alert = (
        config.enabled and report.violation_percent > config.alert_threshold_percent
    )
    return report


def _rate(numerator: int, denominator: int) -> str:
    if denominator <= 0:
        return "100.0%"
    return f"{numerator / denominator * 100:.1f}%"


def format_slo_report(report: SLOReport, *, width: int = 80) -> str:
    """Render a report as plain text tables."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=width, color_system=None, force_terminal=False)

    summary = Table(
        title=(
            f"SLO Compliance Report: {report.period_start[:10]} to {report.period_end[:10]}"
        ),
        show_header=True,
        min_width=60,
        header_style="bold cyan",
    )
    summary.add_column("Metric", style="bold")
    summary.add_column("Value", justify="right")
    summary.add_row("Total queries", str(report.total_queries))
    summary.add_row("Freshness rate", _rate(report.fresh_queries, report.total_queries))
    summary.add_row("Relevance rate", _rate(report.relevant_queries, report.total_queries))
    summary.add_row("Recall success", _rate(report.successful_recalls, report.total_queries))
    summary.add_row(
        "Cross-session",
        _rate(report.cross_session_successes, report.cross_session_attempts),
    )
    summary.add_row("Violating queries", f"{report.violation_percent:.1f}%")
    summary.add_row("Avg staleness", f"{report.avg_staleness_score:.3f}")
    if report.avg_drift_score is not None:
        summary.add_row("Avg drift", f"{report.avg_drift_score:.3f}")
    console.print(summary)
    if report.alert:
        console.print("ALERT: SLO violations exceed the alert threshold")

    if report.total_failures:
        failures = Table(title=f"Failures: {report.total_failures}", header_style="bold red")
        failures.add_column("Reason")
        failures.add_column("Count", justify="right")
        for reason, count in sorted(report.failures_by_reason.items()):
            if count > 0:
                failures.add_row(escape(reason), str(count))
        console.print(failures)

    if report.namespace_compliance:
        namespaces = Table(title="Namespace Compliance", header_style="bold cyan")
        namespaces.add_column("", justify="center")
        namespaces.add_column("Namespace")
        namespaces.add_column("Fresh", justify="right")
        namespaces.add_column("Violations")
        for status in report.namespace_compliance:
            details = "\n".join(
                f"[{v.severity.value.upper()}] {v.description}" for v in status.violations
            )
            namespaces.add_row(
                "✓" if status.is_compliant else "✗",
                escape(status.namespace_key),
                f"{status.freshness_compliance_percent:.0f}%",
                escape(details) if details else "-",
            )
        console.print(namespaces)

    return buffer.getvalue()
