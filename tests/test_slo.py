from __future__ import annotations

from datetime import timedelta

import pytest
from memlane_core.config import FreshnessSLOConfig, SLOConfig
from memlane_core.ranking import rank_memories
from memlane_core.types import MemoryQuery, parse_timestamp
from memlane_engine.recall import RecallFailureReason, create_recall_failure
from memlane_engine.slo import (
    Severity,
    SLOType,
    aggregate_failures,
    evaluate_freshness,
    evaluate_namespace_compliance,
    evaluate_relevance,
    format_slo_report,
    generate_slo_report,
)

STALE_HOURS = 24 * 100


@pytest.fixture
def results_for(namespace):
    def _rank(memories, **query):
        return rank_memories(memories, MemoryQuery(namespace=namespace, limit=None, **query))
    return _rank


class TestEvaluateFreshness:
    def test_empty(self):
        evaluation = evaluate_freshness([])
        assert evaluation.total == 0
        assert evaluation.violations == []

    def test_all_fresh(self, make_memory, results_for):
        results = results_for([make_memory(age_hours=1), make_memory(age_hours=2)])
        evaluation = evaluate_freshness(results)
        assert evaluation.compliant == 2
        assert evaluation.violations == []
        assert evaluation.avg_staleness < 0.01

    def test_half_stale_is_critical(self, make_memory, results_for):
        results = results_for([make_memory(), make_memory(age_hours=STALE_HOURS)])
        evaluation = evaluate_freshness(results)

        assert evaluation.compliant == 1
        violation = evaluation.violations[0]
        assert violation.slo_type is SLOType.FRESHNESS
        assert violation.actual_value == pytest.approx(50.0)
        assert violation.required_value == 95.0
        assert violation.severity is Severity.CRITICAL

    def test_slightly_below_target_is_warning(self, make_memory, results_for):
        memories = [make_memory() for _ in range(9)] + [make_memory(age_hours=STALE_HOURS)]
        evaluation = evaluate_freshness(results_for(memories))
        assert evaluation.violations[0].severity is Severity.WARNING


class TestEvaluateRelevance:
    def test_threshold_from_config(self, make_memory, results_for):
        memories = [make_memory("dark mode"), make_memory("billing address")]
        results = results_for(memories, query="dark mode")

        evaluation = evaluate_relevance(results)
        assert evaluation.compliant == 1
        assert evaluation.violations[0].slo_type is SLOType.RELEVANCE

        lenient = SLOConfig(freshness=FreshnessSLOConfig(relevance_threshold=0.0))
        assert evaluate_relevance(results, lenient).violations == []


class TestNamespaceCompliance:
    def test_compliant(self, make_memory, results_for, namespace):
        results = results_for([make_memory("dark mode")], query="dark mode")
        status = evaluate_namespace_compliance(namespace, results)

        assert status.is_compliant
        assert status.namespace_key == namespace.key
        assert status.recall_compliance_percent == 100.0
        assert status.cross_session_success_percent == 100.0

    def test_empty_results_violate_recall(self, namespace):
        failure = create_recall_failure(RecallFailureReason.NO_MATCHES)
        status = evaluate_namespace_compliance(namespace, [], failures=[failure])

        assert not status.is_compliant
        assert status.failure_count == 1
        assert [v.slo_type for v in status.violations] == [SLOType.RECALL]
        assert status.violations[0].severity is Severity.WARNING

    @pytest.mark.parametrize(("successes", "severity"), [
        (8, Severity.WARNING),
        (6, Severity.CRITICAL),
    ])
    def test_cross_session_rate(
        self, make_memory, results_for, namespace, successes, severity,
    ):
        results = results_for([make_memory("dark mode")], query="dark mode")
        status = evaluate_namespace_compliance(
            namespace, results, cross_session_attempts=10, cross_session_successes=successes,
        )

        violation = next(v for v in status.violations if v.slo_type is SLOType.CROSS_SESSION)
        assert violation.actual_value == pytest.approx(successes * 10)
        assert violation.required_value == 90.0
        assert violation.severity is severity

    def test_disabled_monitoring_reports_without_violations(self, namespace):
        status = evaluate_namespace_compliance(
            namespace, [], cross_session_attempts=10, cross_session_successes=0,
            config=SLOConfig(enabled=False),
        )
        assert status.is_compliant
        assert status.violations == []
        assert status.recall_compliance_percent == 0.0
        assert status.cross_session_success_percent == 0.0


class TestReports:
    def test_aggregate_failures(self):
        failures = [
            create_recall_failure(RecallFailureReason.NO_MATCHES),
            create_recall_failure(RecallFailureReason.NO_MATCHES),
            create_recall_failure(RecallFailureReason.TIMEOUT),
        ]
        assert aggregate_failures(failures) == {"no_matches": 2, "timeout": 1}

    def test_generate_report(self, make_memory, results_for, namespace):
        fresh = results_for([make_memory("dark mode")], query="dark mode")
        stale = results_for([make_memory("dark mode", age_hours=STALE_HOURS)], query="dark mode")
        failures = [create_recall_failure(RecallFailureReason.NO_MATCHES)]

        report = generate_slo_report(
            "2026-01-01T00:00:00Z", "2026-01-08T00:00:00Z",
            [fresh, stale, []],
            failures=failures,
            cross_session_attempts=4,
            cross_session_successes=3,
        )

        assert report.report_id.startswith("slo_")
        assert report.total_queries == 3
        assert report.fresh_queries == 1
        assert report.relevant_queries == 2
        assert report.successful_recalls == 2
        assert report.failures_by_reason == {"no_matches": 1}
        assert 0.5 <= report.avg_staleness_score < 0.6
        assert report.violating_queries == 2
        assert report.violation_percent == pytest.approx(200 / 3)
        assert report.alert

    @pytest.mark.parametrize(("config", "alert"), [
        (SLOConfig(alert_threshold_percent=50.0), False),
        (SLOConfig(alert_threshold_percent=20.0), True),
        (SLOConfig(alert_threshold_percent=20.0, enabled=False), False),
    ])
    def test_alert_threshold(self, make_memory, results_for, config, alert):
        good = results_for([make_memory("dark mode")], query="dark mode")
        report = generate_slo_report(
            "2026-01-01T00:00:00Z", "2026-01-08T00:00:00Z",
            [good, good, good, []],
            config=config,
        )
        assert report.violation_percent == pytest.approx(25.0)
        assert report.alert is alert

    def test_next_evaluation_follows_interval(self):
        report = generate_slo_report(
            "2026-01-01T00:00:00Z", "2026-01-08T00:00:00Z", [],
            config=SLOConfig(evaluation_interval_minutes=90),
        )
        generated = parse_timestamp(report.generated_at)
        assert parse_timestamp(report.next_evaluation_at) - generated == timedelta(minutes=90)
        assert report.violation_percent == 0.0
        assert not report.alert

    def test_format_report(self, namespace):
        status = evaluate_namespace_compliance(namespace, [])
        report = generate_slo_report(
            "2026-01-01T00:00:00Z", "2026-01-08T00:00:00Z", [[]],
            failures=[create_recall_failure(RecallFailureReason.STORAGE_ERROR)],
            namespace_compliance=[status],
            avg_drift_score=0.25,
        )

        text = format_slo_report(report, width=120)

        assert "SLO Compliance Report: 2026-01-01 to 2026-01-08" in text
        assert "Recall success" in text
        assert "0.0%" in text
        assert "storage_error" in text
        assert namespace.key in text
        assert "[WARNING]" in text
        assert "0.250" in text
        assert "Violating queries" in text
        assert "ALERT" in text
