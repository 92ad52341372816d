from __future__ import annotations

import pytest
from memlane_core.config import DriftConfig
from memlane_engine.drift import (
    calculate_drift_metrics,
    coherence_score,
    count_topic_changes,
    fragmentation_score,
    jaccard_similarity,
)


def test_jaccard_similarity():
    assert jaccard_similarity([], []) == 1.0
    assert jaccard_similarity(["a"], []) == 0.0
    assert jaccard_similarity(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)


class TestDriftMetrics:
    def test_empty_set(self):
        metrics = calculate_drift_metrics([])
        assert metrics.drift_score == 0.0
        assert metrics.coherence_score == 1.0
        assert metrics.fragmentation_score == 0.0
        assert not metrics.drift_detected

    def test_disjoint_topics(self, make_memory):
        memories = [
            make_memory(tags=["a", "b"], age_hours=3),
            make_memory(tags=["c", "d"], age_hours=2),
            make_memory(tags=["e", "f"], age_hours=1),
        ]
        metrics = calculate_drift_metrics(memories)

        assert metrics.topic_changes == 2
        assert metrics.fragmentation_score == 1.0
        assert metrics.coherence_score == pytest.approx(2 / 3)
        assert metrics.drift_score == pytest.approx(0.4 + 0.3 + 0.3 / 3)
        assert metrics.drift_detected

    def test_coherent_session(self, make_memory):
        memories = [make_memory(tags=["billing", "refunds"], age_hours=h) for h in (3, 2, 1)]
        metrics = calculate_drift_metrics(memories)

        assert metrics.topic_changes == 0
        assert metrics.fragmentation_score == 0.0
        assert metrics.coherence_score == 1.0
        assert metrics.drift_score == 0.0
        assert not metrics.drift_detected

    def test_thresholds_are_configurable(self, make_memory):
        tag_sets = [["a", "b"], ["a", "c"], ["a", "b"], ["d"]]
        memories = [
            make_memory(tags=tags, age_hours=4 - i) for i, tags in enumerate(tag_sets)
        ]
        lenient = calculate_drift_metrics(memories)
        assert lenient.topic_changes == 1
        assert lenient.fragmentation_score == pytest.approx(0.25)
        assert lenient.coherence_score == pytest.approx(0.875)
        assert lenient.drift_score == pytest.approx(0.4 / 3 + 0.075 + 0.0375)
        assert not lenient.drift_detected

        strict = calculate_drift_metrics(memories, DriftConfig(max_drift_score=0.2))
        assert strict.drift_detected

    def test_single_memory_is_not_fragmented(self, make_memory):
        assert fragmentation_score([make_memory(tags=["x"])]) == 0.0

    def test_untagged_memories_have_no_coherence(self, make_memory):
        memories = [make_memory(), make_memory()]
        assert coherence_score(memories) == 0.0
        assert count_topic_changes(memories) == 0

    @pytest.mark.parametrize("tag_sets", [
        [["a"]],
        [["a"], ["a"], ["b"]],
        [[], ["a", "b", "c"], ["c"]],
        [["x", "y"], ["y", "z"], ["z", "w"], ["w", "x"]],
        [[], [], []],
    ])
    def test_scores_bounded(self, make_memory, tag_sets):
        memories = [
            make_memory(tags=tags, age_hours=len(tag_sets) - i)
            for i, tags in enumerate(tag_sets)
        ]
        metrics = calculate_drift_metrics(memories)
        for value in (metrics.drift_score, metrics.coherence_score, metrics.fragmentation_score):
            assert 0.0 <= value <= 1.0
