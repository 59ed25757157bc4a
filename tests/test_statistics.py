"""Tests for outcome statistics and experiment analysis."""

import pytest

from core.experiment_models import (
    EvaluationCriteria, ExperimentConfig, OutcomeRecord, PrimaryMetric
)
from core.statistics import (
    analyze_outcomes, balanced_score, calculate_confidence, compute_experiment_statistics,
    compute_variant_statistics, determine_winner, generate_recommendations, metric_value, percentile
)


def outcome(variant_id, ms=100.0, cost=0.01, quality=None, rating=None, error=False, experiment_id="exp"):
    return OutcomeRecord(
        variant_id=variant_id,
        request_id=f"{experiment_id}_{variant_id}",
        experiment_id=experiment_id,
        response_time_ms=ms,
        cost=cost,
        quality_score=quality,
        user_rating=rating,
        error_occurred=error,
    )


def test_percentile_nearest_rank():
    values = list(range(1, 101))
    assert percentile(values, 95) == 95
    assert percentile([10, 20], 95) == 20
    assert percentile([], 95) == 0.0


def test_variant_statistics_empty_is_none():
    assert compute_variant_statistics("a", []) is None


def test_variant_statistics():
    stats = compute_variant_statistics("a", [
        outcome("a", ms=100, cost=0.01, quality=80, rating=5),
        outcome("a", ms=300, cost=0.03, quality=None, rating=3),
        outcome("a", ms=200, cost=0.02, quality=60, error=True),
    ])

    assert stats.sample_size == 3
    assert stats.avg_response_time == pytest.approx(200)
    assert stats.p95_response_time == 300
    assert stats.avg_cost == pytest.approx(0.02)
    # the unscored record counts as 0
    assert stats.avg_quality_score == pytest.approx(140 / 3)
    assert stats.success_rate == pytest.approx(2 / 3)
    assert stats.user_preference == pytest.approx(80)


def test_experiment_statistics_skip_variants_without_outcomes():
    stats = compute_experiment_statistics(["a", "b"], [outcome("a"), outcome("c")])
    assert list(stats) == ["a"]


class TestWinner:

    def setup_method(self):
        self.stats = compute_experiment_statistics(["fast", "good"], [
            outcome("fast", ms=100, cost=0.05, quality=60),
            outcome("good", ms=900, cost=0.01, quality=90),
        ])

    def test_quality_picks_highest(self):
        assert determine_winner(self.stats, EvaluationCriteria(PrimaryMetric.QUALITY)) == "good"

    def test_speed_picks_lowest_latency(self):
        assert determine_winner(self.stats, EvaluationCriteria(PrimaryMetric.SPEED)) == "fast"

    def test_cost_picks_cheapest(self):
        assert determine_winner(self.stats, EvaluationCriteria(PrimaryMetric.COST)) == "good"

    def test_threshold_not_met_means_no_winner(self):
        criteria = EvaluationCriteria(PrimaryMetric.QUALITY, success_threshold=95)
        assert determine_winner(self.stats, criteria) is None

    def test_threshold_on_speed_scale(self):
        # speed metric value for "fast" is 100 - 100/10 = 90
        assert metric_value(self.stats["fast"], PrimaryMetric.SPEED) == pytest.approx(90)
        assert determine_winner(self.stats, EvaluationCriteria(PrimaryMetric.SPEED, success_threshold=85)) == "fast"

    def test_failures_lower_quality(self):
        outcomes = [outcome("flaky", quality=90)] + [outcome("flaky", error=True) for _ in range(9)]
        outcomes += [outcome("steady", quality=80) for _ in range(10)]
        stats = compute_experiment_statistics(["flaky", "steady"], outcomes)

        assert stats["flaky"].avg_quality_score == pytest.approx(9)
        assert determine_winner(stats, EvaluationCriteria(PrimaryMetric.QUALITY)) == "steady"

    def test_no_stats_no_winner(self):
        assert determine_winner({}, EvaluationCriteria()) is None


def test_confidence_is_capped_sample_heuristic():
    few = compute_experiment_statistics(["a", "b"], [outcome("a")] * 10 + [outcome("b")] * 50)
    many = compute_experiment_statistics(["a", "b"], [outcome("a")] * 200 + [outcome("b")] * 300)

    assert calculate_confidence(few, 100) == pytest.approx(9.5)
    assert calculate_confidence(many, 100) == 95
    assert calculate_confidence({"a": few["a"]}, 100) == 0.0


def test_recommendations():
    stats = compute_experiment_statistics(["a", "b"], [
        outcome("a", ms=100, cost=0.002, quality=70),
        outcome("b", ms=500, cost=0.010, quality=95),
    ])
    recommendations = generate_recommendations(stats, min_sample_size=100)

    assert recommendations[0] == "Continue testing: need 99 more samples"
    assert "Best quality: b (95.0/100)" in recommendations
    assert "Best speed: a (100ms)" in recommendations
    assert "Best value: a ($0.0020/request)" in recommendations
    # a: 0.4*70 + 0.3*90 + 0.3*99.8 = 84.94, b: 0.4*95 + 0.3*50 + 0.3*99 = 82.7
    assert balanced_score(stats["a"]) == pytest.approx(84.94)
    assert recommendations[-1] == "Best balanced: a"


def test_analysis_only_counts_own_experiment():
    experiment = ExperimentConfig(id="exp", name="t", variant_ids=["a", "b"], distribution={"a": 50, "b": 50})
    analysis = analyze_outcomes(experiment, [
        outcome("a", quality=80),
        outcome("b", quality=90, experiment_id="other"),
    ])

    assert list(analysis.model_stats) == ["a"]
    assert analysis.winner == "a"
    assert analysis.confidence == 0.0
