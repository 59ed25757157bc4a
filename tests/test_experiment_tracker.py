"""Tests for the experiment tracker: validation, selection, outcomes and export."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from catalog import DEFAULT_VARIANT_ID
from core.data_models import utc_now
from core.errors import ConfigurationError, NotFoundError
from core.experiment_models import (
    ExperimentConfig, ExperimentStatus, OutcomeRecord, PrimaryMetric, SelectionContext
)
from core.statistics import compute_variant_statistics
from routers import ExperimentTracker


class Clock:
    """Settable clock"""

    def __init__(self):
        self.now = utc_now()

    def __call__(self):
        return self.now


def split(variant_weights, **kwargs):
    return ExperimentConfig(
        name="split",
        variant_ids=list(variant_weights),
        distribution=dict(variant_weights),
        **kwargs
    )


class TestCreateExperiment:

    def setup_method(self):
        self.tracker = ExperimentTracker(seed=1)

    def test_distribution_must_sum_to_100(self):
        with pytest.raises(ConfigurationError):
            self.tracker.create_experiment(split({"a": 60, "b": 30}))
        assert self.tracker.list_experiments() == []

    def test_tolerance(self):
        experiment = self.tracker.create_experiment(split({"a": 33.33, "b": 33.33, "c": 33.335}))
        assert experiment.active

    def test_distribution_keys_must_be_variants(self):
        config = ExperimentConfig(name="x", variant_ids=["a"], distribution={"a": 50, "b": 50})
        with pytest.raises(ConfigurationError):
            self.tracker.create_experiment(config)

    def test_negative_weights_rejected(self):
        with pytest.raises(ConfigurationError):
            self.tracker.create_experiment(split({"a": 120, "b": -20}))

    def test_unknown_catalog_variant_rejected(self, catalog):
        tracker = ExperimentTracker(catalog=catalog)
        with pytest.raises(ConfigurationError):
            tracker.create_experiment(split({"gpt-4o": 50, "mystery": 50}))

    def test_generates_id_and_activates(self):
        experiment = self.tracker.create_experiment(split({"a": 50, "b": 50}))
        assert experiment.id.startswith("exp_")
        assert experiment.status is ExperimentStatus.ACTIVE
        assert self.tracker.get_experiment(experiment.id) == experiment

    def test_returned_experiments_are_copies(self):
        experiment = self.tracker.create_experiment(split({"a": 50, "b": 50}))
        experiment.distribution["a"] = 500
        experiment.status = ExperimentStatus.STOPPED

        listed = self.tracker.list_experiments()[0]
        listed.distribution.clear()

        stored = self.tracker.get_experiment(experiment.id)
        assert stored.distribution == {"a": 50, "b": 50}
        assert stored.active

    def test_naive_times_are_taken_as_utc(self):
        naive_now = utc_now().replace(tzinfo=None)
        experiment = self.tracker.create_experiment(split(
            {"a": 100}, start_time=naive_now - timedelta(minutes=1), end_time=naive_now + timedelta(hours=1)
        ))

        assert experiment.start_time.tzinfo is not None
        assert experiment.end_time.tzinfo is not None
        assert self.tracker.select_variant().experiment_id == experiment.id
        assert self.tracker.list_experiments(active_only=True) == [experiment]

    def test_duplicate_id_rejected(self):
        self.tracker.create_experiment(split({"a": 100}, id="same"))
        with pytest.raises(ConfigurationError):
            self.tracker.create_experiment(split({"b": 100}, id="same"))


class TestSelection:

    def test_seventy_thirty_split(self):
        tracker = ExperimentTracker(seed=42)
        tracker.create_experiment(split({"a": 70, "b": 30}))

        counts = {"a": 0, "b": 0}
        for _ in range(10000):
            counts[tracker.select_variant().variant_id] += 1

        assert abs(counts["a"] - 7000) <= 300
        assert counts["a"] + counts["b"] == 10000

    def test_selection_carries_experiment_id(self):
        tracker = ExperimentTracker(seed=3)
        experiment = tracker.create_experiment(split({"a": 100}))
        selection = tracker.select_variant()
        assert selection.variant_id == "a"
        assert selection.experiment_id == experiment.id

    def test_zero_weight_never_selected(self):
        tracker = ExperimentTracker(seed=5)
        tracker.create_experiment(split({"a": 0, "b": 100}))
        assert {tracker.select_variant().variant_id for _ in range(200)} == {"b"}

    def test_exclusions_redistribute_within_experiment(self):
        tracker = ExperimentTracker(seed=9)
        tracker.create_experiment(split({"a": 50, "b": 25, "c": 25}))
        chosen = {tracker.select_variant(SelectionContext(exclude_variants=("a",))).variant_id for _ in range(200)}
        assert chosen == {"b", "c"}

    def test_fully_excluded_experiment_falls_through(self):
        tracker = ExperimentTracker(seed=9)
        tracker.create_experiment(split({"a": 100}))
        selection = tracker.select_variant(SelectionContext(preferred_variant="p", exclude_variants=("a",)))
        assert selection.variant_id == "p"
        assert selection.experiment_id is None

    def test_preferred_then_default(self):
        tracker = ExperimentTracker()
        assert tracker.select_variant(SelectionContext(preferred_variant="p")).variant_id == "p"
        assert tracker.select_variant().variant_id == DEFAULT_VARIANT_ID
        assert tracker.select_variant(
            SelectionContext(preferred_variant="p", exclude_variants=("p",))
        ).variant_id == DEFAULT_VARIANT_ID

    def test_expired_experiment_is_concluded_lazily(self):
        clock = Clock()
        tracker = ExperimentTracker(seed=1, clock=clock)
        experiment = tracker.create_experiment(split(
            {"a": 100}, start_time=clock.now, end_time=clock.now + timedelta(hours=1)
        ))
        assert tracker.select_variant().experiment_id == experiment.id

        clock.now += timedelta(hours=2)
        assert tracker.select_variant().experiment_id is None
        expired = tracker.get_experiment(experiment.id)
        assert expired.status is ExperimentStatus.EXPIRED
        assert not expired.active

    def test_future_experiment_not_yet_applicable(self):
        clock = Clock()
        tracker = ExperimentTracker(seed=1, clock=clock)
        tracker.create_experiment(split({"a": 100}, start_time=clock.now + timedelta(hours=1)))
        assert tracker.select_variant().variant_id == DEFAULT_VARIANT_ID

    def test_stopped_experiment_no_longer_selects(self):
        tracker = ExperimentTracker(seed=1)
        experiment = tracker.create_experiment(split({"a": 100}))
        assert tracker.stop_experiment(experiment.id).status is ExperimentStatus.STOPPED
        assert tracker.get_experiment(experiment.id).status is ExperimentStatus.STOPPED
        assert tracker.select_variant().experiment_id is None

    def test_update_distribution(self):
        tracker = ExperimentTracker(seed=1)
        experiment = tracker.create_experiment(split({"a": 100, "b": 0}))
        tracker.update_distribution(experiment.id, {"a": 0, "b": 100})
        assert tracker.select_variant().variant_id == "b"

        with pytest.raises(ConfigurationError):
            tracker.update_distribution(experiment.id, {"a": 10, "b": 10})


class TestComparison:

    def test_equal_split_and_reuse(self):
        tracker = ExperimentTracker()
        first = tracker.get_or_create_comparison(["a", "b", "c"])

        assert first.distribution == {"a": pytest.approx(100 / 3), "b": pytest.approx(100 / 3),
                                      "c": pytest.approx(100 / 3)}
        assert first.min_sample_size == 100
        assert first.criteria.primary_metric is PrimaryMetric.QUALITY
        assert first.criteria.secondary_metrics == ("speed", "cost")

        again = tracker.get_or_create_comparison(["c", "a", "b"])
        assert again.id == first.id
        assert len(tracker.list_experiments()) == 1


class TestAnalysis:

    def setup_method(self):
        self.tracker = ExperimentTracker(seed=1)
        self.experiment = self.tracker.create_experiment(split({"a": 50, "b": 30, "c": 20}, min_sample_size=10))

    def record(self, variant_id, **kwargs):
        self.tracker.record_outcome(OutcomeRecord(
            variant_id=variant_id,
            request_id=self.tracker.new_request_id(self.experiment.id),
            experiment_id=self.experiment.id,
            **kwargs
        ))

    def test_unknown_experiment(self):
        with pytest.raises(NotFoundError):
            self.tracker.analyze("missing")
        with pytest.raises(NotFoundError):
            self.tracker.export_results("missing")

    def test_zero_outcome_variants_are_excluded(self):
        self.record("a", response_time_ms=100, quality_score=80)
        self.record("b", response_time_ms=200, quality_score=90)

        analysis = self.tracker.analyze(self.experiment.id)
        assert set(analysis.model_stats) == {"a", "b"}
        assert analysis.winner == "b"

    def test_outcomes_from_other_experiments_ignored(self):
        self.record("a", response_time_ms=100, quality_score=80)
        self.tracker.record_outcome(OutcomeRecord(
            variant_id="b", request_id="x", experiment_id=None, response_time_ms=5, quality_score=100
        ))
        assert set(self.tracker.analyze(self.experiment.id).model_stats) == {"a"}

    def test_request_ids_are_traceable(self):
        assert self.tracker.new_request_id(self.experiment.id).startswith(self.experiment.id + "_")
        assert self.tracker.new_request_id().startswith("req_")

    def test_export_round_trip_reproduces_statistics(self):
        for i in range(12):
            self.record("a", response_time_ms=100 + i, cost=0.001 * i, quality_score=70 + i)
        for i in range(5):
            self.record("b", response_time_ms=300 + i, quality_score=90, user_rating=4, error_occurred=i == 0)

        export = self.tracker.export_results(self.experiment.id)
        payload = json.loads(json.dumps(export.to_dict()))

        restored = [OutcomeRecord.from_dict(o) for o in payload["outcomes"]]
        for variant_id, stats in export.analysis.model_stats.items():
            rebuilt = compute_variant_statistics(variant_id, [o for o in restored if o.variant_id == variant_id])
            assert rebuilt == stats

    def test_restore_rehydrates_experiment(self):
        self.record("a", response_time_ms=100, quality_score=80)
        payload = json.loads(json.dumps(self.tracker.export_results(self.experiment.id).to_dict()))

        fresh = ExperimentTracker()
        restored = fresh.restore(payload)

        assert restored.id == self.experiment.id
        assert fresh.analyze(restored.id).to_dict() == self.tracker.analyze(self.experiment.id).to_dict()
        with pytest.raises(ConfigurationError):
            fresh.restore(payload)

    def test_restore_accepts_naive_timestamps(self):
        payload = self.tracker.export_results(self.experiment.id).to_dict()
        naive_start = utc_now().replace(tzinfo=None) - timedelta(minutes=5)
        payload["experiment"]["id"] = "exp_naive"
        payload["experiment"]["start_time"] = naive_start.isoformat()
        payload["experiment"]["end_time"] = (naive_start + timedelta(days=1)).isoformat()

        tracker = ExperimentTracker(seed=4)
        restored = tracker.restore(payload)

        assert restored.start_time.tzinfo is not None
        assert tracker.select_variant().experiment_id == "exp_naive"
        assert tracker.analyze("exp_naive").experiment_id == "exp_naive"


class TestConcurrentOutcomes:

    THREADS = 8
    PER_THREAD = 500

    def setup_method(self):
        self.tracker = ExperimentTracker(seed=1)
        self.experiment = self.tracker.create_experiment(split({"a": 50, "b": 50}))

    def write(self, worker):
        for i in range(self.PER_THREAD):
            self.tracker.record_outcome(OutcomeRecord(
                variant_id="a" if i % 2 else "b",
                request_id=f"{worker}-{i}",
                experiment_id=self.experiment.id,
                response_time_ms=100 + worker,
                quality_score=80,
            ))

    def test_concurrent_writers_lose_nothing(self):
        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            list(pool.map(self.write, range(self.THREADS)))

        total = self.THREADS * self.PER_THREAD
        assert len(self.tracker.get_outcomes(self.experiment.id)) == total
        analysis = self.tracker.analyze(self.experiment.id)
        assert analysis.model_stats["a"].sample_size == total // 2
        assert analysis.model_stats["b"].sample_size == total // 2

    def test_analysis_during_writes_sees_consistent_snapshots(self):
        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            writers = [pool.submit(self.write, worker) for worker in range(self.THREADS)]
            sizes = []
            while not all(w.done() for w in writers):
                analysis = self.tracker.analyze(self.experiment.id)
                sizes.append(sum(s.sample_size for s in analysis.model_stats.values()))
            for writer in writers:
                writer.result()

        assert sizes == sorted(sizes)
        assert all(size <= self.THREADS * self.PER_THREAD for size in sizes)
        final = self.tracker.analyze(self.experiment.id)
        assert sum(s.sample_size for s in final.model_stats.values()) == self.THREADS * self.PER_THREAD
