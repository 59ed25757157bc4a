"""
Experiment Tracker.

Splits live traffic across variants according to declared experiments,
collects outcome records, and analyzes them on demand. The tracker is an
explicit instance shared by the Dispatcher and any reporting code; there is
no module-level singleton.
"""

import logging
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from catalog import DEFAULT_VARIANT_ID, VariantCatalog
from core.data_models import as_utc, utc_now
from core.errors import ConfigurationError, NotFoundError
from core.experiment_models import (
    EvaluationCriteria, ExperimentAnalysis, ExperimentConfig, ExperimentExport, ExperimentStatus,
    OutcomeRecord, PrimaryMetric, Selection, SelectionContext
)
from core.statistics import analyze_outcomes

logger = logging.getLogger(__name__)

DISTRIBUTION_TOLERANCE = 0.01
COMPARISON_MIN_SAMPLE_SIZE = 100


class ExperimentTracker:
    """
    Traffic splitter and outcome store.

    Outcomes are append-only lists per variant guarded by a lock; analysis
    works on a copy taken under the lock, so it reflects a point-in-time
    snapshot. Selection draws from a ``numpy.random.Generator`` that can be
    seeded or injected for reproducible splits.
    """

    def __init__(
        self,
        catalog: Optional[VariantCatalog] = None,
        default_variant: str = DEFAULT_VARIANT_ID,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        clock=utc_now,
    ):
        """
        Args:
            catalog: When given, experiments may only reference known variants
            default_variant: Variant used when no experiment or preference applies
            seed: Seed for the selection generator
            rng: Pre-built generator, takes precedence over ``seed``
            clock: Callable returning the current aware datetime
        """
        self.catalog = catalog
        self.default_variant = default_variant
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self._clock = clock
        self._lock = threading.Lock()
        self._experiments: Dict[str, ExperimentConfig] = {}
        self._outcomes: Dict[str, List[OutcomeRecord]] = defaultdict(list)

    # Experiment lifecycle

    def create_experiment(self, config: ExperimentConfig) -> ExperimentConfig:
        """
        Validate and store a new experiment, marking it active.

        Raises:
            ConfigurationError: If the distribution or variants are invalid;
                nothing is stored in that case
        """
        self._validate_variants(config.variant_ids)
        self._validate_distribution(config.variant_ids, config.distribution)
        if config.min_sample_size < 1:
            raise ConfigurationError(f"min_sample_size must be positive, got {config.min_sample_size}")
        start_time, end_time = as_utc(config.start_time), as_utc(config.end_time)
        if end_time is not None and end_time <= start_time:
            raise ConfigurationError("Experiment end_time must be after start_time")

        experiment = replace(
            config,
            id=config.id or self._generate_experiment_id(),
            variant_ids=list(config.variant_ids),
            distribution={k: float(v) for k, v in config.distribution.items()},
            start_time=start_time,
            end_time=end_time,
            status=ExperimentStatus.ACTIVE,
        )

        with self._lock:
            if experiment.id in self._experiments:
                raise ConfigurationError(f"Experiment {experiment.id} already exists")
            self._experiments[experiment.id] = experiment
            created = self._copy(experiment)

        logger.info(
            "Created experiment %s (%s) splitting %s",
            created.id, created.name,
            ", ".join(f"{v}={w:g}%" for v, w in created.distribution.items()),
        )
        return created

    def get_or_create_comparison(self, variant_ids: Iterable[str]) -> ExperimentConfig:
        """
        Reuse the active experiment over exactly these variants, or create an
        equal-split comparison judged on quality.
        """
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            raise ConfigurationError("A comparison needs at least one variant")

        wanted = set(ids)
        for experiment in self.list_experiments(active_only=True):
            if set(experiment.variant_ids) == wanted:
                return experiment

        share = 100.0 / len(ids)
        return self.create_experiment(ExperimentConfig(
            name=f"Comparison: {' vs '.join(ids)}",
            description=f"Automatic comparison between {', '.join(ids)}",
            variant_ids=ids,
            distribution={variant_id: share for variant_id in ids},
            min_sample_size=COMPARISON_MIN_SAMPLE_SIZE,
            criteria=EvaluationCriteria(
                primary_metric=PrimaryMetric.QUALITY,
                secondary_metrics=("speed", "cost"),
            ),
        ))

    def get_experiment(self, experiment_id: str) -> Optional[ExperimentConfig]:
        """Copy of the experiment, or None when unknown"""
        with self._lock:
            self._expire_stale(self._now())
            experiment = self._experiments.get(experiment_id)
            return self._copy(experiment) if experiment is not None else None

    def list_experiments(self, active_only: bool = False) -> List[ExperimentConfig]:
        with self._lock:
            self._expire_stale(self._now())
            experiments = [self._copy(e) for e in self._experiments.values()]
        if active_only:
            return [e for e in experiments if e.active]
        return experiments

    def stop_experiment(self, experiment_id: str) -> ExperimentConfig:
        """Conclude an experiment manually; its outcomes stay available"""
        with self._lock:
            experiment = self._require(experiment_id)
            if experiment.active:
                experiment.status = ExperimentStatus.STOPPED
            stopped = self._copy(experiment)
        logger.info("Stopped experiment %s", experiment_id)
        return stopped

    def update_distribution(self, experiment_id: str, distribution: Dict[str, float]) -> ExperimentConfig:
        """Replace the traffic split of an active experiment"""
        with self._lock:
            experiment = self._require(experiment_id)
            variant_ids = list(experiment.variant_ids)
        self._validate_distribution(variant_ids, distribution)

        with self._lock:
            if not experiment.active:
                raise ConfigurationError(f"Experiment {experiment_id} is {experiment.status.value}")
            experiment.distribution = {k: float(v) for k, v in distribution.items()}
            updated = self._copy(experiment)
        logger.info("Updated distribution of experiment %s", experiment_id)
        return updated

    # Selection

    def select_variant(self, context: Optional[SelectionContext] = None) -> Selection:
        """
        Pick a variant for one request. Never fails.

        The first active experiment with at least one non-excluded,
        positively weighted variant decides with a single weighted draw.
        Otherwise the preferred variant is used, then the default.
        """
        context = context or SelectionContext()
        excluded = set(context.exclude_variants)
        now = self._now()

        with self._lock:
            self._expire_stale(now)
            for experiment in self._experiments.values():
                if not experiment.active or experiment.start_time > now:
                    continue
                candidates = [
                    (variant_id, weight) for variant_id, weight in experiment.distribution.items()
                    if weight > 0 and variant_id not in excluded
                ]
                if not candidates:
                    continue

                total = sum(weight for _, weight in candidates)
                draw = self._rng.random() * total
                variant_id = self._walk(candidates, draw)
                logger.debug("Experiment %s drew %.3f -> %s", experiment.id, draw, variant_id)
                return Selection(variant_id=variant_id, experiment_id=experiment.id)

        if context.preferred_variant and context.preferred_variant not in excluded:
            return Selection(variant_id=context.preferred_variant)
        return Selection(variant_id=self.default_variant)

    @staticmethod
    def _walk(candidates, draw: float) -> str:
        cumulative = 0.0
        for variant_id, weight in candidates:
            cumulative += weight
            if draw <= cumulative:
                return variant_id
        # float rounding left the draw past the last bucket
        return candidates[0][0]

    # Outcomes

    def new_request_id(self, experiment_id: Optional[str] = None) -> str:
        """Request id, prefixed with the experiment id for tracing when given"""
        prefix = experiment_id or "req"
        return f"{prefix}_{uuid.uuid4().hex[:12]}"

    def record_outcome(self, record: OutcomeRecord) -> None:
        """Append an outcome. Fire-and-forget: unknown experiments are logged, not rejected."""
        with self._lock:
            if record.experiment_id and record.experiment_id not in self._experiments:
                logger.warning("Outcome %s references unknown experiment %s", record.request_id, record.experiment_id)
            self._outcomes[record.variant_id].append(record)
        logger.debug(
            "Recorded outcome %s for %s (%.0fms, error=%s)",
            record.request_id, record.variant_id, record.response_time_ms, record.error_occurred,
        )

    def get_outcomes(self, experiment_id: str) -> List[OutcomeRecord]:
        """Snapshot of the outcomes recorded for an experiment, in arrival order per variant"""
        with self._lock:
            experiment = self._require(experiment_id)
            return self._snapshot(experiment)

    # Analysis

    def analyze(self, experiment_id: str) -> ExperimentAnalysis:
        """
        Compare the variants of an experiment.

        Raises:
            NotFoundError: If the experiment does not exist
        """
        with self._lock:
            experiment = self._copy(self._require(experiment_id))
            outcomes = self._snapshot(experiment)
        return analyze_outcomes(experiment, outcomes)

    def export_results(self, experiment_id: str) -> ExperimentExport:
        """Config, full outcome list and analysis, ready for an external store"""
        with self._lock:
            config = self._copy(self._require(experiment_id))
            outcomes = self._snapshot(config)
        return ExperimentExport(experiment=config, outcomes=outcomes, analysis=analyze_outcomes(config, outcomes))

    def restore(self, snapshot: Union[ExperimentExport, Dict[str, Any]]) -> ExperimentConfig:
        """
        Rehydrate an experiment and its outcomes from an export.

        Raises:
            ConfigurationError: If an experiment with the same id is already tracked
        """
        if isinstance(snapshot, ExperimentExport):
            experiment = self._copy(snapshot.experiment)
            outcomes = list(snapshot.outcomes)
        else:
            experiment = ExperimentConfig.from_dict(snapshot["experiment"])
            outcomes = [OutcomeRecord.from_dict(o) for o in snapshot.get("outcomes", [])]
        experiment = replace(experiment, start_time=as_utc(experiment.start_time), end_time=as_utc(experiment.end_time))

        with self._lock:
            if experiment.id in self._experiments:
                raise ConfigurationError(f"Experiment {experiment.id} already exists")
            self._experiments[experiment.id] = experiment
            for record in outcomes:
                self._outcomes[record.variant_id].append(record)
            restored = self._copy(experiment)

        logger.info("Restored experiment %s with %d outcomes", experiment.id, len(outcomes))
        return restored

    # Internals

    def _now(self):
        return as_utc(self._clock())

    @staticmethod
    def _copy(experiment: ExperimentConfig) -> ExperimentConfig:
        return replace(experiment, variant_ids=list(experiment.variant_ids), distribution=dict(experiment.distribution))

    def _require(self, experiment_id: str) -> ExperimentConfig:
        self._expire_stale(self._now())
        experiment = self._experiments.get(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment {experiment_id} not found")
        return experiment

    def _snapshot(self, experiment: ExperimentConfig) -> List[OutcomeRecord]:
        return [
            record
            for variant_id in experiment.variant_ids
            for record in self._outcomes.get(variant_id, [])
            if record.experiment_id == experiment.id
        ]

    def _expire_stale(self, now) -> None:
        for experiment in self._experiments.values():
            if experiment.active and experiment.is_expired(now):
                experiment.status = ExperimentStatus.EXPIRED
                logger.info("Experiment %s expired", experiment.id)

    def _validate_variants(self, variant_ids: List[str]) -> None:
        if not variant_ids:
            raise ConfigurationError("Experiment needs at least one variant")
        if len(set(variant_ids)) != len(variant_ids):
            raise ConfigurationError(f"Duplicate variants in experiment: {variant_ids}")
        if self.catalog is not None:
            unknown = [v for v in variant_ids if v not in self.catalog]
            if unknown:
                raise ConfigurationError(f"Unknown variants: {unknown}", unknown[0])

    @staticmethod
    def _validate_distribution(variant_ids: List[str], distribution: Dict[str, float]) -> None:
        extra = [v for v in distribution if v not in variant_ids]
        if extra:
            raise ConfigurationError(f"Distribution references variants outside the experiment: {extra}", extra[0])
        negative = [v for v, w in distribution.items() if w < 0]
        if negative:
            raise ConfigurationError(f"Distribution weights must be non-negative: {negative}", negative[0])
        total = sum(distribution.values())
        if abs(total - 100) > DISTRIBUTION_TOLERANCE:
            raise ConfigurationError(f"Distribution must sum to 100%, got {total:g}%")

    @staticmethod
    def _generate_experiment_id() -> str:
        return f"exp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
