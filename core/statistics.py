"""
Pure statistics over experiment outcomes.

Everything here is a function of its inputs only, so statistics rebuilt from
an exported outcome list are identical to the ones ``analyze`` reported.
"""

from typing import Dict, Iterable, List, Optional

import numpy as np

from .experiment_models import (
    EvaluationCriteria, ExperimentAnalysis, ExperimentConfig, OutcomeRecord, PrimaryMetric, VariantStatistics
)

# Weights of the default "balanced" recommendation
BALANCED_QUALITY_WEIGHT = 0.4
BALANCED_SPEED_WEIGHT = 0.3
BALANCED_COST_WEIGHT = 0.3

CONFIDENCE_CAP = 95.0


def compute_variant_statistics(variant_id: str, outcomes: Iterable[OutcomeRecord]) -> Optional[VariantStatistics]:
    """
    Summarize the outcomes of one variant.

    Returns None when there are no outcomes, so callers can leave the variant
    out instead of reporting zeroed statistics.
    """
    records = list(outcomes)
    if not records:
        return None

    response_times = [r.response_time_ms for r in records]
    # unscored outcomes, failures included, count as 0
    quality_scores = [r.quality_score or 0.0 for r in records]
    ratings = [r.user_rating for r in records if r.user_rating is not None]
    successes = sum(1 for r in records if not r.error_occurred)

    return VariantStatistics(
        variant_id=variant_id,
        sample_size=len(records),
        avg_response_time=_mean(response_times),
        p95_response_time=percentile(response_times, 95),
        avg_cost=_mean([r.cost for r in records]),
        avg_quality_score=_mean(quality_scores),
        success_rate=successes / len(records),
        user_preference=(_mean(ratings) / 5) * 100 if ratings else 0.0,
    )


def compute_experiment_statistics(
    variant_ids: Iterable[str],
    outcomes: Iterable[OutcomeRecord],
) -> Dict[str, VariantStatistics]:
    """Group outcomes by variant and summarize each, skipping variants with no data"""
    grouped: Dict[str, List[OutcomeRecord]] = {variant_id: [] for variant_id in variant_ids}
    for record in outcomes:
        if record.variant_id in grouped:
            grouped[record.variant_id].append(record)

    stats = {}
    for variant_id, records in grouped.items():
        variant_stats = compute_variant_statistics(variant_id, records)
        if variant_stats is not None:
            stats[variant_id] = variant_stats
    return stats


def percentile(values: List[float], p: int) -> float:
    """Nearest-rank percentile; 0.0 for an empty list"""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = -(-p * len(ordered) // 100)  # ceil(p * n / 100)
    return float(ordered[max(0, rank - 1)])


def metric_value(stats: VariantStatistics, metric: PrimaryMetric) -> float:
    """Project a statistic onto a 0-100 scale for threshold checks"""
    if metric is PrimaryMetric.QUALITY:
        return stats.avg_quality_score
    if metric is PrimaryMetric.SPEED:
        return 100 - (stats.avg_response_time / 10)
    if metric is PrimaryMetric.COST:
        return 100 - (stats.avg_cost * 100)
    if metric is PrimaryMetric.USER_PREFERENCE:
        return stats.user_preference
    return 0.0


def determine_winner(stats: Dict[str, VariantStatistics], criteria: EvaluationCriteria) -> Optional[str]:
    """
    Rank variants on the primary metric.

    When a success threshold is configured the leader must clear it,
    otherwise there is no winner.
    """
    if not stats:
        return None

    variants = list(stats.values())
    metric = criteria.primary_metric
    if metric is PrimaryMetric.QUALITY:
        ranked = sorted(variants, key=lambda s: s.avg_quality_score, reverse=True)
    elif metric is PrimaryMetric.SPEED:
        ranked = sorted(variants, key=lambda s: s.avg_response_time)
    elif metric is PrimaryMetric.COST:
        ranked = sorted(variants, key=lambda s: s.avg_cost)
    else:
        ranked = sorted(variants, key=lambda s: s.user_preference, reverse=True)

    leader = ranked[0]
    if criteria.success_threshold is not None:
        if metric_value(leader, metric) < criteria.success_threshold:
            return None
    return leader.variant_id


def calculate_confidence(stats: Dict[str, VariantStatistics], min_sample_size: int) -> float:
    """
    Coarse confidence from the smallest sample relative to the declared minimum.

    This is a sample-size heuristic capped at 95, not statistical significance.
    """
    if len(stats) < 2:
        return 0.0
    smallest = min(s.sample_size for s in stats.values())
    return min(CONFIDENCE_CAP, CONFIDENCE_CAP * smallest / max(min_sample_size, 1))


def balanced_score(stats: VariantStatistics) -> float:
    return (
        stats.avg_quality_score * BALANCED_QUALITY_WEIGHT
        + (100 - stats.avg_response_time / 10) * BALANCED_SPEED_WEIGHT
        + (100 - stats.avg_cost * 100) * BALANCED_COST_WEIGHT
    )


def generate_recommendations(stats: Dict[str, VariantStatistics], min_sample_size: int) -> List[str]:
    """Plain-language recommendations: best per metric plus one balanced pick"""
    variants = list(stats.values())
    if not variants:
        return []

    recommendations = []

    min_samples = min(s.sample_size for s in variants)
    if min_samples < min_sample_size:
        recommendations.append(f"Continue testing: need {min_sample_size - min_samples} more samples")

    best_quality = max(variants, key=lambda s: s.avg_quality_score)
    best_speed = min(variants, key=lambda s: s.avg_response_time)
    best_cost = min(variants, key=lambda s: s.avg_cost)

    recommendations.append(f"Best quality: {best_quality.variant_id} ({best_quality.avg_quality_score:.1f}/100)")
    recommendations.append(f"Best speed: {best_speed.variant_id} ({best_speed.avg_response_time:.0f}ms)")
    recommendations.append(f"Best value: {best_cost.variant_id} (${best_cost.avg_cost:.4f}/request)")

    balanced = max(variants, key=balanced_score)
    recommendations.append(f"Best balanced: {balanced.variant_id}")

    return recommendations


def _mean(values: List[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def analyze_outcomes(experiment: ExperimentConfig, outcomes: Iterable[OutcomeRecord]) -> ExperimentAnalysis:
    """
    Build the full analysis of an experiment from a list of outcomes.

    Only records tagged with the experiment's id count, so an exported
    outcome list fed back in yields the same analysis.
    """
    records = [r for r in outcomes if r.experiment_id == experiment.id]
    stats = compute_experiment_statistics(experiment.variant_ids, records)
    return ExperimentAnalysis(
        experiment_id=experiment.id,
        model_stats=stats,
        winner=determine_winner(stats, experiment.criteria),
        confidence=calculate_confidence(stats, experiment.min_sample_size),
        recommendations=generate_recommendations(stats, experiment.min_sample_size),
    )
