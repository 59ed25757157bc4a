"""
Data models for traffic-split experiments.

ExperimentConfig and OutcomeRecord are owned by the Experiment Tracker.
VariantStatistics and ExperimentAnalysis are derived views recomputed from
outcomes on demand and never stored on their own.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

from .data_models import TokenUsage, utc_now


class PrimaryMetric(Enum):
    """Metric an experiment is decided on"""
    QUALITY = "quality"
    SPEED = "speed"
    COST = "cost"
    USER_PREFERENCE = "user_preference"


class ExperimentStatus(Enum):
    """draft -> active -> concluded (expired | stopped)"""
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    STOPPED = "stopped"


@dataclass(frozen=True)
class EvaluationCriteria:
    primary_metric: PrimaryMetric = PrimaryMetric.QUALITY
    secondary_metrics: Tuple[str, ...] = ()
    success_threshold: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_metric": self.primary_metric.value,
            "secondary_metrics": list(self.secondary_metrics),
            "success_threshold": self.success_threshold,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EvaluationCriteria":
        return cls(
            primary_metric=PrimaryMetric(data.get("primary_metric", "quality")),
            secondary_metrics=tuple(data.get("secondary_metrics") or ()),
            success_threshold=data.get("success_threshold"),
        )


@dataclass
class ExperimentConfig:
    """
    A named, time-bounded traffic split across a fixed set of variants.

    ``distribution`` maps variant id to a percentage; its insertion order is
    the iteration order used by weighted selection. Only ``status`` and
    ``distribution`` change after creation.
    """
    name: str
    variant_ids: List[str]
    distribution: Dict[str, float]
    id: str = ""
    description: str = ""
    start_time: datetime = field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    min_sample_size: int = 100
    criteria: EvaluationCriteria = field(default_factory=EvaluationCriteria)
    status: ExperimentStatus = ExperimentStatus.DRAFT

    @property
    def active(self) -> bool:
        return self.status is ExperimentStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.end_time is not None and self.end_time < now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "variant_ids": list(self.variant_ids),
            "distribution": dict(self.distribution),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "min_sample_size": self.min_sample_size,
            "active": self.active,
            "status": self.status.value,
            "criteria": self.criteria.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperimentConfig":
        end_time = data.get("end_time")
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            variant_ids=list(data["variant_ids"]),
            distribution={k: float(v) for k, v in data["distribution"].items()},
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(end_time) if end_time else None,
            min_sample_size=int(data.get("min_sample_size", 100)),
            criteria=EvaluationCriteria.from_dict(data.get("criteria") or {}),
            status=ExperimentStatus(data.get("status", "active")),
        )


@dataclass(frozen=True)
class OutcomeRecord:
    """
    One measured result of a single backend call, used as experiment evidence.

    ``experiment_id`` ties the record to its experiment explicitly; the
    request id is only used for tracing.
    """
    variant_id: str
    request_id: str
    experiment_id: Optional[str]
    response_time_ms: float
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    quality_score: Optional[float] = None
    user_rating: Optional[float] = None
    error_occurred: bool = False
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.quality_score is not None and not 0 <= self.quality_score <= 100:
            raise ValueError(f"quality_score must be within 0-100, got {self.quality_score}")
        if self.user_rating is not None and not 1 <= self.user_rating <= 5:
            raise ValueError(f"user_rating must be within 1-5, got {self.user_rating}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "request_id": self.request_id,
            "experiment_id": self.experiment_id,
            "timestamp": self.timestamp.isoformat(),
            "response_time_ms": self.response_time_ms,
            "token_usage": self.token_usage.to_dict(),
            "cost": self.cost,
            "quality_score": self.quality_score,
            "user_rating": self.user_rating,
            "error_occurred": self.error_occurred,
            "metadata": dict(self.metadata) if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutcomeRecord":
        return cls(
            variant_id=data["variant_id"],
            request_id=data["request_id"],
            experiment_id=data.get("experiment_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            response_time_ms=float(data["response_time_ms"]),
            token_usage=TokenUsage.from_dict(data.get("token_usage") or {}),
            cost=float(data.get("cost", 0.0)),
            quality_score=data.get("quality_score"),
            user_rating=data.get("user_rating"),
            error_occurred=bool(data.get("error_occurred", False)),
            metadata=data.get("metadata"),
        )


@dataclass(frozen=True)
class VariantStatistics:
    """Per-variant statistics within one experiment"""
    variant_id: str
    sample_size: int
    avg_response_time: float
    p95_response_time: float
    avg_cost: float
    avg_quality_score: float
    success_rate: float
    user_preference: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "sample_size": self.sample_size,
            "avg_response_time": self.avg_response_time,
            "p95_response_time": self.p95_response_time,
            "avg_cost": self.avg_cost,
            "avg_quality_score": self.avg_quality_score,
            "success_rate": self.success_rate,
            "user_preference": self.user_preference,
        }


@dataclass(frozen=True)
class ExperimentAnalysis:
    """
    Comparative analysis of an experiment.

    ``confidence`` is a sample-size heuristic capped at 95, not a p-value.
    """
    experiment_id: str
    model_stats: Dict[str, VariantStatistics]
    winner: Optional[str]
    confidence: float
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment_id": self.experiment_id,
            "model_stats": {k: v.to_dict() for k, v in self.model_stats.items()},
            "winner": self.winner,
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class ExperimentExport:
    """Serializable snapshot handed to an external store for persistence"""
    experiment: ExperimentConfig
    outcomes: List[OutcomeRecord]
    analysis: ExperimentAnalysis

    def to_dict(self) -> Dict[str, Any]:
        return {
            "experiment": self.experiment.to_dict(),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "analysis": self.analysis.to_dict(),
        }


@dataclass(frozen=True)
class SelectionContext:
    """Hints passed to variant selection"""
    task_type: Optional[str] = None
    preferred_variant: Optional[str] = None
    exclude_variants: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Selection:
    """Variant chosen by the tracker; experiment_id is set when a split decided it"""
    variant_id: str
    experiment_id: Optional[str] = None
