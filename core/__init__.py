"""
Core Components Package.

This package contains the data models, error taxonomy and outcome statistics
used throughout the dispatch system.
"""

from .data_models import BackendRequest, BackendResponse, BackendCapabilities, TokenUsage, as_utc, utc_now
from .errors import (
    DispatchError,
    ConfigurationError,
    NotFoundError,
    TransportError,
    RateLimitError,
    AuthenticationError,
    ModelNotFoundError,
    BackendTimeoutError
)
from .experiment_models import (
    ExperimentConfig,
    ExperimentStatus,
    EvaluationCriteria,
    PrimaryMetric,
    OutcomeRecord,
    VariantStatistics,
    ExperimentAnalysis,
    ExperimentExport,
    SelectionContext,
    Selection
)
from .statistics import compute_variant_statistics, compute_experiment_statistics, analyze_outcomes

__all__ = [
    "BackendRequest",
    "BackendResponse",
    "BackendCapabilities",
    "TokenUsage",
    "utc_now",
    "as_utc",
    "DispatchError",
    "ConfigurationError",
    "NotFoundError",
    "TransportError",
    "RateLimitError",
    "AuthenticationError",
    "ModelNotFoundError",
    "BackendTimeoutError",
    "ExperimentConfig",
    "ExperimentStatus",
    "EvaluationCriteria",
    "PrimaryMetric",
    "OutcomeRecord",
    "VariantStatistics",
    "ExperimentAnalysis",
    "ExperimentExport",
    "SelectionContext",
    "Selection",
    "compute_variant_statistics",
    "compute_experiment_statistics",
    "analyze_outcomes"
]
