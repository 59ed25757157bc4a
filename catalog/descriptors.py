"""
Variant descriptors for the Backend Catalog.

A variant is one selectable backend configuration (a specific model served by
a specific provider). Descriptors carry the capability, pricing and observed
performance metadata used to pick a variant.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Dict, Any, Optional, Tuple, Union


class ReasoningLevel(Enum):
    """Reasoning tier, ordered basic < advanced < expert < superhuman"""
    BASIC = "basic"
    ADVANCED = "advanced"
    EXPERT = "expert"
    SUPERHUMAN = "superhuman"

    @property
    def rank(self) -> int:
        return _REASONING_ORDER.index(self)

    @classmethod
    def coerce(cls, value: Union[str, "ReasoningLevel"]) -> "ReasoningLevel":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


_REASONING_ORDER = [
    ReasoningLevel.BASIC,
    ReasoningLevel.ADVANCED,
    ReasoningLevel.EXPERT,
    ReasoningLevel.SUPERHUMAN,
]


class SpeedTier(Enum):
    """Relative speed classification"""
    ULTRAFAST = "ultrafast"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class ModelFamily(Enum):
    """Family / provider classification of a variant"""
    GPT4 = "gpt-4"
    GPT5 = "gpt-5"
    CLAUDE = "claude"
    LOCAL = "local"


class ModelTier(Enum):
    """Tier within a family"""
    FLAGSHIP = "flagship"
    MINI = "mini"
    NANO = "nano"
    TURBO = "turbo"


@dataclass(frozen=True)
class VariantCapabilities:
    """What a variant can do"""
    max_tokens: int
    context_window: int
    reasoning_level: ReasoningLevel
    speed: SpeedTier = SpeedTier.MEDIUM
    supports_vision: bool = False
    supports_function_calling: bool = False
    supports_streaming: bool = False
    specializations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PricingTier:
    """Cost per 1K tokens; batch_discount is a fraction in [0, 1]"""
    input_cost_per_1k: float
    output_cost_per_1k: float
    batch_discount: Optional[float] = None


@dataclass(frozen=True)
class PerformanceProfile:
    """Observed performance; reliability is a score in [0, 1]"""
    avg_latency_ms: float
    p95_latency_ms: float
    throughput_rps: float
    reliability: float


@dataclass(frozen=True)
class VariantDescriptor:
    """
    Catalog entry for one variant.

    Immutable once registered. The only lifecycle change is retiring a
    variant, which produces a copy with ``deprecated=True`` (see
    ``VariantCatalog.deprecate``) so its history stays resolvable.
    """
    id: str
    name: str
    family: ModelFamily
    tier: ModelTier
    api_identifier: str
    capabilities: VariantCapabilities
    pricing: PricingTier
    performance: PerformanceProfile
    release_date: Optional[date] = None
    deprecated: bool = False
    recommended_for: Tuple[str, ...] = ()
    not_recommended_for: Tuple[str, ...] = field(default_factory=tuple)

    def with_deprecated(self, deprecated: bool = True) -> "VariantDescriptor":
        return replace(self, deprecated=deprecated)

    def is_recommended_for(self, task_type: str) -> bool:
        """Case-insensitive substring match against the recommended-for tags"""
        needle = task_type.lower()
        return any(needle in tag.lower() for tag in self.recommended_for)

    def to_dict(self) -> Dict[str, Any]:
        caps = self.capabilities
        return {
            "id": self.id,
            "name": self.name,
            "family": self.family.value,
            "tier": self.tier.value,
            "api_identifier": self.api_identifier,
            "capabilities": {
                "max_tokens": caps.max_tokens,
                "context_window": caps.context_window,
                "reasoning_level": caps.reasoning_level.value,
                "speed": caps.speed.value,
                "supports_vision": caps.supports_vision,
                "supports_function_calling": caps.supports_function_calling,
                "supports_streaming": caps.supports_streaming,
                "specializations": list(caps.specializations),
            },
            "pricing": {
                "input_cost_per_1k": self.pricing.input_cost_per_1k,
                "output_cost_per_1k": self.pricing.output_cost_per_1k,
                "batch_discount": self.pricing.batch_discount,
            },
            "performance": {
                "avg_latency_ms": self.performance.avg_latency_ms,
                "p95_latency_ms": self.performance.p95_latency_ms,
                "throughput_rps": self.performance.throughput_rps,
                "reliability": self.performance.reliability,
            },
            "release_date": self.release_date.isoformat() if self.release_date else None,
            "deprecated": self.deprecated,
            "recommended_for": list(self.recommended_for),
            "not_recommended_for": list(self.not_recommended_for),
        }


@dataclass(frozen=True)
class VariantRequirements:
    """Hard constraints and an optional task hint for best-fit search"""
    task_type: Optional[str] = None
    max_latency_ms: Optional[float] = None
    max_cost_per_1k: Optional[float] = None
    min_reasoning_level: Optional[Union[str, ReasoningLevel]] = None
    requires_vision: bool = False
