"""
Built-in variant table.

Prices are per 1K tokens. Performance figures are observed averages and are
expected to be overridden from config as live data accumulates.
"""

from datetime import date
from typing import List

from .descriptors import (
    VariantDescriptor, VariantCapabilities, PricingTier, PerformanceProfile,
    ReasoningLevel, SpeedTier, ModelFamily, ModelTier
)


DEFAULT_VARIANT_ID = "gpt-5-mini"


def default_variants() -> List[VariantDescriptor]:
    """Return the built-in variants registered by ``VariantCatalog.with_defaults``"""
    return [
        VariantDescriptor(
            id="gpt-4o",
            name="GPT-4 Omni",
            family=ModelFamily.GPT4,
            tier=ModelTier.FLAGSHIP,
            api_identifier="gpt-4o",
            capabilities=VariantCapabilities(
                max_tokens=4096,
                context_window=128000,
                reasoning_level=ReasoningLevel.EXPERT,
                speed=SpeedTier.MEDIUM,
                supports_vision=True,
                supports_function_calling=True,
                supports_streaming=True,
                specializations=("code", "analysis", "creative", "multimodal"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.005, output_cost_per_1k=0.015),
            performance=PerformanceProfile(
                avg_latency_ms=1200, p95_latency_ms=3000, throughput_rps=100, reliability=0.99
            ),
            release_date=date(2024, 5, 13),
            recommended_for=("complex reasoning", "code generation", "multimodal tasks"),
        ),
        VariantDescriptor(
            id="gpt-5",
            name="GPT-5 Flagship",
            family=ModelFamily.GPT5,
            tier=ModelTier.FLAGSHIP,
            api_identifier="gpt-5",
            capabilities=VariantCapabilities(
                max_tokens=8192,
                context_window=256000,
                reasoning_level=ReasoningLevel.SUPERHUMAN,
                speed=SpeedTier.MEDIUM,
                supports_vision=True,
                supports_function_calling=True,
                supports_streaming=True,
                specializations=("reasoning", "code", "analysis", "creative", "multimodal", "agents"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.008, output_cost_per_1k=0.024, batch_discount=0.5),
            performance=PerformanceProfile(
                avg_latency_ms=1500, p95_latency_ms=3500, throughput_rps=80, reliability=0.995
            ),
            release_date=date(2025, 1, 8),
            recommended_for=(
                "complex reasoning", "advanced code generation", "research",
                "long-context tasks", "agent workflows",
            ),
        ),
        VariantDescriptor(
            id="gpt-5-mini",
            name="GPT-5 Mini",
            family=ModelFamily.GPT5,
            tier=ModelTier.MINI,
            api_identifier="gpt-5-mini",
            capabilities=VariantCapabilities(
                max_tokens=4096,
                context_window=128000,
                reasoning_level=ReasoningLevel.ADVANCED,
                speed=SpeedTier.FAST,
                supports_vision=True,
                supports_function_calling=True,
                supports_streaming=True,
                specializations=("code", "analysis", "creative", "chat"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.002, output_cost_per_1k=0.006, batch_discount=0.5),
            performance=PerformanceProfile(
                avg_latency_ms=600, p95_latency_ms=1500, throughput_rps=200, reliability=0.99
            ),
            release_date=date(2025, 1, 8),
            recommended_for=("general tasks", "chat", "code completion", "cost-sensitive applications"),
        ),
        VariantDescriptor(
            id="gpt-5-nano",
            name="GPT-5 Nano",
            family=ModelFamily.GPT5,
            tier=ModelTier.NANO,
            api_identifier="gpt-5-nano",
            capabilities=VariantCapabilities(
                max_tokens=2048,
                context_window=32000,
                reasoning_level=ReasoningLevel.BASIC,
                speed=SpeedTier.ULTRAFAST,
                supports_vision=False,
                supports_function_calling=True,
                supports_streaming=True,
                specializations=("chat", "simple-tasks", "classification"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.0005, output_cost_per_1k=0.0015, batch_discount=0.5),
            performance=PerformanceProfile(
                avg_latency_ms=200, p95_latency_ms=500, throughput_rps=500, reliability=0.98
            ),
            release_date=date(2025, 1, 8),
            recommended_for=("simple tasks", "high-volume processing", "real-time applications"),
            not_recommended_for=("complex reasoning", "long-form generation"),
        ),
        VariantDescriptor(
            id="claude-3.5-sonnet",
            name="Claude 3.5 Sonnet (Bedrock)",
            family=ModelFamily.CLAUDE,
            tier=ModelTier.FLAGSHIP,
            api_identifier="anthropic.claude-3-5-sonnet-20241022-v2:0",
            capabilities=VariantCapabilities(
                max_tokens=8192,
                context_window=200000,
                reasoning_level=ReasoningLevel.EXPERT,
                speed=SpeedTier.MEDIUM,
                supports_vision=True,
                supports_function_calling=True,
                supports_streaming=True,
                specializations=("code", "analysis", "writing", "reasoning"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.003, output_cost_per_1k=0.015),
            performance=PerformanceProfile(
                avg_latency_ms=1400, p95_latency_ms=3200, throughput_rps=60, reliability=0.99
            ),
            release_date=date(2024, 10, 22),
            recommended_for=("complex reasoning", "code review", "long-form generation"),
        ),
        VariantDescriptor(
            id="claude-3-haiku",
            name="Claude 3 Haiku (Bedrock)",
            family=ModelFamily.CLAUDE,
            tier=ModelTier.MINI,
            api_identifier="anthropic.claude-3-haiku-20240307-v1:0",
            capabilities=VariantCapabilities(
                max_tokens=4096,
                context_window=200000,
                reasoning_level=ReasoningLevel.ADVANCED,
                speed=SpeedTier.FAST,
                supports_vision=True,
                supports_function_calling=False,
                supports_streaming=True,
                specializations=("chat", "summarization", "classification"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.00025, output_cost_per_1k=0.00125),
            performance=PerformanceProfile(
                avg_latency_ms=500, p95_latency_ms=1200, throughput_rps=150, reliability=0.985
            ),
            release_date=date(2024, 3, 7),
            recommended_for=("chat", "summarization", "high-volume processing"),
        ),
        VariantDescriptor(
            id="llama3-local",
            name="Llama 3 (local Ollama)",
            family=ModelFamily.LOCAL,
            tier=ModelTier.MINI,
            api_identifier="llama3",
            capabilities=VariantCapabilities(
                max_tokens=2048,
                context_window=8192,
                reasoning_level=ReasoningLevel.BASIC,
                speed=SpeedTier.SLOW,
                supports_streaming=True,
                specializations=("chat", "offline"),
            ),
            pricing=PricingTier(input_cost_per_1k=0.0, output_cost_per_1k=0.0),
            performance=PerformanceProfile(
                avg_latency_ms=2500, p95_latency_ms=6000, throughput_rps=2, reliability=0.95
            ),
            recommended_for=("offline tasks", "private data", "chat"),
        ),
    ]
