"""
Backend Catalog Package.

Static-at-runtime registry of model variants with capability, pricing and
performance metadata, plus best-fit search.
"""

from .descriptors import (
    VariantDescriptor,
    VariantCapabilities,
    PricingTier,
    PerformanceProfile,
    VariantRequirements,
    ReasoningLevel,
    SpeedTier,
    ModelFamily,
    ModelTier
)
from .defaults import DEFAULT_VARIANT_ID, default_variants
from .variant_catalog import VariantCatalog

__all__ = [
    "VariantCatalog",
    "VariantDescriptor",
    "VariantCapabilities",
    "PricingTier",
    "PerformanceProfile",
    "VariantRequirements",
    "ReasoningLevel",
    "SpeedTier",
    "ModelFamily",
    "ModelTier",
    "DEFAULT_VARIANT_ID",
    "default_variants"
]
