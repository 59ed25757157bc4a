"""
Backend Catalog.

Registry of known variants with capability, pricing and performance metadata,
plus a best-fit search over the active entries. Instances are created once at
process start and handed to the Dispatcher and Experiment Tracker; there is no
module-level singleton.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from .descriptors import ModelFamily, ReasoningLevel, VariantDescriptor, VariantRequirements
from .defaults import default_variants

logger = logging.getLogger(__name__)


class VariantCatalog:
    """
    Read-mostly registry of VariantDescriptors.

    Writes replace the whole index under a lock (copy-on-write), so readers
    never lock and always iterate a consistent snapshot. In-flight dispatches
    are not guaranteed to observe a registration made after they started.
    """

    def __init__(self, variants: Optional[Iterable[VariantDescriptor]] = None):
        self._lock = threading.Lock()
        self._variants: Dict[str, VariantDescriptor] = {}
        for descriptor in variants or []:
            self.register(descriptor)

    @classmethod
    def with_defaults(cls) -> "VariantCatalog":
        """Create a catalog seeded with the built-in variant table"""
        return cls(default_variants())

    def register(self, descriptor: VariantDescriptor) -> None:
        """
        Register or replace a variant.

        Idempotent upsert keyed by id; a later registration (e.g. a config
        reload) wins.
        """
        with self._lock:
            updated = dict(self._variants)
            replaced = descriptor.id in updated
            updated[descriptor.id] = descriptor
            self._variants = updated
        logger.debug("%s variant %s", "Replaced" if replaced else "Registered", descriptor.id)

    def deprecate(self, variant_id: str) -> bool:
        """Retire a variant without deleting it. Returns False if unknown."""
        with self._lock:
            current = self._variants.get(variant_id)
            if current is None:
                return False
            updated = dict(self._variants)
            updated[variant_id] = current.with_deprecated(True)
            self._variants = updated
        logger.info("Deprecated variant %s", variant_id)
        return True

    def get(self, variant_id: str) -> Optional[VariantDescriptor]:
        return self._variants.get(variant_id)

    def all(self) -> List[VariantDescriptor]:
        return list(self._variants.values())

    def active(self) -> List[VariantDescriptor]:
        return [v for v in self._variants.values() if not v.deprecated]

    def by_family(self, family: ModelFamily) -> List[VariantDescriptor]:
        return [v for v in self._variants.values() if v.family == family]

    def best_for(self, requirements: VariantRequirements) -> Optional[VariantDescriptor]:
        """
        Find the best active variant for a set of requirements.

        Hard constraints filter the candidates; a task-type hint then moves
        variants recommended for that task to the front, keeping registration
        order otherwise. Contradictory requirements legitimately yield None.

        Args:
            requirements: Constraints and optional task hint

        Returns:
            VariantDescriptor or None if nothing qualifies
        """
        candidates = self.active()

        if requirements.requires_vision:
            candidates = [v for v in candidates if v.capabilities.supports_vision]

        if requirements.max_latency_ms is not None:
            candidates = [
                v for v in candidates
                if v.performance.avg_latency_ms <= requirements.max_latency_ms
            ]

        if requirements.max_cost_per_1k is not None:
            candidates = [
                v for v in candidates
                if v.pricing.input_cost_per_1k <= requirements.max_cost_per_1k
            ]

        if requirements.min_reasoning_level is not None:
            min_rank = ReasoningLevel.coerce(requirements.min_reasoning_level).rank
            candidates = [
                v for v in candidates
                if v.capabilities.reasoning_level.rank >= min_rank
            ]

        if requirements.task_type:
            task_type = requirements.task_type
            # list.sort is stable: non-matching entries keep their relative order
            candidates.sort(key=lambda v: 0 if v.is_recommended_for(task_type) else 1)

        return candidates[0] if candidates else None

    def estimate_cost(self, variant_id: str, input_tokens: int, output_tokens: int) -> float:
        """Advisory cost estimate; 0.0 for unknown variants"""
        descriptor = self.get(variant_id)
        if descriptor is None:
            return 0.0

        input_cost = (input_tokens / 1000) * descriptor.pricing.input_cost_per_1k
        output_cost = (output_tokens / 1000) * descriptor.pricing.output_cost_per_1k
        return input_cost + output_cost

    def estimate_batch_cost(self, variant_id: str, input_tokens: int, output_tokens: int) -> float:
        """Cost estimate with the variant's batch discount applied, if it has one"""
        cost = self.estimate_cost(variant_id, input_tokens, output_tokens)
        descriptor = self.get(variant_id)
        if descriptor is None or not descriptor.pricing.batch_discount:
            return cost
        return cost * (1.0 - descriptor.pricing.batch_discount)

    def __contains__(self, variant_id: object) -> bool:
        return variant_id in self._variants

    def __len__(self) -> int:
        return len(self._variants)

    def __repr__(self) -> str:
        return f"VariantCatalog(variants={len(self)}, active={len(self.active())})"
