"""
Multi-shot runner.

Sends one request to several variants at once through the Dispatcher and
collects every response. Each variant gets its own dispatch, with its own
timeout, so one slow or failing variant never cancels its siblings.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from core.data_models import BackendRequest, BackendResponse
from core.errors import ConfigurationError
from .dispatcher import Dispatcher, DispatchOptions

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 5


@dataclass
class MultiShotResult:
    """Responses per variant plus a summary of the run"""
    responses: Dict[str, BackendResponse]
    errors: List[str] = field(default_factory=list)
    total_time_ms: float = 0.0
    experiment_id: Optional[str] = None

    @property
    def success(self) -> bool:
        """True when at least one variant answered"""
        return any(r.succeeded for r in self.responses.values())

    @property
    def successful(self) -> Dict[str, BackendResponse]:
        return {k: v for k, v in self.responses.items() if v.succeeded}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "responses": {k: v.to_dict() for k, v in self.responses.items()},
            "errors": list(self.errors),
            "total_time_ms": self.total_time_ms,
            "experiment_id": self.experiment_id,
        }


class MultiShotRunner:
    """Fan a request out to several variants with bounded concurrency"""

    def __init__(self, dispatcher: Dispatcher, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.dispatcher = dispatcher
        self.max_concurrency = max_concurrency

    async def run(
        self,
        request: BackendRequest,
        variant_ids: List[str],
        timeout: Optional[float] = None,
        record_comparison: bool = False,
    ) -> MultiShotResult:
        """
        Dispatch ``request`` to every variant concurrently.

        Args:
            request: Prompt sent to every variant
            variant_ids: Variants to compare; duplicates are dropped
            timeout: Per-variant timeout, dispatcher default when None
            record_comparison: Record outcomes under the comparison
                experiment for this variant set

        Returns:
            MultiShotResult: one response per variant
        """
        start_time = time.perf_counter()
        ids = list(dict.fromkeys(variant_ids))
        if not ids:
            raise ConfigurationError("At least one variant is required")

        experiment_id = None
        if record_comparison:
            experiment_id = self.dispatcher.tracker.get_or_create_comparison(ids).id

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def shoot(variant_id: str) -> BackendResponse:
            async with semaphore:
                return await self.dispatcher.dispatch(request, DispatchOptions(
                    variant_id=variant_id,
                    timeout=timeout,
                    experiment_id=experiment_id,
                ))

        logger.info("Running %d variants (max concurrency %d)", len(ids), self.max_concurrency)
        responses = await asyncio.gather(*(shoot(variant_id) for variant_id in ids))

        result = MultiShotResult(
            responses=dict(zip(ids, responses)),
            errors=[f"{r.variant_id}: {r.error}" for r in responses if not r.succeeded],
            total_time_ms=(time.perf_counter() - start_time) * 1000,
            experiment_id=experiment_id,
        )
        logger.info(
            "Multi-shot finished: %d/%d succeeded in %.0fms",
            len(result.successful), len(ids), result.total_time_ms,
        )
        return result
