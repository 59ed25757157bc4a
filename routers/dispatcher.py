"""
Dispatcher.

Resolves which variant handles a request, runs the backend call under a
timeout, falls back once to a configured secondary variant on failure, and
feeds experiment outcomes back to the tracker. ``dispatch`` always returns a
BackendResponse; the only exception that escapes is caller cancellation.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from backends import BackendManager
from catalog import VariantCatalog
from core.data_models import BackendRequest, BackendResponse, TokenUsage
from core.errors import BackendTimeoutError, ConfigurationError, DispatchError, TransportError
from core.experiment_models import OutcomeRecord, Selection, SelectionContext
from .experiment_tracker import ExperimentTracker

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
CHARS_PER_TOKEN = 4

# Errors raised before any backend call; never eligible for fallback
NON_RETRYABLE_ERROR_TYPES = ("configuration", "not_found")

QualityEvaluator = Callable[[BackendRequest, BackendResponse], Optional[float]]


@dataclass(frozen=True)
class DispatchOptions:
    """
    Per-call dispatch options.

    ``experiment_id`` forces the outcome of an explicitly chosen variant into
    an experiment; multi-shot comparisons use it.
    """
    variant_id: Optional[str] = None
    fallback_variant_id: Optional[str] = None
    timeout: Optional[float] = None
    use_experiments: bool = True
    task_type: Optional[str] = None
    preferred_variant: Optional[str] = None
    exclude_variants: Tuple[str, ...] = ()
    request_id: Optional[str] = None
    experiment_id: Optional[str] = None


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token count used when a backend reports no usage"""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


class Dispatcher:
    """
    Single entry point that turns a request into exactly one response.

    At most two sequential backend calls happen per dispatch: the primary
    and, if it failed with a transport error, one fallback. The same variant
    is never retried.
    """

    def __init__(
        self,
        catalog: VariantCatalog,
        tracker: ExperimentTracker,
        backends: BackendManager,
        default_timeout: float = DEFAULT_TIMEOUT,
        fallback_variant_id: Optional[str] = None,
        quality_evaluator: Optional[QualityEvaluator] = None,
    ):
        if default_timeout is None or default_timeout <= 0:
            raise ConfigurationError(f"default_timeout must be positive, got {default_timeout}")

        self.catalog = catalog
        self.tracker = tracker
        self.backends = backends
        self.default_timeout = float(default_timeout)
        self.fallback_variant_id = fallback_variant_id
        self.quality_evaluator = quality_evaluator

    async def dispatch(self, request: BackendRequest, options: Optional[DispatchOptions] = None) -> BackendResponse:
        """
        Execute a request against the resolved variant.

        Args:
            request: Prompt to send
            options: Variant, fallback, timeout and selection hints

        Returns:
            BackendResponse: success, or an error response with
            ``metadata["error_type"]`` set
        """
        options = options or DispatchOptions()
        start_time = time.perf_counter()

        selection = self._resolve(options)
        experiment_id = selection.experiment_id
        request_id = options.request_id or self.tracker.new_request_id(experiment_id)

        timeout = options.timeout if options.timeout is not None else self.default_timeout
        if timeout <= 0:
            return self._tag(
                self._error_response(selection.variant_id, ConfigurationError(
                    f"Timeout must be positive, got {timeout}", selection.variant_id), start_time),
                experiment_id, request_id,
            )

        primary = await self._attempt(selection.variant_id, request, timeout)
        primary = self._tag(primary, experiment_id, request_id)
        if primary.succeeded:
            self._decorate_success(primary, request)

        if experiment_id:
            self._record(primary, experiment_id, request_id)

        if primary.succeeded or primary.metadata.get("error_type") in NON_RETRYABLE_ERROR_TYPES:
            self._log_dispatch(primary, experiment_id, start_time)
            return primary

        fallback_id = options.fallback_variant_id or self.fallback_variant_id
        if not fallback_id or fallback_id == selection.variant_id:
            self._log_dispatch(primary, experiment_id, start_time)
            return primary

        logger.warning(
            "Variant %s failed (%s), falling back to %s", selection.variant_id, primary.error, fallback_id
        )
        fallback = await self._attempt(fallback_id, request, timeout)
        fallback = self._tag(fallback, experiment_id, request_id)

        if fallback.succeeded:
            self._decorate_success(fallback, request)
            fallback.metadata.update({
                "is_fallback": True,
                "fallback_from": selection.variant_id,
                "primary_error": primary.error,
            })
            self._log_dispatch(fallback, experiment_id, start_time)
            return fallback

        primary.error = f"{primary.error}; fallback {fallback_id} also failed: {fallback.error}"
        primary.metadata["fallback_error"] = fallback.error
        primary.metadata["fallback_variant"] = fallback_id
        self._log_dispatch(primary, experiment_id, start_time)
        return primary

    def _resolve(self, options: DispatchOptions) -> Selection:
        if options.variant_id:
            return Selection(variant_id=options.variant_id, experiment_id=options.experiment_id)
        if options.use_experiments:
            try:
                return self.tracker.select_variant(SelectionContext(
                    task_type=options.task_type,
                    preferred_variant=options.preferred_variant,
                    exclude_variants=tuple(options.exclude_variants),
                ))
            except Exception:
                logger.exception("Variant selection failed, using %s", self.tracker.default_variant)
                return Selection(variant_id=self.tracker.default_variant)
        if options.preferred_variant and options.preferred_variant not in options.exclude_variants:
            return Selection(variant_id=options.preferred_variant)
        return Selection(variant_id=self.tracker.default_variant)

    async def _attempt(self, variant_id: str, request: BackendRequest, timeout: float) -> BackendResponse:
        """One backend call under a timeout, converted to a response"""
        start_time = time.perf_counter()

        if self.catalog.get(variant_id) is None:
            return self._error_response(
                variant_id, ConfigurationError(f"Unknown variant: {variant_id}", variant_id), start_time
            )
        backend = self.backends.get_backend(variant_id)
        if backend is None:
            return self._error_response(
                variant_id, ConfigurationError(f"No backend configured for variant {variant_id}", variant_id),
                start_time,
            )

        try:
            return await asyncio.wait_for(backend.execute(request), timeout=timeout)
        except asyncio.TimeoutError:
            error = BackendTimeoutError(f"{variant_id} timed out after {timeout:g}s", variant_id)
        except Exception as e:
            logger.exception("Backend %s raised out of execute", variant_id)
            error = TransportError(f"Unexpected error from {variant_id}: {e}", variant_id)
        return self._error_response(variant_id, error, start_time)

    def _decorate_success(self, response: BackendResponse, request: BackendRequest) -> None:
        usage = response.token_usage
        if usage is None:
            input_tokens = estimate_tokens(request.prompt) + estimate_tokens(request.system_prompt)
            output_tokens = estimate_tokens(response.content)
            response.metadata["tokens_estimated"] = True
        else:
            input_tokens, output_tokens = usage.input, usage.output
        response.metadata["estimated_cost"] = self.catalog.estimate_cost(
            response.variant_id, input_tokens, output_tokens
        )

        if self.quality_evaluator is not None:
            score = self._evaluate(request, response)
            if score is not None:
                response.metadata["quality_score"] = score

    def _evaluate(self, request: BackendRequest, response: BackendResponse) -> Optional[float]:
        try:
            score = self.quality_evaluator(request, response)
        except Exception:
            logger.warning("Quality evaluator failed for %s", response.variant_id, exc_info=True)
            return None
        if score is None:
            return None
        return min(100.0, max(0.0, float(score)))

    def _record(self, response: BackendResponse, experiment_id: str, request_id: str) -> None:
        self.tracker.record_outcome(OutcomeRecord(
            variant_id=response.variant_id,
            request_id=request_id,
            experiment_id=experiment_id,
            timestamp=response.timestamp,
            response_time_ms=response.duration_ms,
            token_usage=response.token_usage or TokenUsage(),
            cost=response.metadata.get("estimated_cost", 0.0),
            quality_score=response.metadata.get("quality_score"),
            error_occurred=not response.succeeded,
        ))

    @staticmethod
    def _tag(response: BackendResponse, experiment_id: Optional[str], request_id: str) -> BackendResponse:
        response.metadata.update({
            "variant_id": response.variant_id,
            "experiment_id": experiment_id,
            "request_id": request_id,
        })
        return response

    @staticmethod
    def _error_response(variant_id: str, error: DispatchError, start_time: float) -> BackendResponse:
        return BackendResponse.failure(
            variant_id=variant_id,
            error=error.message,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            error_type=error.error_type,
        )

    @staticmethod
    def _log_dispatch(response: BackendResponse, experiment_id: Optional[str], start_time: float) -> None:
        logger.info(
            "Dispatched to %s (experiment=%s) in %.0fms: %s",
            response.variant_id,
            experiment_id or "-",
            (time.perf_counter() - start_time) * 1000,
            "ok" if response.succeeded else response.metadata.get("error_type", "error"),
        )
