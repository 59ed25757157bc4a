"""
Abstract Base Class for Backend Integration.

This module defines the contract every model backend implements so the
Dispatcher can orchestrate cloud APIs and locally-hosted runtimes uniformly:
execute a prompt, report availability, report capabilities.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional

from core.data_models import BackendRequest, BackendResponse, BackendCapabilities, TokenUsage
from core.errors import DispatchError, TransportError

logger = logging.getLogger(__name__)

# Canned prompt used by the availability probe
PROBE_REQUEST = BackendRequest(prompt="Test connection", system_prompt='Respond with "OK"')

SECRET_KEYS = ("api_key", "aws_access_key_id", "aws_secret_access_key")

# Injected objects, not configuration values
NON_CONFIG_KEYS = ("descriptor", "client", "transport")


class BackendType(Enum):
    """Enumeration of supported backend kinds"""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


@dataclass
class BackendResult:
    """Raw output of one provider call, before normalization"""
    content: str
    token_usage: Optional[TokenUsage] = None
    metadata: Optional[Dict[str, Any]] = None


class BaseBackend(ABC):
    """
    Abstract base class for all backends.

    Concrete implementations only supply the wire protocol in ``_generate``.
    ``execute`` wraps it so that every failure comes back as a
    BackendResponse with an error and empty content; it never raises, except
    for caller cancellation, which must reach the in-flight network call.
    """

    def __init__(self, variant_id: str, model_name: str, **kwargs):
        """
        Initialize the backend.

        Args:
            variant_id: Catalog id of the variant this backend serves
            model_name: Provider model string sent on the wire
            **kwargs: Backend-specific configuration. Common keys:
                - timeout: client-side request timeout in seconds
                - max_tokens: response token limit
                - temperature: sampling temperature
                - descriptor: VariantDescriptor used for capabilities
        """
        if not variant_id or not variant_id.strip():
            raise ValueError("variant_id is required and cannot be empty")
        if not model_name or not model_name.strip():
            raise ValueError("model_name is required and cannot be empty")

        self.variant_id = variant_id
        self.model_name = model_name
        self.config = kwargs
        self.descriptor = kwargs.get("descriptor")
        self.timeout = float(kwargs.get("timeout", 30))
        self.temperature = float(kwargs.get("temperature", 0.7))
        self.max_tokens = int(kwargs.get("max_tokens") or self._default_max_tokens())
        self._request_count = 0
        self._failed_requests = 0
        self._total_tokens = 0

    @abstractmethod
    async def _generate(self, request: BackendRequest) -> BackendResult:
        """
        Perform exactly one outbound call.

        Raises:
            TransportError: or a subclass, for mapped provider failures.
                Any other exception is mapped by ``_handle_provider_error``.
        """
        pass

    @abstractmethod
    def get_backend_type(self) -> BackendType:
        pass

    async def execute(self, request: BackendRequest) -> BackendResponse:
        """
        Execute a prompt request and return a normalized response.

        Args:
            request: The prompt to send

        Returns:
            BackendResponse: content on success, error on failure
        """
        start_time = time.perf_counter()
        self._request_count += 1

        try:
            result = await self._generate(request)
        except DispatchError as e:
            return self._failure(e, start_time)
        except Exception as e:
            return self._failure(self._handle_provider_error(e), start_time)

        duration_ms = (time.perf_counter() - start_time) * 1000
        if not result.content:
            return self._failure(
                TransportError(f"{self.display_name} returned an empty response", self.variant_id),
                start_time,
            )

        metadata = dict(request.metadata or {})
        metadata.update(result.metadata or {})
        metadata.update({
            "backend": self.get_backend_type().value,
            "model": self.model_name,
        })

        if result.token_usage:
            self._total_tokens += result.token_usage.total

        return BackendResponse(
            content=result.content,
            variant_id=self.variant_id,
            duration_ms=duration_ms,
            token_usage=result.token_usage,
            metadata=metadata,
        )

    async def is_available(self) -> bool:
        """
        Probe the backend with a minimal round-trip.

        Returns:
            bool: True if the probe succeeded, False on any error or timeout
        """
        try:
            response = await asyncio.wait_for(self.execute(PROBE_REQUEST), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.debug("Availability probe for %s timed out", self.variant_id)
            return False
        return response.succeeded

    def capabilities(self) -> BackendCapabilities:
        """
        Get the static capability summary.

        Derived from the variant descriptor when one was supplied, otherwise
        from configuration. Performs no I/O.
        """
        descriptor = self.descriptor
        if descriptor is None:
            return BackendCapabilities(
                max_tokens=self.max_tokens,
                supports_streaming=False,
                supports_system_prompts=True,
            )

        caps = descriptor.capabilities
        return BackendCapabilities(
            max_tokens=caps.max_tokens,
            supports_streaming=caps.supports_streaming,
            supports_system_prompts=True,
            supports_vision=caps.supports_vision,
            supports_function_calling=caps.supports_function_calling,
            cost_per_token=(descriptor.pricing.input_cost_per_1k + descriptor.pricing.output_cost_per_1k) / 2000,
            reasoning_level=caps.reasoning_level.value,
        )

    # Common utility methods

    @property
    def display_name(self) -> str:
        return f"{self.variant_id} ({self.model_name})"

    def get_config(self) -> Dict[str, Any]:
        """Backend configuration with secrets removed"""
        safe = {k: v for k, v in self.config.items() if k not in SECRET_KEYS and k not in NON_CONFIG_KEYS}
        safe.update({"variant_id": self.variant_id, "model_name": self.model_name, "timeout": self.timeout})
        return safe

    def get_stats(self) -> Dict[str, Any]:
        """
        Get usage statistics for this backend instance.

        Returns:
            Dict[str, Any]: Statistics including request count, failures, tokens
        """
        return {
            "backend": self.get_backend_type().value,
            "variant_id": self.variant_id,
            "model_name": self.model_name,
            "request_count": self._request_count,
            "failed_requests": self._failed_requests,
            "total_tokens": self._total_tokens,
            "avg_tokens_per_request": (
                self._total_tokens / self._request_count
                if self._request_count > 0 else 0
            )
        }

    def reset_stats(self) -> None:
        """Reset usage statistics"""
        self._request_count = 0
        self._failed_requests = 0
        self._total_tokens = 0

    async def aclose(self) -> None:
        """Release network resources held by the backend"""
        return None

    def _default_max_tokens(self) -> int:
        if self.descriptor is not None:
            return self.descriptor.capabilities.max_tokens
        return 2048

    def _handle_provider_error(self, error: Exception) -> TransportError:
        """
        Convert provider-specific errors to standardized errors.

        Overridden in concrete implementations that can tell error kinds apart.
        """
        return TransportError(f"{type(error).__name__}: {error}", self.variant_id)

    def _failure(self, error: DispatchError, start_time: float) -> BackendResponse:
        self._failed_requests += 1
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("Backend %s failed after %.0fms: %s", self.variant_id, duration_ms, error.message)
        metadata = {"backend": self.get_backend_type().value, "model": self.model_name}
        if error.error_code:
            metadata["error_code"] = error.error_code
        return BackendResponse.failure(
            variant_id=self.variant_id,
            error=error.message,
            duration_ms=duration_ms,
            error_type=error.error_type,
            metadata=metadata,
        )

    def __str__(self) -> str:
        return f"{self.get_backend_type().value.title()}Backend(variant={self.variant_id}, model={self.model_name})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"variant_id='{self.variant_id}', "
            f"model_name='{self.model_name}', "
            f"requests={self._request_count}"
            f")"
        )
