"""
Local Model Backend.

Talks to a model daemon running on the local machine or network over plain
HTTP. Three wire formats are understood: Ollama, the llama.cpp server, and a
custom endpoint that accepts ``{"prompt", "temperature", "max_tokens"}``.
"""

import logging
from enum import Enum
from typing import Dict, Any, Optional

import httpx

from core.data_models import BackendRequest, BackendCapabilities, TokenUsage
from core.errors import BackendTimeoutError, ConfigurationError, ModelNotFoundError, TransportError
from ..base_backend import BaseBackend, BackendResult, BackendType

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:11434"
LLAMACPP_STOP = ["</s>", "\n\nUser:", "\n\nAssistant:"]


class LocalFormat(Enum):
    """Wire format spoken by the local daemon"""
    OLLAMA = "ollama"
    LLAMACPP = "llamacpp"
    CUSTOM = "custom"


def build_prompt(request: BackendRequest) -> str:
    """Fold the system prompt into the prompt text for completion-style daemons"""
    if request.system_prompt:
        return f"System: {request.system_prompt}\n\nUser: {request.prompt}\n\nAssistant:"
    return request.prompt


class LocalBackend(BaseBackend):
    """
    Backend for a locally-hosted model daemon.

    Availability is checked against the daemon's listing endpoint
    (``/api/tags`` for Ollama, the endpoint itself otherwise) rather than by
    running a generation.
    """

    def __init__(self, variant_id: str, model_name: str, **kwargs):
        super().__init__(variant_id, model_name, **kwargs)

        fmt = kwargs.get("format") or LocalFormat.OLLAMA.value
        try:
            self.format = LocalFormat(fmt) if not isinstance(fmt, LocalFormat) else fmt
        except ValueError:
            raise ConfigurationError(
                f"Unknown local format '{fmt}'. Expected one of: {[f.value for f in LocalFormat]}",
                variant_id,
            )

        self.endpoint = (kwargs.get("endpoint") or DEFAULT_ENDPOINT).rstrip("/")
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=kwargs.get("transport"))
        logger.info("Local %s backend initialized for %s at %s", self.format.value, self.display_name, self.endpoint)

    def get_backend_type(self) -> BackendType:
        return BackendType.LOCAL

    def capabilities(self) -> BackendCapabilities:
        caps = super().capabilities()
        return BackendCapabilities(
            max_tokens=caps.max_tokens,
            supports_streaming=self.format is LocalFormat.OLLAMA,
            supports_system_prompts=True,
            supports_vision=caps.supports_vision,
            supports_function_calling=caps.supports_function_calling,
            cost_per_token=0.0,
            reasoning_level=caps.reasoning_level,
        )

    def _request_spec(self, request: BackendRequest):
        prompt = build_prompt(request)
        if self.format is LocalFormat.OLLAMA:
            return f"{self.endpoint}/api/generate", {
                "model": self.model_name,
                "prompt": prompt,
                "options": {"num_predict": self.max_tokens, "temperature": self.temperature},
                "stream": False,
            }
        if self.format is LocalFormat.LLAMACPP:
            return f"{self.endpoint}/completion", {
                "prompt": prompt,
                "temperature": self.temperature,
                "n_predict": self.max_tokens,
                "stop": LLAMACPP_STOP,
            }
        return self.endpoint, {
            "prompt": prompt,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

    async def _generate(self, request: BackendRequest) -> BackendResult:
        url, payload = self._request_spec(request)
        response = await self.client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()

        if self.format is LocalFormat.OLLAMA:
            return BackendResult(
                content=data.get("response") or "",
                token_usage=self._ollama_usage(data),
                metadata={"format": self.format.value, "done_reason": data.get("done_reason")},
            )
        if self.format is LocalFormat.LLAMACPP:
            return BackendResult(content=data.get("content") or "", metadata={"format": self.format.value})
        return BackendResult(
            content=data.get("response") or data.get("content") or data.get("text") or "",
            metadata={"format": self.format.value},
        )

    @staticmethod
    def _ollama_usage(data: Dict[str, Any]) -> Optional[TokenUsage]:
        prompt_tokens = data.get("prompt_eval_count")
        completion_tokens = data.get("eval_count")
        if prompt_tokens and completion_tokens:
            return TokenUsage.of(prompt_tokens, completion_tokens)
        return None

    async def is_available(self) -> bool:
        """Check the daemon's listing endpoint; False on any HTTP error"""
        url = f"{self.endpoint}/api/tags" if self.format is LocalFormat.OLLAMA else self.endpoint
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            logger.debug("Local daemon %s unreachable: %s", url, e)
            return False
        return response.is_success

    def _handle_provider_error(self, error: Exception) -> TransportError:
        if isinstance(error, httpx.TimeoutException):
            return BackendTimeoutError(f"Local daemon timed out after {self.timeout}s", self.variant_id)
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            message = f"{self.format.value} API error: {status} - {error.response.text}"
            if status == 404:
                return ModelNotFoundError(message, self.variant_id, str(status))
            return TransportError(message, self.variant_id, str(status))
        if isinstance(error, httpx.HTTPError):
            return TransportError(f"Could not reach local daemon at {self.endpoint}: {error}", self.variant_id)
        if isinstance(error, ValueError):
            return TransportError(f"Invalid JSON from local daemon: {error}", self.variant_id)
        return super()._handle_provider_error(error)

    def get_config(self) -> Dict[str, Any]:
        config = super().get_config()
        config.update({"endpoint": self.endpoint, "format": self.format.value})
        return config

    async def aclose(self) -> None:
        await self.client.aclose()
