"""
OpenAI Backend Implementation.

This module provides integration with OpenAI chat-completion models, either
through the public API or through an Azure OpenAI Service deployment.
"""

import logging
import os
from typing import Dict, Any, List

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from core.data_models import BackendRequest, TokenUsage
from core.errors import (
    AuthenticationError, BackendTimeoutError, ConfigurationError, ModelNotFoundError,
    RateLimitError, TransportError
)
from ..base_backend import BaseBackend, BackendResult, BackendType

logger = logging.getLogger(__name__)

DEFAULT_AZURE_API_VERSION = "2024-02-01"

# Reasoning models reject custom temperature and use max_completion_tokens
REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


class OpenAIBackend(BaseBackend):
    """
    OpenAI chat-completions backend.

    Uses ``AsyncAzureOpenAI`` when an ``azure_endpoint`` is configured and
    ``AsyncOpenAI`` otherwise. The API key comes from configuration or, when
    absent, from ``AZURE_OPENAI_API_KEY`` / ``OPENAI_API_KEY``.
    """

    def __init__(self, variant_id: str, model_name: str, **kwargs):
        super().__init__(variant_id, model_name, **kwargs)

        self.azure_endpoint = kwargs.get("azure_endpoint")
        self.deployment_name = kwargs.get("deployment_name") or model_name
        self.base_url = kwargs.get("base_url")
        self.is_reasoning_model = model_name.startswith(REASONING_MODEL_PREFIXES)

        self.client = kwargs.get("client") or self._create_client(kwargs.get("api_key"))
        logger.info("OpenAI backend initialized for %s", self.display_name)

    def _create_client(self, api_key: str):
        if self.azure_endpoint:
            api_key = api_key or os.environ.get("AZURE_OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError(
                    "Azure OpenAI API key not found. Set azure_openai_api_key or AZURE_OPENAI_API_KEY",
                    self.variant_id,
                )
            return AsyncAzureOpenAI(
                api_key=api_key,
                azure_endpoint=self.azure_endpoint,
                api_version=self.config.get("api_version") or DEFAULT_AZURE_API_VERSION,
                timeout=self.timeout,
            )

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key not found. Set openai_api_key or OPENAI_API_KEY",
                self.variant_id,
            )
        return AsyncOpenAI(api_key=api_key, base_url=self.base_url, timeout=self.timeout)

    def get_backend_type(self) -> BackendType:
        return BackendType.OPENAI

    def _build_messages(self, request: BackendRequest) -> List[Dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def _build_params(self, request: BackendRequest) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": self.deployment_name,
            "messages": self._build_messages(request),
        }
        if self.is_reasoning_model:
            params["max_completion_tokens"] = self.max_tokens
        else:
            params["max_tokens"] = self.max_tokens
            params["temperature"] = self.temperature
        return params

    async def _generate(self, request: BackendRequest) -> BackendResult:
        response = await self.client.chat.completions.create(**self._build_params(request))

        if not response.choices:
            raise TransportError("OpenAI returned no choices", self.variant_id)

        choice = response.choices[0]
        usage = response.usage
        token_usage = None
        if usage:
            token_usage = TokenUsage(
                input=usage.prompt_tokens or 0,
                output=usage.completion_tokens or 0,
                total=usage.total_tokens or 0,
            )

        return BackendResult(
            content=choice.message.content or "",
            token_usage=token_usage,
            metadata={
                "finish_reason": choice.finish_reason,
                "model_id": response.model,
                "deployment": self.deployment_name,
            },
        )

    def _handle_provider_error(self, error: Exception) -> TransportError:
        """Map OpenAI SDK errors onto the transport taxonomy"""
        if isinstance(error, openai.RateLimitError):
            return RateLimitError(f"OpenAI rate limit exceeded: {error}", self.variant_id, "429")
        if isinstance(error, openai.AuthenticationError):
            return AuthenticationError(f"OpenAI authentication failed: {error}", self.variant_id, "401")
        if isinstance(error, openai.NotFoundError):
            return ModelNotFoundError(f"OpenAI model not found: {self.deployment_name}", self.variant_id, "404")
        if isinstance(error, openai.APITimeoutError):
            return BackendTimeoutError(f"OpenAI request timed out after {self.timeout}s", self.variant_id)
        if isinstance(error, openai.APIConnectionError):
            return TransportError(f"Could not reach OpenAI: {error}", self.variant_id)
        if isinstance(error, openai.APIStatusError):
            return TransportError(f"OpenAI error ({error.status_code}): {error.message}", self.variant_id,
                                  str(error.status_code))
        return super()._handle_provider_error(error)

    async def aclose(self) -> None:
        await self.client.close()
