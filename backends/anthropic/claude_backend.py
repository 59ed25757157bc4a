"""
Anthropic Backend for Amazon Bedrock Integration.

Claude models are reached through the Bedrock runtime ``invoke_model`` call.
boto3 is synchronous, so each call runs in a worker thread to keep the event
loop free.
"""

import asyncio
import json
import logging
import os
from typing import Dict, Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from core.data_models import BackendRequest, TokenUsage
from core.errors import (
    AuthenticationError, BackendTimeoutError, ModelNotFoundError, RateLimitError, TransportError
)
from ..base_backend import BaseBackend, BackendResult, BackendType

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "bedrock-2023-05-31"
DEFAULT_REGION = "us-east-1"


class BedrockClaudeBackend(BaseBackend):
    """
    Anthropic Claude backend using Amazon Bedrock.

    AWS credentials come from configuration, then from the standard
    ``AWS_ACCESS_KEY_ID`` / ``AWS_SECRET_ACCESS_KEY`` environment variables,
    and finally from boto3's own credential chain.

    Note: cancelling ``execute`` abandons the await immediately, but the
    worker thread running ``invoke_model`` finishes its request in the
    background.
    """

    def __init__(self, variant_id: str, model_name: str, **kwargs):
        super().__init__(variant_id, model_name, **kwargs)

        self.aws_region = kwargs.get("aws_region") or DEFAULT_REGION
        self.top_p = kwargs.get("top_p")
        self.bedrock_client = kwargs.get("client") or boto3.client(
            "bedrock-runtime",
            aws_access_key_id=kwargs.get("aws_access_key_id") or os.environ.get("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=kwargs.get("aws_secret_access_key") or os.environ.get("AWS_SECRET_ACCESS_KEY"),
            region_name=self.aws_region,
        )
        logger.info("Bedrock Claude backend initialized for %s in %s", self.display_name, self.aws_region)

    def get_backend_type(self) -> BackendType:
        return BackendType.ANTHROPIC

    def _build_payload(self, request: BackendRequest) -> Dict[str, Any]:
        payload = {
            "anthropic_version": ANTHROPIC_VERSION,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": self.temperature,
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        if self.top_p is not None:
            payload["top_p"] = float(self.top_p)
        return payload

    def _invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.bedrock_client.invoke_model(modelId=self.model_name, body=json.dumps(payload))
        body = json.loads(response["body"].read())
        body["_request_id"] = response.get("ResponseMetadata", {}).get("RequestId")
        return body

    async def _generate(self, request: BackendRequest) -> BackendResult:
        body = await asyncio.to_thread(self._invoke, self._build_payload(request))

        content = body.get("content", [])
        text = "".join(
            block.get("text", "") for block in content if isinstance(block, dict) and block.get("type", "text") == "text"
        ) if isinstance(content, list) else str(content)

        usage = body.get("usage", {})
        return BackendResult(
            content=text,
            token_usage=TokenUsage.of(usage.get("input_tokens", 0), usage.get("output_tokens", 0)),
            metadata={
                "finish_reason": body.get("stop_reason"),
                "bedrock_request_id": body.get("_request_id"),
                "aws_region": self.aws_region,
            },
        )

    def _handle_provider_error(self, error: Exception) -> TransportError:
        """Map Bedrock ClientError codes onto the transport taxonomy"""
        if isinstance(error, ClientError):
            error_code = error.response.get("Error", {}).get("Code", "Unknown")
            error_message = error.response.get("Error", {}).get("Message", str(error))

            if error_code == "ThrottlingException":
                return RateLimitError(f"Request throttled: {error_message}", self.variant_id, error_code)
            if error_code in ("AccessDeniedException", "UnrecognizedClientException"):
                return AuthenticationError(f"Access denied: {error_message}", self.variant_id, error_code)
            if error_code == "ResourceNotFoundException":
                return ModelNotFoundError(f"Model not found: {error_message}", self.variant_id, error_code)
            if error_code == "ModelTimeoutException":
                return BackendTimeoutError(f"Model timed out: {error_message}", self.variant_id, error_code)
            if error_code == "ValidationException":
                return TransportError(f"Invalid request: {error_message}", self.variant_id, error_code)
            return TransportError(f"AWS error ({error_code}): {error_message}", self.variant_id, error_code)

        if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
            return BackendTimeoutError(f"AWS request timed out: {error}", self.variant_id)
        if isinstance(error, BotoCoreError):
            return TransportError(f"AWS service error: {error}", self.variant_id)
        if isinstance(error, json.JSONDecodeError):
            return TransportError(f"Failed to parse response: {error}", self.variant_id)
        return super()._handle_provider_error(error)

    def get_config(self) -> Dict[str, Any]:
        config = super().get_config()
        config["aws_region"] = self.aws_region
        return config
