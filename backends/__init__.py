"""
Backends Package.

This package provides a unified contract over cloud APIs and locally-hosted
model runtimes, with concrete adapters for OpenAI, Claude on Amazon Bedrock
and local HTTP daemons.
"""

from .base_backend import BaseBackend, BackendResult, BackendType, PROBE_REQUEST
from .factory import BackendFactory, BackendManager
from .openai import OpenAIBackend
from .anthropic import BedrockClaudeBackend
from .local import LocalBackend, LocalFormat

__all__ = [
    "BaseBackend",
    "BackendResult",
    "BackendType",
    "PROBE_REQUEST",
    "BackendFactory",
    "BackendManager",
    "OpenAIBackend",
    "BedrockClaudeBackend",
    "LocalBackend",
    "LocalFormat"
]
