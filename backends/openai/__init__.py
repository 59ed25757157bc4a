"""OpenAI chat-completions backend (direct API or Azure OpenAI Service)."""

from .gpt_backend import OpenAIBackend

__all__ = ["OpenAIBackend"]
