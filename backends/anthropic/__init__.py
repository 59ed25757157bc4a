"""Anthropic Claude backend via Amazon Bedrock."""

from .claude_backend import BedrockClaudeBackend

__all__ = ["BedrockClaudeBackend"]
