"""
Data models for the dispatch system.

This module contains the request/response structures shared by every backend
and by the Dispatcher.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional


def utc_now() -> datetime:
    """Timezone-aware current time used for every timestamp in the system"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC; aware ones are left as they are"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class BackendRequest:
    """Structure for a single prompt sent to a backend"""
    prompt: str
    system_prompt: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for one backend call"""
    input: int = 0
    output: int = 0
    total: int = 0

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(input=input_tokens, output=output_tokens, total=input_tokens + output_tokens)

    def to_dict(self) -> Dict[str, int]:
        return {"input": self.input, "output": self.output, "total": self.total}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenUsage":
        return cls(
            input=int(data.get("input", 0)),
            output=int(data.get("output", 0)),
            total=int(data.get("total", 0)),
        )


@dataclass
class BackendResponse:
    """
    Result of one backend invocation.

    Exactly one of ``content`` / ``error`` carries the outcome: a non-empty
    error always comes with empty content. ``duration_ms`` is populated on
    failure too.
    """
    content: str
    variant_id: str
    duration_ms: float
    timestamp: datetime = field(default_factory=utc_now)
    token_usage: Optional[TokenUsage] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.error:
            self.content = ""

    @property
    def succeeded(self) -> bool:
        return not self.error

    @classmethod
    def failure(
        cls,
        variant_id: str,
        error: str,
        duration_ms: float,
        error_type: str = "transport",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "BackendResponse":
        """Create a standardized error response"""
        meta = dict(metadata or {})
        meta["error_type"] = error_type
        return cls(
            content="",
            variant_id=variant_id,
            duration_ms=duration_ms,
            error=error or "Unknown error",
            metadata=meta,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert response to dictionary format"""
        return {
            "content": self.content,
            "variant_id": self.variant_id,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
            "error": self.error,
            "metadata": self.metadata or {},
        }


@dataclass(frozen=True)
class BackendCapabilities:
    """Static capability summary reported by a backend"""
    max_tokens: int
    supports_streaming: bool = False
    supports_system_prompts: bool = True
    supports_vision: bool = False
    supports_function_calling: bool = False
    cost_per_token: Optional[float] = None
    reasoning_level: Optional[str] = None
