"""Shared result types for the LLM layer.

- Usage: Token counts reported by a provider
- FallbackInfo: Whether, and why, the fallback chain advanced during a run
- FallbackAttempt: One failed candidate in a run's fallback trace
- UnifiedResponse: Complete result of a non-streaming run
- DeltaEvent / CompletedEvent: Stream events (StreamEvent)

Streaming invariants:
- Zero or more DeltaEvent in arrival order, then exactly ONE CompletedEvent
- CompletedEvent.complete_output equals the concatenation of all delta tokens
- A stream that fails mid-way raises instead of emitting CompletedEvent

Every type renders its wire shape through to_dict().
"""

from dataclasses import dataclass, field
from typing import Literal

# Status values carried by responses and completed events
STATUS_SUCCESS = "success"
STATUS_COMPLETED = "completed"
STATUS_INCOMPLETE = "incomplete"
STATUS_NO_CONTENT = "no_content"
STATUS_FALLBACK = "fallback"


@dataclass(frozen=True)
class Usage:
    """Token usage from provider response.

    All fields are optional as not all providers return all metrics,
    and streams may end before usage is reported.
    """

    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_counts(cls, input_tokens: int | None, output_tokens: int | None) -> "Usage":
        """Build usage when the provider omits the total."""
        total = None
        if input_tokens is not None and output_tokens is not None:
            total = input_tokens + output_tokens
        return cls(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)

    def merge(self, other: "Usage") -> "Usage":
        """Overlay counts from a later frame; fields it lacks are kept."""
        input_tokens = other.input_tokens if other.input_tokens is not None else self.input_tokens
        output_tokens = (
            other.output_tokens if other.output_tokens is not None else self.output_tokens
        )

        if other.total_tokens is not None:
            total = other.total_tokens
        elif other.input_tokens is None and other.output_tokens is None:
            total = self.total_tokens
        else:
            # Counts changed without a reported total; recomputed below
            total = None

        if total is None and input_tokens is not None and output_tokens is not None:
            total = input_tokens + output_tokens
        return Usage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class FallbackAttempt:
    """One failed candidate: who was tried and why it failed."""

    provider_id: str
    reason: str
    model: str | None = None

    def describe(self) -> str:
        return f"{self.provider_id}: {self.reason}"


def format_fallback_reason(trace: list[FallbackAttempt]) -> str:
    """Render a fallback trace as "<provider>: <reason>" joined by ", "."""
    return ", ".join(attempt.describe() for attempt in trace)


@dataclass(frozen=True)
class FallbackInfo:
    """Fallback summary attached to a run's result."""

    is_used: bool = False
    reason: str = ""
    trace: tuple[FallbackAttempt, ...] = ()

    @classmethod
    def from_trace(cls, trace: list[FallbackAttempt]) -> "FallbackInfo":
        return cls(is_used=bool(trace), reason=format_fallback_reason(trace), trace=tuple(trace))

    def to_dict(self) -> dict:
        return {"isUsed": self.is_used, "reason": self.reason}


@dataclass(frozen=True)
class UnifiedResponse:
    """Complete response from a non-streaming run.

    Attributes:
        output: The generated text
        status: "success" for a provider result, "fallback" for a degraded one
        created_at: Epoch seconds (provider timestamp when it reports one)
        model: Model identifier reported by the provider (or configured)
        usage: Token usage
        fallback: Fallback summary for the run
        response_id: Provider's response ID (may be None)
    """

    output: str
    status: str
    created_at: int
    model: str
    usage: Usage = field(default_factory=Usage)
    fallback: FallbackInfo = field(default_factory=FallbackInfo)
    response_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "resp_id": self.response_id,
            "output": self.output,
            "status": self.status,
            "created_at": self.created_at,
            "model": self.model,
            "usage": self.usage.to_dict(),
            "fallback": self.fallback.to_dict(),
        }


@dataclass(frozen=True)
class DeltaEvent:
    """Incremental output token from an in-progress stream."""

    token: str
    type: Literal["delta"] = "delta"

    def to_dict(self) -> dict:
        return {"type": self.type, "token": self.token}


@dataclass(frozen=True)
class CompletedEvent:
    """Terminal stream event carrying the aggregated output and final metadata."""

    complete_output: str
    model: str
    status: str
    usage: Usage = field(default_factory=Usage)
    fallback: FallbackInfo = field(default_factory=FallbackInfo)
    response_id: str | None = None
    type: Literal["completed"] = "completed"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "token": "",
            "completeOutput": self.complete_output,
            "model": self.model,
            "usage": self.usage.to_dict(),
            "status": self.status,
            "fallback": self.fallback.to_dict(),
        }


StreamEvent = DeltaEvent | CompletedEvent
