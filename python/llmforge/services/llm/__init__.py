"""LLM layer for provider-agnostic generation with fallback.

This module provides one interface over OpenAI, Gemini, Groq, Anthropic
and Ollama. It includes:

- Provider adapters (non-streaming + streaming) over a shared HTTP transport
- Stream decoders normalizing SSE, NDJSON and concatenated-JSON framing
- Retry with bounded exponential backoff
- Priority-ordered fallback (Orchestrator)
- Error classification and normalization

Usage:
    from llmforge.services.llm import Candidate, Orchestrator

    orchestrator = Orchestrator(candidates, enable_fallback=True)
    result = await orchestrator.run(messages)

Rules:
- Adapters never retry and never log request/response bodies
- Candidates are tried strictly sequentially, never in parallel
- Nothing in this package imports llmforge.schemas at runtime
"""

from llmforge.services.llm.adapter import LLMAdapter
from llmforge.services.llm.errors import (
    ConfigurationError,
    LLMError,
    LLMErrorClass,
    NonRetryableError,
    ProviderChainError,
    ProviderStreamError,
    RetryableError,
    ValidationError,
    classify_provider_error,
)
from llmforge.services.llm.orchestrator import Candidate, Orchestrator, RunResult
from llmforge.services.llm.providers import ADAPTERS, Provider, build_adapter
from llmforge.services.llm.retry import RetryHandler
from llmforge.services.llm.stream_decoder import (
    ConcatenatedJSONDecoder,
    EventStream,
    FrameUpdate,
    NDJSONDecoder,
    SSEDecoder,
    StreamDecoder,
)
from llmforge.services.llm.transport import HttpTransport, ResponseByteStream
from llmforge.services.llm.types import (
    CompletedEvent,
    DeltaEvent,
    FallbackAttempt,
    FallbackInfo,
    StreamEvent,
    UnifiedResponse,
    Usage,
)

__all__ = [
    # Core types
    "Usage",
    "UnifiedResponse",
    "DeltaEvent",
    "CompletedEvent",
    "StreamEvent",
    "FallbackAttempt",
    "FallbackInfo",
    # Adapters
    "LLMAdapter",
    "Provider",
    "ADAPTERS",
    "build_adapter",
    "HttpTransport",
    "ResponseByteStream",
    # Streaming
    "StreamDecoder",
    "SSEDecoder",
    "NDJSONDecoder",
    "ConcatenatedJSONDecoder",
    "FrameUpdate",
    "EventStream",
    # Orchestration
    "RetryHandler",
    "Candidate",
    "Orchestrator",
    "RunResult",
    # Errors
    "LLMError",
    "LLMErrorClass",
    "RetryableError",
    "NonRetryableError",
    "ValidationError",
    "ConfigurationError",
    "ProviderStreamError",
    "ProviderChainError",
    "classify_provider_error",
]
