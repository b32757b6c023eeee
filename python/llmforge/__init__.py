"""llmforge: one request format over many LLM providers, with fallback."""

from llmforge.builder import ContentBuilder
from llmforge.client import LLMForgeClient, create
from llmforge.schemas import ClientConfig, EndpointConfig, RetryPolicy, UnifiedMessage
from llmforge.services.llm import (
    CompletedEvent,
    DeltaEvent,
    EventStream,
    FallbackInfo,
    LLMError,
    NonRetryableError,
    ProviderChainError,
    RetryableError,
    UnifiedResponse,
    Usage,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "create",
    "LLMForgeClient",
    "ContentBuilder",
    "ClientConfig",
    "EndpointConfig",
    "RetryPolicy",
    "UnifiedMessage",
    "UnifiedResponse",
    "DeltaEvent",
    "CompletedEvent",
    "EventStream",
    "FallbackInfo",
    "Usage",
    "LLMError",
    "RetryableError",
    "NonRetryableError",
    "ValidationError",
    "ProviderChainError",
]
