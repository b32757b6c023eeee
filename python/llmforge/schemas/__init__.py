"""Pydantic schemas for client configuration and messages.

All schemas are re-exported here for convenient imports.
"""

from llmforge.schemas.config import (
    ClientConfig,
    EndpointConfig,
    GenerationParams,
    RetryPolicy,
    ThinkingConfig,
    normalize_endpoints,
    parse_client_config,
)
from llmforge.schemas.messages import (
    FileData,
    FileDataPart,
    InlineData,
    InlineDataPart,
    TextPart,
    UnifiedMessage,
    validate_messages,
)

__all__ = [
    # Config
    "ClientConfig",
    "EndpointConfig",
    "GenerationParams",
    "RetryPolicy",
    "ThinkingConfig",
    "normalize_endpoints",
    "parse_client_config",
    # Messages
    "TextPart",
    "InlineData",
    "InlineDataPart",
    "FileData",
    "FileDataPart",
    "UnifiedMessage",
    "validate_messages",
]
