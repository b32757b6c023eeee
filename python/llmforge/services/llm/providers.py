"""Supported providers and their adapter classes.

Provider is a closed enum; ADAPTERS maps every member to the adapter class
that serves it, so adding a provider means adding a member and an entry.
"gemini" is accepted as an alias of "google".
"""

from enum import Enum
from typing import TYPE_CHECKING

import httpx

from llmforge.services.llm.adapter import LLMAdapter
from llmforge.services.llm.anthropic_adapter import AnthropicAdapter
from llmforge.services.llm.gemini_adapter import GeminiAdapter
from llmforge.services.llm.groq_adapter import GroqAdapter
from llmforge.services.llm.ollama_adapter import OllamaAdapter
from llmforge.services.llm.openai_adapter import OpenAIAdapter
from llmforge.services.llm.transport import HttpTransport

if TYPE_CHECKING:
    from llmforge.schemas.config import EndpointConfig


class Provider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    GOOGLE = "google"
    GROQ = "groq"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, value: str) -> "Provider":
        """Resolve a provider id, accepting aliases.

        Raises:
            ValueError: If the id names no supported provider.
        """
        normalized = value.strip().lower()
        normalized = _ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise ValueError(f"Unsupported provider {value!r} (supported: {supported})") from None


_ALIASES = {"gemini": "google"}

ADAPTERS: dict[Provider, type[LLMAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.GOOGLE: GeminiAdapter,
    Provider.GROQ: GroqAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.OLLAMA: OllamaAdapter,
}


def default_base_url(provider: Provider) -> str:
    return ADAPTERS[provider].default_base_url


def requires_credential(provider: Provider) -> bool:
    return ADAPTERS[provider].requires_credential


def build_adapter(config: "EndpointConfig", client: httpx.AsyncClient) -> LLMAdapter:
    """Construct the adapter for a normalized endpoint.

    Args:
        config: Normalized endpoint (base_url, timeout and retry policy filled).
        client: Shared httpx.AsyncClient for connection pooling.
    """
    transport = HttpTransport(
        client,
        provider=config.provider_id.value,
        base_url=config.base_url or default_base_url(config.provider_id),
        timeout_ms=config.timeout_ms,
        retryable_status_codes=config.retry_policy.retryable_status_codes,
    )
    return ADAPTERS[config.provider_id](config, transport)
