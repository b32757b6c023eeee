"""Public entry point.

Usage:
    from llmforge import create

    async with create({
        "llmConfig": [
            {"provider": "openai", "model": "gpt-4o-mini", "priority": 1},
            {"provider": "google", "model": "gemini-2.0-flash", "priority": 2},
        ],
        "enableFallback": True,
    }) as client:
        response = await client.run([{"role": "user", "parts": [{"text": "Hi"}]}])
        print(response.output, response.fallback.is_used)

run() returns a UnifiedResponse, or an EventStream when the winning endpoint
has streaming enabled. Configuration problems raise ConfigurationError from
create(); malformed messages raise ValidationError from run() before any
request is sent.
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import httpx

from llmforge.config import Settings, get_settings
from llmforge.logging import configure_logging, get_logger
from llmforge.schemas.config import (
    ClientConfig,
    EndpointConfig,
    normalize_endpoints,
    parse_client_config,
)
from llmforge.schemas.messages import UnifiedMessage, validate_messages
from llmforge.services.llm.orchestrator import Candidate, Orchestrator, RunResult
from llmforge.services.llm.providers import build_adapter
from llmforge.services.redact import safe_kv

logger = get_logger(__name__)


class LLMForgeClient:
    """Client over a fixed, priority-ordered set of provider endpoints.

    Endpoints are normalized once here and never change afterwards. One
    httpx.AsyncClient is shared by every endpoint; it is closed by aclose()
    only when this client created it.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = settings or get_settings()
        if config.enable_logging:
            configure_logging(json_format=settings.log_json, level=settings.log_level.upper())

        self._endpoints = normalize_endpoints(config, settings)
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()

        candidates = [
            Candidate(config=endpoint, adapter=build_adapter(endpoint, self._http_client))
            for endpoint in self._endpoints
        ]
        self._orchestrator = Orchestrator(
            candidates,
            enable_fallback=config.enable_fallback,
            sleep=sleep,
        )

        logger.debug(
            "llm.client.created",
            **safe_kv(
                providers=[endpoint.provider_id.value for endpoint in self._endpoints],
                enable_fallback=config.enable_fallback,
            ),
        )

    @property
    def endpoints(self) -> list[EndpointConfig]:
        """Normalized endpoints in attempt order."""
        return list(self._endpoints)

    @property
    def enable_fallback(self) -> bool:
        return self._orchestrator.enable_fallback

    async def run(self, messages: Sequence[UnifiedMessage | dict]) -> RunResult:
        """Send messages through the fallback chain.

        Raises:
            ValidationError: Malformed messages (no request is sent).
            ProviderChainError: A candidate failed and fallback is disabled.
        """
        validated = validate_messages(messages)
        return await self._orchestrator.run(validated)

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "LLMForgeClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create(
    config: ClientConfig | dict,
    *,
    http_client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> LLMForgeClient:
    """Build a client from a config mapping or ClientConfig.

    Args:
        config: {"llmConfig": endpoint | [endpoints], "enableFallback": bool, ...}
        http_client: Shared client to use instead of creating one.
        settings: Library settings (defaults to get_settings()).

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    return LLMForgeClient(parse_client_config(config), http_client=http_client, settings=settings)
