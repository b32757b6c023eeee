"""Abstract base class for LLM adapters.

Adapters are the only place that knows a provider's payload format:
- UnifiedMessage list → provider request body
- provider response body → UnifiedResponse
- provider stream frame → FrameUpdate (via interpret_frame)

Rules:
- One HTTP call per generate_* call; retries belong to the retry handler
- No logging of request/response bodies
- Failures surface as RetryableError / NonRetryableError from the transport
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, ClassVar

from llmforge.services.llm.errors import LLMErrorClass, NonRetryableError
from llmforge.services.llm.stream_decoder import FrameUpdate, StreamDecoder
from llmforge.services.llm.transport import HttpTransport, ResponseByteStream
from llmforge.services.llm.types import UnifiedResponse

if TYPE_CHECKING:
    from llmforge.schemas.config import EndpointConfig
    from llmforge.schemas.messages import UnifiedMessage


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters.

    Subclasses declare where the provider lives (default_base_url) and
    implement the payload mapping; the HTTP calls are shared.
    """

    default_base_url: ClassVar[str]
    requires_credential: ClassVar[bool] = True

    def __init__(self, config: "EndpointConfig", transport: HttpTransport):
        """Initialize adapter.

        Args:
            config: Normalized endpoint configuration.
            transport: Transport bound to this endpoint.
        """
        self._config = config
        self._transport = transport

    @property
    def config(self) -> "EndpointConfig":
        return self._config

    @property
    def provider_id(self) -> str:
        return self._config.provider_id.value

    @property
    def model(self) -> str:
        return self._config.model

    async def generate_content(self, messages: Sequence["UnifiedMessage"]) -> UnifiedResponse:
        """Non-streaming generation. Returns the complete response.

        Raises:
            RetryableError: Timeout, connection failure or retryable status.
            NonRetryableError: Any other failure.
        """
        data = await self._transport.post_json(
            self._path(stream=False),
            headers=self._build_headers(),
            body=self._build_request_body(messages, stream=False),
            params=self._params(stream=False),
        )
        return self._parse_response(data)

    async def generate_content_stream(
        self, messages: Sequence["UnifiedMessage"]
    ) -> ResponseByteStream:
        """Streaming generation. Returns the raw body once the status is OK.

        Decode it with a fresh stream_decoder(). The caller owns the stream.
        """
        return await self._transport.open_stream(
            self._path(stream=True),
            headers=self._build_headers(),
            body=self._build_request_body(messages, stream=True),
            params=self._params(stream=True),
        )

    @abstractmethod
    def stream_decoder(self) -> StreamDecoder:
        """Return a new decoder for this provider's stream framing."""

    @abstractmethod
    def interpret_frame(self, data: dict) -> FrameUpdate | None:
        """Map one parsed stream frame to a FrameUpdate (None to ignore it)."""

    @abstractmethod
    def _path(self, stream: bool) -> str:
        """Request path relative to the endpoint's base URL."""

    @abstractmethod
    def _build_headers(self) -> dict[str, str]:
        """Request headers, including authentication."""

    @abstractmethod
    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        """Provider request body."""

    @abstractmethod
    def _parse_response(self, data: dict) -> UnifiedResponse:
        """Non-streaming response body → UnifiedResponse."""

    def _params(self, stream: bool) -> dict[str, str] | None:
        return None

    def _invalid_response(self, message: str) -> NonRetryableError:
        return NonRetryableError(
            LLMErrorClass.INVALID_RESPONSE, message, provider=self.provider_id
        )


def created_at_from(value) -> int:
    """Provider timestamp as epoch seconds, or now when absent."""
    if isinstance(value, int | float) and value > 0:
        return int(value)
    return int(time.time())
