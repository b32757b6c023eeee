"""HTTP transport shared by all provider adapters.

One HttpTransport per endpoint. It issues a single request per call, never
retries, and converts every failure into the retryable / non-retryable
taxonomy the retry handler reads:

- httpx.TimeoutException → RetryableError(E_LLM_TIMEOUT)
- other httpx.TransportError (connect, read, protocol) → RetryableError(E_LLM_PROVIDER_DOWN)
- HTTP status in the endpoint's retryable codes → RetryableError
- any other non-2xx → NonRetryableError
- 2xx with a body that is not a JSON object → NonRetryableError(E_LLM_INVALID_RESPONSE)

Status errors carry status_code and the class from classify_provider_error().
Request bodies and credentials are never logged.
"""

from collections.abc import AsyncIterator, Collection

import httpx

from llmforge.logging import get_logger
from llmforge.services.llm.errors import (
    LLMError,
    LLMErrorClass,
    NonRetryableError,
    RetryableError,
    classify_provider_error,
    extract_error_message,
)
from llmforge.services.redact import safe_kv

logger = get_logger(__name__)

# Connection establishment gets its own, shorter bound
CONNECT_TIMEOUT_S = 10.0


class ResponseByteStream:
    """Body of a streaming response as an async byte iterator.

    Read failures surface as RetryableError like request failures do.
    aclose() is idempotent and releases the connection.
    """

    def __init__(self, response: httpx.Response, provider: str):
        self._response = response
        self._provider = provider
        self._iterator: AsyncIterator[bytes] | None = None
        self._closed = False

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._iterator is None:
            self._iterator = self._read()
        return self._iterator

    async def _read(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.TransportError as e:
            raise _transport_error(self._provider, e, during="stream read") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._iterator is not None:
                await self._iterator.aclose()
        finally:
            await self._response.aclose()


class HttpTransport:
    """Single-attempt JSON-over-HTTP calls for one provider endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        provider: str,
        base_url: str,
        timeout_ms: int,
        retryable_status_codes: Collection[int],
    ):
        """Initialize transport.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            provider: Provider id, for error classification.
            base_url: Endpoint base URL without trailing slash.
            timeout_ms: Per-attempt timeout.
            retryable_status_codes: HTTP statuses that mark a failure retryable.
        """
        self._client = client
        self._provider = provider
        self._base_url = base_url.rstrip("/")
        self._timeout_ms = timeout_ms
        self._retryable_status_codes = frozenset(retryable_status_codes)

    @property
    def provider(self) -> str:
        return self._provider

    def url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _timeout(self) -> httpx.Timeout:
        timeout_s = self._timeout_ms / 1000
        return httpx.Timeout(timeout_s, connect=min(CONNECT_TIMEOUT_S, timeout_s))

    async def post_json(
        self,
        path: str,
        *,
        headers: dict[str, str],
        body: dict,
        params: dict[str, str] | None = None,
    ) -> dict:
        """POST a JSON body and return the parsed JSON object response.

        Raises:
            RetryableError: Timeout, connection failure or retryable status.
            NonRetryableError: Other error status or unusable body.
        """
        try:
            response = await self._client.post(
                self.url(path),
                headers=headers,
                json=body,
                params=params,
                timeout=self._timeout(),
            )
        except httpx.TransportError as e:
            raise _transport_error(self._provider, e, during="request") from e

        if not response.is_success:
            raise self._status_error(response)

        data = _safe_parse_json(response)
        if not isinstance(data, dict):
            raise NonRetryableError(
                LLMErrorClass.INVALID_RESPONSE,
                f"Expected a JSON object from {self._provider}",
                provider=self._provider,
                status_code=response.status_code,
            )
        return data

    async def open_stream(
        self,
        path: str,
        *,
        headers: dict[str, str],
        body: dict,
        params: dict[str, str] | None = None,
    ) -> ResponseByteStream:
        """POST a JSON body and return the response body as a byte stream.

        The status is checked before returning, so HTTP failures raise here
        and stay eligible for retry. The caller owns the returned stream.
        """
        request = self._client.build_request(
            "POST",
            self.url(path),
            headers=headers,
            json=body,
            params=params,
            timeout=self._timeout(),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TransportError as e:
            raise _transport_error(self._provider, e, during="request") from e

        if not response.is_success:
            try:
                await response.aread()
            except httpx.TransportError as e:
                raise _transport_error(self._provider, e, during="error body read") from e
            finally:
                await response.aclose()
            raise self._status_error(response)

        return ResponseByteStream(response, self._provider)

    def _status_error(self, response: httpx.Response) -> LLMError:
        status_code = response.status_code
        json_body = _safe_parse_json(response)
        if isinstance(json_body, list) and json_body:
            # Gemini's streaming endpoint wraps the error object in an array
            json_body = json_body[0]
        if not isinstance(json_body, dict):
            json_body = None
        error_class = classify_provider_error(self._provider, status_code, json_body, None)
        detail = extract_error_message(json_body) or response.reason_phrase or "error"
        retryable = status_code in self._retryable_status_codes

        logger.debug(
            "llm.http.status_error",
            **safe_kv(
                provider=self._provider,
                status_code=status_code,
                error_class=error_class.value,
                retryable=retryable,
            ),
        )

        error_type = RetryableError if retryable else NonRetryableError
        return error_type(
            error_class,
            f"HTTP {status_code}: {detail}",
            provider=self._provider,
            status_code=status_code,
        )


def _transport_error(provider: str, exc: httpx.TransportError, *, during: str) -> RetryableError:
    if isinstance(exc, httpx.TimeoutException):
        return RetryableError(
            LLMErrorClass.TIMEOUT, f"Timed out during {during}", provider=provider
        )
    error_class = classify_provider_error(provider, None, None, exc)
    return RetryableError(
        error_class,
        f"{type(exc).__name__} during {during}",
        provider=provider,
    )


def _safe_parse_json(response: httpx.Response) -> dict | list | None:
    """Parse JSON from a response, returning None when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None
