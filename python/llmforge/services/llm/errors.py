"""LLM error taxonomy, classification and normalization.

Two axes:
- Retry eligibility, expressed by exception type: RetryableError vs
  NonRetryableError. The retry handler reads only this axis.
- Error class (LLMErrorClass), a normalized code describing what went wrong,
  used in fallback reasons and logs.

Error classes:
- E_LLM_INVALID_KEY: Authentication failure (401/403)
- E_LLM_RATE_LIMIT: Rate limit exceeded (429)
- E_LLM_CONTEXT_TOO_LARGE: Context length exceeded
- E_LLM_TIMEOUT: Request timed out
- E_LLM_PROVIDER_DOWN: Provider unavailable (5xx, network error)
- E_MODEL_NOT_AVAILABLE: Model not found or provider unsupported
- E_LLM_BAD_REQUEST: Other 4xx rejections
- E_LLM_INVALID_RESPONSE: Success status with an unusable body
- E_VALIDATION: Caller supplied malformed messages
- E_CONFIGURATION: Client configuration rejected at construction
- E_ALL_PROVIDERS_FAILED: Aggregate failure of the fallback chain
"""

from collections.abc import Sequence
from enum import Enum

from llmforge.logging import get_logger
from llmforge.services.llm.types import FallbackAttempt, format_fallback_reason

logger = get_logger(__name__)


class LLMErrorClass(str, Enum):
    """Normalized LLM error classifications."""

    INVALID_KEY = "E_LLM_INVALID_KEY"
    RATE_LIMIT = "E_LLM_RATE_LIMIT"
    CONTEXT_TOO_LARGE = "E_LLM_CONTEXT_TOO_LARGE"
    TIMEOUT = "E_LLM_TIMEOUT"
    PROVIDER_DOWN = "E_LLM_PROVIDER_DOWN"
    MODEL_NOT_AVAILABLE = "E_MODEL_NOT_AVAILABLE"
    BAD_REQUEST = "E_LLM_BAD_REQUEST"
    INVALID_RESPONSE = "E_LLM_INVALID_RESPONSE"
    VALIDATION = "E_VALIDATION"
    CONFIGURATION = "E_CONFIGURATION"
    ALL_PROVIDERS_FAILED = "E_ALL_PROVIDERS_FAILED"


class LLMError(Exception):
    """Base exception for LLM-related errors.

    Attributes:
        error_class: The normalized error classification
        message: Human-readable error message
        provider: The provider that returned the error (if known)
        status_code: HTTP status code behind the error (if any)
    """

    def __init__(
        self,
        error_class: LLMErrorClass,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ):
        self.error_class = error_class
        self.message = message
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class RetryableError(LLMError):
    """Transient failure: rate limits, 5xx, connection failures, timeouts."""


class NonRetryableError(LLMError):
    """Permanent failure: propagates on first occurrence without retry."""


class ValidationError(NonRetryableError):
    """Malformed message list, raised before any network call."""

    def __init__(self, message: str):
        super().__init__(LLMErrorClass.VALIDATION, message)


class ConfigurationError(NonRetryableError):
    """Client configuration rejected at construction time."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(LLMErrorClass.CONFIGURATION, message, provider=provider)


class ProviderStreamError(NonRetryableError):
    """Provider reported an error inside an already-open stream."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(LLMErrorClass.PROVIDER_DOWN, message, provider=provider)


class ProviderChainError(LLMError):
    """Aggregate failure of a run.

    The message enumerates every attempted provider and its failure reason,
    comma-joined in attempt order.
    """

    def __init__(self, trace: Sequence[FallbackAttempt]):
        self.trace = list(trace)
        message = format_fallback_reason(self.trace)
        super().__init__(LLMErrorClass.ALL_PROVIDERS_FAILED, message)


def classify_provider_error(
    provider: str,
    status_code: int | None,
    json_body: dict | None,
    exception: Exception | None,
) -> LLMErrorClass:
    """Classify provider error into normalized error class.

    Called by the transport after an HTTP failure.

    Args:
        provider: One of "openai", "groq", "google", "anthropic", "ollama"
        status_code: HTTP status code (if available)
        json_body: Parsed JSON error response (if available)
        exception: The exception that was raised (if any)

    Returns:
        The appropriate LLMErrorClass for this error.
    """
    # Handle timeout exceptions first (no status code)
    if exception is not None:
        exception_type = type(exception).__name__
        if "Timeout" in exception_type or "timeout" in str(exception).lower():
            return LLMErrorClass.TIMEOUT
        if "Network" in exception_type or "Connect" in exception_type:
            return LLMErrorClass.PROVIDER_DOWN

    if status_code is None:
        return LLMErrorClass.PROVIDER_DOWN

    if provider in ("openai", "groq"):
        return _classify_openai_error(status_code, json_body)
    elif provider == "anthropic":
        return _classify_anthropic_error(status_code, json_body)
    elif provider == "google":
        return _classify_google_error(status_code, json_body)
    elif provider == "ollama":
        return _classify_ollama_error(status_code, json_body)
    else:
        logger.warning("unknown_provider_for_error_classification", provider=provider)
        return _classify_by_status(status_code)


def _classify_by_status(status_code: int) -> LLMErrorClass:
    """Status-only classification shared by every provider."""
    if status_code in (401, 403):
        return LLMErrorClass.INVALID_KEY
    if status_code == 429:
        return LLMErrorClass.RATE_LIMIT
    if status_code == 404:
        return LLMErrorClass.MODEL_NOT_AVAILABLE
    if status_code >= 500:
        return LLMErrorClass.PROVIDER_DOWN
    return LLMErrorClass.BAD_REQUEST


def _classify_openai_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Classify OpenAI-compatible errors (OpenAI and Groq).

    - 400 + error.code == "context_length_exceeded" → CONTEXT_TOO_LARGE
    - 400 + "maximum context length" in message → CONTEXT_TOO_LARGE
    - 400 + model ... not found → MODEL_NOT_AVAILABLE
    """
    if status_code == 400 and json_body:
        error = json_body.get("error") or {}
        if isinstance(error, dict):
            error_code = error.get("code") or ""
            error_message = (error.get("message") or "").lower()

            if error_code == "context_length_exceeded":
                return LLMErrorClass.CONTEXT_TOO_LARGE
            if "maximum context length" in error_message:
                return LLMErrorClass.CONTEXT_TOO_LARGE
            if "model" in error_message and (
                "not found" in error_message or "does not exist" in error_message
            ):
                return LLMErrorClass.MODEL_NOT_AVAILABLE

    return _classify_by_status(status_code)


def _classify_anthropic_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Classify Anthropic-specific errors.

    - 400 + error.type == "invalid_request_error" + "too long" → CONTEXT_TOO_LARGE
    - 529 (overloaded) → PROVIDER_DOWN via the 5xx rule
    """
    if status_code == 400 and json_body:
        error = json_body.get("error") or {}
        if isinstance(error, dict):
            error_type = error.get("type", "")
            error_message = (error.get("message") or "").lower()

            if error_type == "invalid_request_error" and "too long" in error_message:
                return LLMErrorClass.CONTEXT_TOO_LARGE

    return _classify_by_status(status_code)


def _classify_google_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Classify Gemini API errors.

    - "API_KEY_INVALID" in body → INVALID_KEY (Gemini answers 400 for bad keys)
    - "RESOURCE_EXHAUSTED" → RATE_LIMIT
    - "exceeds the maximum" in message → CONTEXT_TOO_LARGE
    - "model not found" / "is not found" → MODEL_NOT_AVAILABLE
    """
    body_str = str(json_body).lower() if json_body else ""

    if "api_key_invalid" in body_str:
        return LLMErrorClass.INVALID_KEY

    if status_code == 429 or "resource_exhausted" in body_str:
        return LLMErrorClass.RATE_LIMIT

    if "exceeds the maximum" in body_str:
        return LLMErrorClass.CONTEXT_TOO_LARGE

    if "model not found" in body_str or "is not found" in body_str:
        return LLMErrorClass.MODEL_NOT_AVAILABLE

    return _classify_by_status(status_code)


def _classify_ollama_error(status_code: int, json_body: dict | None) -> LLMErrorClass:
    """Classify Ollama errors.

    Ollama reports a missing model as 404 with {"error": "model ... not found"}.
    """
    if json_body and isinstance(json_body.get("error"), str):
        message = json_body["error"].lower()
        if "not found" in message and "model" in message:
            return LLMErrorClass.MODEL_NOT_AVAILABLE

    return _classify_by_status(status_code)


def extract_error_message(json_body: dict | None) -> str | None:
    """Pull the provider's human-readable message out of an error body.

    Handles {"error": {"message": "..."}} (OpenAI, Groq, Gemini, Anthropic)
    and {"error": "..."} (Ollama).
    """
    if not isinstance(json_body, dict):
        return None

    error = json_body.get("error")
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    return None
