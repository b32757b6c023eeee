"""Client configuration schemas.

Accepts the wire (camelCase) field names as well as snake_case:

    {
      "llmConfig": [
        {"provider": "openai", "apiKey": "...", "model": "gpt-4o-mini", "priority": 1},
        {"provider": "google", "model": "gemini-2.0-flash", "priority": 2, "stream": true}
      ],
      "enableFallback": true
    }

Endpoints are normalized once, at client construction, by
normalize_endpoints(): defaults come from Settings, credentials fall back to
provider environment variables, and the result is sorted by priority with
ties kept in list order. Every model here is frozen.
"""

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from llmforge.config import Settings, get_settings
from llmforge.services.llm.errors import ConfigurationError
from llmforge.services.llm.providers import Provider, default_base_url, requires_credential

_FROZEN = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class RetryPolicy(BaseModel):
    """Retry budget and backoff for one endpoint.

    Fields left unset on an endpoint are filled from Settings defaults.
    """

    max_retries: int = Field(default=3, ge=0, alias="maxRetries")
    base_delay_ms: float = Field(default=1000, ge=0, alias="retryDelay")
    exponential: bool = Field(default=True, alias="exponentialBackoff")
    retryable_status_codes: frozenset[int] = Field(
        default=frozenset({429, 500, 502, 503, 504}), alias="retryableStatusCodes"
    )

    model_config = _FROZEN

    @field_validator("retryable_status_codes")
    @classmethod
    def validate_status_codes(cls, codes: frozenset[int]) -> frozenset[int]:
        invalid = sorted(code for code in codes if not 100 <= code <= 599)
        if invalid:
            raise ValueError(f"invalid HTTP status codes: {invalid}")
        return codes


class ThinkingConfig(BaseModel):
    """Reasoning budget for models that support it (Gemini)."""

    thinking_budget: int | None = Field(default=None, ge=-1, alias="thinkingBudget")
    include_thoughts: bool | None = Field(default=None, alias="includeThoughts")

    model_config = _FROZEN


class GenerationParams(BaseModel):
    """Sampling parameters, mapped per provider by the adapters."""

    temperature: float | None = Field(default=None, ge=0)
    top_p: float | None = Field(default=None, ge=0, le=1, alias="topP")
    top_k: int | None = Field(default=None, ge=1, alias="topK")
    max_output_tokens: int | None = Field(default=None, ge=1, alias="maxOutputTokens")
    stop_sequences: tuple[str, ...] | None = Field(default=None, alias="stopSequences")
    response_mime_type: str | None = Field(default=None, alias="responseMimeType")
    thinking_config: ThinkingConfig | None = Field(default=None, alias="thinkingConfig")

    model_config = _FROZEN


class EndpointConfig(BaseModel):
    """One provider endpoint in the fallback chain.

    Lower priority is tried first. timeout_ms bounds each HTTP attempt.
    """

    provider_id: Provider = Field(alias="provider")
    credential: SecretStr | None = Field(default=None, alias="apiKey")
    model: str = Field(min_length=1)
    base_url: str | None = Field(default=None, alias="baseUrl")
    timeout_ms: int | None = Field(default=None, gt=0, alias="timeout")
    priority: int = 0
    retry_policy: RetryPolicy | None = Field(default=None, alias="retryConfig")
    generation_params: GenerationParams = Field(
        default_factory=GenerationParams, alias="generationConfig"
    )
    streaming_enabled: bool = Field(default=False, alias="stream")

    model_config = _FROZEN

    @field_validator("provider_id", mode="before")
    @classmethod
    def parse_provider(cls, value):
        if isinstance(value, str):
            return Provider.parse(value)
        return value

    @property
    def api_key(self) -> str | None:
        """Plain credential for request headers. Never log this."""
        return self.credential.get_secret_value() if self.credential else None


class ClientConfig(BaseModel):
    """Top-level configuration passed to create()."""

    llm_config: EndpointConfig | list[EndpointConfig] = Field(alias="llmConfig")
    enable_fallback: bool = Field(default=False, alias="enableFallback")
    enable_logging: bool = Field(default=False, alias="enableLogging")

    model_config = _FROZEN

    @property
    def endpoints(self) -> list[EndpointConfig]:
        if isinstance(self.llm_config, list):
            return list(self.llm_config)
        return [self.llm_config]


def parse_client_config(raw: "ClientConfig | dict") -> ClientConfig:
    """Validate a raw config mapping.

    Raises:
        ConfigurationError: If the mapping does not describe a valid config.
    """
    if isinstance(raw, ClientConfig):
        return raw
    try:
        return ClientConfig.model_validate(raw)
    except PydanticValidationError as e:
        raise ConfigurationError(_describe(e)) from e


def normalize_endpoints(
    client_config: ClientConfig,
    settings: Settings | None = None,
) -> list[EndpointConfig]:
    """Fill endpoint defaults and return endpoints in attempt order.

    Args:
        client_config: Validated client configuration.
        settings: Library settings (defaults to get_settings()).

    Returns:
        Endpoints sorted by priority; ties keep configuration order.

    Raises:
        ConfigurationError: On an empty endpoint list or a missing credential.
    """
    settings = settings or get_settings()
    endpoints = client_config.endpoints
    if not endpoints:
        raise ConfigurationError("llmConfig must contain at least one endpoint")

    normalized = [_normalize_endpoint(endpoint, settings) for endpoint in endpoints]
    # sorted() is stable
    return sorted(normalized, key=lambda endpoint: endpoint.priority)


def _normalize_endpoint(endpoint: EndpointConfig, settings: Settings) -> EndpointConfig:
    provider = endpoint.provider_id
    credential = endpoint.credential or settings.credential_for(provider.value)
    if credential is None and requires_credential(provider):
        raise ConfigurationError(
            f"No API key for provider {provider.value}: set apiKey or "
            f"{provider.value.upper()}_API_KEY",
            provider=provider.value,
        )

    return endpoint.model_copy(
        update={
            "credential": credential,
            "base_url": (endpoint.base_url or default_base_url(provider)).rstrip("/"),
            "timeout_ms": endpoint.timeout_ms or settings.default_timeout_ms,
            "retry_policy": _resolve_retry_policy(endpoint.retry_policy, settings),
        }
    )


def _resolve_retry_policy(policy: RetryPolicy | None, settings: Settings) -> RetryPolicy:
    """Overlay explicitly set fields on the Settings defaults."""
    resolved = {
        "max_retries": settings.default_max_retries,
        "base_delay_ms": settings.default_retry_delay_ms,
        "exponential": settings.default_exponential_backoff,
        "retryable_status_codes": settings.retryable_status_code_set,
    }
    if policy is not None:
        resolved.update(policy.model_dump(include=policy.model_fields_set))
    return RetryPolicy.model_validate(resolved)


def _describe(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one line: "loc: msg; loc: msg"."""
    parts = []
    for item in error.errors():
        location = ".".join(str(piece) for piece in item["loc"]) or "config"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
