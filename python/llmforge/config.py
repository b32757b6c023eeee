"""Library settings loaded from environment variables.

Environment Configuration:
    LLMFORGE_ENV: Deployment environment (local | test | prod)
    LLMFORGE_LOG_JSON: Render logs as JSON (default true)
    LLMFORGE_LOG_LEVEL: Root log level when logging is enabled (default INFO)

Endpoint defaults (applied when an endpoint config omits the field):
    LLMFORGE_DEFAULT_TIMEOUT_MS: Per-attempt HTTP timeout (default 30000)
    LLMFORGE_DEFAULT_MAX_RETRIES: Retries after the first attempt (default 3)
    LLMFORGE_DEFAULT_RETRY_DELAY_MS: Base backoff delay (default 1000)
    LLMFORGE_DEFAULT_EXPONENTIAL_BACKOFF: Double the delay per attempt (default true)
    LLMFORGE_DEFAULT_RETRYABLE_STATUS_CODES: Comma-separated HTTP codes
        (default "429,500,502,503,504")

Provider credentials (used when an endpoint config has no apiKey):
    OPENAI_API_KEY, GOOGLE_API_KEY, GROQ_API_KEY, ANTHROPIC_API_KEY
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """Library configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - Timeout must be positive; retry counts and delays must not be negative
    - Retryable status codes must parse as HTTP status codes (100-599)
    """

    llmforge_env: Environment = Field(default=Environment.LOCAL, alias="LLMFORGE_ENV")
    log_json: bool = Field(default=True, alias="LLMFORGE_LOG_JSON")
    log_level: str = Field(default="INFO", alias="LLMFORGE_LOG_LEVEL")

    # Endpoint defaults
    default_timeout_ms: int = Field(default=30_000, alias="LLMFORGE_DEFAULT_TIMEOUT_MS")
    default_max_retries: int = Field(default=3, alias="LLMFORGE_DEFAULT_MAX_RETRIES")
    default_retry_delay_ms: float = Field(default=1000, alias="LLMFORGE_DEFAULT_RETRY_DELAY_MS")
    default_exponential_backoff: bool = Field(
        default=True, alias="LLMFORGE_DEFAULT_EXPONENTIAL_BACKOFF"
    )
    default_retryable_status_codes: str = Field(
        default="429,500,502,503,504", alias="LLMFORGE_DEFAULT_RETRYABLE_STATUS_CODES"
    )

    # Platform credentials per provider (optional)
    openai_api_key: SecretStr | None = Field(default=None, alias="OPENAI_API_KEY")
    google_api_key: SecretStr | None = Field(default=None, alias="GOOGLE_API_KEY")
    groq_api_key: SecretStr | None = Field(default=None, alias="GROQ_API_KEY")
    anthropic_api_key: SecretStr | None = Field(default=None, alias="ANTHROPIC_API_KEY")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_defaults(self) -> "Settings":
        """Reject endpoint defaults that could never produce a working call."""
        if self.default_timeout_ms <= 0:
            raise ValueError("LLMFORGE_DEFAULT_TIMEOUT_MS must be positive")
        if self.default_max_retries < 0:
            raise ValueError("LLMFORGE_DEFAULT_MAX_RETRIES must not be negative")
        if self.default_retry_delay_ms < 0:
            raise ValueError("LLMFORGE_DEFAULT_RETRY_DELAY_MS must not be negative")

        # Parse eagerly so a bad value fails at load, not at first request
        _ = self.retryable_status_code_set
        return self

    @property
    def retryable_status_code_set(self) -> frozenset[int]:
        """Parse comma-separated status codes into a set."""
        codes = set()
        for raw in self.default_retryable_status_codes.split(","):
            raw = raw.strip()
            if not raw:
                continue
            try:
                code = int(raw)
            except ValueError:
                raise ValueError(
                    f"LLMFORGE_DEFAULT_RETRYABLE_STATUS_CODES has non-integer entry: {raw!r}"
                ) from None
            if not 100 <= code <= 599:
                raise ValueError(
                    f"LLMFORGE_DEFAULT_RETRYABLE_STATUS_CODES has invalid status: {code}"
                )
            codes.add(code)
        return frozenset(codes)

    def credential_for(self, provider: str) -> SecretStr | None:
        """Return the platform credential configured for a provider, if any."""
        return {
            "openai": self.openai_api_key,
            "google": self.google_api_key,
            "groq": self.groq_api_key,
            "anthropic": self.anthropic_api_key,
        }.get(provider)


@lru_cache
def get_settings() -> Settings:
    """Get cached library settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
