"""Pytest configuration and fixtures for llmforge tests.

Test isolation strategy:
- Every test runs with LLMFORGE_ENV=test (safe_kv raises on violations)
  and without provider credentials from the host environment
- The settings cache is cleared around each test
- HTTP is mocked with respx; no test talks to a real provider
"""

import httpx
import pytest
import structlog

from llmforge.config import Settings, clear_settings_cache

PROVIDER_KEY_VARS = (
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "GROQ_API_KEY",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Pin the environment so host variables cannot leak into tests."""
    monkeypatch.setenv("LLMFORGE_ENV", "test")
    for var in PROVIDER_KEY_VARS:
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings with test defaults and no .env file."""
    return Settings(_env_file=None, LLMFORGE_ENV="test")


@pytest.fixture
def httpx_client():
    """Create an httpx AsyncClient for testing."""
    return httpx.AsyncClient()


@pytest.fixture
def log_sink():
    """Configure structlog to capture events into a list.

    Returns a list that will contain all emitted log event dicts.
    After the test, structlog is reset to normal.
    """
    events: list[dict] = []
    original_config = structlog.get_config()

    def capture_processor(logger, method_name, event_dict):
        event_dict = event_dict.copy()
        event_dict["log_level"] = method_name
        events.append(event_dict)
        raise structlog.DropEvent

    structlog.configure(
        processors=[capture_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    yield events

    # Restore original configuration
    structlog.configure(**original_config)
