"""Tests for observability instrumentation.

Covers:
- Redaction utilities (hash_text, safe_kv)
- Run-scoped ContextVars (run_id, provider, attempt)
- Event taxonomy correctness
- No sensitive data in logs (message text, output, api_key)
"""

import pytest
import respx

from llmforge.client import create
from llmforge.logging import (
    add_run_context,
    clear_run_context,
    get_run_id,
    set_attempt,
    set_provider,
    set_run_context,
)
from llmforge.services.redact import FORBIDDEN_KEYS, hash_text, safe_kv

# ─── Redaction Unit Tests ────────────────────────────────────────────────


class TestHashText:
    """Tests for hash_text function."""

    def test_stable_output(self):
        """Same input always produces same hash."""
        assert hash_text("hello") == hash_text("hello")

    def test_different_inputs_differ(self):
        assert hash_text("hello") != hash_text("world")

    def test_returns_hex_string(self):
        """Output is a 64-char hex string (SHA-256)."""
        result = hash_text("test")
        assert len(result) == 64
        assert all(c in "0123456789abcdef" for c in result)


class TestSafeKv:
    """Tests for safe_kv log guard."""

    def test_allows_safe_keys(self):
        """Normal keys pass through unchanged."""
        result = safe_kv(provider="openai", model_name="gpt-4o-mini", latency_ms=100)
        assert result == {"provider": "openai", "model_name": "gpt-4o-mini", "latency_ms": 100}

    def test_allows_redacted_suffix_keys(self):
        """Keys with redacted suffixes are allowed even if base is forbidden."""
        result = safe_kv(output_sha256="abc", content_length=42, output_chars=100)
        assert result == {"output_sha256": "abc", "content_length": 42, "output_chars": 100}

    def test_blocks_forbidden_key_in_test(self):
        with pytest.raises(ValueError, match="Forbidden log keys"):
            safe_kv(output="generated text", _env="test")

    def test_blocks_api_key_key(self):
        with pytest.raises(ValueError):
            safe_kv(api_key="sk-abc123", _env="local")

    def test_all_forbidden_keys_blocked(self):
        """Every key in FORBIDDEN_KEYS is blocked when used raw."""
        for key in FORBIDDEN_KEYS:
            with pytest.raises(ValueError):
                safe_kv(**{key: "some value"}, _env="test")

    def test_prod_drops_forbidden_keys(self, log_sink):
        """In prod the call succeeds, the key is dropped and a warning logged."""
        result = safe_kv(token="abc", provider="openai", _env="prod")
        assert result == {"provider": "openai"}
        assert log_sink[-1]["event"] == "safe_kv_violation"
        assert log_sink[-1]["forbidden_keys"] == ["token"]


# ─── ContextVar Tests ────────────────────────────────────────────────


class TestContextVars:
    """Tests for run-scoped logging context."""

    def setup_method(self):
        clear_run_context()

    def teardown_method(self):
        clear_run_context()

    def test_run_context_injected(self):
        set_run_context("run-1")
        set_provider("openai")
        set_attempt(2)
        event_dict = add_run_context(None, "info", {})
        assert event_dict == {"run_id": "run-1", "provider": "openai", "attempt": 2}
        assert get_run_id() == "run-1"

    def test_attempt_zero_injected(self):
        set_run_context("run-1")
        set_attempt(0)
        assert add_run_context(None, "info", {})["attempt"] == 0

    def test_set_provider_resets_attempt(self):
        set_run_context("run-1")
        set_provider("openai")
        set_attempt(3)
        set_provider("google")
        event_dict = add_run_context(None, "info", {})
        assert event_dict["provider"] == "google"
        assert "attempt" not in event_dict

    def test_explicit_fields_win(self):
        set_run_context("run-1")
        set_provider("openai")
        event_dict = add_run_context(None, "info", {"provider": "groq"})
        assert event_dict["provider"] == "groq"

    def test_clear_clears_all(self):
        set_run_context("run-1")
        set_provider("openai")
        set_attempt(1)
        clear_run_context()
        assert add_run_context(None, "info", {}) == {}
        assert get_run_id() is None


# ─── Event Taxonomy Tests ────────────────────────────────────────────


class TestEventTaxonomy:
    """Event names emitted during runs use the documented prefixes."""

    VALID_PREFIXES = ("llm.run.", "llm.candidate.", "llm.retry.", "llm.http.", "llm.client.", "stream.")

    @pytest.mark.asyncio
    @respx.mock
    async def test_emitted_event_names(self, log_sink, settings, httpx_client):
        respx.post("https://api.openai.com/v1/chat/completions").respond(500, json={})
        respx.post("http://localhost:11434/api/chat").respond(
            200, json={"message": {"content": "fine"}, "done": True}
        )
        client = create(
            {
                "llmConfig": [
                    {
                        "provider": "openai",
                        "apiKey": "sk-test",
                        "model": "gpt-4o-mini",
                        "priority": 1,
                        "retryConfig": {"maxRetries": 1, "retryDelay": 0},
                    },
                    {"provider": "ollama", "model": "llama3.2", "priority": 2},
                ],
                "enableFallback": True,
            },
            http_client=httpx_client,
            settings=settings,
        )
        await client.run([{"parts": [{"text": "hi"}]}])

        names = {event["event"] for event in log_sink}
        assert {"llm.run.started", "llm.retry.scheduled", "llm.candidate.failed"} <= names
        for name in names:
            assert name.startswith(self.VALID_PREFIXES), f"Event {name} has no valid prefix"


# ─── Sensitive Data Tests ────────────────────────────────────────────


class TestNoSensitiveDataInLogs:
    """A full run never logs credentials, message text or output."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_secrets_logged(self, log_sink, settings, httpx_client):
        api_key = "sk-never-log-this-key"
        message_text = "my private question"
        output_text = "confidential answer"
        respx.post("https://api.anthropic.com/v1/messages").respond(
            401, json={"error": {"type": "authentication_error", "message": "invalid x-api-key"}}
        )
        respx.post("https://api.openai.com/v1/chat/completions").respond(
            200,
            json={"id": "c1", "model": "gpt-4o-mini", "choices": [{"message": {"content": output_text}}]},
        )
        client = create(
            {
                "llmConfig": [
                    {"provider": "anthropic", "apiKey": api_key, "model": "claude", "priority": 1},
                    {"provider": "openai", "apiKey": api_key, "model": "gpt-4o-mini", "priority": 2},
                ],
                "enableFallback": True,
            },
            http_client=httpx_client,
            settings=settings,
        )

        response = await client.run([{"role": "user", "parts": [{"text": message_text}]}])

        assert response.output == output_text
        logged = str(log_sink)
        assert api_key not in logged
        assert message_text not in logged
        assert output_text not in logged
