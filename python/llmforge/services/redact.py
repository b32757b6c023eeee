"""Hashing and log guard utilities.

- hash_text: stable SHA-256 hex digest for log correlation
- safe_kv: log guard that blocks forbidden keys at call site

Never-log policy:
- Credentials (API keys, bearer tokens)
- Message content and part payloads
- Generated output text and stream tokens

Allowed (with suffix):
- _chars, _length, _count: size of text
- _sha256, _hash: hash of text
- Token counts, provider ids, model names, latency
"""

import hashlib
import os

FORBIDDEN_KEYS = frozenset(
    {
        "api_key",
        "credential",
        "bearer",
        "secret",
        "authorization",
        "content",
        "parts",
        "text",
        "messages",
        "output",
        "token",
        "complete_output",
        "raw_body",
    }
)

REDACTED_SUFFIXES = ("_sha256", "_hash", "_length", "_chars", "_count")


def hash_text(value: str) -> str:
    """SHA-256 hex digest of a string.

    Stable: same input always produces same output.
    Used for log correlation without exposing content.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _has_redacted_suffix(key: str) -> bool:
    """Check if key ends with a recognized redacted suffix."""
    return any(key.endswith(suffix) for suffix in REDACTED_SUFFIXES)


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Validate that no forbidden keys are present unless already redacted.

    Raises ValueError in local/test environments if a forbidden key is used
    without a redacted suffix. In production, logs a warning instead.

    Usage:
        logger.info("llm.run.finished", **safe_kv(
            provider="openai",
            output_chars=1234,        # OK: _chars suffix
            output_sha256="abc123",   # OK: _sha256 suffix
            # output="hello world",   # BLOCKED: forbidden key
        ))

    Args:
        _env: Override for LLMFORGE_ENV (test-only). If None, reads from env.
        **kwargs: Keyword arguments to validate and return.

    Returns:
        The same kwargs dict, after validation.

    Raises:
        ValueError: In local/test, if a forbidden key is used without redacted suffix.
    """
    violations = [
        key for key in kwargs if key in FORBIDDEN_KEYS and not _has_redacted_suffix(key)
    ]

    if violations:
        msg = f"Forbidden log keys without redacted suffix: {violations}"
        env = _env or os.environ.get("LLMFORGE_ENV", "local")
        if env in ("local", "test"):
            raise ValueError(msg)

        import structlog

        _logger = structlog.get_logger("llmforge.services.redact")
        _logger.warning("safe_kv_violation", forbidden_keys=violations)
        for key in violations:
            kwargs.pop(key)

    return kwargs
