"""Structured logging configuration using structlog.

Provides JSON-formatted logs with consistent context including:
- run_id: Correlation ID for one client.run() call
- provider: Provider currently being attempted
- attempt: Retry attempt number (0-based) within that provider
- timestamp: ISO8601 formatted timestamp

Usage:
    from llmforge.logging import get_logger, configure_logging

    # Configure once at startup (LLMForgeClient does this when enable_logging=True)
    configure_logging()

    # Get a logger for a module
    logger = get_logger(__name__)
    logger.info("something_happened", extra_field="value")

Nothing here is configured on import. A host application that already owns
structlog configuration can leave enable_logging off and keep its own setup.
"""

import logging
import sys
from contextvars import ContextVar

import structlog

# Context variables for run-scoped logging
run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
provider_var: ContextVar[str | None] = ContextVar("provider", default=None)
attempt_var: ContextVar[int | None] = ContextVar("attempt", default=None)


def add_run_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Add run context to all log entries.

    Injects all non-None ContextVar values into the log event dict.
    Explicit keyword arguments on the log call win over context.
    """
    run_id = run_id_var.get()
    provider = provider_var.get()
    attempt = attempt_var.get()

    if run_id:
        event_dict.setdefault("run_id", run_id)
    if provider:
        event_dict.setdefault("provider", provider)
    if attempt is not None:
        event_dict.setdefault("attempt", attempt)

    return event_dict


def configure_logging(json_format: bool = True, level: str | int = logging.INFO) -> None:
    """Configure structlog for the application.

    Args:
        json_format: If True, output JSON logs. If False, output console-friendly logs.
        level: Root log level (name or number).
    """
    shared_processors = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_run_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given name.

    Args:
        name: Logger name (typically __name__).

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def set_run_context(run_id: str | None) -> None:
    """Start run-scoped context for the current async task.

    Args:
        run_id: Correlation ID for the run.
    """
    run_id_var.set(run_id)
    provider_var.set(None)
    attempt_var.set(None)


def set_provider(provider: str | None) -> None:
    """Record the provider currently being attempted."""
    provider_var.set(provider)
    attempt_var.set(None)


def set_attempt(attempt: int | None) -> None:
    """Record the retry attempt number for the current provider."""
    attempt_var.set(attempt)


def clear_run_context() -> None:
    """Clear all run-scoped context at the end of a run."""
    run_id_var.set(None)
    provider_var.set(None)
    attempt_var.set(None)


def get_run_id() -> str | None:
    """Get the current run ID from context."""
    return run_id_var.get()
