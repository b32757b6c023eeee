"""Retry with bounded, optionally exponential backoff.

One RetryHandler per endpoint, built from that endpoint's RetryPolicy.
execute_with_retry() calls the operation at most max_retries + 1 times.

Retry eligibility (default deny):
- NonRetryableError → never retried, propagates on first occurrence
- RetryableError → retried
- Untagged connection/timeout failures (httpx transport errors,
  TimeoutError, ConnectionError) → retried
- Anything carrying an HTTP status in the policy's retryable codes → retried
- Everything else → propagates on first occurrence

Delay before retry n (0-based):
- exponential: base_delay_ms * 2**n * (1 + jitter), jitter uniform in [0, 0.1)
- otherwise: base_delay_ms
Because jitter stays below 10%, exponential delays never decrease.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import httpx

from llmforge.logging import get_logger, set_attempt
from llmforge.services.llm.errors import LLMError, NonRetryableError, RetryableError
from llmforge.services.redact import safe_kv

if TYPE_CHECKING:
    from llmforge.schemas.config import RetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")

# Upper bound of the jitter fraction added to exponential delays
MAX_JITTER_FRACTION = 0.1


class RetryHandler:
    """Executes one async operation under a retry policy."""

    def __init__(
        self,
        policy: "RetryPolicy",
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ):
        """Initialize handler.

        Args:
            policy: Retry budget, base delay and retryable status codes.
            sleep: Awaitable sleep taking seconds (injectable for tests).
            jitter: Source of uniform floats in [0, 1).
        """
        self._policy = policy
        self._sleep = sleep
        self._jitter = jitter

    @property
    def policy(self) -> "RetryPolicy":
        return self._policy

    def is_retryable(self, exc: BaseException) -> bool:
        """Classify a failure for retry eligibility."""
        if isinstance(exc, NonRetryableError):
            return False
        if isinstance(exc, RetryableError):
            return True
        if isinstance(exc, httpx.TimeoutException | httpx.TransportError):
            return True
        if isinstance(exc, TimeoutError | ConnectionError):
            return True

        status_code = getattr(exc, "status_code", None)
        if status_code is None and isinstance(exc, httpx.HTTPStatusError):
            status_code = exc.response.status_code
        return status_code in self._policy.retryable_status_codes

    def compute_delay_ms(self, attempt: int) -> float:
        """Backoff before the retry following a failed attempt (0-based)."""
        base = self._policy.base_delay_ms
        if not self._policy.exponential:
            return base
        fraction = MAX_JITTER_FRACTION * self._jitter()
        return base * (2**attempt) * (1 + fraction)

    async def execute_with_retry(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run operation, retrying eligible failures within the budget.

        Args:
            operation: Zero-argument coroutine function; called once per attempt.
            label: Short name for logs (e.g. "openai:gpt-4o-mini").

        Returns:
            The first successful result.

        Raises:
            The last failure, once it is not retryable or the budget is spent.
        """
        max_retries = self._policy.max_retries
        attempt = 0
        while True:
            set_attempt(attempt)
            try:
                result = await operation()
            except Exception as exc:
                retryable = self.is_retryable(exc)
                if not retryable or attempt >= max_retries:
                    if retryable:
                        logger.warning(
                            "llm.retry.exhausted",
                            **safe_kv(label=label, attempts=attempt + 1, **_error_fields(exc)),
                        )
                    raise

                delay_ms = self.compute_delay_ms(attempt)
                logger.info(
                    "llm.retry.scheduled",
                    **safe_kv(
                        label=label,
                        delay_ms=round(delay_ms, 1),
                        remaining_retries=max_retries - attempt,
                        **_error_fields(exc),
                    ),
                )
                await self._sleep(delay_ms / 1000)
                attempt += 1
                continue

            if attempt:
                logger.info("llm.retry.recovered", **safe_kv(label=label, attempts=attempt + 1))
            return result


def _error_fields(exc: BaseException) -> dict:
    fields: dict = {"error_type": type(exc).__name__}
    if isinstance(exc, LLMError):
        fields["error_class"] = exc.error_class.value
        if exc.status_code is not None:
            fields["status_code"] = exc.status_code
    return fields
