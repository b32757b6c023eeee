"""Priority-ordered fallback across provider endpoints.

run() walks the candidates in ascending priority (ties keep configuration
order), strictly one at a time:

1. Call the candidate's generate_content or generate_content_stream
   (per its streaming_enabled flag), wrapped in a RetryHandler built from
   the candidate's own retry policy.
2. First success wins and is returned; no other candidate is called.
3. Any failure, whatever its kind, is appended to the fallback trace.
   Fallback disabled → raise ProviderChainError immediately.
   Fallback enabled → move on to the next candidate.
4. All candidates failed with fallback enabled → return a degraded result
   (status "fallback", empty output, full trace) instead of raising.

A streaming winner is returned as an EventStream wrapping the live byte
stream; failures after that point reach the consumer and are not retried
or failed over, because deltas may already have been delivered.

Observability:
- llm.run.started / llm.run.finished / llm.run.degraded per run
- llm.candidate.failed per failed candidate
- All events use safe_kv(); message and output text are never logged
"""

import asyncio
import functools
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from llmforge.logging import clear_run_context, get_logger, set_provider, set_run_context
from llmforge.services.llm.adapter import LLMAdapter
from llmforge.services.llm.errors import LLMError, ProviderChainError
from llmforge.services.llm.retry import RetryHandler
from llmforge.services.llm.stream_decoder import EventStream
from llmforge.services.llm.types import (
    STATUS_FALLBACK,
    CompletedEvent,
    FallbackAttempt,
    FallbackInfo,
    StreamEvent,
    UnifiedResponse,
    Usage,
)
from llmforge.services.redact import hash_text, safe_kv

if TYPE_CHECKING:
    from llmforge.schemas.config import EndpointConfig
    from llmforge.schemas.messages import UnifiedMessage

logger = get_logger(__name__)

RunResult = UnifiedResponse | EventStream


@dataclass(frozen=True)
class Candidate:
    """One endpoint in the fallback chain: its config and adapter."""

    config: "EndpointConfig"
    adapter: LLMAdapter

    @property
    def provider_id(self) -> str:
        return self.config.provider_id.value

    @property
    def label(self) -> str:
        return f"{self.provider_id}:{self.config.model}"


class Orchestrator:
    """Runs the fallback/retry protocol over a fixed set of candidates."""

    def __init__(
        self,
        candidates: Sequence[Candidate],
        *,
        enable_fallback: bool,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize orchestrator.

        Args:
            candidates: Endpoints with their adapters, in any order.
            enable_fallback: Whether a failure advances to the next candidate.
            sleep: Backoff sleep, shared by every candidate's retry handler.
        """
        if not candidates:
            raise ValueError("Orchestrator needs at least one candidate")
        # sorted() is stable, so equal priorities keep configuration order
        self._candidates = sorted(candidates, key=lambda candidate: candidate.config.priority)
        self._enable_fallback = enable_fallback
        self._retry_handlers = [
            RetryHandler(candidate.config.retry_policy, sleep=sleep)
            for candidate in self._candidates
        ]

    @property
    def candidates(self) -> list[Candidate]:
        return list(self._candidates)

    @property
    def enable_fallback(self) -> bool:
        return self._enable_fallback

    async def run(self, messages: Sequence["UnifiedMessage"]) -> RunResult:
        """Execute one run.

        Args:
            messages: Validated messages.

        Returns:
            UnifiedResponse for a non-streaming winner, EventStream for a
            streaming one. When every candidate failed and fallback is
            enabled, the degraded result takes the shape of the last candidate
            in priority order: an EventStream yielding a single fallback
            CompletedEvent if that endpoint streams, otherwise a
            UnifiedResponse with status "fallback". Callers with mixed
            streaming settings should handle both.

        Raises:
            ProviderChainError: On the first failure when fallback is disabled.
        """
        run_id = uuid.uuid4().hex
        set_run_context(run_id)
        start = time.monotonic()
        trace: list[FallbackAttempt] = []

        logger.info(
            "llm.run.started",
            **safe_kv(
                candidate_count=len(self._candidates),
                enable_fallback=self._enable_fallback,
                message_count=len(messages),
                input_sha256=_input_digest(messages),
            ),
        )

        try:
            for candidate, retry_handler in zip(self._candidates, self._retry_handlers):
                set_provider(candidate.provider_id)
                try:
                    result = await self._attempt(candidate, retry_handler, messages)
                except Exception as exc:
                    attempt = FallbackAttempt(
                        provider_id=candidate.provider_id,
                        reason=str(exc) or type(exc).__name__,
                        model=candidate.config.model,
                    )
                    trace.append(attempt)
                    logger.warning(
                        "llm.candidate.failed",
                        **safe_kv(
                            model_name=candidate.config.model,
                            priority=candidate.config.priority,
                            error_type=type(exc).__name__,
                            error_class=(
                                exc.error_class.value if isinstance(exc, LLMError) else None
                            ),
                            will_fall_back=self._enable_fallback,
                        ),
                    )
                    if not self._enable_fallback:
                        raise ProviderChainError(trace) from exc
                    continue

                fallback = FallbackInfo.from_trace(trace)
                logger.info(
                    "llm.run.finished",
                    **safe_kv(
                        outcome="success",
                        model_name=candidate.config.model,
                        streaming=candidate.config.streaming_enabled,
                        fallback_used=fallback.is_used,
                        failed_count=len(trace),
                        latency_ms=_elapsed_ms(start),
                    ),
                )
                return self._finalize(candidate, result, fallback)

            return self._degraded(trace, start)
        finally:
            clear_run_context()

    async def _attempt(
        self,
        candidate: Candidate,
        retry_handler: RetryHandler,
        messages: Sequence["UnifiedMessage"],
    ):
        adapter = candidate.adapter
        if candidate.config.streaming_enabled:
            operation = functools.partial(adapter.generate_content_stream, messages)
        else:
            operation = functools.partial(adapter.generate_content, messages)
        return await retry_handler.execute_with_retry(operation, candidate.label)

    def _finalize(self, candidate: Candidate, result, fallback: FallbackInfo) -> RunResult:
        if candidate.config.streaming_enabled:
            decoder = candidate.adapter.stream_decoder()
            return EventStream(decoder.decode(result), result, fallback=fallback)
        return replace(result, fallback=fallback)

    def _degraded(self, trace: list[FallbackAttempt], start: float) -> RunResult:
        """Result for a run in which every candidate failed."""
        fallback = FallbackInfo.from_trace(trace)
        streaming = self._candidates[-1].config.streaming_enabled

        logger.error(
            "llm.run.degraded",
            **safe_kv(
                outcome="fallback",
                failed_count=len(trace),
                failed_providers=[attempt.provider_id for attempt in trace],
                streaming=streaming,
                latency_ms=_elapsed_ms(start),
            ),
        )

        if streaming:
            return EventStream(_single_event(_fallback_completed(fallback)))
        return UnifiedResponse(
            output="",
            status=STATUS_FALLBACK,
            created_at=int(time.time()),
            model="",
            usage=Usage(input_tokens=0, output_tokens=0, total_tokens=0),
            fallback=fallback,
        )


def _fallback_completed(fallback: FallbackInfo) -> CompletedEvent:
    return CompletedEvent(
        complete_output="",
        model="",
        status=STATUS_FALLBACK,
        usage=Usage(input_tokens=0, output_tokens=0, total_tokens=0),
        fallback=fallback,
    )


async def _single_event(event: StreamEvent) -> AsyncIterator[StreamEvent]:
    yield event


def _input_digest(messages: Sequence["UnifiedMessage"]) -> str:
    return hash_text("\n".join(message.text for message in messages))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
