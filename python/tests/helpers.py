"""Test helpers for stream and orchestration tests.

Provides:
- ChunkedByteStream: fake raw byte stream delivering chosen reads
- RecordingSleep: sleep stand-in that records requested delays
- FakeAdapter: scripted adapter for orchestrator tests
- make_endpoint: EndpointConfig builder with zero-delay retry policy
"""

import json

from llmforge.schemas.config import EndpointConfig, RetryPolicy
from llmforge.services.llm.stream_decoder import FrameUpdate, SSEDecoder
from llmforge.services.llm.types import STATUS_SUCCESS, UnifiedResponse, Usage


class ChunkedByteStream:
    """Raw byte stream delivering the given chunks, one per read.

    If error is set, it is raised after the chunks are delivered.
    """

    def __init__(self, chunks: list[bytes], error: Exception | None = None):
        self._chunks = list(chunks)
        self._error = error
        self.reads = 0
        self.close_count = 0

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def _iterate(self):
        for chunk in self._chunks:
            self.reads += 1
            yield chunk
        if self._error is not None:
            raise self._error

    def __aiter__(self):
        return self._iterate()

    async def aclose(self) -> None:
        self.close_count += 1


class RecordingSleep:
    """Awaitable sleep replacement; records seconds requested."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def sse(*payloads: dict | str) -> bytes:
    """Encode payloads as SSE data events."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def openai_chunk(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


def interpret_openai_chunk(data: dict) -> FrameUpdate:
    choices = data.get("choices") or [{}]
    return FrameUpdate(token=(choices[0].get("delta") or {}).get("content") or "")


def make_endpoint(
    provider: str = "openai",
    *,
    model: str = "test-model",
    priority: int = 0,
    streaming: bool = False,
    max_retries: int = 0,
) -> EndpointConfig:
    """Normalized-looking endpoint with a zero-delay retry policy."""
    return EndpointConfig(
        provider=provider,
        apiKey="sk-test",
        model=model,
        priority=priority,
        stream=streaming,
        timeout=5000,
        retryConfig=RetryPolicy(maxRetries=max_retries, retryDelay=0, exponentialBackoff=False),
    )


class FakeAdapter:
    """Scripted stand-in for an LLMAdapter.

    outcomes are consumed one per call: an Exception instance is raised,
    anything else is returned. The last outcome repeats once exhausted.
    For streaming endpoints, return a ChunkedByteStream of SSE bytes.
    """

    def __init__(self, config: EndpointConfig, outcomes: list):
        self.config = config
        self._outcomes = list(outcomes)
        self.calls = 0

    @property
    def provider_id(self) -> str:
        return self.config.provider_id.value

    async def _next(self):
        self.calls += 1
        index = min(self.calls - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def generate_content(self, messages):
        return await self._next()

    async def generate_content_stream(self, messages):
        return await self._next()

    def stream_decoder(self):
        return SSEDecoder(interpret_openai_chunk, provider=self.provider_id, model=self.config.model)


def success_response(output: str = "ok", model: str = "test-model") -> UnifiedResponse:
    return UnifiedResponse(
        output=output,
        status=STATUS_SUCCESS,
        created_at=1_700_000_000,
        model=model,
        usage=Usage(input_tokens=3, output_tokens=1, total_tokens=4),
        response_id="resp-1",
    )
