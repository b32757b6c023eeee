"""Stream normalization: provider byte streams → ordered StreamEvents.

Framing and meaning are split:
- A StreamDecoder variant recovers frames from the byte stream
  (SSEDecoder, NDJSONDecoder, ConcatenatedJSONDecoder).
- A provider interpreter, supplied by the adapter, turns one parsed frame
  into a FrameUpdate (token, usage, model, response id, terminal marker).

Per-stream guarantees:
- Bytes are decoded with an incremental UTF-8 decoder, so multi-byte
  characters split across reads survive
- Partial frames are carried over between reads
- One DeltaEvent per frame carrying text, in arrival order
- Frames that fail to parse are skipped with a warning
- Exactly one CompletedEvent, last, unless the stream fails
- After a terminal marker nothing more is read
- The raw stream is closed on every exit path

Completed status:
- "completed": the provider's terminal marker was seen
- "incomplete": stream ended without a marker after producing text
- "no_content": stream ended without a marker and without text
"""

import codecs
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Protocol

from llmforge.logging import get_logger
from llmforge.services.llm.json_scanner import JsonObjectScanner
from llmforge.services.llm.types import (
    STATUS_COMPLETED,
    STATUS_INCOMPLETE,
    STATUS_NO_CONTENT,
    CompletedEvent,
    DeltaEvent,
    FallbackInfo,
    StreamEvent,
    Usage,
)
from llmforge.services.redact import safe_kv

logger = get_logger(__name__)


class RawByteStream(Protocol):
    """Byte stream handed from an adapter to a decoder."""

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class FrameUpdate:
    """What one provider frame contributes to the stream.

    Attributes:
        token: Incremental text ("" when the frame carries none)
        usage: Token counts reported by this frame, merged over earlier ones
        model: Model identifier reported by the provider
        response_id: Provider's response ID
        done: True when this frame is the provider's terminal marker
    """

    token: str = ""
    usage: Usage | None = None
    model: str | None = None
    response_id: str | None = None
    done: bool = False


# Provider-specific: parsed frame → update, or None to ignore the frame
FrameInterpreter = Callable[[dict], FrameUpdate | None]


@dataclass
class _StreamState:
    model: str
    chunks: list[str] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    response_id: str | None = None
    done: bool = False
    frames: int = 0
    skipped: int = 0

    def status(self) -> str:
        if self.done:
            return STATUS_COMPLETED
        if self.chunks:
            return STATUS_INCOMPLETE
        return STATUS_NO_CONTENT


class StreamDecoder(ABC):
    """Base class for framing-specific decoders.

    A decoder is single-use: one instance normalizes exactly one byte stream.
    """

    def __init__(self, interpreter: FrameInterpreter, *, provider: str, model: str):
        """Initialize decoder.

        Args:
            interpreter: Provider frame interpreter.
            provider: Provider id, for logs.
            model: Configured model id, reported until the provider names one.
        """
        self._interpreter = interpreter
        self._provider = provider
        self._model = model
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._used = False

    @abstractmethod
    def _frames(self, text: str) -> list[str]:
        """Split newly decoded text into complete frame payloads."""

    @abstractmethod
    def _flush(self) -> list[str]:
        """Return whatever frame payloads remain at end of stream."""

    def _is_terminal(self, payload: str) -> bool:
        """Whether a payload is a framing-level terminal sentinel."""
        return False

    def decode(self, raw: RawByteStream) -> AsyncIterator[StreamEvent]:
        """Normalize a byte stream into StreamEvents.

        Raises:
            RuntimeError: If this decoder already decoded a stream.
        """
        if self._used:
            raise RuntimeError("StreamDecoder instances are single-use")
        self._used = True
        return self._events(raw)

    async def _events(self, raw: RawByteStream) -> AsyncIterator[StreamEvent]:
        state = _StreamState(model=self._model)
        try:
            async for chunk in raw:
                for event in self._consume(self._frames(self._text.decode(chunk)), state):
                    yield event
                if state.done:
                    break

            if not state.done:
                tail = self._frames(self._text.decode(b"", final=True)) + self._flush()
                for event in self._consume(tail, state):
                    yield event
        finally:
            await raw.aclose()

        output = "".join(state.chunks)
        completed = CompletedEvent(
            complete_output=output,
            model=state.model,
            status=state.status(),
            usage=state.usage,
            response_id=state.response_id,
        )
        logger.debug(
            "stream.completed",
            **safe_kv(
                provider=self._provider,
                status=completed.status,
                frame_count=state.frames,
                skipped_count=state.skipped,
                output_chars=len(output),
            ),
        )
        yield completed

    def _consume(self, payloads: list[str], state: _StreamState) -> Iterator[DeltaEvent]:
        for payload in payloads:
            if state.done:
                return
            update = self._interpret(payload, state)
            if update is None:
                continue

            if update.usage is not None:
                state.usage = state.usage.merge(update.usage)
            if update.model:
                state.model = update.model
            if update.response_id:
                state.response_id = update.response_id
            if update.token:
                state.chunks.append(update.token)
                yield DeltaEvent(token=update.token)
            if update.done:
                state.done = True

    def _interpret(self, payload: str, state: _StreamState) -> FrameUpdate | None:
        state.frames += 1
        if self._is_terminal(payload):
            return FrameUpdate(done=True)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            return self._skip(state, "invalid_json", payload)

        if not isinstance(data, dict):
            return self._skip(state, "not_an_object", payload)

        try:
            update = self._interpreter(data)
        except (AttributeError, KeyError, TypeError, IndexError):
            return self._skip(state, "unexpected_shape", payload)

        if update is not None and not isinstance(update.token, str):
            return self._skip(state, "unexpected_shape", payload)
        return update

    def _skip(self, state: _StreamState, reason: str, payload: str) -> None:
        state.skipped += 1
        logger.warning(
            "stream.frame_skipped",
            **safe_kv(provider=self._provider, reason=reason, frame_chars=len(payload)),
        )
        return None


class SSEDecoder(StreamDecoder):
    """Server-Sent Events: "data:" lines, events separated by a blank line.

    Handles CRLF line endings, ":" comments and "event:" names. Multi-line
    data fields are joined with "\\n". A payload equal to done_sentinel
    (OpenAI/Groq "[DONE]") ends the stream.
    """

    def __init__(
        self,
        interpreter: FrameInterpreter,
        *,
        provider: str,
        model: str,
        done_sentinel: str | None = "[DONE]",
    ):
        super().__init__(interpreter, provider=provider, model=model)
        self._done_sentinel = done_sentinel
        self._line_buffer = ""
        self._data_lines: list[str] = []

    def _frames(self, text: str) -> list[str]:
        payloads: list[str] = []
        lines = (self._line_buffer + text).split("\n")
        self._line_buffer = lines.pop()

        for line in lines:
            line = line.removesuffix("\r")
            if not line:
                self._dispatch(payloads)
                continue
            if line.startswith(":"):
                continue

            name, _, value = line.partition(":")
            # "event:", "id:" and "retry:" carry nothing the interpreters read;
            # Anthropic repeats the event name as the payload's "type"
            if name == "data":
                self._data_lines.append(value.removeprefix(" "))

        return payloads

    def _flush(self) -> list[str]:
        # Last line may have arrived without its newline
        payloads = self._frames("\n") if self._line_buffer else []
        self._dispatch(payloads)
        return payloads

    def _dispatch(self, payloads: list[str]) -> None:
        if self._data_lines:
            payloads.append("\n".join(self._data_lines))
        self._data_lines = []

    def _is_terminal(self, payload: str) -> bool:
        return self._done_sentinel is not None and payload.strip() == self._done_sentinel


class NDJSONDecoder(StreamDecoder):
    """Newline-delimited JSON: one object per line (Ollama)."""

    def __init__(self, interpreter: FrameInterpreter, *, provider: str, model: str):
        super().__init__(interpreter, provider=provider, model=model)
        self._line_buffer = ""

    def _frames(self, text: str) -> list[str]:
        lines = (self._line_buffer + text).split("\n")
        self._line_buffer = lines.pop()
        return [line.strip() for line in lines if line.strip()]

    def _flush(self) -> list[str]:
        tail = self._line_buffer.strip()
        self._line_buffer = ""
        return [tail] if tail else []


class ConcatenatedJSONDecoder(StreamDecoder):
    """JSON objects with no delimiter, recovered by brace counting (Gemini)."""

    def __init__(self, interpreter: FrameInterpreter, *, provider: str, model: str):
        super().__init__(interpreter, provider=provider, model=model)
        self._scanner = JsonObjectScanner()

    def _frames(self, text: str) -> list[str]:
        return self._scanner.feed(text)

    def _flush(self) -> list[str]:
        # An object still open at end of stream is truncated; surface it so
        # it is counted and skipped like any other unparseable frame
        tail = self._scanner.pending()
        return [tail] if tail else []


class EventStream:
    """Async iterator of StreamEvents bound to the byte stream behind them.

    Usage:
        async with await client.run(messages) as stream:
            async for event in stream:
                ...

    aclose() (or leaving the async with block) releases the underlying byte
    stream even if iteration never started or stopped early. When fallback
    info is given, it is attached to the CompletedEvent.
    """

    def __init__(
        self,
        events: AsyncIterator[StreamEvent],
        raw: RawByteStream | None = None,
        *,
        fallback: FallbackInfo | None = None,
    ):
        self._events = events
        self._raw = raw
        self._fallback = fallback
        self._closed = False

    @property
    def fallback(self) -> FallbackInfo | None:
        return self._fallback

    def __aiter__(self) -> "EventStream":
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration
        event = await self._events.__anext__()
        if isinstance(event, CompletedEvent) and self._fallback is not None:
            event = replace(event, fallback=self._fallback)
        return event

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._events, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._raw is not None:
                await self._raw.aclose()

    async def __aenter__(self) -> "EventStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
