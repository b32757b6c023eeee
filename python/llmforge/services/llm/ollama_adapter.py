"""Ollama LLM adapter implementation.

- Endpoint: POST {base_url}/api/chat (default base http://localhost:11434)
- No credential required; when one is configured it is sent as a bearer
  token (for Ollama behind an authenticating proxy)
- Streaming: newline-delimited JSON, one object per line
- Terminal object: "done": true, carrying the token counts

Request body:
{
  "model": "<model_name>",
  "messages": [{"role": "user", "content": "...", "images": ["<base64>"]}],
  "stream": false,
  "options": {"temperature": 0.7, "num_predict": 1024}
}

Response (non-stream, and each stream line):
{
  "model": "llama3.2",
  "created_at": "2024-07-01T12:00:00.123456789Z",
  "message": {"role": "assistant", "content": "<text>"},
  "done": true,
  "prompt_eval_count": 26,
  "eval_count": 298
}
"""

import re
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from llmforge.services.llm.adapter import LLMAdapter, created_at_from
from llmforge.services.llm.errors import (
    LLMErrorClass,
    NonRetryableError,
    ProviderStreamError,
)
from llmforge.services.llm.stream_decoder import FrameUpdate, NDJSONDecoder, StreamDecoder
from llmforge.services.llm.types import STATUS_SUCCESS, UnifiedResponse, Usage

if TYPE_CHECKING:
    from llmforge.schemas.messages import UnifiedMessage

# Ollama reports nanoseconds; datetime parses at most microseconds
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class OllamaAdapter(LLMAdapter):
    """Ollama chat adapter for locally served models."""

    default_base_url = "http://localhost:11434"
    requires_credential = False

    def stream_decoder(self) -> StreamDecoder:
        return NDJSONDecoder(self.interpret_frame, provider=self.provider_id, model=self.model)

    def interpret_frame(self, data: dict) -> FrameUpdate | None:
        error = data.get("error")
        if isinstance(error, str) and error:
            raise ProviderStreamError(f"Ollama error: {error}", provider=self.provider_id)

        message = data.get("message") or {}
        done = bool(data.get("done"))
        return FrameUpdate(
            token=message.get("content") or "",
            usage=_usage(data) if done else None,
            model=data.get("model"),
            done=done,
        )

    def _path(self, stream: bool) -> str:
        return "/api/chat"

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        body: dict = {
            "model": self.model,
            "messages": [self._to_message(message) for message in messages],
            "stream": stream,
        }

        params = self._config.generation_params
        options: dict = {}
        if params.temperature is not None:
            options["temperature"] = params.temperature
        if params.top_p is not None:
            options["top_p"] = params.top_p
        if params.top_k is not None:
            options["top_k"] = params.top_k
        if params.max_output_tokens is not None:
            options["num_predict"] = params.max_output_tokens
        if params.stop_sequences:
            options["stop"] = list(params.stop_sequences)
        if options:
            body["options"] = options
        if params.response_mime_type == "application/json":
            body["format"] = "json"

        return body

    def _to_message(self, message: "UnifiedMessage") -> dict:
        result: dict = {
            "role": "assistant" if message.role == "model" else message.role,
            "content": message.text,
        }
        images = []
        for part in message.parts:
            if hasattr(part, "text"):
                continue
            if hasattr(part, "inline_data") and part.inline_data.mime_type.startswith("image/"):
                images.append(part.inline_data.data)
                continue
            raise NonRetryableError(
                LLMErrorClass.BAD_REQUEST,
                "ollama accepts text and inline image parts only",
                provider=self.provider_id,
            )
        if images:
            result["images"] = images
        return result

    def _parse_response(self, data: dict) -> UnifiedResponse:
        error = data.get("error")
        if isinstance(error, str) and error:
            raise self._invalid_response(f"Ollama error: {error}")

        message = data.get("message")
        if not isinstance(message, dict):
            raise self._invalid_response("Ollama response missing message")

        return UnifiedResponse(
            output=message.get("content") or "",
            status=STATUS_SUCCESS,
            created_at=created_at_from(_parse_timestamp(data.get("created_at"))),
            model=data.get("model") or self.model,
            usage=_usage(data),
        )


def _usage(data: dict) -> Usage:
    return Usage.from_counts(data.get("prompt_eval_count"), data.get("eval_count"))


def _parse_timestamp(value) -> float | None:
    """RFC 3339 timestamp → epoch seconds (None if absent or unparseable)."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(_FRACTION_RE.sub(r"\1", value)).timestamp()
    except ValueError:
        return None
