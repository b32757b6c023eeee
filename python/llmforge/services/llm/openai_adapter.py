"""OpenAI LLM adapter implementation.

- Endpoint: POST {base_url}/v1/chat/completions
- Headers: Authorization: Bearer <key>, Content-Type: application/json
- Streaming: Server-Sent Events with data: {...} format
- Terminal event: data: [DONE]
- Usage arrives in the last chunk before [DONE] (stream_options.include_usage)

Request body (minimal required fields):
{
  "model": "<model_name>",
  "messages": [
    {"role": "system", "content": "..."},
    {"role": "user", "content": "..."},
    {"role": "assistant", "content": "..."}
  ],
  "max_tokens": 1024,
  "temperature": 0.7,
  "stream": false
}

Response (non-stream) - extract:
{
  "id": "chatcmpl-...",
  "created": 1717000000,
  "model": "gpt-4o-mini-2024-07-18",
  "choices": [{"message": {"content": "<output_text>"}}],
  "usage": {
    "prompt_tokens": 100,
    "completion_tokens": 50,
    "total_tokens": 150
  }
}

Message conversion:
- "model" role → "assistant"
- Text-only messages → content string (parts joined by newline)
- Images (inline or by URI) → image_url content parts; other inline data
  (e.g. PDF) → file content parts; non-image file URIs are rejected
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from llmforge.services.llm.adapter import LLMAdapter, created_at_from
from llmforge.services.llm.errors import (
    LLMErrorClass,
    NonRetryableError,
    ProviderStreamError,
    extract_error_message,
)
from llmforge.services.llm.stream_decoder import FrameUpdate, SSEDecoder, StreamDecoder
from llmforge.services.llm.types import STATUS_SUCCESS, UnifiedResponse, Usage

if TYPE_CHECKING:
    from llmforge.schemas.messages import UnifiedMessage


class OpenAIAdapter(LLMAdapter):
    """OpenAI chat completions adapter.

    Handles conversion between UnifiedMessage objects and OpenAI message
    format, and interprets both streaming and non-streaming responses.
    """

    default_base_url = "https://api.openai.com"
    chat_path = "/v1/chat/completions"

    def stream_decoder(self) -> StreamDecoder:
        return SSEDecoder(self.interpret_frame, provider=self.provider_id, model=self.model)

    def interpret_frame(self, data: dict) -> FrameUpdate | None:
        if "error" in data:
            raise ProviderStreamError(
                extract_error_message(data) or "stream error", provider=self.provider_id
            )

        token = ""
        choices = data.get("choices") or []
        if choices:
            delta = choices[0].get("delta") or {}
            token = delta.get("content") or ""

        return FrameUpdate(
            token=token,
            usage=self._frame_usage(data),
            model=data.get("model"),
            response_id=data.get("id"),
        )

    def _frame_usage(self, data: dict) -> Usage | None:
        return _usage(data.get("usage"))

    def _path(self, stream: bool) -> str:
        return self.chat_path

    def _build_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        body: dict = {
            "model": self.model,
            "messages": [self._to_message(message) for message in messages],
            "stream": stream,
        }
        if stream:
            body["stream_options"] = {"include_usage": True}

        params = self._config.generation_params
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.max_output_tokens is not None:
            body["max_tokens"] = params.max_output_tokens
        if params.stop_sequences:
            body["stop"] = list(params.stop_sequences)
        if params.response_mime_type == "application/json":
            body["response_format"] = {"type": "json_object"}
        if params.thinking_config and params.thinking_config.thinking_budget is not None:
            body["reasoning_effort"] = _reasoning_effort(params.thinking_config.thinking_budget)

        return body

    def _to_message(self, message: "UnifiedMessage") -> dict:
        role = "assistant" if message.role == "model" else message.role
        if all(hasattr(part, "text") for part in message.parts):
            return {"role": role, "content": message.text}
        return {"role": role, "content": [self._to_content_part(part) for part in message.parts]}

    def _to_content_part(self, part) -> dict:
        if hasattr(part, "text"):
            return {"type": "text", "text": part.text}

        if hasattr(part, "inline_data"):
            data_uri = f"data:{part.inline_data.mime_type};base64,{part.inline_data.data}"
            if part.inline_data.mime_type.startswith("image/"):
                return {"type": "image_url", "image_url": {"url": data_uri}}
            return {"type": "file", "file": {"file_data": data_uri}}

        if part.file_data.mime_type.startswith("image/"):
            return {"type": "image_url", "image_url": {"url": part.file_data.file_uri}}
        raise NonRetryableError(
            LLMErrorClass.BAD_REQUEST,
            f"{self.provider_id} cannot fetch {part.file_data.mime_type} by URI",
            provider=self.provider_id,
        )

    def _parse_response(self, data: dict) -> UnifiedResponse:
        choices = data.get("choices") or []
        if not choices:
            raise self._invalid_response(f"{self.provider_id} response missing choices")

        output = (choices[0].get("message") or {}).get("content") or ""
        return UnifiedResponse(
            output=output,
            status=STATUS_SUCCESS,
            created_at=created_at_from(data.get("created")),
            model=data.get("model") or self.model,
            usage=_usage(data.get("usage")) or Usage(),
            response_id=data.get("id"),
        )


def _usage(usage_data: dict | None) -> Usage | None:
    if not usage_data:
        return None
    return Usage(
        input_tokens=usage_data.get("prompt_tokens"),
        output_tokens=usage_data.get("completion_tokens"),
        total_tokens=usage_data.get("total_tokens"),
    )


def _reasoning_effort(budget: int) -> str:
    """Map a Gemini-style thinking budget (-1 = dynamic) onto OpenAI effort levels."""
    if budget == -1:
        return "medium"
    return "high" if budget > 1000 else "low"
