"""Anthropic LLM adapter implementation.

- Endpoint: POST {base_url}/v1/messages
- Headers: x-api-key: <key>, anthropic-version: 2023-06-01, Content-Type: application/json

Message conversion:
- System messages extracted to the top-level "system" field
- "model" role → "assistant"
- text → {"type": "text"}; inline images → {"type": "image", "source": base64};
  inline PDFs → {"type": "document", "source": base64};
  file URIs → url sources (image or document by mime type)

Request body:
{
  "model": "<model_name>",
  "max_tokens": 1024,
  "system": "<system_prompt>",
  "messages": [
    {"role": "user", "content": [{"type": "text", "text": "..."}]},
    {"role": "assistant", "content": [{"type": "text", "text": "..."}]}
  ]
}

Response (non-stream):
{
  "id": "msg_...",
  "model": "claude-...",
  "content": [{"type": "text", "text": "<output_text>"}],
  "usage": {"input_tokens": 100, "output_tokens": 50}
}

- text = concatenate all content[].text where type="text"
- usage.total_tokens = input_tokens + output_tokens

Streaming (SSE, "event:" lines plus data payloads that repeat the type):
- message_start: message id, model, input usage
- content_block_delta: {"delta": {"type": "text_delta", "text": "..."}}
- message_delta: cumulative output usage
- message_stop: terminal
- error: provider error inside the stream
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from llmforge.services.llm.adapter import LLMAdapter, created_at_from
from llmforge.services.llm.errors import ProviderStreamError, extract_error_message
from llmforge.services.llm.stream_decoder import FrameUpdate, SSEDecoder, StreamDecoder
from llmforge.services.llm.types import STATUS_SUCCESS, UnifiedResponse, Usage

if TYPE_CHECKING:
    from llmforge.schemas.messages import UnifiedMessage

ANTHROPIC_API_VERSION = "2023-06-01"

# Anthropic requires max_tokens on every request
DEFAULT_MAX_TOKENS = 1024


class AnthropicAdapter(LLMAdapter):
    """Anthropic Messages API adapter.

    Handles conversion between UnifiedMessage objects and Anthropic message
    format, including system message extraction.
    """

    default_base_url = "https://api.anthropic.com"

    def stream_decoder(self) -> StreamDecoder:
        return SSEDecoder(
            self.interpret_frame,
            provider=self.provider_id,
            model=self.model,
            done_sentinel=None,
        )

    def interpret_frame(self, data: dict) -> FrameUpdate | None:
        event_type = data.get("type", "")

        if event_type == "message_start":
            message = data.get("message") or {}
            return FrameUpdate(
                usage=_usage(message.get("usage")),
                model=message.get("model"),
                response_id=message.get("id"),
            )

        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            if delta.get("type", "text_delta") != "text_delta":
                return None
            return FrameUpdate(token=delta.get("text") or "")

        if event_type == "message_delta":
            return FrameUpdate(usage=_usage(data.get("usage")))

        if event_type == "message_stop":
            return FrameUpdate(done=True)

        if event_type == "error":
            raise ProviderStreamError(
                extract_error_message(data) or "stream error", provider=self.provider_id
            )

        # ping, content_block_start, content_block_stop
        return None

    def _path(self, stream: bool) -> str:
        return "/v1/messages"

    def _build_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._config.api_key or "",
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        """Build request body.

        Extracts system messages to the separate system field.
        """
        system_texts = []
        conversation = []
        for message in messages:
            if message.role == "system":
                system_texts.append(message.text)
            else:
                conversation.append(
                    {
                        "role": "assistant" if message.role == "model" else "user",
                        "content": [self._to_block(part) for part in message.parts],
                    }
                )

        params = self._config.generation_params
        body: dict = {
            "model": self.model,
            "max_tokens": params.max_output_tokens or DEFAULT_MAX_TOKENS,
            "messages": conversation,
        }
        if stream:
            body["stream"] = True
        if system_texts:
            body["system"] = "\n\n".join(system_texts)
        if params.temperature is not None:
            body["temperature"] = params.temperature
        if params.top_p is not None:
            body["top_p"] = params.top_p
        if params.top_k is not None:
            body["top_k"] = params.top_k
        if params.stop_sequences:
            body["stop_sequences"] = list(params.stop_sequences)
        thinking = params.thinking_config
        if thinking and thinking.thinking_budget and thinking.thinking_budget > 0:
            body["thinking"] = {"type": "enabled", "budget_tokens": thinking.thinking_budget}

        return body

    def _to_block(self, part) -> dict:
        if hasattr(part, "text"):
            return {"type": "text", "text": part.text}

        if hasattr(part, "inline_data"):
            mime_type = part.inline_data.mime_type
            return {
                "type": "image" if mime_type.startswith("image/") else "document",
                "source": {"type": "base64", "media_type": mime_type, "data": part.inline_data.data},
            }

        mime_type = part.file_data.mime_type
        return {
            "type": "image" if mime_type.startswith("image/") else "document",
            "source": {"type": "url", "url": part.file_data.file_uri},
        }

    def _parse_response(self, data: dict) -> UnifiedResponse:
        content = data.get("content")
        if not isinstance(content, list):
            raise self._invalid_response("Anthropic response missing content")

        output = "".join(
            block.get("text", "") for block in content if block.get("type") == "text"
        )
        return UnifiedResponse(
            output=output,
            status=STATUS_SUCCESS,
            created_at=created_at_from(None),
            model=data.get("model") or self.model,
            usage=_usage(data.get("usage")) or Usage(),
            response_id=data.get("id"),
        )


def _usage(usage_data: dict | None) -> Usage | None:
    if not usage_data:
        return None
    return Usage.from_counts(usage_data.get("input_tokens"), usage_data.get("output_tokens"))
