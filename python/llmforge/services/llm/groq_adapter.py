"""Groq LLM adapter implementation.

Groq serves an OpenAI-compatible API, so this adapter reuses the OpenAI
mapping with these differences:
- Endpoint: POST {base_url}/openai/v1/chat/completions
- Text only: inline data and file parts are rejected
- max_completion_tokens instead of max_tokens
- Streaming usage arrives in the final chunk's x_groq.usage
  (same keys as OpenAI usage); terminal event is still data: [DONE]
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from llmforge.services.llm.errors import LLMErrorClass, NonRetryableError
from llmforge.services.llm.openai_adapter import OpenAIAdapter, _usage
from llmforge.services.llm.types import Usage

if TYPE_CHECKING:
    from llmforge.schemas.messages import UnifiedMessage


class GroqAdapter(OpenAIAdapter):
    """Groq chat completions adapter."""

    default_base_url = "https://api.groq.com"
    chat_path = "/openai/v1/chat/completions"

    def _frame_usage(self, data: dict) -> Usage | None:
        x_groq = data.get("x_groq") or {}
        return _usage(x_groq.get("usage")) or _usage(data.get("usage"))

    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        body = super()._build_request_body(messages, stream)
        body.pop("stream_options", None)
        body.pop("reasoning_effort", None)
        if "max_tokens" in body:
            body["max_completion_tokens"] = body.pop("max_tokens")
        return body

    def _to_content_part(self, part) -> dict:
        if hasattr(part, "text"):
            return {"type": "text", "text": part.text}
        raise NonRetryableError(
            LLMErrorClass.BAD_REQUEST,
            "groq accepts text parts only",
            provider=self.provider_id,
        )
