"""Gemini LLM adapter implementation (provider id "google").

- Non-streaming: POST {base_url}/v1beta/models/{model}:generateContent
- Streaming: POST {base_url}/v1beta/models/{model}:streamGenerateContent

Auth:
- Header: x-goog-api-key: <key>
- NEVER put key in query param

Message conversion:
- System messages → systemInstruction.parts (text parts, in order)
- "user" / "model" roles are Gemini's own
- text → {"text"}, inline_data → {"inlineData": {"mimeType", "data"}},
  file_data → {"fileData": {"mimeType", "fileUri"}}

Request body:
{
  "contents": [
    {"role": "user", "parts": [{"text": "..."}]},
    {"role": "model", "parts": [{"text": "..."}]}
  ],
  "systemInstruction": {"parts": [{"text": "<system_prompt>"}]},
  "generationConfig": {
    "maxOutputTokens": 1024,
    "temperature": 0.7
  }
}

Response (non-stream):
{
  "candidates": [{
    "content": {"parts": [{"text": "<output_text>"}]},
    "finishReason": "STOP"
  }],
  "usageMetadata": {
    "promptTokenCount": 100,
    "candidatesTokenCount": 50,
    "totalTokenCount": 150
  },
  "modelVersion": "gemini-2.0-flash",
  "responseId": "..."
}

- text = concatenate candidates[0].content.parts[].text (thought parts excluded)

Streaming (no alt=sse): the body is one JSON array whose elements are
response objects like the above, arriving incrementally. Elements are
recovered by brace counting. A candidate carrying finishReason is the
terminal frame; usageMetadata rides on it.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING

from llmforge.services.llm.adapter import LLMAdapter, created_at_from
from llmforge.services.llm.errors import ProviderStreamError, extract_error_message
from llmforge.services.llm.stream_decoder import (
    ConcatenatedJSONDecoder,
    FrameUpdate,
    StreamDecoder,
)
from llmforge.services.llm.types import STATUS_SUCCESS, UnifiedResponse, Usage

if TYPE_CHECKING:
    from llmforge.schemas.messages import UnifiedMessage


class GeminiAdapter(LLMAdapter):
    """Google Gemini API adapter.

    Handles conversion between UnifiedMessage objects and Gemini content
    format, including system instruction extraction.
    """

    default_base_url = "https://generativelanguage.googleapis.com"

    def stream_decoder(self) -> StreamDecoder:
        return ConcatenatedJSONDecoder(
            self.interpret_frame, provider=self.provider_id, model=self.model
        )

    def interpret_frame(self, data: dict) -> FrameUpdate | None:
        if "error" in data:
            raise ProviderStreamError(
                extract_error_message(data) or "stream error", provider=self.provider_id
            )

        token = ""
        done = False
        candidates = data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            token = _candidate_text(candidate)
            done = bool(candidate.get("finishReason"))

        return FrameUpdate(
            token=token,
            usage=_usage(data.get("usageMetadata")),
            model=data.get("modelVersion"),
            response_id=data.get("responseId"),
            done=done,
        )

    def _path(self, stream: bool) -> str:
        method = "streamGenerateContent" if stream else "generateContent"
        return f"/v1beta/models/{self.model}:{method}"

    def _build_headers(self) -> dict[str, str]:
        """Build request headers.

        Note: API key goes in header, NEVER in query param.
        """
        return {
            "x-goog-api-key": self._config.api_key or "",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, messages: Sequence["UnifiedMessage"], stream: bool) -> dict:
        """Build request body.

        Extracts system messages to systemInstruction.
        """
        system_parts: list[dict] = []
        contents = []

        for message in messages:
            if message.role == "system":
                system_parts.extend(self._to_part(part) for part in message.parts)
            else:
                contents.append(
                    {
                        "role": message.role,
                        "parts": [self._to_part(part) for part in message.parts],
                    }
                )

        body: dict = {"contents": contents}
        if system_parts:
            body["systemInstruction"] = {"parts": system_parts}

        generation_config = self._generation_config()
        if generation_config:
            body["generationConfig"] = generation_config

        return body

    def _generation_config(self) -> dict:
        params = self._config.generation_params
        config: dict = {}
        if params.temperature is not None:
            config["temperature"] = params.temperature
        if params.top_p is not None:
            config["topP"] = params.top_p
        if params.top_k is not None:
            config["topK"] = params.top_k
        if params.max_output_tokens is not None:
            config["maxOutputTokens"] = params.max_output_tokens
        if params.stop_sequences:
            config["stopSequences"] = list(params.stop_sequences)
        if params.response_mime_type:
            config["responseMimeType"] = params.response_mime_type
        if params.thinking_config:
            config["thinkingConfig"] = params.thinking_config.model_dump(
                by_alias=True, exclude_none=True
            )
        return config

    def _to_part(self, part) -> dict:
        if hasattr(part, "text"):
            return {"text": part.text}
        if hasattr(part, "inline_data"):
            return {
                "inlineData": {
                    "mimeType": part.inline_data.mime_type,
                    "data": part.inline_data.data,
                }
            }
        return {
            "fileData": {
                "mimeType": part.file_data.mime_type,
                "fileUri": part.file_data.file_uri,
            }
        }

    def _parse_response(self, data: dict) -> UnifiedResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            raise self._invalid_response("Gemini response missing candidates")

        return UnifiedResponse(
            output=_candidate_text(candidates[0]),
            status=STATUS_SUCCESS,
            created_at=created_at_from(None),
            model=data.get("modelVersion") or self.model,
            usage=_usage(data.get("usageMetadata")) or Usage(),
            response_id=data.get("responseId"),
        )


def _candidate_text(candidate: dict) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts if not part.get("thought"))


def _usage(usage_metadata: dict | None) -> Usage | None:
    if not usage_metadata:
        return None
    return Usage(
        input_tokens=usage_metadata.get("promptTokenCount"),
        output_tokens=usage_metadata.get("candidatesTokenCount"),
        total_tokens=usage_metadata.get("totalTokenCount"),
    )
