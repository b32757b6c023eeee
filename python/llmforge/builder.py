"""Fluent construction of unified message lists.

    messages = (
        ContentBuilder()
        .add_text("You are terse.", role="system")
        .add_conversation_turn("Hi", "Hello.")
        .add_inline_file("chart.png", text="What does this show?")
        .build()
    )
"""

import base64
import mimetypes
from pathlib import Path

from llmforge.schemas.messages import (
    MESSAGE_ROLES,
    FileData,
    FileDataPart,
    InlineData,
    InlineDataPart,
    TextPart,
    UnifiedMessage,
)

DEFAULT_MIME_TYPE = "application/octet-stream"


class ContentBuilder:
    """Accumulates UnifiedMessage objects in order.

    Each add_* call appends one message and returns the builder. Parts are
    validated as they are added (pydantic ValidationError on bad input).
    """

    def __init__(self) -> None:
        self._messages: list[UnifiedMessage] = []

    def __len__(self) -> int:
        return len(self._messages)

    def add_text(self, text: str, role: MESSAGE_ROLES = "user") -> "ContentBuilder":
        return self._append(role, [TextPart(text=text)])

    def add_inline_data(
        self,
        data: str,
        mime_type: str,
        text: str | None = None,
        role: MESSAGE_ROLES = "user",
    ) -> "ContentBuilder":
        """Add already base64-encoded data (image, document, audio)."""
        parts: list = [InlineDataPart(inline_data=InlineData(mime_type=mime_type, data=data))]
        if text:
            parts.append(TextPart(text=text))
        return self._append(role, parts)

    def add_inline_bytes(
        self,
        data: bytes,
        mime_type: str,
        text: str | None = None,
        role: MESSAGE_ROLES = "user",
    ) -> "ContentBuilder":
        """Add raw bytes; they are base64-encoded here."""
        encoded = base64.b64encode(data).decode("ascii")
        return self.add_inline_data(encoded, mime_type, text=text, role=role)

    def add_inline_file(
        self,
        path: str | Path,
        text: str | None = None,
        role: MESSAGE_ROLES = "user",
        mime_type: str | None = None,
    ) -> "ContentBuilder":
        """Read a local file and add it inline, guessing its mime type."""
        path = Path(path)
        return self.add_inline_bytes(
            path.read_bytes(),
            mime_type or guess_mime_type(path.name),
            text=text,
            role=role,
        )

    def add_file(
        self,
        file_uri: str,
        mime_type: str,
        text: str | None = None,
        role: MESSAGE_ROLES = "user",
    ) -> "ContentBuilder":
        """Add a reference to content the provider fetches by URI."""
        parts: list = [FileDataPart(file_data=FileData(mime_type=mime_type, file_uri=file_uri))]
        if text:
            parts.append(TextPart(text=text))
        return self._append(role, parts)

    def add_conversation_turn(self, user_text: str, model_text: str) -> "ContentBuilder":
        self.add_text(user_text, role="user")
        return self.add_text(model_text, role="model")

    def build(self) -> list[UnifiedMessage]:
        """Return a copy of the accumulated messages."""
        return list(self._messages)

    def clear(self) -> "ContentBuilder":
        self._messages = []
        return self

    def last(self) -> UnifiedMessage | None:
        return self._messages[-1] if self._messages else None

    def remove_last(self) -> "ContentBuilder":
        if self._messages:
            self._messages.pop()
        return self

    def _append(self, role: MESSAGE_ROLES, parts: list) -> "ContentBuilder":
        self._messages.append(UnifiedMessage(role=role, parts=parts))
        return self

    @staticmethod
    def text_only(text: str, role: MESSAGE_ROLES = "user") -> list[UnifiedMessage]:
        """Single-message conversation."""
        return [UnifiedMessage(role=role, parts=[TextPart(text=text)])]

    @staticmethod
    def from_pairs(pairs: list[tuple[MESSAGE_ROLES, str]]) -> list[UnifiedMessage]:
        """Text messages from (role, text) pairs."""
        return [UnifiedMessage(role=role, parts=[TextPart(text=text)]) for role, text in pairs]


def guess_mime_type(filename: str) -> str:
    """Mime type from a file name's extension, octet-stream when unknown."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or DEFAULT_MIME_TYPE
