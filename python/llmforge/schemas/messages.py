"""Unified message schemas.

Wire shape:

    {"role": "user", "parts": [
        {"text": "Describe this image"},
        {"inline_data": {"mime_type": "image/png", "data": "<base64>"}},
        {"file_data": {"mime_type": "application/pdf", "file_uri": "gs://..."}}
    ]}

A part is exactly one of text / inline_data / file_data; extra keys are
rejected so a part cannot be two kinds at once. camelCase keys
(inlineData, mimeType, fileData, fileUri) are accepted on input.

validate_messages() is the gate in front of every run: it raises
ValidationError before any network activity.
"""

import base64
import binascii
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from llmforge.services.llm.errors import ValidationError

MESSAGE_ROLES = Literal["user", "model", "system"]

_PART_CONFIG = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class TextPart(BaseModel):
    text: str = Field(min_length=1)

    model_config = _PART_CONFIG


class InlineData(BaseModel):
    mime_type: str = Field(min_length=1, alias="mimeType")
    data: str = Field(min_length=1)

    model_config = _PART_CONFIG

    @field_validator("data")
    @classmethod
    def validate_base64(cls, value: str) -> str:
        try:
            base64.b64decode(value, validate=True)
        except binascii.Error:
            raise ValueError("data must be valid base64") from None
        return value


class InlineDataPart(BaseModel):
    """Bytes sent with the request, base64 encoded."""

    inline_data: InlineData = Field(alias="inlineData")

    model_config = _PART_CONFIG


class FileData(BaseModel):
    mime_type: str = Field(min_length=1, alias="mimeType")
    file_uri: str = Field(min_length=1, alias="fileUri")

    model_config = _PART_CONFIG


class FileDataPart(BaseModel):
    """Reference to content the provider fetches by URI."""

    file_data: FileData = Field(alias="fileData")

    model_config = _PART_CONFIG


ContentPart = TextPart | InlineDataPart | FileDataPart


class UnifiedMessage(BaseModel):
    """One message of a conversation, in provider-neutral form."""

    role: MESSAGE_ROLES = "user"
    parts: list[ContentPart] = Field(min_length=1)

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @property
    def text(self) -> str:
        """Text parts joined by newlines."""
        return "\n".join(part.text for part in self.parts if isinstance(part, TextPart))

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


def validate_messages(messages: Sequence[UnifiedMessage | dict]) -> list[UnifiedMessage]:
    """Validate a run's messages.

    Args:
        messages: UnifiedMessage instances or wire-shaped dicts.

    Returns:
        The messages as UnifiedMessage instances, order preserved.

    Raises:
        ValidationError: If the list is empty or any message is malformed.
    """
    if isinstance(messages, str | bytes | dict) or not isinstance(messages, Sequence):
        raise ValidationError("messages must be a list of messages")
    if not messages:
        raise ValidationError("messages must not be empty")

    validated: list[UnifiedMessage] = []
    for index, message in enumerate(messages):
        if isinstance(message, UnifiedMessage):
            validated.append(message)
            continue
        try:
            validated.append(UnifiedMessage.model_validate(message))
        except PydanticValidationError as e:
            raise ValidationError(f"messages[{index}]: {_first_error(e)}") from e
    return validated


def _first_error(error: PydanticValidationError) -> str:
    item = error.errors()[0]
    location = ".".join(str(piece) for piece in item["loc"])
    if location:
        return f"{location}: {item['msg']}"
    return item["msg"]
