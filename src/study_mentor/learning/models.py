from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MBTI_TYPES = (
    "INTJ", "INTP", "ENTJ", "ENTP",
    "INFJ", "INFP", "ENFJ", "ENFP",
    "ISTJ", "ISFJ", "ESTJ", "ESFJ",
    "ISTP", "ISFP", "ESTP", "ESFP",
)


def normalize_mbti(value: str) -> str:
    """Upper-case and validate an MBTI code against the 16 known types."""
    code = (value or "").strip().upper()
    if code not in MBTI_TYPES:
        raise ValueError(f"Unknown MBTI type: {value!r}")
    return code


class ModeKey(str, Enum):
    """Identifier of a study mode, also stored as the `type` field of history records."""

    MENTOR = "mentor"
    QA = "qa"
    SUMMARY = "summary"
    QUIZ = "quiz"
    IMAGE = "image"


@dataclass(frozen=True)
class ImageAttachment:
    """One picture read fully into memory and base64-encoded for inline upload."""

    name: str
    mime_type: str
    data_base64: str

    @classmethod
    def from_bytes(cls, name: str, raw: bytes, mime_type: Optional[str] = None) -> "ImageAttachment":
        guessed = mime_type or mimetypes.guess_type(name)[0] or "application/octet-stream"
        return cls(name=name, mime_type=guessed, data_base64=base64.b64encode(raw).decode("ascii"))

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data_base64)

    def as_inline_data(self) -> Dict[str, str]:
        return {"mimeType": self.mime_type, "data": self.data_base64}


@dataclass(frozen=True)
class PendingRequest:
    """Validated composer input between submit and the gateway reply. Never persisted."""

    mode: ModeKey
    prompt_text: str
    image: Optional[ImageAttachment] = None


class Profile(BaseModel):
    """Learning-style profile stored on the user document."""

    mbti: str

    @field_validator("mbti")
    @classmethod
    def known_type(cls, value: str) -> str:
        return normalize_mbti(value)


class Exchange(BaseModel):
    """
    One persisted prompt/response record from the study history collection.

    Field aliases match the stored document keys (`type`, `prompt`, `response`, `mbti`,
    `timestamp`) so records written by earlier clients load unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    mode: ModeKey = Field(..., alias="type")
    prompt_text: str = Field("", alias="prompt")
    response_text: str = Field("", alias="response")
    mbti: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="timestamp")

    @field_validator("prompt_text", "response_text", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Exchange":
        return cls.model_validate({**data, "id": doc_id})
