from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ChatTurn(BaseModel):
    """A previous question/response pair replayed to the model."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    question: str | None = None
    response: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.question) and bool(self.response)


class ChatAttachment(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    gcs_url: str | None = None
    type: str | None = None  # MIME type of the stored object
    filename: str | None = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    question: str = Field(..., min_length=1)
    chat_history: list[ChatTurn] = Field(default_factory=list)
    attachments: list[ChatAttachment] = Field(default_factory=list)

    @field_validator("chat_history", "attachments", mode="before")
    @classmethod
    def _drop_non_objects(cls, value: Any) -> list[Any]:
        # The browser sends loosely shaped arrays; anything that is not an
        # object is skipped rather than failing the whole request.
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]


class ChatResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    response: str | None = None
    question: str | None = None
    error: str | None = None
    needs_retry: bool | None = None

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
