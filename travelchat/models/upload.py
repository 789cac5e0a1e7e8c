from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_ALLOWED_TYPES = ("jpg", "jpeg", "png", "webp")


class UploadOptions(BaseModel):
    """Per-request upload configuration. Defaults match the public upload widget."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    allowed_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_TYPES))
    max_size: int = Field(25 * 1024 * 1024, ge=1)
    min_width: int = Field(100, ge=0)
    min_height: int = Field(100, ge=0)
    max_width: int = Field(7680, ge=1)
    max_height: int = Field(4320, ge=1)
    exact_width: int | None = Field(default=None, ge=1)
    exact_height: int | None = Field(default=None, ge=1)
    output_size: int = Field(500, ge=0, description="Longest side in pixels, 0 disables resizing.")
    crop_square: bool = False
    quality: int = Field(85, ge=1, le=100)
    check_malicious: bool = True
    prefix: str = "upload_"
    output_format: str = "webp"  # webp | jpg | jpeg | png | original
    force_reprocess: bool = True

    @field_validator("allowed_types")
    @classmethod
    def _lowercase_types(cls, value: list[str]) -> list[str]:
        return [item.lower().lstrip(".") for item in value]

    @field_validator("output_format")
    @classmethod
    def _lowercase_format(cls, value: str) -> str:
        return value.lower()

    @model_validator(mode="after")
    def _check_bounds(self) -> "UploadOptions":
        if self.min_width > self.max_width or self.min_height > self.max_height:
            raise ValueError("minimum dimensions must not exceed maximum dimensions")
        return self

    def with_overrides(self, overrides: Mapping[str, Any]) -> "UploadOptions":
        """Return a copy with the caller's partial options applied.

        Keys may be camelCase (as sent by the browser) or snake_case. Unknown
        keys are ignored.
        """

        data = self.model_dump(by_alias=True)
        for key, value in overrides.items():
            data[to_camel(key) if "_" in key else key] = value
        return UploadOptions.model_validate(data)


class ValidationResult(BaseModel):
    """Outcome of a single validation gate."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    error: str | None = None
    mime_type: str | None = None

    @classmethod
    def ok(cls, mime_type: str | None = None) -> "ValidationResult":
        return cls(valid=True, mime_type=mime_type)

    @classmethod
    def fail(cls, reason: str) -> "ValidationResult":
        return cls(valid=False, error=reason)


class UploadErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    PROCESSING = "processing"
    STORAGE = "storage"


class ImageDimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(..., ge=1)
    height: int = Field(..., ge=1)


class UploadResult(BaseModel):
    """Terminal output of one upload request, serialised as the endpoint body."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    success: bool
    error: str | None = None
    filename: str | None = None
    path: str | None = None
    size: int | None = None
    dimensions: ImageDimensions | None = None
    type: str | None = None
    format: str | None = None
    reprocessed: bool | None = None
    gcs_url: str | None = None
    use_gcs_preview: bool | None = None
    error_kind: UploadErrorKind | None = Field(default=None, exclude=True)

    @classmethod
    def failure(cls, reason: str, kind: UploadErrorKind) -> "UploadResult":
        return cls(success=False, error=reason, error_kind=kind)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
