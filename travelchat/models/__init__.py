from .chat import ChatAttachment, ChatRequest, ChatResponse, ChatTurn
from .upload import (
    ImageDimensions,
    UploadErrorKind,
    UploadOptions,
    UploadResult,
    ValidationResult,
)

__all__ = [
    "ChatAttachment",
    "ChatRequest",
    "ChatResponse",
    "ChatTurn",
    "ImageDimensions",
    "UploadErrorKind",
    "UploadOptions",
    "UploadResult",
    "ValidationResult",
]
