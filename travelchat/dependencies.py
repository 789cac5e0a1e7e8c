"""FastAPI dependency factories.

Each collaborator is built once from :func:`get_settings` and handed to the
handlers through ``Depends`` so tests can swap them via
``app.dependency_overrides``.
"""
from __future__ import annotations

import logging
from functools import lru_cache

from travelchat.config import get_settings
from travelchat.services.audit_log import SecurityLogger
from travelchat.services.chat_gateway import ChatGateway
from travelchat.services.llm import create_provider
from travelchat.services.storage import GCSStorage, ImageStore, LocalStorage
from travelchat.services.upload_pipeline import UploadPipeline

logger = logging.getLogger(__name__)


@lru_cache()
def get_security_logger() -> SecurityLogger:
    return SecurityLogger()


@lru_cache()
def get_image_store() -> ImageStore:
    settings = get_settings()
    return ImageStore(LocalStorage(settings.upload_path), GCSStorage.from_settings(settings))


@lru_cache()
def get_upload_pipeline() -> UploadPipeline:
    return UploadPipeline(get_image_store())


@lru_cache()
def get_chat_gateway() -> ChatGateway | None:
    """Return the chat gateway, or None if credentials or the system prompt are missing."""

    settings = get_settings()
    if not settings.sri_system_instruction:
        logger.warning("SRI_SYSTEM_INSTRUCTION is not set; chat is disabled.")
        return None
    provider = create_provider(settings)
    if provider is None:
        return None
    return ChatGateway(
        provider,
        settings.sri_system_instruction,
        timeout=settings.chat_timeout_seconds,
        max_attempts=settings.chat_max_attempts,
        backoff_seconds=settings.chat_backoff_seconds,
    )
