"""Upload orchestration: validate, transcode, store.

Received -> Validated -> Transcoded -> Stored -> Succeeded | Failed

The first failing stage decides the result; nothing is written anywhere
until every validation gate has passed.
"""
from __future__ import annotations

import logging

from travelchat.models import ImageDimensions, UploadErrorKind, UploadOptions, UploadResult
from travelchat.services.storage import ImageStore, StorageError
from travelchat.services.transcoder import TranscodeError, transcode
from travelchat.services.validator import UploadCandidate, validate_upload
from travelchat.utils.filenames import generate_secure_filename

logger = logging.getLogger(__name__)

PROCESSING_FAILED = "Failed to process image"
STORAGE_FAILED = "Failed to save file for preview or cloud storage"


class UploadPipeline:
    """Runs one upload through every stage. Holds no per-request state."""

    def __init__(self, image_store: ImageStore) -> None:
        self._image_store = image_store

    def run(self, candidate: UploadCandidate, options: UploadOptions) -> UploadResult:
        validation = validate_upload(candidate, options)
        if not validation.valid:
            return UploadResult.failure(validation.error or "Invalid upload", UploadErrorKind.INPUT_VALIDATION)

        try:
            image = transcode(candidate.data, candidate.extension, options)
        except TranscodeError as exc:
            logger.error("Transcoding %s failed: %s", candidate.sanitized_filename, exc)
            return UploadResult.failure(PROCESSING_FAILED, UploadErrorKind.PROCESSING)

        filename = generate_secure_filename(options.prefix, image.format)
        try:
            stored = self._image_store.save(
                image.data,
                filename,
                original_filename=candidate.sanitized_filename,
                content_type=image.mime_type,
            )
        except StorageError as exc:
            logger.error("Storing %s failed: %s", filename, exc)
            return UploadResult.failure(STORAGE_FAILED, UploadErrorKind.STORAGE)

        logger.info(
            "Upload %s stored as %s (%dx%d %s, %d bytes, %s)",
            candidate.sanitized_filename,
            filename,
            image.width,
            image.height,
            image.format,
            len(image.data),
            stored.outcome.value,
        )
        return UploadResult(
            success=True,
            filename=filename,
            path=stored.path,
            size=len(image.data),
            dimensions=ImageDimensions(width=image.width, height=image.height),
            type=validation.mime_type or image.mime_type,
            format=image.format,
            reprocessed=image.reprocessed,
            gcs_url=stored.gcs_url,
            use_gcs_preview=stored.use_gcs_preview,
        )
