"""Persistence for transcoded uploads.

Images are written to the local upload directory (served under
``/uploads/``) and to Google Cloud Storage under

    chat-images/{unix_ms}-{random}.{ext}

so the chat model can reference them by ``gs://`` URI. Either backend may be
unavailable; :class:`ImageStore` decides from the pair of outcomes which
reference the client should display.
"""
from __future__ import annotations

import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from google.cloud.storage.retry import DEFAULT_RETRY

from travelchat.config import Settings
from travelchat.services.credentials import load_credentials

logger = logging.getLogger(__name__)

_GCS_ERRORS = (GoogleAPIError, GoogleAuthError, OSError, ValueError)


class StorageError(Exception):
    """Raised when a storage backend rejects a write, read or signing request."""


class StorageOutcome(str, Enum):
    REMOTE_SIGNED = "remote_signed"  # bucket copy + signed URL, local copy dropped
    REMOTE_UNSIGNED = "remote_unsigned"  # bucket copy, display the local file
    LOCAL_ONLY = "local_only"
    FAILED = "failed"


def resolve_storage_outcome(remote_ok: bool, url_ok: bool, local_ok: bool) -> StorageOutcome:
    if remote_ok and url_ok:
        return StorageOutcome.REMOTE_SIGNED
    if remote_ok:
        return StorageOutcome.REMOTE_UNSIGNED
    if local_ok:
        return StorageOutcome.LOCAL_ONLY
    return StorageOutcome.FAILED


@dataclass(frozen=True)
class StoredImage:
    outcome: StorageOutcome
    filename: str
    path: str
    gcs_url: str | None = None
    use_gcs_preview: bool = False


class LocalStorage:
    """Writes uploads below a directory that the web app serves statically."""

    PUBLIC_PREFIX = "/uploads/"

    def __init__(self, upload_dir: str | Path) -> None:
        self._upload_dir = Path(upload_dir)

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def write(self, filename: str, data: bytes) -> Path:
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        path = self._upload_dir / filename
        path.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return path

    def delete(self, filename: str) -> bool:
        try:
            (self._upload_dir / filename).unlink()
        except OSError as exc:
            logger.debug("Could not delete local upload %s: %s", filename, exc)
            return False
        return True

    def public_path(self, filename: str) -> str:
        return f"{self.PUBLIC_PREFIX}{filename}"


class GCSStorage:
    """Wrapper around Google Cloud Storage uploads, signed URLs and deletes."""

    CHAT_IMAGE_PREFIX = "chat-images"
    _GS_PATH = re.compile(r"^gs://([^/]+)/(.+)$")
    _SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

    def __init__(
        self,
        client: storage.Client,
        bucket_name: str,
        *,
        signed_url_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self._client = client
        self._bucket_name = bucket_name
        self._signed_url_ttl = signed_url_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "GCSStorage | None":
        """Build a client from the service account, or None if it is not configured."""

        credentials = load_credentials(settings)
        if credentials is None or not settings.gcs_bucket_name:
            logger.warning("Cloud Storage is not configured; uploads will be kept locally only.")
            return None
        client = storage.Client(project=settings.gapi_project_id, credentials=credentials)
        return cls(
            client,
            settings.gcs_bucket_name,
            signed_url_ttl=timedelta(seconds=settings.signed_url_ttl_seconds),
        )

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def upload_bytes(
        self,
        data: bytes,
        destination: str,
        *,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Upload ``data`` to ``destination`` and return its ``gs://`` path."""

        blob = self._client.bucket(self._bucket_name).blob(destination)
        if metadata:
            blob.metadata = metadata
        try:
            blob.upload_from_string(data, content_type=content_type, retry=DEFAULT_RETRY)
        except _GCS_ERRORS as exc:
            raise StorageError(f"Failed to upload {destination}") from exc
        gs_path = f"gs://{self._bucket_name}/{destination}"
        logger.debug("Uploaded %d bytes to %s", len(data), gs_path)
        return gs_path

    def upload_chat_image(self, data: bytes, original_filename: str, content_type: str) -> str:
        """Upload an image the chat model may reference later."""

        timestamp = int(time.time() * 1000)
        suffix = "".join(secrets.choice(self._SUFFIX_ALPHABET) for _ in range(6))
        extension = content_type.split("/", 1)[1] if "/" in content_type else "jpg"
        destination = f"{self.CHAT_IMAGE_PREFIX}/{timestamp}-{suffix}.{extension}"
        metadata = {
            "purpose": "vertex-ai-chat",
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "originalFilename": original_filename,
        }
        return self.upload_bytes(data, destination, content_type=content_type, metadata=metadata)

    def get_signed_url(self, gs_path: str, *, expires: timedelta | None = None) -> str:
        """Return a V4 signed GET URL, valid for one hour unless ``expires`` says otherwise."""

        bucket_name, object_name = self.parse_gs_path(gs_path)
        blob = self._client.bucket(bucket_name).blob(object_name)
        try:
            return blob.generate_signed_url(
                version="v4",
                expiration=expires or self._signed_url_ttl,
                method="GET",
            )
        except (*_GCS_ERRORS, AttributeError) as exc:
            raise StorageError(f"Failed to sign URL for {gs_path}") from exc

    def delete(self, gs_path: str) -> bool:
        try:
            bucket_name, object_name = self.parse_gs_path(gs_path)
            self._client.bucket(bucket_name).blob(object_name).delete()
        except (StorageError, *_GCS_ERRORS) as exc:
            logger.warning("Failed to delete %s: %s", gs_path, exc)
            return False
        logger.debug("Deleted %s", gs_path)
        return True

    @classmethod
    def parse_gs_path(cls, gs_path: str) -> tuple[str, str]:
        match = cls._GS_PATH.match(gs_path)
        if not match:
            raise StorageError(f"Invalid GCS path format: {gs_path}")
        return match.group(1), match.group(2)


class ImageStore:
    """Writes an encoded image to both backends and picks the display reference."""

    def __init__(self, local: LocalStorage, remote: GCSStorage | None = None) -> None:
        self._local = local
        self._remote = remote

    def save(self, data: bytes, filename: str, *, original_filename: str, content_type: str) -> StoredImage:
        """Persist ``data`` under ``filename``.

        Raises
        ------
        StorageError
            If neither the local write nor the bucket upload succeeded.
        """

        local_ok = False
        try:
            self._local.write(filename, data)
            local_ok = True
        except OSError as exc:
            logger.warning("Local write of %s failed: %s", filename, exc)

        gcs_url: str | None = None
        signed_url: str | None = None
        if self._remote is not None:
            try:
                gcs_url = self._remote.upload_chat_image(data, original_filename, content_type)
            except StorageError as exc:
                logger.warning("Cloud Storage upload of %s failed: %s", filename, exc)
            if gcs_url is not None:
                try:
                    signed_url = self._remote.get_signed_url(gcs_url)
                except StorageError as exc:
                    logger.warning("Signing %s failed: %s", gcs_url, exc)

        outcome = resolve_storage_outcome(gcs_url is not None, signed_url is not None, local_ok)
        logger.info("Stored %s: %s", filename, outcome.value)

        if outcome is StorageOutcome.FAILED:
            raise StorageError("Failed to save file for preview or cloud storage")
        if outcome is StorageOutcome.REMOTE_SIGNED:
            if local_ok:
                self._local.delete(filename)
            return StoredImage(outcome, filename, signed_url, gcs_url=gcs_url, use_gcs_preview=True)
        if outcome is StorageOutcome.REMOTE_UNSIGNED:
            path = self._local.public_path(filename) if local_ok else gcs_url
            return StoredImage(outcome, filename, path, gcs_url=gcs_url)
        return StoredImage(outcome, filename, self._local.public_path(filename))
