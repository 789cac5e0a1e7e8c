"""
Tests for travelchat/services/upload_pipeline.py
"""
from __future__ import annotations

from unittest.mock import Mock, patch

import pytest

from conftest import make_image
from travelchat.models import UploadErrorKind, UploadOptions
from travelchat.services.storage import GCSStorage, ImageStore, LocalStorage, StorageError
from travelchat.services.transcoder import TranscodeError
from travelchat.services.upload_pipeline import PROCESSING_FAILED, STORAGE_FAILED, UploadPipeline
from travelchat.services.validator import UploadCandidate


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def pipeline(upload_dir) -> UploadPipeline:
    return UploadPipeline(ImageStore(LocalStorage(upload_dir)))


def candidate(data: bytes, filename: str = "photo.jpg", content_type: str = "image/jpeg") -> UploadCandidate:
    return UploadCandidate(filename=filename, content_type=content_type, data=data)


class TestUploadPipeline:

    def test_large_photo_stored_locally(self, pipeline, upload_dir):
        result = pipeline.run(candidate(make_image(6000, 4000, "JPEG")), UploadOptions())

        assert result.success
        assert result.format == "webp"
        assert result.type == "image/jpeg"
        assert max(result.dimensions.width, result.dimensions.height) == 500
        assert result.path == f"/uploads/{result.filename}"
        assert result.filename.startswith("upload_")
        assert result.use_gcs_preview is False
        assert (upload_dir / result.filename).stat().st_size == result.size

    def test_custom_prefix_and_format(self, pipeline):
        options = UploadOptions(prefix="avatar_", output_format="png", crop_square=True)
        result = pipeline.run(candidate(make_image(400, 300, "PNG"), "me.png", "image/png"), options)
        assert result.filename.startswith("avatar_")
        assert result.filename.endswith(".png")
        assert (result.dimensions.width, result.dimensions.height) == (300, 300)

    def test_type_is_declared_mime_not_output(self, pipeline):
        result = pipeline.run(candidate(make_image(400, 300, "PNG"), "me.png", "image/png"), UploadOptions())
        assert result.format == "webp"
        assert result.type == "image/png"

    def test_validation_failure_writes_nothing(self, pipeline, upload_dir):
        result = pipeline.run(candidate(make_image(50, 50, "PNG"), "tiny.png", "image/png"), UploadOptions())

        assert not result.success
        assert result.error == "Image too small. Minimum: 100x100px"
        assert result.error_kind is UploadErrorKind.INPUT_VALIDATION
        assert not upload_dir.exists()

    def test_transcode_failure(self, pipeline, jpeg_bytes):
        with patch("travelchat.services.upload_pipeline.transcode", side_effect=TranscodeError("boom")):
            result = pipeline.run(candidate(jpeg_bytes), UploadOptions())
        assert result.error == PROCESSING_FAILED
        assert result.error_kind is UploadErrorKind.PROCESSING

    def test_storage_failure(self, tmp_path, jpeg_bytes):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        pipeline = UploadPipeline(ImageStore(LocalStorage(blocker / "uploads")))

        result = pipeline.run(candidate(jpeg_bytes), UploadOptions())

        assert result.error == STORAGE_FAILED
        assert result.error_kind is UploadErrorKind.STORAGE

    def test_remote_unavailable_still_succeeds(self, upload_dir, jpeg_bytes):
        remote = Mock(spec=GCSStorage)
        remote.upload_chat_image.side_effect = StorageError("bucket down")
        pipeline = UploadPipeline(ImageStore(LocalStorage(upload_dir), remote))

        result = pipeline.run(candidate(jpeg_bytes), UploadOptions())

        assert result.success
        assert result.use_gcs_preview is False
        assert result.path.startswith("/uploads/")
        assert result.gcs_url is None

    def test_remote_signed_preview(self, upload_dir, jpeg_bytes):
        remote = Mock(spec=GCSStorage)
        remote.upload_chat_image.return_value = "gs://bucket/chat-images/1-abcdef.webp"
        remote.get_signed_url.return_value = "https://signed.example/1-abcdef.webp"
        pipeline = UploadPipeline(ImageStore(LocalStorage(upload_dir), remote))

        result = pipeline.run(candidate(jpeg_bytes), UploadOptions())

        assert result.use_gcs_preview is True
        assert result.path == "https://signed.example/1-abcdef.webp"
        assert result.gcs_url == "gs://bucket/chat-images/1-abcdef.webp"
        assert list(upload_dir.iterdir()) == []
