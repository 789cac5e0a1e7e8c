"""
Tests for travelchat/services/validator.py
Validation gates run in order and stop at the first failure.
"""
from __future__ import annotations

import pytest

from conftest import make_image
from travelchat.models import UploadOptions
from travelchat.services.validator import (
    DANGEROUS_EXTENSIONS,
    UploadCandidate,
    read_dimensions,
    validate_upload,
)


def candidate(filename: str, data: bytes, content_type: str = "image/png") -> UploadCandidate:
    return UploadCandidate(filename=filename, content_type=content_type, data=data)


class TestAcceptance:

    def test_valid_png(self, png_bytes):
        result = validate_upload(candidate("photo.png", png_bytes), UploadOptions())
        assert result.valid
        assert result.error is None
        assert result.mime_type == "image/png"

    def test_valid_jpeg_with_jpg_extension(self, jpeg_bytes):
        result = validate_upload(candidate("photo.JPG", jpeg_bytes, "image/jpeg"), UploadOptions())
        assert result.valid
        assert result.mime_type == "image/jpeg"

    def test_valid_webp(self):
        data = make_image(200, 200, "WEBP")
        assert validate_upload(candidate("photo.webp", data, "image/webp"), UploadOptions()).valid

    def test_validation_is_idempotent(self, png_bytes):
        item = candidate("photo.png", png_bytes)
        options = UploadOptions()
        assert validate_upload(item, options) == validate_upload(item, options)


class TestRejections:

    def test_empty_filename(self, png_bytes):
        result = validate_upload(candidate("///", png_bytes), UploadOptions())
        assert result.error == "Invalid filename"

    @pytest.mark.parametrize("extension", ["php", "exe", "htaccess", "ps1", "phtml"])
    def test_dangerous_extension(self, extension, png_bytes):
        assert extension in DANGEROUS_EXTENSIONS
        result = validate_upload(candidate(f"image.{extension}", png_bytes), UploadOptions())
        assert not result.valid
        assert result.error == "Dangerous file extension detected"

    def test_extension_not_allowed(self, png_bytes):
        result = validate_upload(candidate("anim.gif", png_bytes, "image/gif"), UploadOptions())
        assert result.error == "Invalid file type. Allowed: jpg, jpeg, png, webp"

    def test_empty_file(self):
        result = validate_upload(candidate("photo.png", b""), UploadOptions())
        assert result.error == "Empty file uploaded"

    def test_file_too_large(self):
        options = UploadOptions(max_size=1_572_864)
        result = validate_upload(candidate("photo.png", b"x" * (options.max_size + 1)), options)
        assert result.error == "File too large. Max: 1.5MB"

    def test_file_too_large_rounds_half_up(self):
        options = UploadOptions(max_size=262_144)
        result = validate_upload(candidate("photo.png", b"x" * (options.max_size + 1)), options)
        assert result.error == "File too large. Max: 0.3MB"

    def test_signature_mismatch(self, jpeg_bytes):
        result = validate_upload(candidate("photo.png", jpeg_bytes), UploadOptions())
        assert result.error == "File signature invalid"

    def test_declared_mime_mismatch(self, png_bytes):
        result = validate_upload(candidate("photo.png", png_bytes, "text/html"), UploadOptions())
        assert result.error == "Invalid image type: text/html"

    def test_embedded_php_payload(self, png_bytes):
        data = png_bytes + b"<?php system($_GET['c']); ?>"
        result = validate_upload(candidate("photo.png", data), UploadOptions())
        assert result.error == "Malicious content detected"

    def test_malicious_scan_can_be_disabled(self, png_bytes):
        data = png_bytes + b"<script>alert(1)</script>"
        result = validate_upload(candidate("photo.png", data), UploadOptions(check_malicious=False))
        assert result.valid

    def test_undecodable_image(self):
        data = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
        result = validate_upload(candidate("photo.png", data), UploadOptions())
        assert result.error == "Not a valid image file"

    def test_image_too_small(self):
        data = make_image(50, 50, "PNG")
        result = validate_upload(candidate("tiny.png", data), UploadOptions())
        assert not result.valid
        assert result.error == "Image too small. Minimum: 100x100px"

    def test_image_too_large(self):
        data = make_image(300, 300, "PNG")
        options = UploadOptions(max_width=200, max_height=200)
        result = validate_upload(candidate("big.png", data), options)
        assert result.error == "Image too large. Maximum: 200x200px"

    def test_exact_dimensions(self):
        data = make_image(300, 200, "PNG")
        assert validate_upload(candidate("a.png", data), UploadOptions(exact_width=300, exact_height=200)).valid
        result = validate_upload(candidate("a.png", data), UploadOptions(exact_width=320))
        assert result.error == "Image width must be exactly 320px"
        result = validate_upload(candidate("a.png", data), UploadOptions(exact_height=240))
        assert result.error == "Image height must be exactly 240px"

    def test_first_failure_wins(self):
        # Dangerous extension is reported even though the body is empty too.
        result = validate_upload(candidate("run.exe", b""), UploadOptions())
        assert result.error == "Dangerous file extension detected"


class TestReadDimensions:

    def test_reads_header(self):
        assert read_dimensions(make_image(123, 45, "PNG")) == (123, 45)

    def test_garbage(self):
        assert read_dimensions(b"not an image") is None
