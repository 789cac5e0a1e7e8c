"""Upload validation gates.

Every check is a plain function ``(candidate, options) -> ValidationResult``
and never raises. :func:`validate_upload` runs them in the fixed order of
``CHECKS`` and stops at the first failure, so nothing reaches the image
decoder before the cheap byte-level checks have passed.
"""
from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass
from functools import cached_property
from typing import Callable

from PIL import Image

from travelchat.models import UploadOptions, ValidationResult
from travelchat.utils.filenames import file_extension, sanitize_filename

logger = logging.getLogger(__name__)

MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

DANGEROUS_EXTENSIONS = frozenset(
    {
        "php", "php3", "php4", "php5", "pht", "phtml", "shtml", "asp", "aspx",
        "jsp", "jspx", "cfm", "cfc", "pl", "bat", "exe", "com", "scr", "msi",
        "htaccess", "htpasswd", "ini", "cfg", "conf", "config", "sql", "sh",
        "bash", "cmd", "vbs", "ps1",
    }
)

SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "jpg": (b"\xff\xd8\xff",),
    "jpeg": (b"\xff\xd8\xff",),
    "png": (b"\x89PNG\r\n\x1a\n",),
    "webp": (b"RIFF",),
}

SIGNATURE_WINDOW = 32
SCAN_WINDOW = 8192

MALICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"<\?php",
        r"<\?=",
        r"<script",
        r"<html",
        r"<body",
        r"<iframe",
        r"javascript:",
        r"vbscript:",
        r"data:",
        r"eval\s*\(",
        r"base64_decode\s*\(",
        r"shell_exec\s*\(",
        r"system\s*\(",
        r"exec\s*\(",
        r"passthru\s*\(",
        r"proc_open\s*\(",
        r"popen\s*\(",
        r"curl_exec\s*\(",
        r"file_get_contents\s*\(",
    )
)


@dataclass(frozen=True)
class UploadCandidate:
    """Raw request input shared read-only by all checks."""

    filename: str
    content_type: str
    data: bytes

    @cached_property
    def sanitized_filename(self) -> str:
        return sanitize_filename(self.filename)

    @cached_property
    def extension(self) -> str:
        return file_extension(self.sanitized_filename)


# ---------------------------------------------------------------------------
# Individual gates
# ---------------------------------------------------------------------------


def check_filename(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    if not candidate.sanitized_filename:
        return ValidationResult.fail("Invalid filename")
    return ValidationResult.ok()


def check_extension(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    extension = candidate.extension
    if extension in DANGEROUS_EXTENSIONS:
        return ValidationResult.fail("Dangerous file extension detected")
    if extension not in options.allowed_types:
        return ValidationResult.fail(f"Invalid file type. Allowed: {', '.join(options.allowed_types)}")
    return ValidationResult.ok()


def check_size(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    size = len(candidate.data)
    if size == 0:
        return ValidationResult.fail("Empty file uploaded")
    if size > options.max_size:
        # Half-up to one decimal, e.g. 0.25 MB is reported as 0.3.
        max_mb = math.floor(options.max_size / 1024 / 1024 * 10 + 0.5) / 10
        return ValidationResult.fail(f"File too large. Max: {max_mb:g}MB")
    return ValidationResult.ok()


def check_signature(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    expected = SIGNATURES.get(candidate.extension)
    if not expected:
        return ValidationResult.fail("Unsupported file type")
    header = candidate.data[:SIGNATURE_WINDOW]
    if not header.startswith(expected):
        return ValidationResult.fail("File signature invalid")
    return ValidationResult.ok()


def check_mime_type(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    allowed = {MIME_TYPES[t] for t in options.allowed_types if t in MIME_TYPES}
    if candidate.content_type not in allowed:
        return ValidationResult.fail(f"Invalid image type: {candidate.content_type}")
    return ValidationResult.ok(mime_type=candidate.content_type)


def check_malicious_content(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    if not options.check_malicious:
        return ValidationResult.ok()
    text = candidate.data[:SCAN_WINDOW].decode("utf-8", errors="replace")
    for pattern in MALICIOUS_PATTERNS:
        if pattern.search(text):
            logger.warning("Upload %s matched malicious pattern %s", candidate.sanitized_filename, pattern.pattern)
            return ValidationResult.fail("Malicious content detected")
    return ValidationResult.ok()


def read_dimensions(data: bytes) -> tuple[int, int] | None:
    """Return ``(width, height)`` from the image header, or None if undecodable."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError):
        return None
    if not width or not height:
        return None
    return width, height


def validate_dimensions(width: int, height: int, options: UploadOptions) -> ValidationResult:
    if width < options.min_width or height < options.min_height:
        return ValidationResult.fail(f"Image too small. Minimum: {options.min_width}x{options.min_height}px")
    if width > options.max_width or height > options.max_height:
        return ValidationResult.fail(f"Image too large. Maximum: {options.max_width}x{options.max_height}px")
    if options.exact_width is not None and width != options.exact_width:
        return ValidationResult.fail(f"Image width must be exactly {options.exact_width}px")
    if options.exact_height is not None and height != options.exact_height:
        return ValidationResult.fail(f"Image height must be exactly {options.exact_height}px")
    return ValidationResult.ok()


def check_image(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    dimensions = read_dimensions(candidate.data)
    if dimensions is None:
        return ValidationResult.fail("Not a valid image file")
    return validate_dimensions(*dimensions, options)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

Check = Callable[[UploadCandidate, UploadOptions], ValidationResult]

CHECKS: tuple[Check, ...] = (
    check_filename,
    check_extension,
    check_size,
    check_signature,
    check_mime_type,
    check_malicious_content,
    check_image,
)


def validate_upload(candidate: UploadCandidate, options: UploadOptions) -> ValidationResult:
    """Run every gate in order; return the first failure or a success with the MIME type."""

    mime_type: str | None = None
    for check in CHECKS:
        result = check(candidate, options)
        if not result.valid:
            logger.info("Upload %r rejected by %s: %s", candidate.sanitized_filename, check.__name__, result.error)
            return result
        mime_type = result.mime_type or mime_type
    return ValidationResult.ok(mime_type=mime_type)
