"""Filename helpers shared by the upload validator and the storage layer.

Client filenames are never used on disk: they are sanitised for validation
and logging only, and stored objects get a freshly generated name.
"""
from __future__ import annotations

import re
import secrets
import time

MAX_FILENAME_LENGTH = 255
MAX_PREFIX_LENGTH = 184

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_LEADING_DOTS = re.compile(r"^\.+")


def sanitize_filename(filename: str) -> str:
    """Strip unsafe characters and leading dots, truncate to 255 characters.

    An empty return value means the name cannot be used at all.
    """

    sanitized = _UNSAFE_CHARS.sub("", filename or "")
    sanitized = _LEADING_DOTS.sub("", sanitized)
    return sanitized[:MAX_FILENAME_LENGTH]


def file_extension(filename: str) -> str:
    """Return the lowercase extension without the dot, or ``""``.

    Mirrors ``os.path.splitext``: a name consisting only of an extension
    (``".jpg"``) has no extension.
    """

    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return ""
    return ext.lower()


def generate_secure_filename(prefix: str, extension: str) -> str:
    """Build ``<prefix><unix_ms>_<32 hex chars>.<extension>``.

    Parameters
    ----------
    prefix : str
        Caller-chosen prefix. Characters outside ``[A-Za-z0-9._-]`` are
        dropped (so it can never introduce a path separator) and it is
        truncated to 184 characters so the final name stays under 255.
    extension : str
        Extension of the encoded output, without the dot.
    """

    timestamp = int(time.time() * 1000)
    safe_prefix = _UNSAFE_CHARS.sub("", prefix or "")[:MAX_PREFIX_LENGTH]
    return f"{safe_prefix}{timestamp}_{secrets.token_hex(16)}.{extension}"
