"""Structured security/audit events.

One JSON document per event on the ``travelchat.audit`` logger. Detail
dictionaries are scrubbed of anything whose key looks like a credential
before they are serialised.
"""
from __future__ import annotations

import json
import logging
import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from starlette.requests import Request

AUDIT_LOGGER_NAME = "travelchat.audit"

SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "key",
    "auth",
    "authorization",
    "cookie",
    "session",
    "private",
    "credential",
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SECURITY = "SECURITY"


_STDLIB_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SECURITY: logging.WARNING,
}


def generate_request_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def sanitize_for_logging(data: Any) -> Any:
    """Replace values under sensitive-looking keys with ``[REDACTED]``, recursively."""

    if isinstance(data, dict):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = sanitize_for_logging(value)
        return sanitized
    if isinstance(data, (list, tuple)):
        return [sanitize_for_logging(item) for item in data]
    return data


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("x-real-ip", "cf-connecting-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class SecurityLogger:
    """Writes audit events for requests handled by the upload and chat endpoints."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def _request_id(self, request: Request) -> str:
        request_id = getattr(request.state, "request_id", None)
        if request_id is None:
            request_id = generate_request_id()
            request.state.request_id = request_id
        return request_id

    def build_entry(
        self,
        level: LogLevel,
        action: str,
        request: Request,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "action": action,
            "ip": client_ip(request),
            "userAgent": request.headers.get("user-agent"),
            "referer": request.headers.get("referer"),
            "method": request.method,
            "url": str(request.url),
            "requestId": self._request_id(request),
        }
        if details:
            entry["details"] = sanitize_for_logging(details)
        return {key: value for key, value in entry.items() if value is not None}

    def write(
        self,
        level: LogLevel,
        action: str,
        request: Request,
        details: dict[str, Any] | None = None,
    ) -> None:
        stdlib_level = _STDLIB_LEVELS[level]
        if not self._logger.isEnabledFor(stdlib_level):
            return
        entry = self.build_entry(level, action, request, details)
        self._logger.log(stdlib_level, json.dumps(entry, default=str))

    # ------------------------------------------------------------------
    # Generic events
    # ------------------------------------------------------------------

    def log_request(self, request: Request, action: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogLevel.INFO, f"REQUEST_{action.upper()}", request, details)

    def log_success(self, request: Request, action: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogLevel.INFO, f"SUCCESS_{action.upper()}", request, details)

    def log_error(
        self,
        request: Request,
        action: str,
        error: BaseException | str,
        details: dict[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"errorMessage": str(error)}
        if isinstance(error, BaseException):
            payload["errorType"] = type(error).__name__
        payload.update(details or {})
        self.write(LogLevel.ERROR, f"ERROR_{action.upper()}", request, payload)

    def log_security(self, request: Request, action: str, details: dict[str, Any] | None = None) -> None:
        self.write(LogLevel.SECURITY, f"SECURITY_{action.upper()}", request, details)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def log_upload_attempt(self, request: Request, filename: str, size: int, **details: Any) -> None:
        self.log_security(request, "FILE_UPLOAD_ATTEMPT", {"filename": filename, "size": size, **details})

    def log_upload_success(self, request: Request, filename: str, size: int, **details: Any) -> None:
        self.log_success(request, "FILE_UPLOAD", {"filename": filename, "size": size, **details})

    def log_upload_failure(self, request: Request, filename: str, reason: str, **details: Any) -> None:
        self.log_error(request, "FILE_UPLOAD", reason, {"filename": filename, **details})

    # ------------------------------------------------------------------
    # API calls
    # ------------------------------------------------------------------

    def log_api_request(self, request: Request, endpoint: str, **details: Any) -> None:
        self.log_request(request, f"API_{endpoint.upper()}", details)

    def log_api_success(self, request: Request, endpoint: str, **details: Any) -> None:
        self.log_success(request, f"API_{endpoint.upper()}", details)

    def log_api_error(self, request: Request, endpoint: str, error: BaseException | str, **details: Any) -> None:
        self.log_error(request, f"API_{endpoint.upper()}", error, details)

    def log_suspicious_activity(self, request: Request, activity: str, **details: Any) -> None:
        self.log_security(request, "SUSPICIOUS_ACTIVITY", {"activity": activity, **details})
