"""Service-account credentials shared by Cloud Storage and Vertex AI."""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from travelchat.config import Settings

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
_PROJECT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_PLACEHOLDER_MARKERS = ("YOUR_PRIVATE_KEY_CONTENT_HERE", "PRIVATE_KEY_CONTENT_HERE")


class CredentialsError(Exception):
    """Raised when an access token cannot be obtained."""


def service_account_info(settings: Settings) -> dict[str, Any] | None:
    """Build the service-account JSON payload from settings.

    Returns None when any required value is missing or obviously invalid
    (malformed project id, placeholder key left in the environment).
    """

    project_id = settings.gapi_project_id
    client_email = settings.gapi_client_email
    private_key = settings.gapi_private_key
    if not (project_id and client_email and private_key):
        return None
    if not _PROJECT_ID_PATTERN.match(project_id):
        logger.error("GAPI_PROJECT_ID has an invalid format")
        return None
    if any(marker in private_key for marker in _PLACEHOLDER_MARKERS):
        logger.error("GAPI_PRIVATE_KEY still contains placeholder text")
        return None

    return {
        "type": "service_account",
        "project_id": project_id,
        "private_key_id": settings.private_key_id or "",
        "private_key": private_key.replace("\\n", "\n"),
        "client_email": client_email,
        "client_id": "",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
    }


def load_credentials(settings: Settings) -> service_account.Credentials | None:
    info = service_account_info(settings)
    if info is None:
        return None
    try:
        return service_account.Credentials.from_service_account_info(info, scopes=[CLOUD_PLATFORM_SCOPE])
    except (ValueError, GoogleAuthError) as exc:
        logger.error("Could not load service-account credentials: %s", exc)
        return None


class AccessTokenProvider:
    """Hands out OAuth bearer tokens, refreshing them off the event loop."""

    def __init__(self, credentials: service_account.Credentials) -> None:
        self._credentials = credentials

    async def get_token(self) -> str:
        if not self._credentials.valid:
            try:
                await asyncio.to_thread(self._credentials.refresh, Request())
            except GoogleAuthError as exc:
                raise CredentialsError("Failed to refresh access token") from exc
        token = self._credentials.token
        if not token:
            raise CredentialsError("Credentials produced an empty access token")
        return token
