"""Gemini on Vertex AI over the REST ``generateContent`` endpoint."""
from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import httpx
from langchain_core.messages import ChatMessage

from travelchat.config import Settings
from travelchat.services.credentials import AccessTokenProvider, CredentialsError, load_credentials

from .base import LLMProvider, LLMProviderError, UpstreamErrorKind

logger = logging.getLogger(__name__)

_PROVISIONING_MARKER = "service agents are being provisioned"
_PROVISIONING_STATUSES = {None, "FAILED_PRECONDITION"}
_MODEL_ROLES = {"model", "ai", "assistant"}


def classify_error(response_text: str) -> tuple[UpstreamErrorKind, dict[str, Any]]:
    """Classify an error body from Vertex AI.

    The structured ``error.status`` / ``error.message`` pair is used when the
    body is JSON; the raw text is only searched when it is not.
    """

    try:
        parsed = json.loads(response_text)
    except ValueError:
        parsed = None

    error = parsed.get("error") if isinstance(parsed, dict) else None
    if isinstance(error, dict):
        message = str(error.get("message") or "").lower()
        if _PROVISIONING_MARKER in message and error.get("status") in _PROVISIONING_STATUSES:
            return UpstreamErrorKind.PROVISIONING, parsed
        return UpstreamErrorKind.UNAVAILABLE, parsed

    if _PROVISIONING_MARKER in response_text.lower():
        return UpstreamErrorKind.PROVISIONING, {}
    return UpstreamErrorKind.UNAVAILABLE, {}


def _to_parts(content: str | list[Any]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"text": content}]

    parts: list[dict[str, Any]] = []
    for item in content:
        if isinstance(item, str):
            parts.append({"text": item})
        elif item.get("type") == "media":
            parts.append({"file_data": {"mime_type": item["mime_type"], "file_uri": item["file_uri"]}})
        elif "text" in item:
            parts.append({"text": str(item["text"])})
    return parts


def to_gemini_contents(messages: Sequence[ChatMessage]) -> tuple[list[dict[str, Any]], list[str]]:
    """Split messages into Gemini ``contents`` and any system texts."""

    contents: list[dict[str, Any]] = []
    system_texts: list[str] = []
    for message in messages:
        if message.role == "system":
            system_texts.extend(p["text"] for p in _to_parts(message.content) if "text" in p)
            continue
        role = "model" if message.role in _MODEL_ROLES else "user"
        contents.append({"role": role, "parts": _to_parts(message.content)})
    return contents, system_texts


def collect_text(response_payload: dict[str, Any]) -> str | None:
    candidates = response_payload.get("candidates") or []
    if not candidates:
        return None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    extracted = [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str) and not part.get("thought")
    ]
    text = "".join(extracted).strip()
    return text or None


class VertexGeminiProvider(LLMProvider):
    name = "vertex"

    _BASE_URL = "https://aiplatform.googleapis.com/v1"

    def __init__(
        self,
        *,
        project_id: str,
        token_provider: AccessTokenProvider,
        model: str,
        location: str = "global",
        generation_config: dict[str, Any] | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._project_id = project_id
        self._token_provider = token_provider
        self._model = model
        self._location = location
        self._generation_config = generation_config or {}
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "VertexGeminiProvider | None":
        credentials = load_credentials(settings)
        if credentials is None:
            logger.warning("Vertex AI credentials are not configured; chat is disabled.")
            return None
        return cls(
            project_id=settings.gapi_project_id or "",
            token_provider=AccessTokenProvider(credentials),
            model=settings.gemini_model,
            location=settings.gemini_location,
            generation_config={
                "temperature": settings.gemini_temperature,
                "topP": settings.gemini_top_p,
                "topK": settings.gemini_top_k,
                "maxOutputTokens": settings.gemini_max_output_tokens,
            },
            timeout=settings.chat_timeout_seconds,
        )

    @property
    def endpoint(self) -> str:
        return (
            f"{self._BASE_URL}/projects/{self._project_id}/locations/{self._location}"
            f"/publishers/google/models/{self._model}:generateContent"
        )

    def build_payload(self, messages: Sequence[ChatMessage], system_instruction: str | None) -> dict[str, Any]:
        contents, system_texts = to_gemini_contents(messages)
        if system_instruction:
            system_texts.insert(0, system_instruction)

        payload: dict[str, Any] = {"contents": contents}
        if system_texts:
            payload["system_instruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}
        if self._generation_config:
            payload["generationConfig"] = self._generation_config
        return payload

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_instruction: str | None = None,
    ) -> tuple[str, dict]:
        payload = self.build_payload(messages, system_instruction)

        try:
            token = await self._token_provider.get_token()
        except CredentialsError as exc:
            raise LLMProviderError(UpstreamErrorKind.UNAVAILABLE, str(exc)) from exc

        try:
            resp = await self._client.post(
                self.endpoint,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise LLMProviderError(UpstreamErrorKind.TIMEOUT, "Vertex AI request timed out") from exc
        except httpx.HTTPError as exc:
            raise LLMProviderError(UpstreamErrorKind.UNAVAILABLE, f"Vertex AI request failed: {exc}") from exc

        if resp.status_code >= 400:
            kind, error_json = classify_error(resp.text)
            logger.warning("Vertex AI returned HTTP %s (%s)", resp.status_code, kind.value)
            raise LLMProviderError(
                kind,
                f"Vertex AI error {resp.status_code}",
                status=resp.status_code,
                response_json=error_json,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise LLMProviderError(UpstreamErrorKind.UNAVAILABLE, "Vertex AI returned invalid JSON") from exc

        text = collect_text(data) or ""
        logger.debug("Gemini response: %s", data)
        meta = {"model": self._model, **(data.get("usageMetadata") or {})}
        return text, meta

    async def aclose(self) -> None:
        await self._client.aclose()
