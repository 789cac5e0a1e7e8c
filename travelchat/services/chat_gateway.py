"""Travel-chat gateway in front of the configured LLM provider.

Replays earlier turns, attaches stored images by ``gs://`` reference and
retries the call while the endpoint reports that it is still provisioning.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Awaitable, Callable

from langchain_core.messages import ChatMessage

from travelchat.models import ChatAttachment, ChatRequest
from travelchat.services.llm import LLMProvider, LLMProviderError, UpstreamErrorKind

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Service temporarily unavailable. Please try again later."
PROVISIONING_ERROR = "Service is getting ready to help. Please try again in a few minutes."
TIMEOUT_ERROR = "Request took too long. Please try again."

CURRENT_DATE_TOKEN = "{{CURRENT_DATE}}"
DEFAULT_ATTACHMENT_MIME = "image/jpeg"


class ChatGatewayError(Exception):
    """User-presentable chat failure."""

    def __init__(self, message: str, *, kind: UpstreamErrorKind, needs_retry: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.needs_retry = needs_retry


@dataclass
class RetryState:
    """Attempt counter plus the classification of the last failure."""

    max_attempts: int
    attempt: int = 0
    last_error: UpstreamErrorKind | None = None

    def start_attempt(self) -> int:
        self.attempt += 1
        return self.attempt

    def record(self, kind: UpstreamErrorKind) -> None:
        self.last_error = kind

    @property
    def should_retry(self) -> bool:
        return self.last_error is UpstreamErrorKind.PROVISIONING and self.attempt < self.max_attempts


def _attachment_part(attachment: ChatAttachment) -> dict:
    if attachment.gcs_url and attachment.gcs_url.startswith("gs://"):
        return {
            "type": "media",
            "file_uri": attachment.gcs_url,
            "mime_type": attachment.type or DEFAULT_ATTACHMENT_MIME,
        }
    name = attachment.filename or "image"
    return {
        "type": "text",
        "text": (
            f'[Note: User attached an image file "{name}" but it could not be processed '
            "by AI due to storage limitations.]"
        ),
    }


def build_messages(request: ChatRequest) -> list[ChatMessage]:
    """Replay complete history turns, then the current question and attachments."""

    messages: list[ChatMessage] = []
    for turn in request.chat_history:
        if not turn.is_complete:
            continue
        messages.append(ChatMessage(role="user", content=turn.question))
        messages.append(ChatMessage(role="model", content=turn.response))

    current: list[str | dict] = [{"type": "text", "text": request.question}]
    current.extend(_attachment_part(attachment) for attachment in request.attachments)
    messages.append(ChatMessage(role="user", content=current))
    return messages


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class ChatGateway:
    def __init__(
        self,
        provider: LLMProvider,
        system_prompt: str,
        *,
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self._provider = provider
        self._system_prompt = system_prompt
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._today = today

    def system_instruction(self) -> str:
        return self._system_prompt.replace(CURRENT_DATE_TOKEN, self._today().isoformat())

    async def ask(self, request: ChatRequest) -> str:
        """Return the model's answer to ``request``.

        Raises
        ------
        ChatGatewayError
            With a message safe to show to the user.
        """

        messages = build_messages(request)
        answer = await self._call_with_retry(messages, self.system_instruction())
        if not answer.strip():
            logger.warning("Model returned an empty answer")
            raise ChatGatewayError(GENERIC_ERROR, kind=UpstreamErrorKind.UNAVAILABLE)
        return answer

    async def _call_with_retry(self, messages: list[ChatMessage], system_instruction: str) -> str:
        state = RetryState(max_attempts=self._max_attempts)
        while True:
            attempt = state.start_attempt()
            try:
                answer, meta = await asyncio.wait_for(
                    self._provider.chat(messages, system_instruction=system_instruction),
                    timeout=self._timeout,
                )
            except asyncio.TimeoutError:
                state.record(UpstreamErrorKind.TIMEOUT)
            except LLMProviderError as exc:
                state.record(exc.kind)
                logger.info("Chat attempt %d/%d failed: %s (%s)", attempt, self._max_attempts, exc, exc.kind.value)
            else:
                logger.debug("Chat answered on attempt %d: %s", attempt, meta)
                return answer

            if state.should_retry:
                await self._sleep(self._backoff_seconds * attempt)
                continue
            raise self._final_error(state)

    @staticmethod
    def _final_error(state: RetryState) -> ChatGatewayError:
        if state.last_error is UpstreamErrorKind.TIMEOUT:
            return ChatGatewayError(TIMEOUT_ERROR, kind=UpstreamErrorKind.TIMEOUT)
        if state.last_error is UpstreamErrorKind.PROVISIONING:
            return ChatGatewayError(PROVISIONING_ERROR, kind=UpstreamErrorKind.PROVISIONING, needs_retry=True)
        return ChatGatewayError(GENERIC_ERROR, kind=UpstreamErrorKind.UNAVAILABLE)

    async def aclose(self) -> None:
        await self._provider.aclose()
