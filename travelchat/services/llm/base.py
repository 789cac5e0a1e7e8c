from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Sequence

from langchain_core.messages import ChatMessage


class UpstreamErrorKind(str, Enum):
    """Why a provider call failed, as far as retry decisions are concerned."""

    PROVISIONING = "provisioning"  # transient, the endpoint asks us to come back
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"


class LLMProviderError(Exception):
    """Raised when the model endpoint cannot produce an answer."""

    def __init__(
        self,
        kind: UpstreamErrorKind,
        message: str,
        *,
        status: int | None = None,
        response_json: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.response_json = response_json or {}


class LLMProvider(ABC):
    """Abstract interface for a language-model provider."""

    name: str = "abstract"

    @abstractmethod
    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        system_instruction: str | None = None,
    ) -> tuple[str, dict]:
        """Run one chat completion.

        ``messages`` use the roles ``user`` and ``model``; content is either a
        string or a list of parts (``{"type": "text", "text": ...}`` or
        ``{"type": "media", "file_uri": ..., "mime_type": ...}``).

        Returns
        -------
        tuple[str, dict]
            assistant text, usage_metadata

        Raises
        ------
        LLMProviderError
            On any non-successful response.
        """

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
