from __future__ import annotations

from travelchat.config import Settings

from .base import LLMProvider
from .vertex_provider import VertexGeminiProvider

_PROVIDERS: dict[str, type[VertexGeminiProvider]] = {
    "vertex": VertexGeminiProvider,
}


def create_provider(settings: Settings) -> LLMProvider | None:
    """Build the configured provider, or None when its credentials are missing."""

    provider_key = settings.llm_provider.lower()
    if provider_key not in _PROVIDERS:
        raise ValueError(f"Unsupported LLM provider: {provider_key}")
    return _PROVIDERS[provider_key].from_settings(settings)
