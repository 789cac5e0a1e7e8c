from __future__ import annotations

from .base import LLMProvider, LLMProviderError, UpstreamErrorKind
from .registry import create_provider
from .vertex_provider import VertexGeminiProvider

__all__ = [
    "LLMProvider",
    "LLMProviderError",
    "UpstreamErrorKind",
    "VertexGeminiProvider",
    "create_provider",
]
