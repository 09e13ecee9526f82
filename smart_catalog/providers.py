"""Provider interfaces consumed by search and chat, and the startup-time factory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from .config import Settings

logger = logging.getLogger(__name__)

Message = Dict[str, str]


@dataclass
class GenerationResult:
    """Text returned by an LLM call; text is None when the provider returned nothing."""
    text: Optional[str]
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> Optional[List[float]]:
        """Return a fixed-length vector, or None when no vector is available."""
        ...


class LLMProvider(EmbeddingProvider, Protocol):
    def generate(self, messages: List[Message], options: Optional[Dict[str, Any]] = None) -> GenerationResult:
        """Generate a reply for role-tagged messages; raises CatalogError subclasses."""
        ...


def build_provider(settings: Settings) -> LLMProvider:
    """Purpose: Build the single provider instance used for the whole process.
    Inputs/Outputs: Input is Settings; output is a Gemini or Ollama adapter.
    Side Effects / State: Gemini configures the SDK API key.
    Dependencies: Imports the adapter modules lazily so only the chosen SDK loads.
    Failure Modes: Gemini without GEMINI_API_KEY raises ValueError.
    If Removed: The app has no way to pick local vs cloud backends.
    Testing Notes: Set AI_PROVIDER and check the adapter type.
    """
    logger.info("ai provider=%s", settings.ai_provider)
    if settings.ai_provider == "gemini":
        from .gemini_client import GeminiClient

        return GeminiClient(settings)
    from .ollama_client import OllamaClient

    return OllamaClient(settings)


def clean_embedding_input(text: str, limit: int = 10_000) -> str:
    """Collapse whitespace and cap length before sending text to an embedding model."""
    return " ".join(str(text or "").split())[:limit]
