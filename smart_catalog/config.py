from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

PROVIDERS = ("ollama", "gemini")


@dataclass(frozen=True)
class Settings:
    """Configuration container for providers, catalog resources, and runtime limits."""
    ai_provider: str
    gemini_api_key: str
    gemini_model: str
    gemini_embedding_model: str
    ollama_base_url: str
    ollama_model: str
    ollama_embedding_model: str
    llm_timeout: float
    embedding_timeout: float
    max_attempts: int
    embedding_dimensions: int
    catalog_path: Path
    prompts_dir: Path
    data_dir: Path
    search_limit: int
    max_conversations: int
    log_level: str


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values raise ValueError; an unknown
        AI_PROVIDER raises ValueError.
    If Removed: App cannot pick a provider or locate the catalog and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve resource paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / ".." / "resources" / "catalog.json").resolve()

    data_dir = Path(os.getenv("DATA_DIR") or (BASE_DIR / "data")).resolve()

    provider = os.getenv("AI_PROVIDER", "ollama").strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"Unsupported AI_PROVIDER: {provider!r}")

    return Settings(
        ai_provider=provider,
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
        gemini_embedding_model=os.getenv("GEMINI_EMBEDDING_MODEL", "text-embedding-004"),
        ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://ollama:11434").rstrip("/"),
        ollama_model=os.getenv("OLLAMA_MODEL", "llama3.2"),
        ollama_embedding_model=os.getenv("OLLAMA_EMBEDDING_MODEL", "nomic-embed-text"),
        llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
        embedding_timeout=float(os.getenv("EMBEDDING_TIMEOUT", "15")),
        max_attempts=int(os.getenv("MAX_ATTEMPTS", "3")),
        embedding_dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", "768")),
        catalog_path=catalog_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        data_dir=data_dir,
        search_limit=int(os.getenv("SEARCH_LIMIT", "50")),
        max_conversations=int(os.getenv("MAX_CONVERSATIONS", "50")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
