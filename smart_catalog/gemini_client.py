from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

try:  # Prefer typed enums when available
    from google.generativeai import types as genai_types

    DEFAULT_SAFETY_SETTINGS = [
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
    ]
except Exception:  # pragma: no cover - fallback for older SDKs
    DEFAULT_SAFETY_SETTINGS = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_ONLY_HIGH"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
    ]

from .config import Settings
from .errors import ServiceUnavailableError, error_for_status
from .providers import GenerationResult, Message, clean_embedding_input

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    google_exceptions.DeadlineExceeded,
    google_exceptions.ServiceUnavailable,
)


class GeminiClient:
    """Thin wrapper around the Gemini SDK for chat generation and embeddings."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures SDK global API key and caches model instances.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if API key or model name is missing.
        If Removed: AI_PROVIDER=gemini cannot classify, generate or embed.
        Testing Notes: Validate missing key raises ValueError.
        """
        # Configure API key and seed default model cache.
        self._settings = settings
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        self._embedding_model = "models/" + _normalize_model_name(settings.gemini_embedding_model)

    def generate(self, messages: List[Message], options: Optional[Dict[str, Any]] = None) -> GenerationResult:
        """Purpose: Generate a reply from role-tagged chat messages.
        Inputs/Outputs: Inputs are messages and options (temperature, max_tokens, model);
            output is a GenerationResult.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content and _to_contents.
        Failure Modes: SDK errors are raised as typed CatalogError subclasses.
        If Removed: Classification and comparison/conversational replies stop working.
        Testing Notes: Mock the SDK and check role mapping and error translation.
        """
        # Resolve model name and prepare a cached model instance.
        options = options or {}
        model_name = _normalize_model_name(options.get("model")) or self._default_model
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)

        response = self._call(
            lambda: self._models[model_name].generate_content(
                _to_contents(messages),
                generation_config={
                    "temperature": options.get("temperature", 0.7),
                    "max_output_tokens": options.get("max_tokens", 2048),
                },
                safety_settings=DEFAULT_SAFETY_SETTINGS,
                request_options={"timeout": self._settings.llm_timeout},
            )
        )
        return _parse_response(response)

    def embed(self, text: str) -> Optional[List[float]]:
        """Purpose: Embed text for semantic search.
        Inputs/Outputs: Input is text; output is a vector or None.
        Side Effects / State: None.
        Dependencies: Uses genai.embed_content.
        Failure Modes: Every provider error is logged and returned as None.
        If Removed: Semantic search has no query vectors under Gemini.
        Testing Notes: Simulate a quota error and expect None.
        """
        cleaned = clean_embedding_input(text)
        if not cleaned:
            return None
        try:
            result = self._call(
                lambda: genai.embed_content(
                    model=self._embedding_model,
                    content=cleaned,
                    request_options={"timeout": self._settings.embedding_timeout},
                )
            )
        except Exception as exc:
            logger.warning("gemini embedding failed: %s", exc)
            return None
        values = result.get("embedding") if isinstance(result, dict) else getattr(result, "embedding", None)
        return [float(value) for value in values] if values else None

    def _call(self, fn):
        """Run an SDK call with retries on timeouts/unavailability and typed error mapping."""
        attempts = max(self._settings.max_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except RETRYABLE_ERRORS as exc:
                if attempt >= attempts:
                    raise ServiceUnavailableError(f"Gemini API unavailable: {exc}") from exc
                logger.warning("gemini call failed attempt=%s/%s: %s", attempt, attempts, exc)
                time.sleep(2 ** attempt)
            except google_exceptions.GoogleAPICallError as exc:
                raise error_for_status(int(exc.code or 0), str(exc.message)) from exc
            except google_exceptions.RetryError as exc:
                raise ServiceUnavailableError(f"Gemini API unavailable: {exc}") from exc
        raise ServiceUnavailableError("Gemini API unavailable")


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip the "models/" prefix and whitespace from a model name."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned


def _to_contents(messages: List[Message]) -> List[Dict[str, Any]]:
    # Gemini only knows "user" and "model"; system text is sent as a user turn.
    contents = []
    for message in messages:
        role = "model" if message.get("role") == "assistant" else "user"
        contents.append({"role": role, "parts": [{"text": str(message.get("content") or "")}]})
    return contents


def _parse_response(response: Any) -> GenerationResult:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return GenerationResult(text=None)
    candidate = candidates[0]
    finish = getattr(candidate, "finish_reason", None)
    finish_reason = getattr(finish, "name", None) or (str(finish) if finish is not None else None)
    parts = getattr(getattr(candidate, "content", None), "parts", None) or []
    text = "".join(str(getattr(part, "text", "") or "") for part in parts).strip()
    usage = getattr(response, "usage_metadata", None)
    return GenerationResult(
        text=text or None,
        finish_reason=finish_reason,
        usage={
            "prompt_tokens": getattr(usage, "prompt_token_count", None),
            "completion_tokens": getattr(usage, "candidates_token_count", None),
        }
        if usage is not None
        else None,
    )
