from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .config import Settings
from .errors import CatalogError, ServiceUnavailableError, error_for_status
from .providers import GenerationResult, Message, clean_embedding_input

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (requests.Timeout, requests.ConnectionError)


class OllamaClient:
    """HTTP client for a local Ollama server (chat completions and embeddings)."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._base_url = settings.ollama_base_url
        self._session = session or requests.Session()

    def generate(self, messages: List[Message], options: Optional[Dict[str, Any]] = None) -> GenerationResult:
        """Purpose: Run a non-streaming chat completion against /api/chat.
        Inputs/Outputs: Inputs are role-tagged messages and options; output is GenerationResult.
        Side Effects / State: Network call bounded by LLM_TIMEOUT.
        Dependencies: Uses _post for retries and status mapping.
        Failure Modes: Raises typed CatalogError subclasses on HTTP/transport errors.
        If Removed: AI_PROVIDER=ollama cannot classify or generate.
        Testing Notes: Stub the session and verify payload shape and parsing.
        """
        options = options or {}
        body = {
            "model": options.get("model") or self._settings.ollama_model,
            "messages": [{"role": m.get("role", "user"), "content": m.get("content", "")} for m in messages],
            "options": {
                "temperature": options.get("temperature", 0.7),
                "num_predict": options.get("max_tokens", 2048),
            },
            "stream": False,
        }
        data = self._post("/api/chat", body, timeout=self._settings.llm_timeout)
        content = (data.get("message") or {}).get("content")
        return GenerationResult(
            text=content.strip() if isinstance(content, str) and content.strip() else None,
            finish_reason="stop" if data.get("done") else None,
            usage={
                "prompt_tokens": data.get("prompt_eval_count"),
                "completion_tokens": data.get("eval_count"),
            },
        )

    def embed(self, text: str) -> Optional[List[float]]:
        """Purpose: Embed text through /api/embed.
        Inputs/Outputs: Input is text; output is a vector or None.
        Side Effects / State: Network call bounded by EMBEDDING_TIMEOUT.
        Dependencies: Uses _post.
        Failure Modes: Provider errors are logged and returned as None.
        If Removed: Semantic search has no query vectors under Ollama.
        Testing Notes: Both {"embeddings": [[...]]} and {"embedding": [...]} must parse.
        """
        cleaned = clean_embedding_input(text)
        if not cleaned:
            return None
        body = {"model": self._settings.ollama_embedding_model, "input": cleaned}
        try:
            data = self._post("/api/embed", body, timeout=self._settings.embedding_timeout)
        except Exception as exc:
            logger.warning("ollama embedding failed: %s", exc)
            return None
        return _parse_embedding(data)

    def _post(self, endpoint: str, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        url = f"{self._base_url}{endpoint}"
        attempts = max(self._settings.max_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.post(url, json=body, timeout=timeout)
            except RETRYABLE_ERRORS as exc:
                if attempt >= attempts:
                    raise ServiceUnavailableError(f"Ollama API unavailable: {exc}") from exc
                logger.warning("ollama call failed endpoint=%s attempt=%s/%s: %s", endpoint, attempt, attempts, exc)
                time.sleep(2 ** attempt)
                continue
            except requests.RequestException as exc:
                raise ServiceUnavailableError(f"Ollama API request failed: {exc}") from exc
            return _handle_response(response, body.get("model", ""))
        raise ServiceUnavailableError("Ollama API unavailable")


def _handle_response(response: requests.Response, model: str) -> Dict[str, Any]:
    if 200 <= response.status_code < 300:
        try:
            data = response.json()
        except ValueError as exc:
            raise CatalogError("Ollama returned a non-JSON body") from exc
        return data if isinstance(data, dict) else {}
    message = _extract_error(response)
    if response.status_code == 404:
        raise ServiceUnavailableError(f"Model not found. Run: ollama pull {model}")
    raise error_for_status(response.status_code, message)


def _extract_error(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return (response.text or "")[:200]
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return str(data)[:200]


def _parse_embedding(data: Dict[str, Any]) -> Optional[List[float]]:
    # /api/embed returns a batch (list of vectors); older servers return one flat list.
    embeddings = data.get("embeddings") or data.get("embedding")
    if not embeddings or not isinstance(embeddings, list):
        return None
    vector = embeddings[0] if isinstance(embeddings[0], list) else embeddings
    return [float(value) for value in vector] if vector else None
