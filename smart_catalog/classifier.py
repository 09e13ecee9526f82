from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .catalog import CatalogItem
from .prompt_loader import PromptLibrary
from .providers import LLMProvider, Message
from .search.filters import Filters
from .utils import parse_number, safe_json_loads, truncate

logger = logging.getLogger(__name__)

CLASSIFIER_PROMPT = "query_classifier"
CLASSIFIER_TEMPERATURE = 0.1
CONTEXT_PREVIEW_SIZE = 5
ACKNOWLEDGEMENT = "Understood. I will classify the query and return JSON."


class QueryType(str, Enum):
    LISTING = "listing"
    COUNT = "count"
    COMPARISON = "comparison"
    CONTEXTUAL = "contextual"
    CONVERSATIONAL = "conversational"

    @classmethod
    def parse(cls, value: Any) -> "QueryType":
        """Unknown or missing labels are treated as listing."""
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.LISTING


@dataclass(frozen=True)
class Classification:
    """Intent for one user turn: query type, extracted filters and the semantic search text."""
    query_type: QueryType = QueryType.LISTING
    filters: Filters = field(default_factory=Filters)
    search_query: str = ""


# Checked in order; the first match wins.
FALLBACK_RULES = (
    (QueryType.COUNT, re.compile(r"how many|\bcount\b|cu[aá]nt", re.IGNORECASE)),
    (QueryType.COMPARISON, re.compile(r"\bcompare\b|\bvs\.?(?!\w)|\bversus\b|\bdifference\b", re.IGNORECASE)),
    (QueryType.CONVERSATIONAL, re.compile(r"\b(?:hello|hi|hey|hola|help)\b", re.IGNORECASE)),
    (QueryType.CONTEXTUAL, re.compile(r"from those|\bthese\b|which one|that one|this one", re.IGNORECASE)),
)


class QueryClassifier:
    """LLM-backed intent classifier with a deterministic keyword fallback."""

    def __init__(self, provider: LLMProvider, prompts: PromptLibrary) -> None:
        self._provider = provider
        self._prompts = prompts

    def classify(self, text: str, previous_items: Optional[Sequence[CatalogItem]] = None) -> Classification:
        """Purpose: Map a user message (and the products shown last turn) to a Classification.
        Inputs/Outputs: Inputs are raw text and optional previous items; output is a
            Classification, never an exception.
        Side Effects / State: One LLM call at low temperature; logs the outcome.
        Dependencies: LLMProvider.generate, PromptLibrary, safe_json_loads.
        Failure Modes: Any provider error, and any empty or non-JSON reply, falls back
            to the keyword rules.
        If Removed: The dispatcher has no query type or filters to act on.
        Testing Notes: A provider that always raises must still produce a result.
        """
        # Blank input never reaches the provider.
        if not text or not text.strip():
            return Classification()
        logger.info("classifying query=%r", truncate(text))
        try:
            messages = self._build_messages(text, previous_items or [])
            result = self._provider.generate(messages, {"temperature": CLASSIFIER_TEMPERATURE})
            classification = parse_classification(result.text)
        except Exception as exc:
            logger.warning("classifier provider failed (%s); using keyword fallback", exc)
            classification = None
        if classification is None:
            classification = fallback_classification(text)
        logger.info(
            "classified type=%s filters=%s search_query=%r",
            classification.query_type.value,
            classification.filters.to_dict(),
            truncate(classification.search_query, 60),
        )
        return classification

    def _build_messages(self, text: str, previous_items: Sequence[CatalogItem]) -> List[Message]:
        # The instructions travel as a user turn followed by an assistant acknowledgement.
        instructions = self._prompts.get(CLASSIFIER_PROMPT)
        if previous_items:
            names = ", ".join(item.name for item in list(previous_items)[:CONTEXT_PREVIEW_SIZE])
            instructions += f"\n\nPrevious results included {len(previous_items)} products: {names}..."
        return [
            {"role": "user", "content": instructions},
            {"role": "assistant", "content": ACKNOWLEDGEMENT},
            {"role": "user", "content": f"Classify this query and respond ONLY with valid JSON:\n\n{text}"},
        ]


def parse_classification(content: Optional[str]) -> Optional[Classification]:
    """Purpose: Turn a model reply into a Classification.
    Inputs/Outputs: Input is raw model text (may be fenced or wrapped in prose);
        output is a Classification, or None when the reply holds no JSON object.
    Side Effects / State: Logs a warning when the reply cannot be parsed.
    Dependencies: safe_json_loads, normalize_filters.
    Failure Modes: Empty or malformed replies return None so the caller can fall back.
    If Removed: Model output cannot be consumed.
    Testing Notes: Fenced JSON, prose-wrapped JSON and broken JSON.
    """
    if not content or not content.strip():
        logger.warning("classifier reply is empty")
        return None
    data = safe_json_loads(content)
    if data is None:
        logger.warning("classifier reply is not JSON: %s", truncate(content, 200))
        return None
    search_query = data.get("search_query")
    return Classification(
        query_type=QueryType.parse(data.get("query_type")),
        filters=normalize_filters(data.get("filters")),
        search_query=search_query.strip() if isinstance(search_query, str) else "",
    )


def normalize_filters(raw: Any) -> Filters:
    """Blank strings become unset; numbers that do not parse are dropped, not zeroed."""
    if not isinstance(raw, dict):
        return Filters()
    in_stock = raw.get("in_stock")
    specifications = raw.get("specifications")
    return Filters(
        category=_clean_token(raw.get("category")),
        brand=_clean_token(raw.get("brand")),
        min_price=parse_number(raw.get("min_price")),
        max_price=parse_number(raw.get("max_price")),
        in_stock=in_stock if isinstance(in_stock, bool) else None,
        specifications=_clean_specifications(specifications),
    )


def fallback_classification(text: str) -> Classification:
    """Keyword rules over the raw text; the text itself becomes the search query."""
    lowered = (text or "").lower()
    query_type = QueryType.LISTING
    for candidate, pattern in FALLBACK_RULES:
        if pattern.search(lowered):
            query_type = candidate
            break
    return Classification(query_type=query_type, filters=Filters(), search_query=(text or "").strip())


def _clean_token(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    token = str(value).strip()
    if not token or token.lower() in ("null", "none"):
        return None
    return token


def _clean_specifications(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    cleaned: Dict[str, Any] = {}
    for key, spec_value in value.items():
        if spec_value is None or (isinstance(spec_value, str) and not spec_value.strip()):
            continue
        cleaned[str(key).strip()] = spec_value
    return cleaned
