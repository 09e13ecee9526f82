import json
import re
import unicodedata
from typing import Any, Dict, Optional

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Purpose: Normalize free-form text for stable matching of catalog tokens.
    Inputs/Outputs: Input is a raw string; output is a lowercase ASCII-only string with
        diacritics removed and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by synonym lookups and the
        fallback classifier.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: "portátiles" and "portatiles" stop resolving to the same category.
    Testing Notes: Validate Spanish accents are stripped and whitespace is collapsed.
    """
    # Normalize to lowercase and strip diacritics for consistent matching.
    if not text:
        return ""
    lowered = str(text).lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    cleaned = re.sub(r"[^a-z0-9\s\-_/.]+", " ", stripped)
    return re.sub(r"\s+", " ", cleaned).strip()


def slugify(text: str) -> str:
    """Purpose: Produce a URL-safe slug ("Mobile Accessories" -> "mobile-accessories").
    Inputs/Outputs: Input is a raw string; output is a slug or empty string.
    Side Effects / State: None; pure function.
    Dependencies: Calls normalize_text; used when catalog records omit a slug.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Records without explicit slugs cannot be looked up by slug.
    Testing Notes: Ensure spaces and punctuation collapse to single hyphens.
    """
    # Collapse normalized text into hyphen-separated tokens.
    normalized = normalize_text(text)
    return re.sub(r"[^a-z0-9]+", "-", normalized).strip("-")


def numeric_part(value: Any) -> str:
    """Keep only digits and dots, so "32GB" becomes "32"."""
    return re.sub(r"[^\d.]", "", str(value or ""))


def parse_number(value: Any) -> Optional[float]:
    """Purpose: Parse a model-provided filter value into a float.
    Inputs/Outputs: Input is any JSON value; output is a float or None.
    Side Effects / State: None; pure function.
    Dependencies: Used by classifier filter normalization.
    Failure Modes: Booleans, blanks and non-numeric strings return None instead of 0.
    If Removed: "max_price": "cheap" would crash or silently become a zero bound.
    Testing Notes: Check "1500", 1500, "abc", "", None and True.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return number


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the JSON object from a model response string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in markdown fences cannot be parsed.
    Testing Notes: Provide fenced JSON and JSON surrounded by prose.
    """
    # Prefer the content of a ```json fence, then the outermost braces.
    if not text:
        return None
    match = CODE_FENCE_RE.search(text)
    if match:
        text = match.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses extract_json_block and json.loads; called by the classifier.
    Failure Modes: Returns None on JSONDecodeError, missing block or non-object JSON.
    If Removed: Classification becomes brittle and crashes on malformed model output.
    Testing Notes: Validate valid JSON parses and malformed JSON returns None.
    """
    # Parse only the extracted JSON block to avoid non-JSON prefixes/suffixes.
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def truncate(text: str, limit: int = 80) -> str:
    """Shorten text for log lines."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
