from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .catalog import CatalogItem
from .classifier import QueryType
from .dispatcher import DispatchResult
from .prompt_loader import PromptLibrary
from .providers import LLMProvider, Message
from .utils import truncate

logger = logging.getLogger(__name__)

ASSISTANT_PROMPT = "response_assistant"
CONVERSATIONAL_PROMPT = "conversational"

LISTING_DISPLAY_LIMIT = 20
COMPARISON_LIMIT = 5
CONTEXTUAL_LIMIT = 20
MAX_BRANDS_IN_COUNT = 10
DISPLAY_SPECS = 3

COMPARISON_TEMPERATURE = 0.7
CONTEXTUAL_TEMPERATURE = 0.5
CONVERSATIONAL_TEMPERATURE = 0.8

NO_PRODUCTS = {
    QueryType.COMPARISON: (
        "I couldn't find products to compare. Try being more specific about what you'd like to compare."
    ),
    QueryType.CONTEXTUAL: "I don't have previous results to reference. Could you start a new search?",
}
NO_PRODUCTS_DEFAULT = (
    "No products found matching your criteria. Try broadening your search or using different keywords."
)
COMPARISON_UNAVAILABLE = "Unable to generate comparison."
GREETING = "Hello! I can help you find products. Try asking about specific categories, brands, or price ranges."


@dataclass
class BuiltResponse:
    """Assistant text plus the ordered product ids the text presents."""
    content: str
    response_type: QueryType
    product_ids: List[str] = field(default_factory=list)


class ResponseBuilder:
    """Formats dispatch results; listing and count are local, the rest ask the LLM."""

    def __init__(self, provider: LLMProvider, prompts: PromptLibrary) -> None:
        self._provider = provider
        self._prompts = prompts

    def build(self, result: DispatchResult, query: str) -> BuiltResponse:
        """Purpose: Render the reply for one dispatched turn.
        Inputs/Outputs: Inputs are the DispatchResult and the user's message; output
            is a BuiltResponse with content, type and shown product ids.
        Side Effects / State: LLM call for comparison, contextual and conversational turns.
        Dependencies: LLMProvider.generate, PromptLibrary.
        Failure Modes: Provider errors propagate; an empty provider reply uses a
            canned text.
        If Removed: Turns produce no user-visible answer.
        Testing Notes: Count replies must carry no product ids.
        """
        logger.info("building %s response products=%s", result.query_type.value, len(result.candidates))
        query_type = result.query_type
        if query_type == QueryType.COUNT:
            return self._count(result.statistics or {"total": len(result.candidates)})
        if query_type == QueryType.CONVERSATIONAL:
            return self._conversational(query)
        items = result.items
        if not items:
            return BuiltResponse(content=NO_PRODUCTS.get(query_type, NO_PRODUCTS_DEFAULT), response_type=query_type)
        if query_type == QueryType.COMPARISON:
            return self._comparison(items, query)
        if query_type == QueryType.CONTEXTUAL:
            return self._contextual(items, query)
        return self._listing(items)

    def _count(self, statistics: Dict[str, Any]) -> BuiltResponse:
        lines = ["## Product Count", "", f"**Total: {statistics.get('total', 0)} products**", ""]
        by_category = statistics.get("by_category") or {}
        if by_category:
            lines.append("### By Category:")
            lines.extend(f"- {name}: {count}" for name, count in by_category.items())
            lines.append("")
        by_brand = statistics.get("by_brand") or {}
        if by_brand and len(by_brand) <= MAX_BRANDS_IN_COUNT:
            lines.append("### By Brand:")
            lines.extend(f"- {name}: {count}" for name, count in by_brand.items())
        return BuiltResponse(content="\n".join(lines).rstrip() + "\n", response_type=QueryType.COUNT)

    def _listing(self, items: List[CatalogItem]) -> BuiltResponse:
        parts = ["## Products Found\n", f"Found **{len(items)}** products matching your search.\n"]
        for index, item in enumerate(items[:LISTING_DISPLAY_LIMIT], start=1):
            parts.append(format_product_display(item, index))
        if len(items) > LISTING_DISPLAY_LIMIT:
            parts.append(f"*...and {len(items) - LISTING_DISPLAY_LIMIT} more products*\n")
        return BuiltResponse(
            content="\n".join(parts),
            response_type=QueryType.LISTING,
            product_ids=[item.id for item in items],
        )

    def _comparison(self, items: List[CatalogItem], query: str) -> BuiltResponse:
        product_data = "\n\n".join(format_product_for_llm(item) for item in items[:COMPARISON_LIMIT])
        messages = [
            {"role": "user", "content": self._prompts.get(ASSISTANT_PROMPT)},
            {"role": "assistant", "content": "Understood. I will format responses clearly."},
            {
                "role": "user",
                "content": f"Compare these products based on the user's query: '{query}'\n\nProducts:\n{product_data}",
            },
        ]
        text = self._generate(messages, COMPARISON_TEMPERATURE)
        return BuiltResponse(
            content=text or COMPARISON_UNAVAILABLE,
            response_type=QueryType.COMPARISON,
            product_ids=[item.id for item in items],
        )

    def _contextual(self, items: List[CatalogItem], query: str) -> BuiltResponse:
        product_data = "\n\n".join(format_product_for_llm(item) for item in items[:CONTEXTUAL_LIMIT])
        messages = [
            {"role": "user", "content": self._prompts.get(ASSISTANT_PROMPT)},
            {"role": "assistant", "content": "Understood."},
            {"role": "user", "content": f"Based on these products, answer: '{query}'\n\nProducts:\n{product_data}"},
        ]
        text = self._generate(messages, CONTEXTUAL_TEMPERATURE)
        return BuiltResponse(
            content=text or format_products_list(items),
            response_type=QueryType.CONTEXTUAL,
            product_ids=[item.id for item in items],
        )

    def _conversational(self, query: str) -> BuiltResponse:
        messages = [
            {"role": "user", "content": self._prompts.get(CONVERSATIONAL_PROMPT)},
            {"role": "assistant", "content": "Hello! I'm here to help you find products."},
            {"role": "user", "content": query},
        ]
        text = self._generate(messages, CONVERSATIONAL_TEMPERATURE)
        return BuiltResponse(content=text or GREETING, response_type=QueryType.CONVERSATIONAL)

    def _generate(self, messages: List[Message], temperature: float) -> Optional[str]:
        result = self._provider.generate(messages, {"temperature": temperature})
        return result.text


def format_product_display(item: CatalogItem, index: int) -> str:
    lines = [
        f"### {index}. {item.name}",
        f"- **Brand:** {item.brand_name or 'N/A'}",
        f"- **Category:** {item.category_name or 'N/A'}",
        f"- **Price:** {item.formatted_price or 'Contact for price'}",
    ]
    if item.specifications:
        key_specs = ", ".join(f"{key}: {value}" for key, value in list(item.specifications.items())[:DISPLAY_SPECS])
        lines.append(f"- **Specs:** {key_specs}")
    lines.append(f"- **In Stock:** {'Yes' if item.in_stock else 'No'}")
    return "\n".join(lines) + "\n"


def format_product_for_llm(item: CatalogItem) -> str:
    """Plain-text product card sent to the model."""
    specs = ", ".join(f"{key}: {value}" for key, value in (item.specifications or {}).items())
    description = truncate(item.description, 200) if item.description else "N/A"
    return "\n".join(
        [
            f"Name: {item.name}",
            f"Brand: {item.brand_name or 'N/A'}",
            f"Category: {item.category_name or 'N/A'}",
            f"Price: {item.formatted_price or 'N/A'}",
            f"Specifications: {specs or 'N/A'}",
            f"Description: {description}",
        ]
    )


def format_products_list(items: List[CatalogItem]) -> str:
    return "\n".join(f"- {item.name} ({item.formatted_price or 'N/A'})" for item in items)
