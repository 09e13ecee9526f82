from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "assistant", "system"]


class ChatRequest(BaseModel):
    """Request payload for chat API."""
    conversation_id: Optional[str] = Field(default=None)
    message: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    content: str
    conversation_id: str
    metadata: Dict[str, Any]


class StoredTurn(BaseModel):
    """Persisted conversation turn; assistant metadata carries the product ids shown."""
    role: Role
    content: str
    timestamp: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ConversationSummary(BaseModel):
    """Lightweight conversation summary for sidebar listing."""
    conversation_id: str
    title: str
    updated_at: float


class ProductResult(BaseModel):
    id: str
    name: str
    price: Optional[float] = None
    currency: Optional[str] = None
    in_stock: bool = True
    category: Optional[str] = None
    brand: Optional[str] = None
    specifications: Dict[str, Any] = Field(default_factory=dict)
    score: float
    provenance: str


class SearchResponse(BaseModel):
    query: str
    filters: Dict[str, Any]
    results: List[ProductResult]
    took_ms: float
