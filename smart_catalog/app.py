from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .config import load_settings
from .errors import CatalogError, NotFoundError
from .models import ChatRequest, ChatResponse, ProductResult, SearchResponse
from .search.filters import Filters, ScoredCandidate
from .services import build_services

BASE_DIR = Path(__file__).resolve().parent

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Sorry, something went wrong while processing your message. Please try again."
ERROR_STATUS = {
    "not_found": 404,
    "validation_error": 422,
    "authentication_error": 502,
    "rate_limit_exceeded": 503,
    "service_unavailable": 503,
}

app = FastAPI(title="Smart Catalog Assistant")

settings = load_settings()
services = build_services(settings)


@app.exception_handler(CatalogError)
def handle_catalog_error(request: Request, exc: CatalogError) -> JSONResponse:
    """Purpose: Convert typed catalog errors into JSON error bodies.
    Inputs/Outputs: Inputs are the request and error; output is a JSONResponse.
    Side Effects / State: Logs the error with the request path.
    Dependencies: Uses ERROR_STATUS keyed by CatalogError.code.
    Failure Modes: Unknown codes become 500.
    If Removed: Provider outages surface as bare 500 tracebacks.
    Testing Notes: Raise NotFoundError in a handler and expect 404.
    """
    # Map the error code to an HTTP status and keep the message generic for 5xx.
    status = ERROR_STATUS.get(exc.code or "", 500)
    logger.error("path=%s error=%s code=%s", request.url.path, exc, exc.code)
    message = str(exc) if status < 500 else GENERIC_FAILURE
    return JSONResponse(status_code=status, content={"error": message, "code": exc.code})


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    # Unexpected failures are logged with the traceback and hidden from the client.
    logger.exception("path=%s unexpected error", request.url.path)
    return JSONResponse(status_code=500, content={"error": GENERIC_FAILURE})


@app.get("/health")
def health() -> dict:
    """Purpose: Report liveness with provider and catalog size.
    Inputs/Outputs: No inputs; output is a status dict.
    Side Effects / State: None.
    Dependencies: Uses the module-level services bundle.
    Failure Modes: None.
    If Removed: Container health checks have nothing to probe.
    Testing Notes: GET /health returns status ok.
    """
    return {
        "status": "ok",
        "provider": services.settings.ai_provider,
        "products": len(services.store.active_items()),
    }


@app.post("/api/chat", response_model=ChatResponse)
def chat(request: ChatRequest) -> ChatResponse:
    """Purpose: Handle chat requests and run one orchestrated turn.
    Inputs/Outputs: Input is ChatRequest; output is ChatResponse with content and metadata.
    Side Effects / State: Appends user and assistant turns to the conversation store.
    Dependencies: Uses ChatOrchestrator.handle_message.
    Failure Modes: Errors propagate to the exception handlers above.
    If Removed: Core chat functionality is unavailable.
    Testing Notes: Send a sample message and verify response schema and persistence.
    """
    # Run the turn; the orchestrator creates the conversation when the id is missing.
    if not request.message.strip():
        raise HTTPException(status_code=422, detail="message must not be blank")
    result = services.orchestrator.handle_message(request.conversation_id, request.message)
    return ChatResponse(content=result.content, conversation_id=result.conversation_id, metadata=result.metadata)


@app.get("/api/conversations")
def list_conversations() -> List[dict]:
    """Return conversation summaries, most recent first."""
    return [summary.model_dump() for summary in services.conversations.list_conversations()]


@app.get("/api/conversations/{conversation_id}")
def get_conversation(conversation_id: str) -> dict:
    """Purpose: Return all turns for a given conversation.
    Inputs/Outputs: Input is conversation_id; output is a dict with turns and shown ids.
    Side Effects / State: None.
    Dependencies: Uses ConversationStore.get.
    Failure Modes: Unknown conversation raises NotFoundError (404).
    If Removed: Clients cannot reload a transcript.
    Testing Notes: Request a known conversation and verify turn payload.
    """
    conversation = services.conversations.get(conversation_id)
    return {
        "conversation_id": conversation.conversation_id,
        "title": conversation.display_title,
        "turns": [turn.model_dump() for turn in conversation.turns],
        "last_shown_product_ids": conversation.last_shown_product_ids,
    }


@app.delete("/api/conversations/{conversation_id}")
def delete_conversation(conversation_id: str) -> dict:
    if not services.conversations.delete_conversation(conversation_id):
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return {"deleted": conversation_id}


@app.get("/api/search", response_model=SearchResponse)
def search(
    q: str = "",
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    in_stock: Optional[bool] = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> SearchResponse:
    """Purpose: Expose hybrid retrieval directly, without classification.
    Inputs/Outputs: Inputs are query text and filter parameters; output is SearchResponse.
    Side Effects / State: One embedding call when q is present.
    Dependencies: Uses HybridRetriever.retrieve.
    Failure Modes: Store errors propagate; embedding failures only drop semantic results.
    If Removed: Retrieval can only be exercised through chat.
    Testing Notes: category=laptops must only return laptops.
    """
    filters = Filters(
        category=category,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
    )
    start = time.perf_counter()
    candidates = services.retriever.retrieve(q, filters, limit=limit)
    return SearchResponse(
        query=q,
        filters=filters.to_dict(),
        results=[_product_result(candidate) for candidate in candidates],
        took_ms=round((time.perf_counter() - start) * 1000, 1),
    )


def _product_result(candidate: ScoredCandidate) -> ProductResult:
    item = candidate.item
    return ProductResult(
        id=item.id,
        name=item.name,
        price=item.price,
        currency=item.currency,
        in_stock=item.in_stock,
        category=item.category.slug if item.category else None,
        brand=item.brand.slug if item.brand else None,
        specifications=dict(item.specifications or {}),
        score=candidate.score,
        provenance=candidate.provenance.value,
    )
