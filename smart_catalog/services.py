from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .catalog import CatalogStore
from .classifier import QueryClassifier
from .config import Settings
from .conversation_store import ConversationStore
from .dispatcher import StrategyDispatcher
from .orchestrator import ChatOrchestrator
from .prompt_loader import PromptLibrary
from .providers import LLMProvider, build_provider
from .responder import ResponseBuilder
from .search.hybrid import HybridRetriever
from .search.semantic import SemanticSearch
from .search.structured import StructuredSearch

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Process-wide collaborators shared by the HTTP app and the CLI."""
    settings: Settings
    provider: LLMProvider
    store: CatalogStore
    conversations: ConversationStore
    retriever: HybridRetriever
    orchestrator: ChatOrchestrator


def build_services(
    settings: Settings,
    provider: Optional[LLMProvider] = None,
    store: Optional[CatalogStore] = None,
    conversations: Optional[ConversationStore] = None,
) -> Services:
    """Purpose: Construct every collaborator once, injecting the single provider.
    Inputs/Outputs: Input is Settings plus optional prebuilt provider/store/conversations;
        output is a Services bundle.
    Side Effects / State: Loads the catalog file and the conversation file.
    Dependencies: build_provider, CatalogStore.from_file, ConversationStore.
    Failure Modes: Missing catalog file raises FileNotFoundError; an unknown provider
        or missing Gemini key raises ValueError.
    If Removed: The app and CLI would each wire collaborators differently.
    Testing Notes: Pass fakes for provider and store to avoid disk and network.
    """
    provider = provider or build_provider(settings)
    store = store or CatalogStore.from_file(settings.catalog_path, settings.embedding_dimensions)
    if conversations is None:
        conversations = ConversationStore(
            settings.data_dir / "conversations.json",
            max_conversations=settings.max_conversations,
        )
    prompts = PromptLibrary(settings.prompts_dir)
    structured = StructuredSearch(store)
    retriever = HybridRetriever(structured, SemanticSearch(store, provider))
    dispatcher = StrategyDispatcher(store, retriever, structured, limit=settings.search_limit)
    orchestrator = ChatOrchestrator(
        store=store,
        conversations=conversations,
        classifier=QueryClassifier(provider, prompts),
        dispatcher=dispatcher,
        responder=ResponseBuilder(provider, prompts),
    )
    logger.info(
        "services ready provider=%s items=%s limit=%s",
        settings.ai_provider,
        len(store.active_items()),
        settings.search_limit,
    )
    return Services(
        settings=settings,
        provider=provider,
        store=store,
        conversations=conversations,
        retriever=retriever,
        orchestrator=orchestrator,
    )
