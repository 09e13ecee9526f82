from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .catalog import CatalogItem, CatalogStore
from .classifier import Classification, QueryClassifier
from .conversation_store import Conversation, ConversationStore
from .dispatcher import DispatchResult, StrategyDispatcher
from .responder import BuiltResponse, ResponseBuilder
from .step_runner import StepRunner, TurnStep
from .utils import truncate

logger = logging.getLogger(__name__)


@dataclass
class TurnContext:
    """Mutable context passed through each turn step."""
    conversation_id: str
    message: str
    started_at: float
    conversation: Optional[Conversation] = None
    previous_items: List[CatalogItem] = field(default_factory=list)
    classification: Optional[Classification] = None
    dispatch: Optional[DispatchResult] = None
    response: Optional[BuiltResponse] = None
    duration_ms: int = 0


@dataclass
class TurnResult:
    """What a chat turn returns to its caller."""
    content: str
    conversation_id: str
    metadata: Dict[str, Any]
    product_ids: List[str] = field(default_factory=list)


class ChatOrchestrator:
    def __init__(
        self,
        store: CatalogStore,
        conversations: ConversationStore,
        classifier: QueryClassifier,
        dispatcher: StrategyDispatcher,
        responder: ResponseBuilder,
    ) -> None:
        """Purpose: Initialize the turn pipeline and its collaborators.
        Inputs/Outputs: Inputs are the catalog, conversation store, classifier,
            dispatcher and response builder; no return value.
        Side Effects / State: Constructs a StepRunner with ordered steps.
        Dependencies: Uses StepRunner/TurnStep and step methods on this class.
        Failure Modes: None at init; runtime errors occur within step functions.
        If Removed: The chat endpoint and CLI cannot run a turn.
        Testing Notes: Instantiate with fakes and verify the step order.
        """
        # Store dependencies and build the step runner.
        self._store = store
        self._conversations = conversations
        self._classifier = classifier
        self._dispatcher = dispatcher
        self._responder = responder
        self._runner = StepRunner(
            steps=[
                TurnStep("record_user_turn", self._step_record_user_turn),
                TurnStep("load_context", self._step_load_context),
                TurnStep("classify", self._step_classify),
                TurnStep("dispatch", self._step_dispatch),
                TurnStep("respond", self._step_respond),
                TurnStep("finalize", self._step_finalize),
            ]
        )

    def handle_message(self, conversation_id: Optional[str], message: str) -> TurnResult:
        """Purpose: Run one user turn end to end.
        Inputs/Outputs: Inputs are an optional conversation id and the message; output
            is a TurnResult with content, conversation id and metadata.
        Side Effects / State: Appends the user and assistant turns and replaces the
            conversation's last shown products.
        Dependencies: StepRunner and the step methods below.
        Failure Modes: Retrieval, store and generation errors propagate; the user turn
            stays recorded and the previous shown set is left untouched.
        If Removed: No chat surface works.
        Testing Notes: A contextual follow-up must be scoped to the previous reply.
        """
        conversation_id = self._conversations.ensure_conversation(conversation_id)
        logger.info("conversation=%s message=%r", conversation_id, truncate(message))
        context = TurnContext(conversation_id=conversation_id, message=message, started_at=time.perf_counter())
        self._runner.run(context)
        classification = context.classification
        response = context.response
        logger.info(
            "conversation=%s type=%s products=%s took=%sms",
            conversation_id,
            classification.query_type.value,
            len(response.product_ids),
            context.duration_ms,
        )
        return TurnResult(
            content=response.content,
            conversation_id=conversation_id,
            metadata={
                "query_type": classification.query_type.value,
                "product_count": len(response.product_ids),
                "duration_ms": context.duration_ms,
            },
            product_ids=list(response.product_ids),
        )

    def _step_record_user_turn(self, context: TurnContext) -> None:
        self._conversations.append_turn(context.conversation_id, "user", context.message)

    def _step_load_context(self, context: TurnContext) -> None:
        """Purpose: Load the conversation and the items shown by the previous reply.
        Inputs/Outputs: Input is TurnContext; sets conversation and previous_items.
        Side Effects / State: Reads the conversation store and catalog.
        Dependencies: ConversationStore.get and CatalogStore.get_many.
        Failure Modes: Ids no longer in the catalog are skipped.
        If Removed: The classifier and contextual strategy lose the previous results.
        Testing Notes: Previous ids must come from the last assistant turn only.
        """
        context.conversation = self._conversations.get(context.conversation_id)
        context.previous_items = self._store.get_many(context.conversation.previous_product_ids)

    def _step_classify(self, context: TurnContext) -> None:
        context.classification = self._classifier.classify(context.message, context.previous_items)

    def _step_dispatch(self, context: TurnContext) -> None:
        context.dispatch = self._dispatcher.dispatch(context.classification, context.conversation)

    def _step_respond(self, context: TurnContext) -> None:
        context.response = self._responder.build(context.dispatch, context.message)

    def _step_finalize(self, context: TurnContext) -> None:
        # The shown set is replaced once, together with the assistant turn.
        response = context.response
        context.duration_ms = round((time.perf_counter() - context.started_at) * 1000)
        self._conversations.complete_turn(
            context.conversation_id,
            response.content,
            response.product_ids,
            metadata={"response_type": response.response_type.value},
        )
