"""Explicit state machine for two-phase product research.

Lifecycle per chat session:
    idle --(product question)--> awaiting_refinement   [discovery delivered]
    awaiting_refinement --(refinement)--> completed     [recommendations delivered]
    awaiting_refinement --(collection question)--> idle
    awaiting_refinement --(other product)--> awaiting_refinement   [new discovery]
    completed --(new product question)--> awaiting_refinement
    completed --(more options)--> completed             [product finding again]

The authoritative copy lives in the ``research_sessions`` table. Every
research reply also carries the state in ``metadata.researchState`` so
sessions persisted before the table existed can still be resumed.
"""

import json
import logging
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from collectors.db.models import (
    ChatMessage,
    MessageRole,
    ResearchSession,
    ResearchStatus,
    utc_now_iso,
)
from collectors.orchestrator.intent_classifier import QueryIntent
from collectors.orchestrator.models import (
    CamelModel,
    DiscoveryResult,
    VehicleContext,
)

logger = logging.getLogger(__name__)


class ResearchPhase(str, Enum):
    discovery = "discovery"
    product_finding = "product_finding"


class ResearchState(CamelModel):
    """Snapshot of research progress carried between chat turns."""

    status: ResearchStatus = ResearchStatus.idle
    phase: ResearchPhase | None = None
    product_category: str | None = None
    vehicle_context: VehicleContext | None = None
    discovery_result: DiscoveryResult | None = None
    user_preferences: str | None = None

    @property
    def vehicle_id(self) -> str | None:
        return self.vehicle_context.id if self.vehicle_context else None

    def to_metadata(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def reset() -> ResearchState:
    return ResearchState()


def start_discovery(
    product_category: str,
    vehicle_context: VehicleContext | None,
    discovery_result: DiscoveryResult,
) -> ResearchState:
    """State after a discovery reply: waiting for the user to narrow down."""
    return ResearchState(
        status=ResearchStatus.awaiting_refinement,
        phase=ResearchPhase.discovery,
        product_category=product_category,
        vehicle_context=vehicle_context,
        discovery_result=discovery_result,
    )


def complete_product_finding(
    state: ResearchState, user_preferences: str
) -> ResearchState:
    """State after recommendations: context kept for "more options" requests."""
    return state.model_copy(
        update={
            "status": ResearchStatus.completed,
            "phase": ResearchPhase.product_finding,
            "user_preferences": user_preferences,
        }
    )


def _singular(word: str) -> str:
    if word.endswith("ies"):
        return word[:-3] + "y"
    if word.endswith("s"):
        return word[:-1]
    return word


def _names_other_product(state: ResearchState, product: str | None) -> bool:
    """True when ``product`` is not the category being researched."""
    if not product or not state.product_category:
        return False
    category_words = {_singular(w) for w in state.product_category.lower().split()}
    return _singular(product.lower()) not in category_words


def next_phase(
    state: ResearchState,
    intent: QueryIntent,
    *,
    research_mode: bool | None = None,
    follow_up: bool = False,
    product: str | None = None,
) -> ResearchPhase | None:
    """Decide which research phase, if any, handles this turn.

    Args:
        state: Current research state for the session.
        intent: Classified intent of the new message.
        research_mode: False never researches, True always does, None
            leaves it to the intent.
        follow_up: The message asks for more or different options.
        product: Specific product named in the message, if any. Naming a
            different product than the one being researched starts over.

    Returns:
        The phase to run, or None for a direct answer.
    """
    if research_mode is False:
        return None

    if state.status == ResearchStatus.awaiting_refinement:
        # A refinement like "lithium please" rarely looks like a product question.
        if intent == QueryIntent.quick_question and not research_mode:
            return None
        if _names_other_product(state, product):
            return ResearchPhase.discovery
        return ResearchPhase.product_finding

    if (
        state.status == ResearchStatus.completed
        and follow_up
        and state.product_category
        and not _names_other_product(state, product)
    ):
        return ResearchPhase.product_finding

    if research_mode or intent == QueryIntent.product_research:
        return ResearchPhase.discovery
    return None


def _state_from_metadata(metadata: dict[str, Any] | None) -> ResearchState | None:
    if not metadata:
        return None
    raw = metadata.get("researchState")
    if not isinstance(raw, dict):
        return None
    try:
        state = ResearchState.model_validate(raw)
    except ValueError as e:
        logger.warning("Ignoring malformed researchState metadata: %s", e)
        return None
    if "status" not in raw and state.phase is not None:
        state.status = (
            ResearchStatus.awaiting_refinement
            if state.phase == ResearchPhase.discovery
            else ResearchStatus.completed
        )
    return state


def _loads(value: str | None) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None


class ResearchSessionStore:
    """Loads and saves the research state for chat sessions.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def _row(self, chat_session_id: str) -> ResearchSession | None:
        return self._db.scalars(
            select(ResearchSession).where(
                ResearchSession.chat_session_id == chat_session_id
            )
        ).first()

    def load(self, chat_session_id: str) -> ResearchState:
        """Current state; inferred from message metadata when no row exists."""
        row = self._row(chat_session_id)
        if row is not None:
            vehicle = _loads(row.vehicle_context_json)
            discovery = _loads(row.discovery_result_json)
            return ResearchState(
                status=ResearchStatus(row.status),
                phase=ResearchPhase(row.phase) if row.phase else None,
                product_category=row.product_category,
                vehicle_context=VehicleContext.model_validate(vehicle) if vehicle else None,
                discovery_result=DiscoveryResult.model_validate(discovery) if discovery else None,
                user_preferences=row.user_preferences,
            )

        last_assistant = self._db.scalars(
            select(ChatMessage)
            .where(
                ChatMessage.session_id == chat_session_id,
                ChatMessage.role == MessageRole.assistant.value,
            )
            .order_by(ChatMessage.sequence.desc())
            .limit(1)
        ).first()
        if last_assistant is not None:
            inferred = _state_from_metadata(_loads(last_assistant.metadata_json))
            if inferred is not None:
                logger.debug(
                    "Inferred research state %s for session %s from metadata",
                    inferred.status.value,
                    chat_session_id,
                )
                return inferred
        return ResearchState()

    def save(self, chat_session_id: str, state: ResearchState) -> None:
        row = self._row(chat_session_id)
        if row is None:
            row = ResearchSession(chat_session_id=chat_session_id)
            self._db.add(row)

        row.status = state.status.value
        row.phase = state.phase.value if state.phase else None
        row.product_category = state.product_category
        row.vehicle_context_json = (
            json.dumps(state.vehicle_context.to_metadata()) if state.vehicle_context else None
        )
        row.discovery_result_json = (
            json.dumps(state.discovery_result.to_metadata()) if state.discovery_result else None
        )
        row.user_preferences = state.user_preferences
        row.updated_at = utc_now_iso()
        self._db.commit()
