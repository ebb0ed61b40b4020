"""One chat turn, end to end.

Resolves or creates the session, loads collection vehicles and recent
history, runs the orchestrator and persists both messages plus the
research state. Generation failures fall back to a fixed reply and
persistence failures are logged; neither reaches the caller. For new
sessions a title is generated in a detached task.
"""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from collectors.db.models import ChatSession, MessageRole
from collectors.errors import ValidationError
from collectors.orchestrator.config import get_chat_history_limit
from collectors.orchestrator.research_orchestrator import (
    FALLBACK_MESSAGE,
    ChatContext,
    OrchestratorReply,
    ResearchOrchestrator,
)
from collectors.orchestrator.research_state import ResearchSessionStore, ResearchState
from collectors.services.chat_persistence_service import (
    ChatPersistenceService,
    schedule_title_generation,
)
from collectors.services.collection_service import CollectionService
from collectors.services.collection_summary import (
    ERROR_SUGGESTIONS,
    UNAUTHENTICATED_SUGGESTIONS,
    build_collection_summary,
    build_system_prompt,
    generate_suggestions,
)
from collectors.services.llm_client import LLMCollaborator

logger = logging.getLogger(__name__)


@dataclass
class ChatTurnResult:
    message: str
    session_id: str
    metadata: dict[str, Any] | None = None


class ChatService:
    """Handles chat turns for one request.

    Args:
        db: Request-scoped SQLAlchemy session.
        orchestrator: Research orchestrator.
        llm: Model collaborator used for session titles.
        session_factory: Factory for the title task's own DB session.
        history_limit: Messages of history per turn; CHAT_HISTORY_LIMIT
            when omitted.
        today: Clock for tab-expiration math.
    """

    def __init__(
        self,
        db: Session,
        orchestrator: ResearchOrchestrator,
        llm: LLMCollaborator,
        session_factory: sessionmaker,
        history_limit: int | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._db = db
        self._orchestrator = orchestrator
        self._llm = llm
        self._session_factory = session_factory
        self._history_limit = history_limit or get_chat_history_limit()
        self._today = today
        self._persistence = ChatPersistenceService(db)
        self._research = ResearchSessionStore(db)

    def _resolve_session(
        self, user_id: str, session_id: str | None, message: str
    ) -> tuple[ChatSession, bool]:
        if session_id:
            return self._persistence.get_session(session_id, user_id), False
        return self._persistence.create_session(user_id, message), True

    def _save_message(
        self,
        session_id: str,
        user_id: str,
        role: MessageRole,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        try:
            self._persistence.save_message(
                session_id, user_id, role.value, content, metadata
            )
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Failed to persist %s message for session %s", role.value, session_id)

    def _save_research_state(self, session_id: str, state: ResearchState) -> None:
        try:
            self._research.save(session_id, state)
        except SQLAlchemyError:
            self._db.rollback()
            logger.exception("Failed to persist research state for session %s", session_id)

    async def handle_message(
        self,
        user_id: str,
        message: str | None,
        collection_id: str | None,
        session_id: str | None = None,
        research_mode: bool | None = None,
    ) -> ChatTurnResult:
        """Answer one user message.

        Raises:
            ValidationError: Blank message or collection id.
            NotFoundError: ``session_id`` is unknown or not the caller's.
        """
        if not message or not message.strip():
            raise ValidationError("Message is required")
        if not collection_id or not collection_id.strip():
            raise ValidationError("collectionId is required")
        message = message.strip()

        session, is_new = self._resolve_session(user_id, session_id, message)

        vehicles = CollectionService(self._db).list_vehicles(user_id, collection_id)
        history = self._persistence.recent_messages(session.id, self._history_limit)
        summary = build_collection_summary(vehicles, today=self._today())
        context = ChatContext(
            system_prompt=build_system_prompt(summary, history),
            history=history,
            vehicles=vehicles,
            research_state=self._research.load(session.id),
            research_mode=research_mode,
        )

        self._save_message(session.id, user_id, MessageRole.user, message)

        try:
            reply = await self._orchestrator.respond(message, context)
        except Exception:
            logger.exception("Chat generation failed for session %s", session.id)
            reply = OrchestratorReply(
                text=FALLBACK_MESSAGE,
                metadata=None,
                research_state=context.research_state,
            )

        self._save_message(
            session.id, user_id, MessageRole.assistant, reply.text, reply.metadata
        )
        self._save_research_state(session.id, reply.research_state)

        if is_new:
            schedule_title_generation(
                session.id, message, reply.text, self._llm, self._session_factory
            )

        return ChatTurnResult(
            message=reply.text, session_id=session.id, metadata=reply.metadata
        )


def get_suggestions(
    db: Session,
    user_id: str | None,
    collection_id: str | None = None,
    today: date | None = None,
    rng: random.Random | None = None,
) -> list[str]:
    """Four chat prompts for the user's collection.

    Anonymous callers get generic prompts, and so does any failure.
    """
    if user_id is None:
        return list(UNAUTHENTICATED_SUGGESTIONS)
    try:
        vehicles = CollectionService(db).list_vehicles(
            user_id, collection_id, recently_updated_first=True
        )
        return generate_suggestions(vehicles, today=today, rng=rng)
    except Exception:
        logger.exception("Suggestion generation failed for user %s", user_id)
        return list(ERROR_SUGGESTIONS)
