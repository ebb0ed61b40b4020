"""API routes for the collection assistant chat.

POST /api/chat answers one message. Suggestions work for anonymous
callers; every other endpoint requires a bearer token.
"""

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from collectors.api.middleware.auth import optional_user, require_user
from collectors.api.schemas_chat import (
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionDetailResponse,
    ChatSessionListResponse,
    ChatSessionSummary,
    SuggestionsResponse,
)
from collectors.db.connection import get_db, get_session_factory
from collectors.orchestrator.config import use_ai_intent_classifier
from collectors.orchestrator.research_orchestrator import ResearchOrchestrator
from collectors.orchestrator.tools import ToolRegistry, build_default_registry
from collectors.services.chat_persistence_service import ChatPersistenceService
from collectors.services.chat_service import ChatService, get_suggestions
from collectors.services.llm_client import LLMClient, LLMCollaborator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@lru_cache(maxsize=1)
def get_llm() -> LLMCollaborator:
    """Process-wide model client."""
    return LLMClient()


@lru_cache(maxsize=1)
def get_registry() -> ToolRegistry:
    """Process-wide retailer registry; its tools share one search cache."""
    return build_default_registry()


def get_orchestrator(
    llm: LLMCollaborator = Depends(get_llm),
    registry: ToolRegistry = Depends(get_registry),
) -> ResearchOrchestrator:
    return ResearchOrchestrator(
        llm, registry, use_ai_classifier=use_ai_intent_classifier()
    )


def _get_chat_service(
    db: Session = Depends(get_db),
    orchestrator: ResearchOrchestrator = Depends(get_orchestrator),
    llm: LLMCollaborator = Depends(get_llm),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> ChatService:
    """Dependency injector for ChatService."""
    return ChatService(db, orchestrator, llm, session_factory)


def _get_persistence(db: Session = Depends(get_db)) -> ChatPersistenceService:
    return ChatPersistenceService(db)


@router.post("", response_model=ChatResponse)
async def send_message(
    payload: ChatRequest,
    user_id: str = Depends(require_user),
    service: ChatService = Depends(_get_chat_service),
) -> ChatResponse:
    """Answer one chat message.

    Args:
        payload: Message, collection and optional session/research mode.
        user_id: Authenticated caller (injected).
        service: ChatService (injected).

    Returns:
        Assistant reply, the session id and optional research metadata.

    Raises:
        ValidationError: Blank message or collectionId (400).
        NotFoundError: sessionId is not the caller's (404).
    """
    result = await service.handle_message(
        user_id,
        payload.message,
        payload.collection_id,
        session_id=payload.session_id,
        research_mode=payload.research_mode,
    )
    return ChatResponse(
        message=result.message,
        session_id=result.session_id,
        metadata=result.metadata,
    )


@router.get("/suggestions", response_model=SuggestionsResponse)
def list_suggestions(
    collection_id: str | None = Query(default=None, alias="collectionId"),
    user_id: str | None = Depends(optional_user),
    db: Session = Depends(get_db),
) -> SuggestionsResponse:
    """Four prompts tailored to the caller's collection.

    Anonymous callers get generic prompts.
    """
    return SuggestionsResponse(
        suggestions=get_suggestions(db, user_id, collection_id)
    )


@router.get("/sessions", response_model=ChatSessionListResponse)
def list_sessions(
    user_id: str = Depends(require_user),
    persistence: ChatPersistenceService = Depends(_get_persistence),
) -> ChatSessionListResponse:
    """The caller's chat sessions, most recently active first."""
    return ChatSessionListResponse(
        sessions=[
            ChatSessionSummary.model_validate(s)
            for s in persistence.list_sessions(user_id)
        ]
    )


@router.get("/sessions/{session_id}", response_model=ChatSessionDetailResponse)
def get_session(
    session_id: str,
    user_id: str = Depends(require_user),
    persistence: ChatPersistenceService = Depends(_get_persistence),
) -> ChatSessionDetailResponse:
    """A session with every message and its metadata.

    Raises:
        NotFoundError: Unknown session or owned by someone else (404).
    """
    data = persistence.get_session_with_messages(session_id, user_id)
    return ChatSessionDetailResponse(
        session=ChatSessionSummary.model_validate(data["session"]),
        messages=[ChatMessageResponse.model_validate(m) for m in data["messages"]],
    )


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(
    session_id: str,
    user_id: str = Depends(require_user),
    persistence: ChatPersistenceService = Depends(_get_persistence),
) -> None:
    """Delete a session with its messages and research state.

    Raises:
        NotFoundError: Unknown session or owned by someone else (404).
    """
    persistence.delete_session(session_id, user_id)
    logger.info("Deleted chat session %s", session_id)
