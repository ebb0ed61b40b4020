"""Persistence service for chat sessions and messages.

Thin layer between the chat service and SQLAlchemy models. Sessions are
owned by one user; every lookup is scoped to the caller so a foreign
session id behaves exactly like a missing one.
"""

import asyncio
import json
import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from collectors.db.models import (
    ChatMessage,
    ChatSession,
    generate_uuid,
    utc_now_iso,
)
from collectors.errors import NotFoundError
from collectors.orchestrator.config import get_title_model
from collectors.services.llm_client import LLMCollaborator

logger = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 50
MAX_TITLE_LENGTH = 255


class ChatPersistenceService:
    """CRUD operations for chat sessions and messages.

    Args:
        db: SQLAlchemy session (sync).
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def create_session(self, user_id: str, first_message: str) -> ChatSession:
        """Create a session titled with the first 50 characters of the message."""
        session = ChatSession(
            id=generate_uuid(),
            user_id=user_id,
            title=first_message[:TITLE_PREVIEW_CHARS],
        )
        self._db.add(session)
        self._db.commit()
        return session

    def get_session(self, session_id: str, user_id: str) -> ChatSession:
        """Load a session owned by ``user_id``.

        Raises:
            NotFoundError: Missing or owned by someone else.
        """
        session = self._db.get(ChatSession, session_id)
        if session is None or session.user_id != user_id:
            raise NotFoundError("Chat session", session_id)
        return session

    def recent_messages(self, session_id: str, limit: int) -> list[ChatMessage]:
        """Last ``limit`` messages, returned oldest first for prompt order."""
        newest_first = self._db.scalars(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.sequence.desc())
            .limit(limit)
        ).all()
        return list(reversed(newest_first))

    def save_message(
        self,
        session_id: str,
        user_id: str,
        role: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> ChatMessage:
        """Append a message with the next sequence number."""
        max_seq = self._db.scalar(
            select(func.max(ChatMessage.sequence)).where(
                ChatMessage.session_id == session_id
            )
        )
        msg = ChatMessage(
            id=generate_uuid(),
            session_id=session_id,
            user_id=user_id,
            role=role,
            content=content,
            metadata_json=json.dumps(metadata) if metadata else None,
            sequence=(max_seq or 0) + 1,
        )
        self._db.add(msg)

        session = self._db.get(ChatSession, session_id)
        if session is not None:
            session.updated_at = utc_now_iso()

        self._db.commit()
        return msg

    def list_sessions(self, user_id: str) -> list[dict[str, Any]]:
        """The user's sessions with message counts, most recent first."""
        rows = self._db.execute(
            select(
                ChatSession.id,
                ChatSession.title,
                ChatSession.created_at,
                ChatSession.updated_at,
                func.count(ChatMessage.id).label("message_count"),
            )
            .outerjoin(ChatMessage, ChatMessage.session_id == ChatSession.id)
            .where(ChatSession.user_id == user_id)
            .group_by(ChatSession.id)
            .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())
        ).all()
        return [
            {
                "id": row.id,
                "title": row.title,
                "created_at": row.created_at,
                "updated_at": row.updated_at,
                "message_count": row.message_count,
            }
            for row in rows
        ]

    def get_session_with_messages(
        self, session_id: str, user_id: str
    ) -> dict[str, Any]:
        """Session plus all messages with decoded metadata.

        Raises:
            NotFoundError: Missing or owned by someone else.
        """
        session = self.get_session(session_id, user_id)
        messages = []
        for m in session.messages:
            metadata = None
            if m.metadata_json:
                try:
                    metadata = json.loads(m.metadata_json)
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Corrupted metadata_json for message %s", m.id)
            messages.append({
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "metadata": metadata,
                "sequence": m.sequence,
                "created_at": m.created_at,
            })
        return {
            "session": {
                "id": session.id,
                "title": session.title,
                "created_at": session.created_at,
                "updated_at": session.updated_at,
                "message_count": len(messages),
            },
            "messages": messages,
        }

    def delete_session(self, session_id: str, user_id: str) -> None:
        """Delete a session with its messages and research state.

        Raises:
            NotFoundError: Missing or owned by someone else.
        """
        session = self.get_session(session_id, user_id)
        self._db.delete(session)
        self._db.commit()

    def update_session_title(self, session_id: str, title: str) -> bool:
        session = self._db.get(ChatSession, session_id)
        if session is None:
            return False
        session.title = title[:MAX_TITLE_LENGTH]
        session.updated_at = utc_now_iso()
        self._db.commit()
        return True


async def generate_session_title(
    session_id: str,
    user_message: str,
    assistant_message: str,
    llm: LLMCollaborator,
    session_factory: sessionmaker,
) -> None:
    """Replace the placeholder title with a short generated one.

    Background task with its own error boundary: failures are logged and
    the first-50-characters title stays.
    """
    try:
        response = await llm.generate_content(
            "Generate a concise 3-6 word title for this vehicle collection "
            "conversation. Return ONLY the title, no quotes or explanation.\n\n"
            f"User: {user_message[:200]}\n"
            f"Assistant: {assistant_message[:200]}",
            max_tokens=30,
            model=get_title_model(),
        )
        title = response.text.strip().strip('"').strip()
        if not title:
            return
        db = session_factory()
        try:
            ChatPersistenceService(db).update_session_title(session_id, title)
        finally:
            db.close()
        logger.info("Generated title for session %s: %s", session_id, title)
    except Exception as e:
        logger.warning("Title generation failed for session %s: %s", session_id, e)


# Strong references so detached tasks are not garbage-collected mid-flight.
_background_tasks: set[asyncio.Task] = set()


def schedule_title_generation(
    session_id: str,
    user_message: str,
    assistant_message: str,
    llm: LLMCollaborator,
    session_factory: sessionmaker,
) -> asyncio.Task | None:
    """Fire-and-forget title generation; never blocks or raises."""
    coro = generate_session_title(
        session_id, user_message, assistant_message, llm, session_factory
    )
    try:
        task = asyncio.create_task(coro)
    except RuntimeError as e:
        coro.close()
        logger.debug("Title generation not scheduled for %s: %s", session_id, e)
        return None
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
