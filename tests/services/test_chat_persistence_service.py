"""Tests for chat session and message persistence."""

import pytest
from sqlalchemy import select

from collectors.db.models import ChatMessage, ResearchSession
from collectors.errors import NotFoundError
from collectors.orchestrator.research_state import ResearchSessionStore, ResearchState
from collectors.services.chat_persistence_service import (
    ChatPersistenceService,
    generate_session_title,
    schedule_title_generation,
)
from collectors.services.llm_client import LLMResponse


@pytest.fixture
def service(test_db) -> ChatPersistenceService:
    return ChatPersistenceService(test_db)


class TestSessions:
    def test_create_session_uses_message_preview_as_title(self, service, owner):
        message = "What battery should I get for my 2019 Honda CBR650F this spring?"

        session = service.create_session(owner.id, message)

        assert session.user_id == owner.id
        assert session.title == message[:50]
        assert len(session.id) == 36

    def test_get_session_scoped_to_owner(self, service, owner, other_user):
        session = service.create_session(owner.id, "hello")

        assert service.get_session(session.id, owner.id).id == session.id
        with pytest.raises(NotFoundError, match="Chat session"):
            service.get_session(session.id, other_user.id)
        with pytest.raises(NotFoundError):
            service.get_session("missing", owner.id)

    def test_list_sessions_most_recent_first_with_counts(self, service, test_db, owner, other_user):
        older = service.create_session(owner.id, "older")
        newer = service.create_session(owner.id, "newer")
        service.create_session(other_user.id, "not mine")
        service.save_message(newer.id, owner.id, "user", "hi")
        service.save_message(newer.id, owner.id, "assistant", "hello")
        older.updated_at = "2026-01-01T00:00:00+00:00"
        newer.updated_at = "2026-02-01T00:00:00+00:00"
        test_db.commit()

        sessions = service.list_sessions(owner.id)

        assert [s["id"] for s in sessions] == [newer.id, older.id]
        assert [s["message_count"] for s in sessions] == [2, 0]

    def test_delete_session_removes_messages_and_research(self, service, test_db, owner):
        session = service.create_session(owner.id, "hi")
        service.save_message(session.id, owner.id, "user", "hi")
        ResearchSessionStore(test_db).save(session.id, ResearchState())

        service.delete_session(session.id, owner.id)

        assert test_db.scalars(select(ChatMessage)).all() == []
        assert test_db.scalars(select(ResearchSession)).all() == []

    def test_delete_foreign_session_is_not_found(self, service, owner, other_user):
        session = service.create_session(owner.id, "hi")

        with pytest.raises(NotFoundError):
            service.delete_session(session.id, other_user.id)

    def test_update_title_truncates(self, service, owner):
        session = service.create_session(owner.id, "hi")

        assert service.update_session_title(session.id, "x" * 300)
        assert len(session.title) == 255
        assert not service.update_session_title("missing", "title")


class TestMessages:
    def test_sequence_increments_per_session(self, service, owner):
        first = service.create_session(owner.id, "a")
        second = service.create_session(owner.id, "b")

        m1 = service.save_message(first.id, owner.id, "user", "one")
        m2 = service.save_message(first.id, owner.id, "assistant", "two")
        m3 = service.save_message(second.id, owner.id, "user", "three")

        assert (m1.sequence, m2.sequence, m3.sequence) == (1, 2, 1)

    def test_recent_messages_oldest_first(self, service, owner):
        session = service.create_session(owner.id, "a")
        for i in range(5):
            service.save_message(session.id, owner.id, "user", f"m{i}")

        recent = service.recent_messages(session.id, limit=3)

        assert [m.content for m in recent] == ["m2", "m3", "m4"]

    def test_session_with_messages_decodes_metadata(self, service, test_db, owner):
        session = service.create_session(owner.id, "a")
        service.save_message(session.id, owner.id, "user", "battery?")
        service.save_message(
            session.id, owner.id, "assistant", "options", {"type": "discovery"}
        )
        broken = service.save_message(session.id, owner.id, "assistant", "oops")
        broken.metadata_json = "{not json"
        test_db.commit()
        test_db.expire_all()

        detail = service.get_session_with_messages(session.id, owner.id)

        assert detail["session"]["message_count"] == 3
        assert [m["metadata"] for m in detail["messages"]] == [None, {"type": "discovery"}, None]
        assert [m["sequence"] for m in detail["messages"]] == [1, 2, 3]


class TestTitleGeneration:
    @pytest.mark.asyncio
    async def test_generated_title_replaces_preview(
        self, service, test_db, session_factory, owner, mock_llm
    ):
        session = service.create_session(owner.id, "What battery should I get?")
        mock_llm.generate_content.return_value = LLMResponse(text='"CBR650F Battery Options"')

        await generate_session_title(
            session.id, "What battery should I get?", "Here are options", mock_llm, session_factory
        )

        test_db.expire_all()
        assert service.get_session(session.id, owner.id).title == "CBR650F Battery Options"
        assert mock_llm.generate_content.await_args.kwargs["max_tokens"] == 30

    @pytest.mark.asyncio
    async def test_failure_keeps_preview_title(
        self, service, test_db, session_factory, owner, mock_llm
    ):
        session = service.create_session(owner.id, "What battery should I get?")
        mock_llm.generate_content.side_effect = RuntimeError("rate limited")

        await generate_session_title(session.id, "q", "a", mock_llm, session_factory)

        test_db.expire_all()
        assert service.get_session(session.id, owner.id).title == "What battery should I get?"

    @pytest.mark.asyncio
    async def test_schedule_runs_in_background(self, service, session_factory, owner, mock_llm):
        session = service.create_session(owner.id, "hi")
        mock_llm.generate_content.return_value = LLMResponse(text="Greeting")

        task = schedule_title_generation(session.id, "hi", "hello", mock_llm, session_factory)
        await task

        mock_llm.generate_content.assert_awaited_once()

    def test_schedule_without_event_loop_is_skipped(self, session_factory, mock_llm):
        assert schedule_title_generation("s", "hi", "hello", mock_llm, session_factory) is None
