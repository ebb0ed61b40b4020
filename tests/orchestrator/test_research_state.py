"""Tests for the research state machine and its persistence."""

import json

import pytest

from collectors.db.models import ChatMessage, ChatSession, ResearchStatus
from collectors.orchestrator.intent_classifier import QueryIntent
from collectors.orchestrator.models import DiscoveryResult, ProductType, VehicleContext
from collectors.orchestrator.research_state import (
    ResearchPhase,
    ResearchSessionStore,
    ResearchState,
    complete_product_finding,
    next_phase,
    reset,
    start_discovery,
)

CBR = VehicleContext(
    id="v1", name="Red Rocket", vehicle_type="motorcycle", year=2019, make="Honda", model="CBR650F"
)
DISCOVERY = DiscoveryResult(
    oem_spec="YTZ10S",
    product_types=[ProductType(name="AGM", description="Sealed lead acid")],
    key_considerations=["Cold cranking amps"],
    popular_brands=["Yuasa"],
)


def _awaiting() -> ResearchState:
    return start_discovery("battery", CBR, DISCOVERY)


class TestTransitions:
    def test_start_discovery(self):
        state = _awaiting()

        assert state.status == ResearchStatus.awaiting_refinement
        assert state.phase == ResearchPhase.discovery
        assert state.product_category == "battery"
        assert state.vehicle_id == "v1"

    def test_complete_product_finding_keeps_context(self):
        state = complete_product_finding(_awaiting(), "lithium please")

        assert state.status == ResearchStatus.completed
        assert state.phase == ResearchPhase.product_finding
        assert state.user_preferences == "lithium please"
        assert state.vehicle_context == CBR
        assert state.discovery_result == DISCOVERY

    def test_reset(self):
        assert reset() == ResearchState()
        assert reset().status == ResearchStatus.idle

    def test_to_metadata_is_camel_case_json(self):
        metadata = _awaiting().to_metadata()

        assert metadata["status"] == "awaiting_refinement"
        assert metadata["productCategory"] == "battery"
        assert metadata["vehicleContext"]["vehicleType"] == "motorcycle"
        assert metadata["discoveryResult"]["oemSpec"] == "YTZ10S"
        json.dumps(metadata)


class TestNextPhase:
    def test_idle_product_question_starts_discovery(self):
        assert next_phase(ResearchState(), QueryIntent.product_research) == ResearchPhase.discovery

    def test_idle_general_chat_is_direct(self):
        assert next_phase(ResearchState(), QueryIntent.general_chat) is None

    @pytest.mark.parametrize(
        "intent", [QueryIntent.general_chat, QueryIntent.product_research]
    )
    def test_awaiting_refinement_goes_to_product_finding(self, intent):
        assert next_phase(_awaiting(), intent) == ResearchPhase.product_finding

    def test_collection_question_interrupts_refinement(self):
        assert next_phase(_awaiting(), QueryIntent.quick_question) is None

    def test_forced_research_overrides_quick_question(self):
        assert (
            next_phase(_awaiting(), QueryIntent.quick_question, research_mode=True)
            == ResearchPhase.product_finding
        )

    def test_research_mode_off_never_researches(self):
        assert next_phase(_awaiting(), QueryIntent.product_research, research_mode=False) is None
        assert next_phase(ResearchState(), QueryIntent.product_research, research_mode=False) is None

    def test_research_mode_on_starts_discovery(self):
        assert (
            next_phase(ResearchState(), QueryIntent.general_chat, research_mode=True)
            == ResearchPhase.discovery
        )

    def test_completed_follow_up_finds_more_products(self):
        completed = complete_product_finding(_awaiting(), "lithium")
        assert (
            next_phase(completed, QueryIntent.product_research, follow_up=True)
            == ResearchPhase.product_finding
        )

    def test_other_product_while_awaiting_starts_discovery(self):
        assert (
            next_phase(_awaiting(), QueryIntent.product_research, product="tire")
            == ResearchPhase.discovery
        )

    @pytest.mark.parametrize("product", ["battery", "batteries", None])
    def test_same_product_while_awaiting_is_a_refinement(self, product):
        assert (
            next_phase(_awaiting(), QueryIntent.general_chat, product=product)
            == ResearchPhase.product_finding
        )

    def test_completed_follow_up_for_other_product_starts_discovery(self):
        completed = complete_product_finding(_awaiting(), "lithium")
        assert (
            next_phase(completed, QueryIntent.product_research, follow_up=True, product="tires")
            == ResearchPhase.discovery
        )

    def test_completed_new_question_starts_discovery(self):
        completed = complete_product_finding(_awaiting(), "lithium")
        assert next_phase(completed, QueryIntent.product_research) == ResearchPhase.discovery


@pytest.fixture
def chat_session(test_db, owner) -> ChatSession:
    session = ChatSession(id="chat-1", user_id=owner.id, title="Battery")
    test_db.add(session)
    test_db.commit()
    return session


class TestResearchSessionStore:
    def test_defaults_to_idle(self, test_db, chat_session):
        assert ResearchSessionStore(test_db).load(chat_session.id) == ResearchState()

    def test_save_and_load_round_trip(self, test_db, chat_session):
        store = ResearchSessionStore(test_db)
        store.save(chat_session.id, _awaiting())

        loaded = store.load(chat_session.id)

        assert loaded == _awaiting()

    def test_save_updates_existing_row(self, test_db, chat_session):
        store = ResearchSessionStore(test_db)
        store.save(chat_session.id, _awaiting())
        store.save(chat_session.id, reset())

        assert store.load(chat_session.id).status == ResearchStatus.idle
        assert chat_session.research is not None

    def test_infers_state_from_last_assistant_metadata(self, test_db, chat_session):
        metadata = {"type": "discovery", "researchState": _awaiting().to_metadata()}
        test_db.add(
            ChatMessage(
                session_id=chat_session.id,
                user_id=chat_session.user_id,
                role="assistant",
                content="Here are your options",
                metadata_json=json.dumps(metadata),
                sequence=2,
            )
        )
        test_db.commit()

        loaded = ResearchSessionStore(test_db).load(chat_session.id)

        assert loaded.status == ResearchStatus.awaiting_refinement
        assert loaded.product_category == "battery"
        assert loaded.vehicle_id == "v1"

    def test_phase_only_metadata_implies_status(self, test_db, chat_session):
        metadata = {"researchState": {"phase": "product_finding", "productCategory": "tire"}}
        test_db.add(
            ChatMessage(
                session_id=chat_session.id,
                user_id=chat_session.user_id,
                role="assistant",
                content="Top picks",
                metadata_json=json.dumps(metadata),
                sequence=1,
            )
        )
        test_db.commit()

        loaded = ResearchSessionStore(test_db).load(chat_session.id)

        assert loaded.status == ResearchStatus.completed

    def test_malformed_metadata_is_ignored(self, test_db, chat_session):
        test_db.add(
            ChatMessage(
                session_id=chat_session.id,
                user_id=chat_session.user_id,
                role="assistant",
                content="Hi",
                metadata_json=json.dumps({"researchState": {"status": "bogus"}}),
                sequence=1,
            )
        )
        test_db.commit()

        assert ResearchSessionStore(test_db).load(chat_session.id) == ResearchState()
