"""Tests for intent classification and vehicle binding."""

import pytest

from collectors.orchestrator.intent_classifier import (
    QueryIntent,
    classify_intent_fast,
    classify_intent_with_ai,
    find_vehicle_context,
    is_followup_request,
    parse_vehicle_mention,
    resolve_vehicle_context,
)

VEHICLES = [
    {
        "id": "v1",
        "name": "Red Rocket",
        "vehicle_type": "motorcycle",
        "year": 2019,
        "make": "Honda",
        "model": "CBR650F",
        "nickname": "Rocket",
    },
    {
        "id": "v2",
        "name": "Daily Driver",
        "vehicle_type": "car",
        "year": 2018,
        "make": "Toyota",
        "model": "Tacoma",
    },
    {
        "id": "v3",
        "name": "Adventure Bike",
        "vehicle_type": "motorcycle",
        "year": 2023,
        "make": "BMW",
        "model": "R1250GS",
    },
]


class TestClassifyIntentFast:
    @pytest.mark.parametrize(
        "message",
        [
            "What battery should I get for my CBR650F?",
            "Recommend a helmet",
            "Where can I buy brake pads?",
            "I need new tires",
        ],
    )
    def test_product_research(self, message):
        assert classify_intent_fast(message) == QueryIntent.product_research

    @pytest.mark.parametrize(
        "message",
        [
            "How many bikes do I have?",
            "When do my tabs expire?",
            "What's my battery status?",
            "List my vehicles",
        ],
    )
    def test_quick_question_wins_over_product_words(self, message):
        assert classify_intent_fast(message) == QueryIntent.quick_question

    @pytest.mark.parametrize("message", ["Hello there", "Thanks!", "lithium please"])
    def test_general_chat(self, message):
        assert classify_intent_fast(message) == QueryIntent.general_chat

    def test_followup_checked_first(self):
        assert is_followup_request("Show me more options")
        assert classify_intent_fast("Any other status to show?") == QueryIntent.product_research


class TestClassifyIntentWithAI:
    @pytest.mark.asyncio
    async def test_uses_model_answer(self, mock_llm):
        mock_llm.generate_structured.return_value = {
            "intent": "product_research",
            "vehicle_mentioned": "CBR",
        }

        result = await classify_intent_with_ai("thoughts on lithium?", mock_llm)

        assert result.intent == QueryIntent.product_research
        assert result.vehicle_mentioned == "CBR"
        assert mock_llm.generate_structured.await_args.kwargs["tool_name"] == "classify_intent"

    @pytest.mark.asyncio
    async def test_model_failure_falls_back_to_keywords(self, mock_llm):
        mock_llm.generate_structured.side_effect = RuntimeError("overloaded")

        result = await classify_intent_with_ai("How many bikes do I have?", mock_llm)

        assert result.intent == QueryIntent.quick_question
        assert result.vehicle_mentioned is None

    @pytest.mark.asyncio
    async def test_unknown_label_falls_back_to_keywords(self, mock_llm):
        mock_llm.generate_structured.return_value = {"intent": "shopping"}

        result = await classify_intent_with_ai("Recommend a helmet", mock_llm)

        assert result.intent == QueryIntent.product_research


class TestFindVehicleContext:
    def test_model_in_text(self):
        context = find_vehicle_context("what battery for my cbr650f", VEHICLES)
        assert context.id == "v1"
        assert context.year_make_model == "2019 Honda CBR650F"

    def test_exact_name(self):
        assert find_vehicle_context("Daily Driver", VEHICLES).id == "v2"

    def test_nickname_in_text(self):
        assert find_vehicle_context("the rocket needs tires", VEHICLES).id == "v1"

    def test_partial_name(self):
        assert find_vehicle_context("adventure", VEHICLES).id == "v3"

    def test_make_and_model(self):
        assert find_vehicle_context("bmw r1250gs chain", VEHICLES).id == "v3"

    def test_unique_make(self):
        assert find_vehicle_context("oil for my toyota", VEHICLES).id == "v2"

    def test_ambiguous_make_is_not_bound(self):
        vehicles = VEHICLES + [
            {"id": "v4", "name": "Commuter", "make": "Honda", "model": "Grom"}
        ]
        assert find_vehicle_context("my honda needs a battery", vehicles) is None

    def test_no_match(self):
        assert find_vehicle_context("hello", VEHICLES) is None
        assert find_vehicle_context("", VEHICLES) is None
        assert find_vehicle_context("cbr650f", []) is None


class TestParseVehicleMention:
    def test_year_make_model(self):
        context = parse_vehicle_mention("Looking at a 2021 Yamaha MT-07 for my wife")

        assert context.id is None
        assert context.name == "2021 Yamaha MT-07"
        assert context.year == 2021
        assert context.make == "Yamaha"
        assert context.model == "MT-07"
        assert context.vehicle_type == "other"

    def test_type_borrowed_from_same_make(self):
        context = parse_vehicle_mention("my 2008 Honda Shadow", VEHICLES)
        assert context.vehicle_type == "motorcycle"

    def test_type_borrowed_from_single_type_collection(self):
        bikes = [v for v in VEHICLES if v["vehicle_type"] == "motorcycle"]
        context = parse_vehicle_mention("a 2021 Yamaha MT-07", bikes)
        assert context.vehicle_type == "motorcycle"

    def test_mixed_collection_leaves_type_unknown(self):
        context = parse_vehicle_mention("a 2021 Yamaha MT-07", VEHICLES)
        assert context.vehicle_type == "other"

    def test_year_followed_by_filler_words(self):
        assert parse_vehicle_mention("I bought it in 2019 and the tires are worn") is None
        assert parse_vehicle_mention(None) is None


class TestResolveVehicleContext:
    def test_current_message_wins(self):
        history = [{"role": "user", "content": "tell me about my tacoma"}]
        context = resolve_vehicle_context("tires for the cbr650f?", history, VEHICLES)
        assert context.id == "v1"

    def test_falls_back_to_user_history_newest_first(self):
        history = [
            {"role": "user", "content": "tell me about my tacoma"},
            {"role": "assistant", "content": "Your Tacoma is due for service."},
            {"role": "user", "content": "and the CBR650F?"},
            {"role": "assistant", "content": "It's in good shape."},
        ]
        context = resolve_vehicle_context("what tires should I get?", history, VEHICLES)
        assert context.id == "v1"

    def test_model_mention_checked_before_history(self):
        history = [{"role": "user", "content": "tell me about my tacoma"}]
        context = resolve_vehicle_context(
            "what tires should I get?", history, VEHICLES, mentioned="Adventure Bike"
        )
        assert context.id == "v3"

    def test_assistant_messages_are_ignored(self):
        history = [{"role": "assistant", "content": "Your Tacoma is due for service."}]
        assert resolve_vehicle_context("what tires should I get?", history, VEHICLES) is None

    def test_free_text_mention_outside_collection(self):
        context = resolve_vehicle_context(
            "best battery for a 2015 Kawasaki Ninja?", [], VEHICLES
        )
        assert context.id is None
        assert context.make == "Kawasaki"
