"""Intent classification and vehicle binding for chat messages.

The fast classifier is keyword based and runs on every turn. The AI
classifier asks the model and falls back to the fast path on any failure.

Vehicle binding scans the current message, then earlier user messages
newest-first, for a vehicle from the user's collection. A free-form
"YYYY Make Model" mention is used when nothing in the collection matches.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from collectors.orchestrator.models import VehicleContext
from collectors.services.llm_client import LLMCollaborator
from collectors.utils.vehicles import vehicle_field

logger = logging.getLogger(__name__)


class QueryIntent(str, Enum):
    quick_question = "quick_question"
    product_research = "product_research"
    general_chat = "general_chat"


# Requests for more product options; checked before everything else.
FOLLOWUP_RESEARCH_PATTERNS = (
    "other options",
    "more options",
    "any other",
    "what else",
    "alternatives",
    "another",
    "different",
)

# Questions about the user's own collection data.
QUICK_QUESTION_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"how many",
        r"how much.*have",
        r"what is my",
        r"what's my",
        r"list my",
        r"show my",
        r"tell me about my",
        r"which.*do i have",
        r"when.*expire",
        r"expired",
        r"expiring",
        r"maintenance.*needed",
        r"needs.*maintenance",
        r"status",
        r"mileage",
        r"plate",
        r"vin",
        r"registration",
    )
)

PRODUCT_RESEARCH_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"best", r"recommend", r"recommendation", r"buy", r"purchase",
        r"what.*should.*get", r"what.*battery", r"what.*tire", r"what.*oil",
        r"which.*should", r"where.*buy", r"where.*find", r"price", r"cost",
        r"compare", r"comparison", r"review", r"upgrade", r"replacement",
        r"part", r"parts", r"accessory", r"accessories", r"gear",
        r"equipment", r"tool", r"tools", r"product", r"products",
        r"options", r"vs", r"versus",
        r"needs.*battery", r"needs.*tire", r"needs.*oil",
        r"need.*battery", r"need.*tire", r"need.*oil",
        r"new battery", r"new tire", r"new tires", r"new oil",
        r"fix", r"repair", r"replace",
        r"\bbattery\b", r"\btire\b", r"\btires\b",
        r"get.*link", r"find.*link", r"link to", r"where can i get",
        r"where to get", r"where to buy", r"shop for", r"order",
        r"amazon", r"revzilla",
    )
)


def is_followup_request(message: str) -> bool:
    """True when the user is asking for more or different product options."""
    lowered = message.lower()
    return any(pattern in lowered for pattern in FOLLOWUP_RESEARCH_PATTERNS)


def classify_intent_fast(message: str) -> QueryIntent:
    """Keyword classification.

    Order matters: follow-up requests, then collection questions, then
    product research. "What's my battery status" is a quick question.
    """
    if is_followup_request(message):
        return QueryIntent.product_research
    if any(p.search(message) for p in QUICK_QUESTION_PATTERNS):
        return QueryIntent.quick_question
    if any(p.search(message) for p in PRODUCT_RESEARCH_PATTERNS):
        return QueryIntent.product_research
    return QueryIntent.general_chat


@dataclass
class IntentClassification:
    intent: QueryIntent
    vehicle_mentioned: str | None = None


INTENT_TOOL_NAME = "classify_intent"
INTENT_SCHEMA = {
    "type": "object",
    "properties": {
        "intent": {
            "type": "string",
            "enum": [i.value for i in QueryIntent],
        },
        "vehicle_mentioned": {
            "type": ["string", "null"],
            "description": "Vehicle name or type mentioned, if any",
        },
    },
    "required": ["intent"],
}


async def classify_intent_with_ai(
    message: str, llm: LLMCollaborator
) -> IntentClassification:
    """Classify with the model; any failure falls back to the fast path."""
    prompt = f"""Classify this user message into one of three categories:
1. "product_research" - User is asking about products, parts, accessories, gear, or recommendations to buy
2. "quick_question" - User is asking about their specific vehicle collection data (counts, statuses, expirations, etc.)
3. "general_chat" - General conversation or questions not fitting above categories

Also extract the vehicle name or type mentioned if any.

User message: "{message}\""""
    try:
        data = await llm.generate_structured(
            prompt, tool_name=INTENT_TOOL_NAME, schema=INTENT_SCHEMA
        )
        return IntentClassification(
            intent=QueryIntent(data["intent"]),
            vehicle_mentioned=data.get("vehicle_mentioned") or None,
        )
    except Exception as e:
        logger.warning("AI intent classification failed, using keywords: %s", e)
        return IntentClassification(intent=classify_intent_fast(message))


def _lower(vehicle: Any, name: str) -> str:
    value = vehicle_field(vehicle, name)
    return str(value).lower() if value else ""


def to_vehicle_context(vehicle: Any) -> VehicleContext:
    return VehicleContext(
        id=vehicle_field(vehicle, "id"),
        name=vehicle_field(vehicle, "name") or "",
        vehicle_type=vehicle_field(vehicle, "vehicle_type") or "other",
        year=vehicle_field(vehicle, "year"),
        make=vehicle_field(vehicle, "make"),
        model=vehicle_field(vehicle, "model"),
        nickname=vehicle_field(vehicle, "nickname"),
    )


def find_vehicle_context(
    search_text: str | None, vehicles: Sequence[Any]
) -> VehicleContext | None:
    """Find the collection vehicle referred to in ``search_text``.

    Tried in order, first hit wins: exact name or nickname, model
    contained in the text, nickname contained, name containment either way,
    make plus model, and finally make alone when exactly one vehicle has
    that make.
    """
    if not search_text or not vehicles:
        return None
    term = search_text.lower()

    def first(predicate) -> Any | None:
        return next((v for v in vehicles if predicate(v)), None)

    match = first(lambda v: term in (_lower(v, "name"), _lower(v, "nickname")))
    if match is None:
        match = first(lambda v: _lower(v, "model") and _lower(v, "model") in term)
    if match is None:
        match = first(lambda v: _lower(v, "nickname") and _lower(v, "nickname") in term)
    if match is None:
        match = first(
            lambda v: _lower(v, "name")
            and (term in _lower(v, "name") or _lower(v, "name") in term)
        )
    if match is None:
        match = first(
            lambda v: _lower(v, "make")
            and _lower(v, "model")
            and f"{_lower(v, 'make')} {_lower(v, 'model')}" in term
        )
    if match is None:
        same_make = [v for v in vehicles if _lower(v, "make") and _lower(v, "make") in term]
        if len(same_make) == 1:
            match = same_make[0]

    return to_vehicle_context(match) if match is not None else None


_VEHICLE_MENTION = re.compile(
    r"\b((?:19|20)\d{2})\s+([A-Za-z][\w&-]*)\s+([A-Za-z0-9][\w-]*)"
)
_NOT_A_MAKE = frozenset({"and", "or", "to", "the", "for", "in", "is", "was", "model", "with"})


def _infer_vehicle_type(make: str, vehicles: Sequence[Any]) -> str:
    """Guess the type of a vehicle that is not in the collection.

    Uses the type of same-make collection vehicles, else the collection's
    only type, else "other".
    """
    same_make = {
        vehicle_field(v, "vehicle_type") for v in vehicles if _lower(v, "make") == make.lower()
    }
    types = same_make or {vehicle_field(v, "vehicle_type") for v in vehicles}
    if len(types) == 1:
        return next(iter(types)) or "other"
    return "other"


def parse_vehicle_mention(
    text: str | None, vehicles: Sequence[Any] = ()
) -> VehicleContext | None:
    """Pick up a "2019 Honda CBR650F" style mention outside the collection.

    The vehicle type is borrowed from ``vehicles`` (see ``_infer_vehicle_type``)
    so a bike in a motorcycle collection still reaches motorcycle retailers.
    """
    if not text:
        return None
    for match in _VEHICLE_MENTION.finditer(text):
        year, make, model = match.groups()
        if make.lower() in _NOT_A_MAKE or model.lower() in _NOT_A_MAKE:
            continue
        return VehicleContext(
            id=None,
            name=f"{year} {make} {model}",
            vehicle_type=_infer_vehicle_type(make, vehicles),
            year=int(year),
            make=make,
            model=model,
        )
    return None


def resolve_vehicle_context(
    message: str,
    history: Sequence[Any],
    vehicles: Sequence[Any],
    mentioned: str | None = None,
) -> VehicleContext | None:
    """Bind the conversation to a vehicle.

    Args:
        message: Current user message.
        history: Prior messages in chronological order (dicts or rows with
            ``role`` and ``content``).
        vehicles: Vehicles in the active collection.
        mentioned: Vehicle the intent model picked out of the message.

    Returns:
        The first vehicle found scanning the current message, the model's
        mention, then user messages newest-first. None if nothing matches.
    """
    texts = [message, mentioned] + [
        vehicle_field(m, "content")
        for m in reversed(history)
        if vehicle_field(m, "role") == "user"
    ]
    for text in texts:
        context = find_vehicle_context(text, vehicles) or parse_vehicle_mention(
            text, vehicles
        )
        if context is not None:
            return context
    return None
