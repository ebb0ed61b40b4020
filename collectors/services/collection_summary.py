"""Deterministic collection summary, attention items and chat suggestions.

The summary is plain text embedded in the assistant's system prompt.
Given the same vehicles and the same ``today`` it is byte-identical.
"""

import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from collectors.db.models import (
    ACTIVE_STATUSES,
    DISPOSED_STATUSES,
    VehicleStatus,
    VehicleType,
)
from collectors.utils.dates import EXPIRATION_SOON_DAYS, days_until_expiration
from collectors.utils.vehicles import vehicle_field

SUGGESTION_COUNT = 4

NO_VEHICLE_SUGGESTIONS = (
    "What can you help me with?",
    "How do I add my first vehicle?",
    "What features does this app have?",
    "Tell me about vehicle maintenance schedules",
)

UNAUTHENTICATED_SUGGESTIONS = (
    "What can you help me with?",
    "How do I manage my vehicle collection?",
    "What features does this app have?",
    "Tell me about vehicle maintenance",
)

ERROR_SUGGESTIONS = (
    "Give me an overview of my collection",
    "Which vehicles need attention right now?",
    "What maintenance should I do before riding season?",
    "What features does this app have?",
)

OVERVIEW_SUGGESTION = "Give me an overview of my collection"

GENERAL_SUGGESTIONS = (
    "Which vehicles need attention right now?",
    "What maintenance should I do before riding season?",
    "Show me my collection's total value",
    "What's the status of all my tabs?",
)

PRODUCT_QUESTIONS = {
    VehicleType.motorcycle.value: (
        "What battery should I get for my {name}?",
        "What are the best tires for my {name}?",
        "What oil should I use in my {name}?",
    ),
    VehicleType.car.value: (
        "What are the best tires for my {name}?",
        "What oil should I use in my {name}?",
        "What battery fits my {name}?",
    ),
    VehicleType.boat.value: (
        "What maintenance does my {name} need before the season?",
        "What battery should I get for my {name}?",
    ),
    VehicleType.trailer.value: (
        "What tires should I get for my {name}?",
        "What maintenance does my {name} need?",
    ),
    VehicleType.other.value: ("What maintenance does my {name} need?",),
}

SYSTEM_PROMPT_TEMPLATE = """You are a helpful assistant for a vehicle collection management app called "The Collectors System".
You help users manage their motorcycles, cars, boats, trailers, and other vehicles.
You have access to their complete collection data below and can provide personalized insights, recommendations, and answers.

Key capabilities:
- Provide specific information about any vehicle in their collection
- Alert about upcoming tab expirations or overdue maintenance
- Suggest maintenance schedules based on mileage and vehicle type
- Provide general vehicle care advice
- Research parts, accessories, and maintenance info using web search when asked about specific products or recommendations for their vehicles (use the year/make/model from their collection data)

Be friendly, concise, and helpful. Reference specific vehicles by name when relevant.
Use the detailed data below to give personalized, accurate responses.

IMPORTANT: Do NOT use any markdown formatting in your responses. No bold, italics, headers, bullet points, or code blocks. Write in plain text only using regular sentences and paragraphs.

{collection_summary}"""


@dataclass
class AttentionItems:
    """Vehicles the user should look at, each list in collection order."""

    expired_tabs: list[Any] = field(default_factory=list)
    expiring_tabs: list[Any] = field(default_factory=list)
    needs_maintenance: list[Any] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.expired_tabs or self.expiring_tabs or self.needs_maintenance)


def _status(vehicle: Any) -> str:
    return vehicle_field(vehicle, "status") or VehicleStatus.active.value


def _name(vehicle: Any) -> str:
    return vehicle_field(vehicle, "name") or "Unnamed vehicle"


def find_attention_items(
    vehicles: Sequence[Any], today: date | None = None
) -> AttentionItems:
    """Expired tabs (days < 0) and tabs expiring within 30 days (0-30) on
    active or in-maintenance vehicles, plus every vehicle in maintenance.
    """
    items = AttentionItems()
    for vehicle in vehicles:
        status = _status(vehicle)
        if status == VehicleStatus.maintenance.value:
            items.needs_maintenance.append(vehicle)
        if status not in ACTIVE_STATUSES:
            continue
        days = days_until_expiration(vehicle_field(vehicle, "tab_expiration"), today=today)
        if days is None:
            continue
        if days < 0:
            items.expired_tabs.append(vehicle)
        elif days <= EXPIRATION_SOON_DAYS:
            items.expiring_tabs.append(vehicle)
    return items


def _tab_status(days: int | None) -> str:
    if days is None:
        return "No expiration set"
    if days < 0:
        return f"EXPIRED {abs(days)} days ago"
    if days <= EXPIRATION_SOON_DAYS:
        return f"Expires in {days} days"
    return f"Valid ({days} days)"


def _vehicle_details(vehicle: Any, today: date | None) -> str:
    year_make_model = " ".join(
        str(p)
        for p in (
            vehicle_field(vehicle, "year"),
            vehicle_field(vehicle, "make"),
            vehicle_field(vehicle, "model"),
        )
        if p
    )
    lines = [
        f"{_name(vehicle)} ({_status(vehicle)})",
        f"- Type: {vehicle_field(vehicle, 'vehicle_type') or VehicleType.motorcycle.value}",
        f"- Year/Make/Model: {year_make_model or 'Not specified'}",
    ]
    optional = (
        ("nickname", 'Nickname: "{}"'),
        ("mileage", "Mileage: {}"),
        ("plate_number", "Plate: {}"),
    )
    for attr, template in optional:
        value = vehicle_field(vehicle, attr)
        if value:
            lines.append("- " + template.format(value))
    days = days_until_expiration(vehicle_field(vehicle, "tab_expiration"), today=today)
    lines.append(f"- Tab status: {_tab_status(days)}")
    if vehicle_field(vehicle, "notes"):
        lines.append(f"- Notes: {vehicle_field(vehicle, 'notes')}")
    if vehicle_field(vehicle, "maintenance_notes"):
        lines.append(f"- Maintenance notes: {vehicle_field(vehicle, 'maintenance_notes')}")
    return "\n".join(lines)


def build_collection_summary(
    vehicles: Sequence[Any], today: date | None = None
) -> str:
    """Counts, attention items and per-vehicle details as plain text."""
    if not vehicles:
        return "The user has no vehicles in their collection yet."

    active = [v for v in vehicles if _status(v) in ACTIVE_STATUSES]
    disposed = [v for v in vehicles if _status(v) in DISPOSED_STATUSES]
    attention = find_attention_items(vehicles, today=today)

    lines = [
        "USER'S VEHICLE COLLECTION",
        "",
        "Overview",
        f"- Total vehicles: {len(vehicles)}",
        f"- Active vehicles: {len(active)}",
        f"- Sold/traded: {len(disposed)}",
        "",
        "Vehicles Needing Attention",
    ]
    if attention.expired_tabs:
        lines.append(
            f"- EXPIRED TABS ({len(attention.expired_tabs)}): "
            + ", ".join(_name(v) for v in attention.expired_tabs)
        )
    else:
        lines.append("- No expired tabs")
    if attention.expiring_tabs:
        lines.append(
            f"- Tabs expiring soon ({len(attention.expiring_tabs)}): "
            + ", ".join(_name(v) for v in attention.expiring_tabs)
        )
    if attention.needs_maintenance:
        described = []
        for v in attention.needs_maintenance:
            notes = vehicle_field(v, "maintenance_notes")
            described.append(f"{_name(v)} ({notes})" if notes else _name(v))
        lines.append(
            f"- Needs maintenance ({len(attention.needs_maintenance)}): "
            + ", ".join(described)
        )
    else:
        lines.append("- No maintenance needed")

    lines += ["", "Vehicle Details"]
    for vehicle in vehicles:
        lines += ["", _vehicle_details(vehicle, today)]
    return "\n".join(lines)


def build_system_prompt(
    collection_summary: str, history: Sequence[Any] = ()
) -> str:
    """System prompt with the collection summary and recent conversation."""
    prompt = SYSTEM_PROMPT_TEMPLATE.format(collection_summary=collection_summary)
    history_lines = [
        f"{'User' if vehicle_field(m, 'role') == 'user' else 'Assistant'}: "
        f"{vehicle_field(m, 'content')}"
        for m in history
    ]
    if history_lines:
        prompt += "\n\nRecent Conversation\n" + "\n".join(history_lines)
    return prompt


def generate_suggestions(
    vehicles: Sequence[Any],
    today: date | None = None,
    rng: random.Random | None = None,
) -> list[str]:
    """Exactly four prompts, most urgent first.

    Priority: expired tabs, maintenance, tabs expiring soon, a product
    question about an active vehicle, collection overview, then general
    prompts.
    """
    if not vehicles:
        return list(NO_VEHICLE_SUGGESTIONS)

    rng = rng or random.Random()
    attention = find_attention_items(vehicles, today=today)
    suggestions: list[str] = []

    if attention.expired_tabs:
        suggestions.append(
            f"My {_name(attention.expired_tabs[0])} tabs are expired - what should I do?"
        )

    if attention.needs_maintenance:
        vehicle = attention.needs_maintenance[0]
        notes = vehicle_field(vehicle, "maintenance_notes")
        if notes:
            suggestions.append(f"Help me fix the {_name(vehicle)}: {notes}")
        else:
            suggestions.append(f"What maintenance does my {_name(vehicle)} need?")

    if attention.expiring_tabs and len(suggestions) < 2:
        vehicle = attention.expiring_tabs[0]
        days = days_until_expiration(vehicle_field(vehicle, "tab_expiration"), today=today)
        suggestions.append(
            f"My {_name(vehicle)} tabs expire in {days} days - remind me what I need"
        )

    if len(suggestions) < 3:
        active = [v for v in vehicles if _status(v) == VehicleStatus.active.value]
        if active:
            vehicle = rng.choice(active)
            vehicle_type = vehicle_field(vehicle, "vehicle_type") or VehicleType.motorcycle.value
            questions = PRODUCT_QUESTIONS.get(vehicle_type, PRODUCT_QUESTIONS[VehicleType.other.value])
            suggestions.append(rng.choice(questions).format(name=_name(vehicle)))

    if len(suggestions) < SUGGESTION_COUNT:
        suggestions.append(OVERVIEW_SUGGESTION)

    available = [p for p in GENERAL_SUGGESTIONS if p not in suggestions]
    rng.shuffle(available)
    while len(suggestions) < SUGGESTION_COUNT and available:
        suggestions.append(available.pop())

    return suggestions[:SUGGESTION_COUNT]
