"""Database module for collection, chat and research persistence."""

from collectors.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from collectors.db.models import (
    ApiToken,
    ChatMessage,
    ChatSession,
    Collection,
    CollectionMember,
    CollectionRole,
    MessageRole,
    ResearchSession,
    ResearchStatus,
    User,
    Vehicle,
    VehicleStatus,
    VehicleType,
)

__all__ = [
    # Models
    "User",
    "ApiToken",
    "Collection",
    "CollectionMember",
    "Vehicle",
    "ChatSession",
    "ChatMessage",
    "ResearchSession",
    # Enums
    "VehicleStatus",
    "VehicleType",
    "CollectionRole",
    "MessageRole",
    "ResearchStatus",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
