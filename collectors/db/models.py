"""SQLAlchemy ORM models for The Collectors System.

Covers the records the assistant pipeline needs: users and their API
tokens, collections and membership, vehicles, chat sessions/messages and
the per-session research state. Uses SQLAlchemy 2.0 style with Mapped and
mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class VehicleStatus(str, Enum):
    """Lifecycle status of a vehicle in a collection."""

    active = "active"
    maintenance = "maintenance"
    stored = "stored"
    sold = "sold"
    traded = "traded"


ACTIVE_STATUSES = frozenset({VehicleStatus.active.value, VehicleStatus.maintenance.value})
DISPOSED_STATUSES = frozenset({VehicleStatus.sold.value, VehicleStatus.traded.value})


class VehicleType(str, Enum):
    motorcycle = "motorcycle"
    car = "car"
    boat = "boat"
    trailer = "trailer"
    other = "other"


class CollectionRole(str, Enum):
    """Membership roles. Owners and editors may modify vehicles."""

    owner = "owner"
    editor = "editor"
    viewer = "viewer"


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"


class ResearchStatus(str, Enum):
    """State of the two-phase product research flow for a chat session.

    Lifecycle: idle -> awaiting_refinement (discovery delivered)
               awaiting_refinement -> completed (recommendations delivered)
               completed/idle -> awaiting_refinement (new product question)
    """

    idle = "idle"
    awaiting_refinement = "awaiting_refinement"
    completed = "completed"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class User(Base):
    """Account owning collections and chat sessions."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    tokens: Mapped[list["ApiToken"]] = relationship(
        "ApiToken", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r})>"


class ApiToken(Base):
    """Hashed bearer token resolving to a user.

    Only the SHA-256 digest is stored; the plaintext is shown once at issue
    time.
    """

    __tablename__ = "api_tokens"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    revoked: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    last_used_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="tokens")

    __table_args__ = (Index("idx_api_tokens_user", "user_id"),)


class Collection(Base):
    """Named group of vehicles shared between members."""

    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    members: Mapped[list["CollectionMember"]] = relationship(
        "CollectionMember", back_populates="collection", cascade="all, delete-orphan"
    )
    vehicles: Mapped[list["Vehicle"]] = relationship(
        "Vehicle", back_populates="collection", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Collection(id={self.id!r}, name={self.name!r})>"


class CollectionMember(Base):
    """A user's role within a collection."""

    __tablename__ = "collection_members"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CollectionRole.viewer.value
    )
    joined_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    collection: Mapped["Collection"] = relationship("Collection", back_populates="members")

    __table_args__ = (
        UniqueConstraint("collection_id", "user_id", name="uq_collection_member"),
        Index("idx_collection_members_user", "user_id"),
    )


class Vehicle(Base):
    """A car, motorcycle, boat, trailer or other vehicle.

    Attributes:
        id: UUID primary key
        collection_id: Owning collection
        name: Display name chosen by the user
        vehicle_type: motorcycle, car, boat, trailer or other
        year/make/model/sub_model/nickname: Identification used for chat
            vehicle binding and retailer fitment context
        mileage: Free-form odometer reading
        tab_expiration: Registration tab expiration (YYYY-MM-DD)
        status: Lifecycle status (see VehicleStatus)
        maintenance_notes: What needs doing when status is maintenance
        sale_info_json: JSON blob with sale/trade details (date, amount, type, notes)
    """

    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    collection_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    vehicle_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VehicleType.motorcycle.value
    )
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    make: Mapped[str | None] = mapped_column(String(100), nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sub_model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nickname: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vin: Mapped[str | None] = mapped_column(String(50), nullable=True)
    plate_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    mileage: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tab_expiration: Mapped[str | None] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VehicleStatus.active.value
    )
    maintenance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    sale_info_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    purchase_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    purchase_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    estimated_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    collection: Mapped["Collection"] = relationship("Collection", back_populates="vehicles")

    __table_args__ = (
        Index("idx_vehicles_collection", "collection_id"),
        Index("idx_vehicles_status", "status"),
    )

    @property
    def sale_info(self) -> dict[str, Any] | None:
        """Decoded sale_info_json, or None when unset or corrupted."""
        if not self.sale_info_json:
            return None
        try:
            return json.loads(self.sale_info_json)
        except (json.JSONDecodeError, TypeError):
            return None

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id!r}, name={self.name!r}, status={self.status!r})>"


class ChatSession(Base):
    """Assistant conversation owned by one user.

    The title starts as the first 50 characters of the first message and
    is later replaced by a generated summary.
    """

    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chatsess_user_updated", "user_id", "updated_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    messages: Mapped[list["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.sequence",
    )
    research: Mapped[Optional["ResearchSession"]] = relationship(
        "ResearchSession",
        back_populates="chat_session",
        cascade="all, delete-orphan",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<ChatSession(id={self.id!r}, title={self.title!r})>"


class ChatMessage(Base):
    """Append-only chat message.

    Attributes:
        id: UUID primary key.
        session_id: FK to ChatSession.
        user_id: Author/owner of the conversation.
        role: 'user' or 'assistant'.
        content: Plain text content.
        metadata_json: Optional JSON payload (discovery/research results and
            researchState) used for rich rendering and phase continuity.
        sequence: Ordering within session (monotonically increasing).
        created_at: ISO8601 creation timestamp.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence", name="uq_chatmsg_session_seq"),
        Index("ix_chatmsg_session_seq", "session_id", "sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    session_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    session: Mapped[Optional["ChatSession"]] = relationship(
        "ChatSession", back_populates="messages"
    )

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(id={self.id!r}, session_id={self.session_id!r}, "
            f"role={self.role!r}, seq={self.sequence})>"
        )


class ResearchSession(Base):
    """Explicit product-research state for one chat session.

    Attributes:
        chat_session_id: FK to ChatSession (one row per session).
        status: ResearchStatus value.
        phase: Last phase run ('discovery' or 'product_finding').
        product_category: Query carried from discovery into product finding.
        vehicle_context_json: Bound vehicle, carried through both phases.
        discovery_result_json: Discovery output fed into product finding.
        user_preferences: Refinement text from the product-finding turn.
    """

    __tablename__ = "research_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    chat_session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ResearchStatus.idle.value
    )
    phase: Mapped[str | None] = mapped_column(String(30), nullable=True)
    product_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vehicle_context_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    discovery_result_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_preferences: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    chat_session: Mapped["ChatSession"] = relationship(
        "ChatSession", back_populates="research"
    )

    def __repr__(self) -> str:
        return (
            f"<ResearchSession(chat_session_id={self.chat_session_id!r}, "
            f"status={self.status!r}, phase={self.phase!r})>"
        )
