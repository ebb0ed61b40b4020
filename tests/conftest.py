"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite database (StaticPool so every session sees the same data)
- Seeded users, collections and vehicles
- A mock LLM collaborator
"""

import os

# Keep the module-level engine off the working directory during tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from collections.abc import Generator
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from collectors.db.models import (
    Base,
    Collection,
    CollectionMember,
    CollectionRole,
    User,
    Vehicle,
)
from collectors.services.llm_client import LLMResponse

# Fixed reference date for clock-dependent assertions.
TODAY = date(2026, 6, 15)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def test_db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create an in-memory SQLite database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def owner(test_db: Session) -> User:
    user = User(id="user-owner", email="owner@example.com", display_name="Owner")
    test_db.add(user)
    test_db.commit()
    return user


@pytest.fixture
def other_user(test_db: Session) -> User:
    user = User(id="user-other", email="other@example.com", display_name="Other")
    test_db.add(user)
    test_db.commit()
    return user


@pytest.fixture
def collection(test_db: Session, owner: User) -> Collection:
    coll = Collection(id="coll-1", name="Garage", owner_id=owner.id)
    test_db.add(coll)
    test_db.commit()
    return coll


@pytest.fixture
def add_vehicle(test_db: Session, collection: Collection):
    """Factory adding a vehicle to the default collection."""

    def _add(**fields) -> Vehicle:
        fields.setdefault("collection_id", collection.id)
        fields.setdefault("vehicle_type", "motorcycle")
        vehicle = Vehicle(**fields)
        test_db.add(vehicle)
        test_db.commit()
        return vehicle

    return _add


@pytest.fixture
def add_member(test_db: Session):
    """Factory adding a member with a role to a collection."""

    def _add(collection_id: str, user_id: str, role: CollectionRole) -> CollectionMember:
        member = CollectionMember(
            collection_id=collection_id, user_id=user_id, role=role.value
        )
        test_db.add(member)
        test_db.commit()
        return member

    return _add


# ============================================================================
# LLM Fixtures
# ============================================================================


@pytest.fixture
def mock_llm() -> MagicMock:
    """LLM collaborator whose coroutines are AsyncMocks.

    Tests set ``generate_content.return_value`` / ``side_effect`` and
    ``generate_structured.return_value`` as needed.
    """
    llm = MagicMock()
    llm.generate_content = AsyncMock(return_value=LLMResponse(text="Sure thing.", sources=[]))
    llm.generate_structured = AsyncMock(return_value={})
    return llm
