"""Fixtures for API route tests.

The FastAPI app runs against the in-memory test database with the LLM
and retailer registry replaced by mocks.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from collectors.api.main import app
from collectors.api.middleware.auth import reset_rate_limiter
from collectors.api.routes.chat import get_llm, get_registry
from collectors.db.connection import get_db, get_session_factory
from collectors.services.auth_service import issue_token


@pytest.fixture
def registry() -> MagicMock:
    registry = MagicMock()
    registry.execute_all_tools_for_vehicle = AsyncMock(return_value=[])
    return registry


@pytest.fixture
def client(test_db, session_factory, mock_llm, registry):
    """TestClient with database, LLM and registry dependencies overridden."""

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_llm] = lambda: mock_llm
    app.dependency_overrides[get_registry] = lambda: registry
    reset_rate_limiter()

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
    reset_rate_limiter()


@pytest.fixture
def auth_headers(test_db, owner) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(test_db, owner.id)}"}


@pytest.fixture
def other_headers(test_db, other_user) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(test_db, other_user.id)}"}
