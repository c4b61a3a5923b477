"""Pytest configuration and fixtures for API integration tests.

These tests use FastAPI TestClient on an app built without lifespan.
The engine is wired with in-process fakes (LLM, transport, discovery).
"""

import pytest
from fastapi.testclient import TestClient

from adaptive_tools.api.main import create_app
from adaptive_tools.core.engine import ToolEngine
from tests.mocks.fakes import FakeTransport


@pytest.fixture
def engine(fake_llm, discovery, schema_cache):
    engine = ToolEngine(fake_llm, FakeTransport(), discovery, schema_cache)
    engine.refresh_scheduler.delay_seconds = 0
    return engine


@pytest.fixture
def client(engine):
    """TestClient with the test engine attached to app.state."""
    app = create_app(with_lifespan=False)
    app.state.engine = engine
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def warm_client(client):
    """Client whose schema cache already holds every discovered tool."""
    response = client.post("/api/v1/schemas/refresh")
    assert response.status_code == 200
    return client
