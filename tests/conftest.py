"""Pytest configuration and shared fixtures for all tests."""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from adaptive_tools.core.services.execution.classifier import ErrorClassifier
from adaptive_tools.core.services.execution.inferencer import ParameterInferencer
from adaptive_tools.core.services.execution.retry import RetryCoordinator
from adaptive_tools.core.services.execution.schema_cache import InMemorySchemaCache
from adaptive_tools.core.types import ToolDescriptor, ToolParameter
from tests.mocks.fakes import FakeClock, FakeDiscovery, FakeLLM


class AsyncMockContextManager:
    """Helper class to create async context manager from mock."""

    def __init__(self, return_value):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_pool():
    """Mock asyncpg database pool for unit tests."""
    # Create mock connection
    mock_conn = AsyncMock()
    mock_conn.execute = AsyncMock(return_value=None)
    mock_conn.fetchrow = AsyncMock(return_value=None)
    mock_conn.fetchval = AsyncMock(return_value=None)
    mock_conn.fetch = AsyncMock(return_value=[])

    # Create mock pool
    mock_pool = MagicMock()
    mock_pool.acquire = MagicMock(return_value=AsyncMockContextManager(mock_conn))

    return mock_pool, mock_conn


@pytest.fixture(autouse=True)
def mock_get_pool(mock_db_pool):
    """Auto-mock get_pool() for all tests to avoid database dependency."""
    mock_pool, _ = mock_db_pool

    # crud imports get_pool by name, patch it where it is looked up
    with patch('adaptive_tools.database.crud.tool_schemas.get_pool', new_callable=AsyncMock) as mock:
        mock.return_value = mock_pool
        yield mock


# ============================================================================
# Engine Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def schema_cache(clock):
    return InMemorySchemaCache(clock=clock)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def coordinator(fake_llm):
    """Coordinator with the heuristic classifier only and no waiting on transient errors."""
    return RetryCoordinator(
        classifier=ErrorClassifier(llm=None, confidence_threshold=0.7),
        inferencer=ParameterInferencer(llm=fake_llm),
        transient_retry_delay=0
    )


@pytest.fixture
def outlook_descriptor():
    """Current schema of the Outlook search tool."""
    return ToolDescriptor(
        name="microsoft_outlook_find_emails",
        description="Find emails in the user's mailbox",
        parameters=(
            ToolParameter(name="searchValue", type="string", required=True, description="Text to search for"),
            ToolParameter(name="maxResults", type="integer", required=False, description="Max emails"),
        ),
        server_id="outlook"
    )


@pytest.fixture
def crm_descriptor():
    return ToolDescriptor(
        name="crm_lookup",
        description="Look up a customer record",
        parameters=(
            ToolParameter(name="customer_id", type="string", required=True, description="CRM customer id"),
        ),
        server_id="crm"
    )


@pytest.fixture
def discovery(outlook_descriptor, crm_descriptor):
    return FakeDiscovery({
        outlook_descriptor.name: outlook_descriptor,
        crm_descriptor.name: crm_descriptor,
    })
