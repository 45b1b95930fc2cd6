"""Pytest configuration and fixtures for the knowledge service tests."""
import os
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from knowledge.config import Settings
from knowledge.core.schemas import ItemMetadata, ItemType, KnowledgeItem
from rag.llms.mock_provider import MockProvider
from rag.retrieval.in_memory import InMemoryKnowledgeBackend


def is_postgres_available():
    """Check if PostgreSQL is available for testing."""
    return os.environ.get("DATABASE_URL", "").startswith("postgresql")


requires_postgres = pytest.mark.skipif(
    not is_postgres_available(), reason="Requires PostgreSQL with pgvector extension"
)

TEST_DIMENSIONS = 8


@pytest.fixture
def settings():
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        AI_PROVIDER="mock",
        VECTOR_STORE="memory",
        EMBEDDING_DIMENSIONS=TEST_DIMENSIONS,
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        GEMINI_API_KEY=None,
    )


@pytest.fixture
def memory_backend():
    return InMemoryKnowledgeBackend()


@pytest.fixture
def mock_provider():
    return MockProvider(dimensions=TEST_DIMENSIONS)


@pytest.fixture
def make_item():
    """Factory for knowledge items with sensible defaults."""

    def _make(id="REQ-1", tenant_id="tenant-a", item_type=ItemType.REQUIREMENT, content="Login requirement", **kwargs):
        metadata = kwargs.pop("metadata", None) or ItemMetadata(title=kwargs.pop("title", "Login"))
        return KnowledgeItem(
            id=id,
            tenant_id=tenant_id,
            item_type=item_type,
            content=content,
            metadata=metadata,
            **kwargs,
        )

    return _make


@pytest.fixture
def db_connection():
    """asyncpg-like connection whose calls are recorded."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="DELETE 0")
    conn.fetch = AsyncMock(return_value=[])
    return conn


@pytest.fixture
def fake_database(db_connection):
    """Stand-in for KnowledgeDatabase that hands out the recorded connection."""
    database = MagicMock()
    database.dimensions = TEST_DIMENSIONS

    @asynccontextmanager
    async def acquire():
        yield db_connection

    database.acquire = acquire
    database.close = AsyncMock()
    return database


def make_row(id="REQ-1", tenant_id="tenant-a", type="REQUIREMENT", content="Login requirement", metadata=None, similarity=None):
    """Row shaped like the backend's SELECT output."""
    return {
        "id": id,
        "tenant_id": tenant_id,
        "type": type,
        "content": content,
        "metadata": metadata if metadata is not None else {"title": "Login"},
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "similarity": similarity,
    }
