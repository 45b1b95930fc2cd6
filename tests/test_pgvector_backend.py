"""Tests for the pgvector backend's fallback behavior and SQL helpers."""
import os
import uuid
from unittest.mock import AsyncMock

import pytest

from conftest import TEST_DIMENSIONS, make_row, requires_postgres
from knowledge.core.db import KnowledgeDatabase, normalize_dsn, schema_statements
from knowledge.core.schemas import ItemType
from knowledge.resilience.errors import BackendError, ConfigurationError, ServiceUnavailableError
from knowledge.security.tenant_isolation import TenantScopeError
from rag.llms.mock_provider import MockProvider
from rag.llms.types import EmbeddingResult
from rag.retrieval.pgvector_backend import PgVectorKnowledgeBackend, escape_like, row_to_result


def embedder_returning(vector):
    return AsyncMock(return_value=EmbeddingResult(embeddings=[vector], model="test", dimensions=len(vector)))


def embedder_raising(error):
    return AsyncMock(side_effect=error)


@pytest.fixture
def unit_vector():
    return [1.0] + [0.0] * (TEST_DIMENSIONS - 1)


class TestSearchFallback:
    """Tests for vector -> lexical degradation in search."""

    @pytest.mark.asyncio
    async def test_vector_search_used_when_embedding_works(self, fake_database, unit_vector):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))
        backend._fetch_vector = AsyncMock(return_value=[make_row(similarity=0.92)])
        backend._fetch_lexical = AsyncMock()

        results = await backend.search("login", "tenant-a", top_k=5)

        assert [r.id for r in results] == ["REQ-1"]
        assert results[0].similarity == pytest.approx(0.92)
        backend._fetch_vector.assert_awaited_once_with(unit_vector, "tenant-a", 5)
        backend._fetch_lexical.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connection_refused_falls_back_to_lexical(self, fake_database):
        """An unreachable embedding provider should yield the lexical results."""
        backend = PgVectorKnowledgeBackend(
            fake_database, embedder_raising(ServiceUnavailableError("connection refused", provider="openai"))
        )
        lexical_rows = [make_row(content="Users can reset the login password")]
        backend._fetch_vector = AsyncMock()
        backend._fetch_lexical = AsyncMock(return_value=lexical_rows)

        results = await backend.search("reset the login", "tenant-a")

        assert results == [row_to_result(r) for r in lexical_rows]
        backend._fetch_vector.assert_not_awaited()
        backend._fetch_lexical.assert_awaited_once_with("reset the login", "tenant-a", 5)

    @pytest.mark.asyncio
    async def test_misconfigured_embedding_falls_back_to_lexical(self, fake_database):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_raising(ConfigurationError("no key")))
        backend._fetch_lexical = AsyncMock(return_value=[make_row()])

        results = await backend.search("login", "tenant-a")
        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_dimension_mismatch_falls_back_to_lexical(self, fake_database):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning([0.5, 0.5]))
        backend._fetch_vector = AsyncMock()
        backend._fetch_lexical = AsyncMock(return_value=[])

        assert await backend.search("login", "tenant-a") == []
        backend._fetch_vector.assert_not_awaited()
        backend._fetch_lexical.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_everything_failing_returns_empty(self, fake_database, unit_vector):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))
        backend._fetch_vector = AsyncMock(side_effect=BackendError("pool exhausted"))
        backend._fetch_lexical = AsyncMock(side_effect=BackendError("pool exhausted"))

        assert await backend.search("login", "tenant-a") == []

    @pytest.mark.asyncio
    async def test_blank_query_skips_database(self, fake_database, unit_vector):
        embedder = embedder_returning(unit_vector)
        backend = PgVectorKnowledgeBackend(fake_database, embedder)
        backend._fetch_lexical = AsyncMock()

        assert await backend.search("   ", "tenant-a") == []
        embedder.assert_not_awaited()
        backend._fetch_lexical.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_tenant_rejected(self, fake_database, unit_vector):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))
        with pytest.raises(TenantScopeError):
            await backend.search("login", " ")


class TestHybridSearchFallback:
    """Tests for hybrid -> vector -> lexical degradation."""

    @pytest.mark.asyncio
    async def test_hybrid_function_used_first(self, fake_database, unit_vector):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))
        backend._fetch_hybrid = AsyncMock(return_value=[make_row(similarity=0.7)])
        backend._fetch_vector = AsyncMock()

        results = await backend.hybrid_search("login", "tenant-a", item_type=ItemType.REQUIREMENT, top_k=3)

        assert len(results) == 1
        backend._fetch_hybrid.assert_awaited_once_with("login", unit_vector, "tenant-a", ItemType.REQUIREMENT, 3)
        backend._fetch_vector.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_function_falls_back_to_vector(self, fake_database, unit_vector):
        """A database without hybrid_search() should still answer with vector results."""
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))
        backend._fetch_hybrid = AsyncMock(side_effect=BackendError("function hybrid_search does not exist"))
        backend._fetch_vector = AsyncMock(return_value=[make_row(type="BUG", similarity=0.5)])
        backend._fetch_lexical = AsyncMock()

        results = await backend.hybrid_search("crash", "tenant-a", item_type=ItemType.BUG)

        assert [r.item_type for r in results] == [ItemType.BUG]
        backend._fetch_vector.assert_awaited_once_with(unit_vector, "tenant-a", 10, ItemType.BUG)
        backend._fetch_lexical.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_goes_straight_to_lexical(self, fake_database):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_raising(ServiceUnavailableError("timeout")))
        backend._fetch_hybrid = AsyncMock()
        backend._fetch_vector = AsyncMock()
        backend._fetch_lexical = AsyncMock(return_value=[make_row()])

        results = await backend.hybrid_search("login", "tenant-a")

        assert len(results) == 1
        backend._fetch_hybrid.assert_not_awaited()
        backend._fetch_vector.assert_not_awaited()
        backend._fetch_lexical.assert_awaited_once_with("login", "tenant-a", 10, None)


class TestIndexing:
    """Tests for the write path."""

    @pytest.mark.asyncio
    async def test_index_embeds_and_upserts(self, fake_database, make_item, unit_vector):
        embedder = embedder_returning(unit_vector)
        backend = PgVectorKnowledgeBackend(fake_database, embedder)
        backend._upsert = AsyncMock()
        item = make_item()

        assert await backend.index_item(item) is True
        embedder.assert_awaited_once_with([item.content], "tenant-a")
        backend._upsert.assert_awaited_once_with(item, unit_vector)

    @pytest.mark.asyncio
    async def test_embedding_failure_skips_write(self, fake_database, make_item):
        """A failed embedding should skip the item, not raise."""
        backend = PgVectorKnowledgeBackend(fake_database, embedder_raising(ServiceUnavailableError("refused")))
        backend._upsert = AsyncMock()

        assert await backend.index_item(make_item()) is False
        backend._upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_dimension_vector_skips_write(self, fake_database, make_item, unit_vector):
        embedder = embedder_returning(unit_vector)
        backend = PgVectorKnowledgeBackend(fake_database, embedder)
        backend._upsert = AsyncMock()

        assert await backend.index_item(make_item(embedding=[0.1, 0.2, 0.3])) is False
        embedder.assert_not_awaited()
        backend._upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_sql_conflicts_on_tenant_and_id(self, fake_database, db_connection, make_item, unit_vector):
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))

        await backend.index_item(make_item())

        query, *args = db_connection.execute.await_args.args
        assert "ON CONFLICT (tenant_id, id) DO UPDATE" in query
        assert args[:3] == ["REQ-1", "tenant-a", "REQUIREMENT"]
        assert args[5] == unit_vector

    @pytest.mark.asyncio
    async def test_database_error_wrapped(self, fake_database, db_connection, make_item, unit_vector):
        db_connection.execute.side_effect = OSError("connection reset")
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning(unit_vector))

        with pytest.raises(BackendError):
            await backend.index_item(make_item())


class TestDeletion:
    """Tests for delete, tenant purge and retention."""

    @pytest.mark.asyncio
    async def test_delete_matches_id_or_original_id(self, fake_database, db_connection):
        db_connection.execute.return_value = "DELETE 4"
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning([0.0] * TEST_DIMENSIONS))

        assert await backend.delete_item("REQ-9", "tenant-a") == 4
        query, tenant_id, item_id = db_connection.execute.await_args.args
        assert "metadata->>'originalId'" in query
        assert (tenant_id, item_id) == ("tenant-a", "REQ-9")

    @pytest.mark.asyncio
    async def test_clear_tenant_counts(self, fake_database, db_connection):
        db_connection.execute.return_value = "DELETE 12"
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning([0.0] * TEST_DIMENSIONS))

        assert await backend.clear_tenant("tenant-a") == 12

    @pytest.mark.asyncio
    async def test_purge_uses_interval(self, fake_database, db_connection):
        db_connection.execute.return_value = "DELETE 2"
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning([0.0] * TEST_DIMENSIONS))

        assert await backend.purge_older_than(90) == 2
        query, days = db_connection.execute.await_args.args
        assert "make_interval(days => $1)" in query
        assert days == 90

    @pytest.mark.asyncio
    async def test_list_items_parses_json_metadata(self, fake_database, db_connection):
        db_connection.fetch.return_value = [make_row(metadata='{"title": "Stored as text"}')]
        backend = PgVectorKnowledgeBackend(fake_database, embedder_returning([0.0] * TEST_DIMENSIONS))

        items = await backend.list_items("tenant-a")
        assert items[0].title == "Stored as text"


class TestHelpers:
    """Tests for SQL helper functions."""

    def test_escape_like(self):
        assert escape_like("100%_done\\") == "100\\%\\_done\\\\"

    def test_row_similarity_clamped(self):
        assert row_to_result(make_row(similarity=1.0000002)).similarity == 1.0
        assert row_to_result(make_row(similarity=-0.3)).similarity == 0.0

    def test_normalize_dsn(self):
        assert normalize_dsn("postgresql+asyncpg://u:p@h/db") == "postgresql://u:p@h/db"
        assert normalize_dsn("postgres://u:p@h/db") == "postgresql://u:p@h/db"
        assert normalize_dsn("postgresql://u:p@h/db") == "postgresql://u:p@h/db"

    def test_schema_statements(self):
        """DDL should create the table with a composite key and tenant index."""
        statements = schema_statements(384)
        table_ddl = statements[0]

        assert "CREATE TABLE IF NOT EXISTS rag_documents" in table_ddl
        assert "VECTOR(384)" in table_ddl
        assert "PRIMARY KEY (tenant_id, id)" in table_ddl
        assert any("idx_rag_documents_tenant" in s for s in statements[1:])


@requires_postgres
class TestPgVectorIntegration:
    """Round trip against a real PostgreSQL with pgvector."""

    @pytest.mark.asyncio
    async def test_index_search_delete(self, make_item):
        database = KnowledgeDatabase(os.environ["DATABASE_URL"], dimensions=TEST_DIMENSIONS, min_size=1, max_size=2)
        provider = MockProvider(dimensions=TEST_DIMENSIONS)
        backend = PgVectorKnowledgeBackend(database, embedder=lambda texts, tenant_id: provider.embed(texts))
        tenant = f"test-{uuid.uuid4().hex[:8]}"
        try:
            item = make_item(tenant_id=tenant, content="Session expires after thirty minutes")
            assert await backend.index_item(item) is True

            results = await backend.search("Session expires after thirty minutes", tenant)
            assert results and results[0].id == item.id
            assert await backend.search("Session expires", "someone-else") == []

            assert await backend.delete_item(item.id, tenant) == 1
        finally:
            await backend.clear_tenant(tenant)
            await backend.close()
