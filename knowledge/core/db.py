"""
Knowledge Service - Database Utilities
======================================

Connection pool management and lazy, race-tolerant schema provisioning for
the durable knowledge store.

Provisioning uses ``IF NOT EXISTS`` DDL only. Two workers starting at once may
both run it; the loser of a race sees an "already exists" / duplicate error,
which is treated as success. There is no process-level lock.

Usage:
    db = KnowledgeDatabase(settings.DATABASE_URL, dimensions=1536)
    async with db.acquire() as conn:
        rows = await conn.fetch("SELECT ...", tenant_id)
"""

import logging
from contextlib import asynccontextmanager

import asyncpg
from pgvector.asyncpg import register_vector
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from .models import DEFAULT_EMBEDDING_DIMENSIONS, TABLE_NAME, documents_table

logger = logging.getLogger(__name__)

EXTENSION_DDL = ("CREATE EXTENSION IF NOT EXISTS vector",)

# Blends cosine similarity with full-text rank. Callers fall back to plain
# vector search when the function is missing or fails.
HYBRID_SEARCH_DDL = f"""
CREATE OR REPLACE FUNCTION hybrid_search(
    query_text TEXT,
    query_embedding vector,
    p_tenant_id TEXT,
    p_type TEXT,
    match_count INT
)
RETURNS TABLE (
    id TEXT,
    tenant_id TEXT,
    type TEXT,
    content TEXT,
    metadata JSONB,
    created_at TIMESTAMPTZ,
    similarity DOUBLE PRECISION
)
LANGUAGE sql STABLE AS $$
    SELECT d.id, d.tenant_id, d.type, d.content, d.metadata, d.created_at,
           (0.7 * (1 - (d.embedding <=> query_embedding))
            + 0.3 * LEAST(ts_rank(to_tsvector('english', d.content),
                                  plainto_tsquery('english', query_text)), 1.0)
           )::double precision AS similarity
    FROM {TABLE_NAME} d
    WHERE d.tenant_id = p_tenant_id
      AND (p_type IS NULL OR d.type = p_type)
      AND d.embedding IS NOT NULL
    ORDER BY similarity DESC
    LIMIT match_count
$$
"""

_ALREADY_EXISTS = (
    asyncpg.exceptions.DuplicateObjectError,
    asyncpg.exceptions.DuplicateTableError,
    asyncpg.exceptions.UniqueViolationError,
)


def normalize_dsn(url: str) -> str:
    """asyncpg wants a plain postgresql:// DSN without a SQLAlchemy driver suffix."""
    for prefix in ("postgresql+asyncpg://", "postgresql+psycopg://", "postgresql+psycopg2://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql://" + url[len(prefix):]
    return url


def schema_statements(dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS) -> list[str]:
    """Render the table and index DDL for the given embedding width."""
    table = documents_table(dimensions)
    dialect = postgresql.dialect()
    statements = [str(CreateTable(table, if_not_exists=True).compile(dialect=dialect))]
    for index in sorted(table.indexes, key=lambda i: i.name):
        statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))
    return statements


async def _execute_tolerant(conn, statement: str) -> None:
    try:
        await conn.execute(statement)
    except _ALREADY_EXISTS as e:
        logger.debug(f"Schema object already present, continuing: {e}")


class KnowledgeDatabase:
    """Owns the asyncpg pool shared by every durable-store operation in a process."""

    def __init__(
        self,
        database_url: str,
        dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS,
        min_size: int = 2,
        max_size: int = 10,
    ):
        self.dsn = normalize_dsn(database_url)
        self.dimensions = dimensions
        self.min_size = min_size
        self.max_size = max_size
        self._pool: asyncpg.Pool | None = None
        self._schema_ready = False

    @property
    def schema_ready(self) -> bool:
        return self._schema_ready

    async def _ensure_extensions(self) -> None:
        # The vector codec can only be registered once the extension exists
        conn = await asyncpg.connect(self.dsn)
        try:
            for statement in EXTENSION_DDL:
                await _execute_tolerant(conn, statement)
        finally:
            await conn.close()

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is not None:
            return self._pool
        await self._ensure_extensions()
        pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            init=register_vector,
        )
        # Another coroutine may have won while we were connecting
        if self._pool is None:
            self._pool = pool
        else:
            await pool.close()
        return self._pool

    async def provision_schema(self) -> None:
        """Create table, indexes and the hybrid search function if absent."""
        if self._schema_ready:
            return
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            for statement in schema_statements(self.dimensions):
                await _execute_tolerant(conn, statement)
            try:
                await conn.execute(HYBRID_SEARCH_DDL)
            except asyncpg.PostgresError as e:
                # Concurrent CREATE OR REPLACE can fail; hybrid search degrades to vector search
                logger.warning(f"Could not install hybrid_search function: {e}")
        self._schema_ready = True
        logger.info(f"Knowledge store schema ready (table={TABLE_NAME}, dimensions={self.dimensions})")

    @asynccontextmanager
    async def acquire(self):
        """Yield a pooled connection, provisioning the schema on first use."""
        await self.provision_schema()
        async with self._pool.acquire() as conn:
            yield conn

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
