"""
PostgreSQL + pgvector knowledge backend.

Reads degrade instead of failing:

- ``search``: vector similarity, then lexical ``ILIKE`` when the query cannot
  be embedded, then an empty result.
- ``hybrid_search``: the ``hybrid_search`` SQL function, then vector-only,
  then lexical. An embedding failure goes straight to lexical.

Writes embed the item when it carries no vector. If embedding fails the write
is skipped with a warning; it is not an error for the caller.

Every statement filters on ``tenant_id``.
"""

import json
import logging
from collections.abc import Awaitable, Callable

from knowledge.core.db import KnowledgeDatabase
from knowledge.core.models import TABLE_NAME
from knowledge.core.schemas import ItemMetadata, ItemType, KnowledgeItem, RetrievalResult
from knowledge.resilience.errors import (
    BackendError,
    FallbackSignal,
    ProviderError,
    ProviderResponseError,
    wrap_errors,
)
from knowledge.resilience.fallback import run_fallback_chain
from knowledge.security.tenant_isolation import require_tenant
from rag.llms.types import EmbeddingResult

from .backend import KnowledgeBackend

logger = logging.getLogger(__name__)

# (texts, tenant_id) -> embeddings, resolved through the tenant's provider
Embedder = Callable[[list[str], str], Awaitable[EmbeddingResult]]

_FALLBACK_ON = (FallbackSignal, ProviderError, BackendError)

_COLUMNS = "id, tenant_id, type, content, metadata, created_at"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _clamp_similarity(value) -> float | None:
    if value is None:
        return None
    return max(0.0, min(1.0, float(value)))


def row_to_result(row) -> RetrievalResult:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return RetrievalResult(
        id=row["id"],
        tenant_id=row["tenant_id"],
        item_type=ItemType(row["type"]),
        content=row["content"],
        metadata=ItemMetadata.model_validate(metadata or {}),
        similarity=_clamp_similarity(row.get("similarity")),
        created_at=row["created_at"],
    )


def _rows_affected(status: str) -> int:
    # asyncpg returns command tags like "DELETE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


class PgVectorKnowledgeBackend(KnowledgeBackend):
    name = "pgvector"
    supports_hybrid = True

    def __init__(self, database: KnowledgeDatabase, embedder: Embedder):
        self.database = database
        self.embedder = embedder

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def _embed(self, text: str, tenant_id: str) -> list[float]:
        result = await self.embedder([text], tenant_id)
        if not result.embeddings:
            raise ProviderResponseError("Embedding provider returned no vectors")
        vector = list(result.embeddings[0])
        if len(vector) != self.database.dimensions:
            raise ProviderResponseError(
                f"Embedding has {len(vector)} dimensions, store expects {self.database.dimensions}"
            )
        return vector

    # ------------------------------------------------------------------
    # SQL
    # ------------------------------------------------------------------

    @wrap_errors(BackendError, logger=logger)
    async def _upsert(self, item: KnowledgeItem, embedding: list[float]) -> None:
        query = f"""
            INSERT INTO {TABLE_NAME} (id, tenant_id, type, content, metadata, embedding, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, NOW())
            ON CONFLICT (tenant_id, id) DO UPDATE SET
                type = EXCLUDED.type,
                content = EXCLUDED.content,
                metadata = EXCLUDED.metadata,
                embedding = EXCLUDED.embedding,
                updated_at = NOW()
        """
        async with self.database.acquire() as conn:
            await conn.execute(
                query,
                item.id,
                item.tenant_id,
                item.item_type.value,
                item.content,
                json.dumps(item.metadata.to_json()),
                embedding,
                item.created_at,
            )

    @wrap_errors(BackendError, logger=logger)
    async def _fetch_vector(self, embedding: list[float], tenant_id: str, top_k: int, item_type: ItemType | None = None):
        query = f"""
            SELECT {_COLUMNS}, 1 - (embedding <=> $1) AS similarity
            FROM {TABLE_NAME}
            WHERE tenant_id = $2
              AND embedding IS NOT NULL
              AND ($4::text IS NULL OR type = $4)
            ORDER BY embedding <=> $1
            LIMIT $3
        """
        async with self.database.acquire() as conn:
            return await conn.fetch(query, embedding, tenant_id, top_k, item_type.value if item_type else None)

    @wrap_errors(BackendError, logger=logger)
    async def _fetch_lexical(self, text: str, tenant_id: str, top_k: int, item_type: ItemType | None = None):
        query = f"""
            SELECT {_COLUMNS}, NULL::float8 AS similarity
            FROM {TABLE_NAME}
            WHERE tenant_id = $1
              AND content ILIKE '%' || $2 || '%' ESCAPE '\\'
              AND ($4::text IS NULL OR type = $4)
            ORDER BY updated_at DESC
            LIMIT $3
        """
        async with self.database.acquire() as conn:
            return await conn.fetch(query, tenant_id, escape_like(text), top_k, item_type.value if item_type else None)

    @wrap_errors(BackendError, logger=logger)
    async def _fetch_hybrid(
        self, text: str, embedding: list[float], tenant_id: str, item_type: ItemType | None, top_k: int
    ):
        query = f"SELECT {_COLUMNS}, similarity FROM hybrid_search($1, $2, $3, $4, $5)"
        async with self.database.acquire() as conn:
            return await conn.fetch(query, text, embedding, tenant_id, item_type.value if item_type else None, top_k)

    @wrap_errors(BackendError, logger=logger)
    async def _execute(self, query: str, *args) -> str:
        async with self.database.acquire() as conn:
            return await conn.execute(query, *args)

    # ------------------------------------------------------------------
    # KnowledgeBackend
    # ------------------------------------------------------------------

    async def index_item(self, item: KnowledgeItem) -> bool:
        require_tenant(item.tenant_id)

        embedding = item.embedding
        if embedding is None:
            try:
                embedding = await self._embed(item.content, item.tenant_id)
            except ProviderError as e:
                logger.warning(f"Skipping {item.id}: embedding failed ({type(e).__name__}: {e})")
                return False
        elif len(embedding) != self.database.dimensions:
            logger.warning(
                f"Skipping {item.id}: embedding has {len(embedding)} dimensions, "
                f"store expects {self.database.dimensions}"
            )
            return False

        await self._upsert(item, embedding)
        logger.debug(f"Indexed {item.item_type.value} {item.id} (tenant: {item.tenant_id})")
        return True

    async def search(self, query: str, tenant_id: str, top_k: int = 5) -> list[RetrievalResult]:
        tenant_id = require_tenant(tenant_id)
        if not query or not query.strip() or top_k <= 0:
            return []

        async def vector() -> list[RetrievalResult]:
            embedding = await self._embed(query, tenant_id)
            return [row_to_result(r) for r in await self._fetch_vector(embedding, tenant_id, top_k)]

        async def lexical() -> list[RetrievalResult]:
            return [row_to_result(r) for r in await self._fetch_lexical(query, tenant_id, top_k)]

        return await run_fallback_chain(
            [("vector", vector), ("lexical", lexical)],
            default=[],
            fallback_on=_FALLBACK_ON,
            chain_name="search",
        )

    async def hybrid_search(
        self,
        query: str,
        tenant_id: str,
        item_type: ItemType | None = None,
        top_k: int = 10,
    ) -> list[RetrievalResult]:
        tenant_id = require_tenant(tenant_id)
        if not query or not query.strip() or top_k <= 0:
            return []

        strategies = []
        try:
            embedding = await self._embed(query, tenant_id)
        except ProviderError as e:
            logger.warning(f"hybrid_search: query embedding failed, using lexical search ({e})")
        else:

            async def hybrid() -> list[RetrievalResult]:
                rows = await self._fetch_hybrid(query, embedding, tenant_id, item_type, top_k)
                return [row_to_result(r) for r in rows]

            async def vector() -> list[RetrievalResult]:
                rows = await self._fetch_vector(embedding, tenant_id, top_k, item_type)
                return [row_to_result(r) for r in rows]

            strategies += [("hybrid", hybrid), ("vector", vector)]

        async def lexical() -> list[RetrievalResult]:
            return [row_to_result(r) for r in await self._fetch_lexical(query, tenant_id, top_k, item_type)]

        strategies.append(("lexical", lexical))
        return await run_fallback_chain(strategies, default=[], fallback_on=_FALLBACK_ON, chain_name="hybrid_search")

    @wrap_errors(BackendError, logger=logger)
    async def _fetch_all(self, tenant_id: str):
        query = f"""
            SELECT {_COLUMNS}, NULL::float8 AS similarity
            FROM {TABLE_NAME}
            WHERE tenant_id = $1
            ORDER BY created_at, id
        """
        async with self.database.acquire() as conn:
            return await conn.fetch(query, tenant_id)

    async def list_items(self, tenant_id: str) -> list[RetrievalResult]:
        tenant_id = require_tenant(tenant_id)
        return [row_to_result(r) for r in await self._fetch_all(tenant_id)]

    async def delete_item(self, item_id: str, tenant_id: str) -> int:
        tenant_id = require_tenant(tenant_id)
        status = await self._execute(
            f"DELETE FROM {TABLE_NAME} WHERE tenant_id = $1 AND (id = $2 OR metadata->>'originalId' = $2)",
            tenant_id,
            item_id,
        )
        return _rows_affected(status)

    async def clear_tenant(self, tenant_id: str) -> int:
        tenant_id = require_tenant(tenant_id)
        status = await self._execute(f"DELETE FROM {TABLE_NAME} WHERE tenant_id = $1", tenant_id)
        removed = _rows_affected(status)
        logger.info(f"Cleared {removed} knowledge items for tenant {tenant_id}")
        return removed

    async def clear(self) -> None:
        await self._execute(f"TRUNCATE TABLE {TABLE_NAME}")
        logger.warning("Knowledge store truncated")

    async def purge_older_than(self, days: int) -> int:
        status = await self._execute(
            f"DELETE FROM {TABLE_NAME} WHERE created_at < NOW() - make_interval(days => $1)",
            days,
        )
        removed = _rows_affected(status)
        logger.info(f"Retention purge removed {removed} knowledge items older than {days} days")
        return removed

    async def close(self) -> None:
        await self.database.close()
