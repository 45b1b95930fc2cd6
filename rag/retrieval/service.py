"""Retrieval Service - read path over the active knowledge backend."""

import logging

from knowledge.core.schemas import ItemType, RetrievalResult
from knowledge.security.tenant_isolation import require_tenant

from .backend import KnowledgeBackend

logger = logging.getLogger(__name__)

CONTEXT_TOP_K = 5


def format_context_block(result: RetrievalResult) -> str:
    """Render one result as ``[TYPE] Title (Chunk i/N): content``."""
    meta = result.metadata
    label = f"[{result.item_type.value}] {meta.title or 'Untitled'}"
    if meta.is_chunk and meta.chunk_index is not None and meta.total_chunks:
        label += f" (Chunk {meta.chunk_index + 1}/{meta.total_chunks})"
    return f"{label}: {result.content}"


class RetrievalService:
    def __init__(self, backend: KnowledgeBackend):
        self.backend = backend

    async def search(self, query: str, tenant_id: str, top_k: int = 5) -> list[RetrievalResult]:
        """Backend search that never raises; failures yield an empty list."""
        tenant_id = require_tenant(tenant_id)
        try:
            return await self.backend.search(query, tenant_id, top_k=top_k)
        except Exception as e:
            logger.error(f"Search failed for tenant {tenant_id}: {e}", exc_info=True)
            return []

    async def hybrid_search(
        self,
        query: str,
        tenant_id: str,
        item_type: ItemType | None = None,
        top_k: int = 10,
    ) -> list[RetrievalResult]:
        tenant_id = require_tenant(tenant_id)
        if not self.backend.supports_hybrid:
            results = await self.search(query, tenant_id, top_k=top_k)
            if item_type is not None:
                results = [r for r in results if r.item_type == item_type]
            return results
        try:
            return await self.backend.hybrid_search(query, tenant_id, item_type=item_type, top_k=top_k)
        except Exception as e:
            logger.error(f"Hybrid search failed for tenant {tenant_id}: {e}", exc_info=True)
            return []

    async def list_items(self, tenant_id: str) -> list[RetrievalResult]:
        return await self.backend.list_items(require_tenant(tenant_id))

    async def retrieve_context(self, query: str, tenant_id: str, item_type: ItemType | None = None) -> str:
        """Top results rendered as labeled blocks separated by blank lines; "" when nothing matches."""
        results = await self.search(query, tenant_id, top_k=CONTEXT_TOP_K)
        if item_type is not None:
            results = [r for r in results if r.item_type == item_type]
        return "\n\n".join(format_context_block(r) for r in results)
