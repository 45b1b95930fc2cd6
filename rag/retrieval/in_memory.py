"""In-process keyword backend for development and tests."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from knowledge.core.schemas import KnowledgeItem, RetrievalResult
from knowledge.security.tenant_isolation import ensure_tenant_access

from .backend import KnowledgeBackend

logger = logging.getLogger(__name__)


class InMemoryKnowledgeBackend(KnowledgeBackend):
    """Keeps items in insertion order; search is a case-insensitive substring match."""

    name = "memory"
    supports_hybrid = False

    def __init__(self):
        self._items: list[KnowledgeItem] = []
        self._lock = asyncio.Lock()

    async def index_item(self, item: KnowledgeItem) -> bool:
        async with self._lock:
            # Upsert: replace the old version but keep its created_at, as the durable store does
            existing = next((i for i in self._items if i.id == item.id and i.tenant_id == item.tenant_id), None)
            if existing is not None:
                item = item.model_copy(update={"created_at": existing.created_at})
                self._items.remove(existing)
            self._items.append(item)
        logger.debug(f"Indexed {item.item_type.value} {item.id} (tenant: {item.tenant_id})")
        return True

    async def search(self, query: str, tenant_id: str, top_k: int = 5) -> list[RetrievalResult]:
        lower_query = query.lower()
        if not lower_query or top_k <= 0:
            return []

        results = []
        async with self._lock:
            for item in self._items:
                if not ensure_tenant_access(tenant_id, item.tenant_id):
                    continue
                title = (item.metadata.title or "").lower()
                if lower_query in item.content.lower() or lower_query in title:
                    results.append(RetrievalResult.from_item(item))
                    if len(results) >= top_k:
                        break
        return results

    async def list_items(self, tenant_id: str) -> list[RetrievalResult]:
        async with self._lock:
            return [RetrievalResult.from_item(i) for i in self._items if ensure_tenant_access(tenant_id, i.tenant_id)]

    async def delete_item(self, item_id: str, tenant_id: str) -> int:
        def belongs(item: KnowledgeItem) -> bool:
            return ensure_tenant_access(tenant_id, item.tenant_id) and item_id in (item.id, item.metadata.original_id)

        async with self._lock:
            before = len(self._items)
            self._items = [i for i in self._items if not belongs(i)]
            return before - len(self._items)

    async def clear_tenant(self, tenant_id: str) -> int:
        async with self._lock:
            before = len(self._items)
            self._items = [i for i in self._items if not ensure_tenant_access(tenant_id, i.tenant_id)]
            return before - len(self._items)

    async def clear(self) -> None:
        async with self._lock:
            self._items = []

    async def purge_older_than(self, days: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        async with self._lock:
            before = len(self._items)
            self._items = [i for i in self._items if i.created_at >= cutoff]
            return before - len(self._items)
