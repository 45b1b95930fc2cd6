"""Knowledge backend interface.

A backend persists KnowledgeItems and answers tenant-scoped searches. Two
implementations exist: an in-process keyword store for development and a
PostgreSQL + pgvector store for production. Which one runs is decided once
per process.
"""

from abc import ABC, abstractmethod

from knowledge.core.schemas import ItemType, KnowledgeItem, RetrievalResult


class KnowledgeBackend(ABC):
    """Abstract base class for knowledge stores."""

    name: str = "backend"
    supports_hybrid: bool = False

    @abstractmethod
    async def index_item(self, item: KnowledgeItem) -> bool:
        """Upsert an item by (tenant_id, id). Returns False when the write was skipped."""

    @abstractmethod
    async def search(self, query: str, tenant_id: str, top_k: int = 5) -> list[RetrievalResult]:
        """Best matches for query within one tenant, at most top_k."""

    @abstractmethod
    async def list_items(self, tenant_id: str) -> list[RetrievalResult]:
        """Every item stored for a tenant."""

    @abstractmethod
    async def delete_item(self, item_id: str, tenant_id: str) -> int:
        """Delete an item and any chunks derived from it. Returns rows removed."""

    @abstractmethod
    async def clear_tenant(self, tenant_id: str) -> int:
        """Delete everything a tenant has indexed."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete everything. Administrative use only."""

    @abstractmethod
    async def purge_older_than(self, days: int) -> int:
        """Delete items created more than ``days`` days ago, across tenants."""

    async def hybrid_search(
        self,
        query: str,
        tenant_id: str,
        item_type: ItemType | None = None,
        top_k: int = 10,
    ) -> list[RetrievalResult]:
        """Combined semantic/lexical search. Only backends with ``supports_hybrid`` set provide it."""
        raise NotImplementedError(f"{self.name} backend has no hybrid search")

    async def close(self) -> None:
        """Release resources."""
        return None
