"""
Indexing Service - write path into the knowledge store.

Redacts content, splits long documents into chunk items and writes them
through the active backend. Indexing is best-effort and eventually
consistent with the entity store: a failed chunk is logged and the rest of
the document is still written.

Entity services usually call ``submit`` so a slow provider never delays the
user-facing request:

    service.submit(service.index_requirement(req.id, tenant_id, req.title, req.body))
"""

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

from knowledge.core.schemas import ItemMetadata, ItemType, KnowledgeItem
from knowledge.observability.logging_config import OperationLogger, log_exception
from knowledge.security.redaction import Redactor
from knowledge.security.tenant_isolation import require_tenant, tenant_scope
from rag.retrieval.backend import KnowledgeBackend

from .chunker import DEFAULT_OVERLAP, DEFAULT_WINDOW_SIZE, chunk
from .sources import SourceEntityProvider

logger = logging.getLogger(__name__)


def chunk_id(original_id: str, index: int) -> str:
    return f"{original_id}-chunk-{index}"


@dataclass
class IndexingReport:
    item_id: str
    total: int = 0
    written: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


@dataclass
class ReindexSummary:
    requirements: int = 0
    bugs: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"requirements": self.requirements, "bugs": self.bugs, "failed": self.failed}


class IndexingService:
    def __init__(
        self,
        backend: KnowledgeBackend,
        redactor: Redactor | None = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
        overlap: int = DEFAULT_OVERLAP,
    ):
        self.backend = backend
        self.redactor = redactor or Redactor()
        self.window_size = window_size
        self.overlap = overlap
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def split(self, item: KnowledgeItem) -> list[KnowledgeItem]:
        """Redact an item and expand it into the items that will be stored."""
        redacted = self.redactor.redact(item.content)
        pieces = chunk(redacted, self.window_size, self.overlap)

        if len(pieces) <= 1:
            return [item.model_copy(update={"content": redacted})]

        base_metadata = item.metadata.to_json()
        total = len(pieces)
        return [
            KnowledgeItem(
                id=chunk_id(item.id, n),
                tenant_id=item.tenant_id,
                item_type=item.item_type,
                content=piece,
                metadata=ItemMetadata.model_validate(
                    {**base_metadata, "isChunk": True, "chunkIndex": n, "totalChunks": total, "originalId": item.id}
                ),
                created_at=item.created_at,
            )
            for n, piece in enumerate(pieces)
        ]

    async def index_item(self, item: KnowledgeItem) -> IndexingReport:
        """Redact, chunk and write one logical document. Never raises for write failures."""
        require_tenant(item.tenant_id)
        records = self.split(item)
        report = IndexingReport(item_id=item.id, total=len(records))

        with tenant_scope(item.tenant_id):
            # Sequential on purpose: chunk n+1 starts after chunk n settles
            for record in records:
                try:
                    stored = await self.backend.index_item(record)
                except Exception as e:
                    logger.error(f"Failed to index {record.id}: {e}", exc_info=True)
                    report.failed.append(record.id)
                    continue
                (report.written if stored else report.skipped).append(record.id)

            if report.ok:
                logger.info(f"Indexed {item.item_type.value} {item.id} ({report.total} record(s))")
            else:
                logger.warning(
                    f"Indexed {item.item_type.value} {item.id} partially: {len(report.written)}/{report.total} "
                    f"written, {len(report.skipped)} skipped, {len(report.failed)} failed"
                )
        return report

    async def index_requirement(self, id: str, tenant_id: str, title: str, content: str) -> IndexingReport:
        return await self.index_item(
            KnowledgeItem(
                id=id,
                tenant_id=tenant_id,
                item_type=ItemType.REQUIREMENT,
                content=f"{title}\n{content}",
                metadata=ItemMetadata(title=title),
            )
        )

    async def index_bug(self, id: str, tenant_id: str, title: str, description: str) -> IndexingReport:
        return await self.index_item(
            KnowledgeItem(
                id=id,
                tenant_id=tenant_id,
                item_type=ItemType.BUG,
                content=f"{title}\n{description}",
                metadata=ItemMetadata(title=title),
            )
        )

    async def remove(self, item_id: str, tenant_id: str) -> int:
        """Delete a logical document and all of its chunks."""
        removed = await self.backend.delete_item(item_id, require_tenant(tenant_id))
        logger.info(f"Removed {removed} knowledge record(s) for {item_id}")
        return removed

    # ------------------------------------------------------------------
    # Fire-and-forget
    # ------------------------------------------------------------------

    def submit(self, job: Coroutine[Any, Any, Any], description: str = "indexing job") -> asyncio.Task:
        """Run an indexing coroutine in the background; its failure is logged, never raised."""

        async def run() -> None:
            try:
                await job
            except Exception as e:
                log_exception(logger, f"Background {description} failed: {e}", e, description=description)

        task = asyncio.create_task(run())
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every background job submitted so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def reindex_all(self, tenant_id: str, source: SourceEntityProvider) -> ReindexSummary:
        """Re-index every requirement and bug of a tenant from the entity store."""
        tenant_id = require_tenant(tenant_id)
        summary = ReindexSummary()

        with OperationLogger(logger, "reindex_all", tenant_id=tenant_id):
            for requirement in await source.list_requirements(tenant_id):
                report = await self.index_requirement(requirement.id, tenant_id, requirement.title, requirement.body)
                summary.requirements += 1
                summary.failed += 0 if report.ok else 1
            for bug in await source.list_bugs(tenant_id):
                report = await self.index_bug(bug.id, tenant_id, bug.title, bug.body)
                summary.bugs += 1
                summary.failed += 0 if report.ok else 1

        return summary

    async def purge_expired(self, days: int) -> int:
        """Retention purge, invoked by an external scheduler."""
        if days <= 0:
            raise ValueError("retention days must be positive")
        return await self.backend.purge_older_than(days)
