"""Tests for the indexing (write) path."""
import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from knowledge.core.schemas import ItemType
from knowledge.security.tenant_isolation import TenantScopeError
from rag.ingestion.indexing_service import IndexingService, chunk_id
from rag.ingestion.sources import SourceEntity, StaticSourceProvider
from rag.retrieval.in_memory import InMemoryKnowledgeBackend


class FlakyBackend(InMemoryKnowledgeBackend):
    """Fails writes for the listed ids."""

    def __init__(self, failing_ids):
        super().__init__()
        self.failing_ids = set(failing_ids)

    async def index_item(self, item):
        if item.id in self.failing_ids:
            raise RuntimeError(f"write failed for {item.id}")
        return await super().index_item(item)


class TestSplit:
    """Tests for redaction and chunk expansion."""

    def test_short_item_kept_whole(self, memory_backend, make_item):
        service = IndexingService(memory_backend)

        records = service.split(make_item(content="Call 555-123-4567 about login"))

        assert len(records) == 1
        assert records[0].id == "REQ-1"
        assert "[PHONE_REDACTED]" in records[0].content
        assert records[0].metadata.is_chunk is False

    def test_long_item_split_into_chunks(self, memory_backend, make_item):
        service = IndexingService(memory_backend)
        item = make_item(id="REQ-7", content="word " * 500)

        records = service.split(item)

        assert [r.id for r in records] == [chunk_id("REQ-7", n) for n in range(4)]
        for n, record in enumerate(records):
            meta = record.metadata
            assert meta.is_chunk is True
            assert meta.chunk_index == n
            assert meta.total_chunks == 4
            assert meta.original_id == "REQ-7"
            assert meta.title == "Login"
            assert record.tenant_id == item.tenant_id

    def test_chunk_metadata_serialized_with_stored_keys(self, memory_backend, make_item):
        service = IndexingService(memory_backend)
        record = service.split(make_item(id="REQ-7", content="word " * 500))[1]

        assert record.metadata.to_json() == {
            "title": "Login",
            "isChunk": True,
            "chunkIndex": 1,
            "totalChunks": 4,
            "originalId": "REQ-7",
        }


class TestIndexItem:
    """Tests for writing documents."""

    @pytest.mark.asyncio
    async def test_all_chunks_written(self, memory_backend, make_item):
        service = IndexingService(memory_backend)

        report = await service.index_item(make_item(id="REQ-7", content="word " * 500))

        assert report.ok
        assert report.total == 4
        assert len(await memory_backend.list_items("tenant-a")) == 4

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_stop_the_rest(self, make_item, caplog):
        """A failing chunk write is logged and the remaining chunks are still written."""
        backend = FlakyBackend(failing_ids={chunk_id("REQ-7", 1)})
        service = IndexingService(backend)

        with caplog.at_level(logging.ERROR):
            report = await service.index_item(make_item(id="REQ-7", content="word " * 500))

        assert report.failed == [chunk_id("REQ-7", 1)]
        assert len(report.written) == 3
        assert "REQ-7-chunk-1" in caplog.text

    @pytest.mark.asyncio
    async def test_skipped_writes_reported(self, make_item):
        backend = InMemoryKnowledgeBackend()
        backend.index_item = AsyncMock(return_value=False)
        service = IndexingService(backend)

        report = await service.index_item(make_item())

        assert report.skipped == ["REQ-1"]
        assert not report.ok

    @pytest.mark.asyncio
    async def test_reindex_replaces_content(self, memory_backend):
        service = IndexingService(memory_backend)

        await service.index_requirement("REQ-1", "tenant-a", "Login", "old body")
        await service.index_requirement("REQ-1", "tenant-a", "Login", "new body")

        items = await memory_backend.list_items("tenant-a")
        assert [i.content for i in items] == ["Login\nnew body"]
        assert items[0].item_type == ItemType.REQUIREMENT

    @pytest.mark.asyncio
    async def test_index_bug(self, memory_backend):
        service = IndexingService(memory_backend)

        await service.index_bug("BUG-3", "tenant-a", "Crash on save", "Stack trace attached")

        items = await memory_backend.list_items("tenant-a")
        assert items[0].item_type == ItemType.BUG
        assert items[0].title == "Crash on save"

    @pytest.mark.asyncio
    async def test_remove_deletes_chunks(self, memory_backend, make_item):
        service = IndexingService(memory_backend)
        await service.index_item(make_item(id="REQ-7", content="word " * 500))

        assert await service.remove("REQ-7", "tenant-a") == 4
        assert await memory_backend.list_items("tenant-a") == []

    @pytest.mark.asyncio
    async def test_blank_tenant_rejected(self, memory_backend):
        service = IndexingService(memory_backend)
        with pytest.raises(TenantScopeError):
            await service.remove("REQ-1", "")


class TestBackgroundIndexing:
    """Tests for fire-and-forget submission."""

    @pytest.mark.asyncio
    async def test_submit_runs_in_background(self, memory_backend):
        service = IndexingService(memory_backend)

        service.submit(service.index_requirement("REQ-1", "tenant-a", "Login", "body"))
        assert service.pending == 1

        await service.drain()
        assert service.pending == 0
        assert len(await memory_backend.list_items("tenant-a")) == 1

    @pytest.mark.asyncio
    async def test_submit_failure_is_logged_not_raised(self, memory_backend, caplog):
        service = IndexingService(memory_backend)

        async def boom():
            raise RuntimeError("provider down")

        with caplog.at_level(logging.ERROR):
            task = service.submit(boom(), description="indexing of REQ-1")
            await asyncio.wait_for(task, timeout=1)

        assert task.exception() is None
        assert "Background indexing of REQ-1 failed: provider down" in caplog.text
        record = caplog.records[-1]
        assert record.exc_info[0] is RuntimeError
        assert record.extra_data == {"description": "indexing of REQ-1"}


class TestAdministration:
    """Tests for full re-index and retention purge."""

    @pytest.mark.asyncio
    async def test_reindex_all_counts(self, memory_backend):
        source = StaticSourceProvider(
            requirements={"tenant-a": [SourceEntity("REQ-1", "Login", "body"), SourceEntity("REQ-2", "Logout", "body")]},
            bugs={"tenant-a": [SourceEntity("BUG-1", "Crash", "")], "tenant-b": [SourceEntity("BUG-9", "Other", "x")]},
        )
        service = IndexingService(memory_backend)

        summary = await service.reindex_all("tenant-a", source)

        assert summary.to_dict() == {"requirements": 2, "bugs": 1, "failed": 0}
        assert len(await memory_backend.list_items("tenant-a")) == 3
        assert await memory_backend.list_items("tenant-b") == []

    @pytest.mark.asyncio
    async def test_purge_requires_positive_days(self, memory_backend):
        service = IndexingService(memory_backend)
        with pytest.raises(ValueError):
            await service.purge_expired(0)
