"""Tests for the plan / retrieve / synthesize pipeline."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from knowledge.core.schemas import ItemMetadata, ItemType, RetrievalResult
from knowledge.resilience.errors import ConfigurationError, ParseError, ServiceUnavailableError
from rag.agents.agentic_rag import AgenticRagService, dedupe_results, parse_plan
from rag.ingestion.indexing_service import IndexingService
from rag.llms.mock_provider import MockProvider
from rag.prompts import NO_CONTEXT
from rag.retrieval.service import RetrievalService


def result(id, content="body", title=None):
    return RetrievalResult(
        id=id,
        tenant_id="tenant-a",
        item_type=ItemType.REQUIREMENT,
        content=content,
        metadata=ItemMetadata(title=title),
    )


def factory_for(provider):
    factory = MagicMock()
    factory.get_chat_provider = AsyncMock(return_value=provider)
    return factory


@pytest_asyncio.fixture
async def retrieval(memory_backend):
    indexing = IndexingService(memory_backend)
    await indexing.index_requirement("REQ-1", "tenant-a", "Login", "Users sign in with SSO")
    await indexing.index_bug("BUG-1", "tenant-a", "Lockout", "Account locks after five attempts")
    return RetrievalService(memory_backend)


class TestDedupe:
    """Tests for result deduplication."""

    def test_each_id_once_in_first_seen_order(self):
        merged = dedupe_results([result("A", "a1"), result("B"), result("A", "a2"), result("C")])

        assert [r.id for r in merged] == ["A", "B", "C"]
        # Last occurrence wins
        assert merged[0].content == "a2"


class TestPlanning:
    """Tests for query planning."""

    @pytest.mark.asyncio
    async def test_plan_truncated_to_three(self):
        provider = MockProvider(responses=[json.dumps(["a", "b", "c", "d"])])
        service = AgenticRagService(MagicMock(), factory_for(provider))

        assert await service.plan("question", provider) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_plan_drops_blank_and_non_string_entries(self):
        provider = MockProvider(responses=['Sure! ["sso", "", 42, "lockout"]'])
        service = AgenticRagService(MagicMock(), factory_for(provider))

        assert await service.plan("question", provider) == ["sso", "lockout"]

    @pytest.mark.asyncio
    async def test_plan_provider_failure_uses_question(self):
        provider = MagicMock()
        provider.complete = AsyncMock(side_effect=ServiceUnavailableError("down"))
        service = AgenticRagService(MagicMock(), factory_for(provider))

        assert await service.plan("How does login work?", provider) == ["How does login work?"]


class TestAnswering:
    """Tests for the full agentic answer."""

    @pytest.mark.asyncio
    async def test_malformed_plan_falls_back_to_question(self, retrieval):
        """Malformed planning output should still complete using the question as the only query."""
        provider = MockProvider(responses=["this is not json", "Final answer"])
        service = AgenticRagService(retrieval, factory_for(provider))

        answer = await service.answer_with_sources("SSO", "tenant-a")

        assert answer.answer == "Final answer"
        assert answer.queries == ["SSO"]
        assert [s.id for s in answer.sources] == ["REQ-1"]
        synthesis_prompt = provider.calls[1][-1].content
        assert "[REQUIREMENT] Login: Login\nUsers sign in with SSO" in synthesis_prompt

    @pytest.mark.asyncio
    async def test_overlapping_sub_queries_deduplicated(self, retrieval):
        provider = MockProvider(responses=['["sso", "sign in", "lockout"]', "ok"])
        service = AgenticRagService(retrieval, factory_for(provider))

        answer = await service.answer_with_sources("Explain access", "tenant-a")

        assert [s.id for s in answer.sources] == ["REQ-1", "BUG-1"]
        synthesis_prompt = provider.calls[1][-1].content
        assert synthesis_prompt.count("[REQUIREMENT] Login") == 1

    @pytest.mark.asyncio
    async def test_empty_context_still_asks_model(self, retrieval):
        provider = MockProvider(responses=['["payments"]', "I don't have enough information."])
        service = AgenticRagService(retrieval, factory_for(provider))

        answer = await service.answer("How are refunds handled?", "tenant-a")

        assert answer == "I don't have enough information."
        assert NO_CONTEXT in provider.calls[1][-1].content

    @pytest.mark.asyncio
    async def test_sub_query_failure_ignored(self):
        retrieval = MagicMock()
        retrieval.search = AsyncMock(side_effect=[RuntimeError("boom"), [result("REQ-1", title="Login")]])
        provider = MockProvider(responses=['["one", "two"]', "answer"])
        service = AgenticRagService(retrieval, factory_for(provider))

        answer = await service.answer_with_sources("q", "tenant-a")

        assert [s.id for s in answer.sources] == ["REQ-1"]

    @pytest.mark.asyncio
    async def test_synthesis_errors_propagate(self, retrieval):
        provider = MagicMock()
        provider.complete = AsyncMock(side_effect=['["sso"]', ConfigurationError("API key not configured")])
        service = AgenticRagService(retrieval, factory_for(provider))

        with pytest.raises(ConfigurationError):
            await service.answer("SSO?", "tenant-a")


class TestParsePlan:
    """Tests for strict plan parsing."""

    def test_empty_array_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_plan("[]")

    def test_prose_is_parse_error(self):
        with pytest.raises(ParseError):
            parse_plan("I would search for login issues.")
