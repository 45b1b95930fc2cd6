"""
Agentic Answering - plan, retrieve, deduplicate, synthesize.

1. Plan: ask the completion model for up to three search queries (a JSON
   array of strings). Anything unusable falls back to the question itself.
2. Retrieve: run every planned query concurrently against the retrieval
   service (top 3 each).
3. Deduplicate by id. The last occurrence wins; order follows first sighting.
4. Synthesize: answer from the retrieved context only, citing [Type] Title.

Planning and retrieval degrade silently. Configuration or availability
errors from the completion provider during synthesis propagate.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from knowledge.core.schemas import RetrievalResult
from knowledge.observability.logging_config import OperationContext
from knowledge.resilience.errors import KnowledgeError, ParseError
from knowledge.security.tenant_isolation import require_tenant
from rag import prompts
from rag.llms.base import BaseAIProvider, extract_json
from rag.llms.factory import ProviderFactory
from rag.llms.types import ChatOptions
from rag.retrieval.service import RetrievalService

logger = logging.getLogger(__name__)

MAX_PLANNED_QUERIES = 3
PER_QUERY_TOP_K = 3


@dataclass
class AgenticAnswer:
    answer: str
    queries: list[str]
    sources: list[RetrievalResult] = field(default_factory=list)


def format_source(result: RetrievalResult) -> str:
    return f"[{result.item_type.value}] {result.title or 'Untitled'}: {result.content}"


def dedupe_results(results: list[RetrievalResult]) -> list[RetrievalResult]:
    unique: dict[str, RetrievalResult] = {}
    for result in results:
        unique[result.id] = result
    return list(unique.values())


def parse_plan(text: str) -> list[str]:
    planned = extract_json(text, fallback=None, kind="array")
    if planned is None:
        raise ParseError("Retrieval plan was not a JSON array")
    queries = [q.strip() for q in planned if isinstance(q, str) and q.strip()]
    if not queries:
        raise ParseError("Retrieval plan contained no usable queries")
    return queries[:MAX_PLANNED_QUERIES]


class AgenticRagService:
    def __init__(self, retrieval: RetrievalService, provider_factory: ProviderFactory):
        self.retrieval = retrieval
        self.provider_factory = provider_factory

    async def plan(self, question: str, provider: BaseAIProvider) -> list[str]:
        """Search queries for the question; [question] when the model's plan is unusable."""
        try:
            response = await provider.complete(
                prompts.plan_queries_prompt(question, MAX_PLANNED_QUERIES),
                ChatOptions(temperature=0.2, max_tokens=300),
            )
            return parse_plan(response)
        except KnowledgeError as e:
            logger.warning(f"Failed to plan retrieval, falling back to original query: {e}")
            return [question]

    async def retrieve(self, queries: list[str], tenant_id: str) -> list[RetrievalResult]:
        batches = await asyncio.gather(
            *(self.retrieval.search(q, tenant_id, top_k=PER_QUERY_TOP_K) for q in queries),
            return_exceptions=True,
        )
        merged: list[RetrievalResult] = []
        for query, batch in zip(queries, batches):
            if isinstance(batch, BaseException):
                logger.error(f"Retrieval failed for sub-query '{query}': {batch}")
                continue
            merged.extend(batch)
        return dedupe_results(merged)

    async def answer_with_sources(self, question: str, tenant_id: str) -> AgenticAnswer:
        tenant_id = require_tenant(tenant_id)
        with OperationContext(tenant_id=tenant_id, auto_generate_operation=True):
            logger.info("Agentic RAG processing query")
            provider = await self.provider_factory.get_chat_provider(tenant_id)

            queries = await self.plan(question, provider)
            logger.debug(f"Generated search queries: {queries}")

            sources = await self.retrieve(queries, tenant_id)
            context = "\n\n".join(format_source(r) for r in sources)

            answer = await provider.complete(
                prompts.synthesize_answer_prompt(question, context),
                ChatOptions(temperature=0.3),
            )
            return AgenticAnswer(answer=answer, queries=queries, sources=sources)

    async def answer(self, question: str, tenant_id: str) -> str:
        return (await self.answer_with_sources(question, tenant_id)).answer
