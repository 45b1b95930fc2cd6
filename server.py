from dotenv import load_dotenv
load_dotenv()  # Load .env file
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from knowledge.config import get_settings
from knowledge.core.schemas import ItemMetadata, ItemType, KnowledgeItem, RetrievalResult
from knowledge.observability import set_correlation_id, generate_correlation_id, setup_logging
from knowledge.resilience.errors import ConfigurationError, ServiceUnavailableError
from knowledge.security.tenant_isolation import TenantScopeError
from rag.agents.agentic_rag import AgenticRagService
from rag.ingestion.indexing_service import IndexingService
from rag.ingestion.sources import StaticSourceProvider
from rag.llms.factory import ProviderFactory
from rag.retrieval.factory import create_backend
from rag.retrieval.service import RetrievalService

logger = logging.getLogger(__name__)
settings = get_settings()

# Chunk bookkeeping fields, under both their attribute names and their stored aliases
RESERVED_METADATA_KEYS = {
    key
    for name, field in ItemMetadata.model_fields.items()
    if name != "title"
    for key in (name, field.alias)
    if key
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    provider_factory = ProviderFactory(settings)
    backend = create_backend(settings, provider_factory)

    app.state.settings = settings
    app.state.provider_factory = provider_factory
    app.state.backend = backend
    app.state.indexing = IndexingService(backend, window_size=settings.CHUNK_SIZE, overlap=settings.CHUNK_OVERLAP)
    app.state.retrieval = RetrievalService(backend)
    app.state.agentic = AgenticRagService(app.state.retrieval, provider_factory)
    # Replaced by the entity service integration when one is mounted
    if not hasattr(app.state, "source_provider"):
        app.state.source_provider = StaticSourceProvider()
    logger.info(f"{settings.APP_NAME} started with '{backend.name}' knowledge backend")

    yield

    await app.state.indexing.drain()
    await backend.close()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

# Initialize Limiter
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=400, content={"detail": str(exc), "provider": exc.provider})


@app.exception_handler(ServiceUnavailableError)
async def service_unavailable_handler(request: Request, exc: ServiceUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc), "provider": exc.provider})


@app.exception_handler(TenantScopeError)
async def tenant_scope_handler(request: Request, exc: TenantScopeError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


# --- Types ---

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)
    mode: Literal["simple", "agentic"] = "simple"
    top_k: int = Field(5, ge=1, le=50)


class AskRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2000)


class IndexRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=255)
    type: ItemType
    title: str = Field("", max_length=500)
    content: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResultDTO(BaseModel):
    id: str
    type: str
    content: str
    metadata: Dict[str, Any]
    similarity: Optional[float] = None

    @classmethod
    def from_result(cls, result: RetrievalResult) -> "SearchResultDTO":
        return cls(
            id=result.id,
            type=result.item_type.value,
            content=result.content,
            metadata=result.metadata.to_json(),
            similarity=result.similarity,
        )


class AskResponse(BaseModel):
    answer: str
    queries: List[str]
    sources: List[SearchResultDTO]


class ReindexCounts(BaseModel):
    requirements: int
    bugs: int
    failed: int
    total: int


class ReindexResponse(BaseModel):
    status: str
    indexed: ReindexCounts


# --- Helper: Tenant from the authenticated gateway ---
def get_tenant_id(x_tenant_id: Optional[str] = Header(None)) -> str:
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(status_code=403, detail="Tenant ID is required")
    tenant_id = x_tenant_id.strip()
    set_correlation_id(generate_correlation_id())
    return tenant_id


# --- Endpoints ---

@app.get("/api/health")
def health_check(request: Request):
    backend = getattr(request.app.state, "backend", None)
    return {
        "status": "ok",
        "service": "qa-knowledge",
        "knowledge_backend": backend.name if backend else None,
    }


@app.get("/api/ai/providers/test")
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def check_provider_connection(request: Request, tenant_id: str = Depends(get_tenant_id)):
    """Round-trip the tenant's completion provider and report latency and models."""
    provider = await request.app.state.provider_factory.get_chat_provider(tenant_id)
    result = await provider.test_connection()
    return {"provider": provider.provider_name, **result.to_dict()}


@app.post("/api/ai/search", response_model=List[SearchResultDTO])
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def search(request: Request, body: SearchRequest, tenant_id: str = Depends(get_tenant_id)):
    if body.mode == "agentic":
        answer = await request.app.state.agentic.answer(body.query, tenant_id)
        return [
            SearchResultDTO(
                id="agent-answer",
                type="ANSWER",
                content=answer,
                metadata={"title": "AI Generated Answer"},
            )
        ]

    results = await request.app.state.retrieval.search(body.query, tenant_id, top_k=body.top_k)
    return [SearchResultDTO.from_result(r) for r in results]


@app.post("/api/ai/ask", response_model=AskResponse)
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def ask(request: Request, body: AskRequest, tenant_id: str = Depends(get_tenant_id)):
    """Agentic answer with the planned queries and the sources it was built from."""
    result = await request.app.state.agentic.answer_with_sources(body.query, tenant_id)
    return AskResponse(
        answer=result.answer,
        queries=result.queries,
        sources=[SearchResultDTO.from_result(r) for r in result.sources],
    )


@app.post("/api/ai/documents", status_code=202)
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def index_document(request: Request, body: IndexRequest, tenant_id: str = Depends(get_tenant_id)):
    # Chunk bookkeeping keys are owned by the indexer
    metadata = {k: v for k, v in body.metadata.items() if k not in RESERVED_METADATA_KEYS}
    metadata["title"] = body.title or metadata.get("title")
    item = KnowledgeItem(
        id=body.id,
        tenant_id=tenant_id,
        item_type=body.type,
        content=body.content,
        metadata=ItemMetadata.model_validate(metadata),
    )
    indexing: IndexingService = request.app.state.indexing
    indexing.submit(indexing.index_item(item), description=f"indexing of {body.id}")
    return {"status": "accepted", "id": body.id}


@app.get("/api/ai/documents", response_model=List[SearchResultDTO])
async def list_documents(request: Request, tenant_id: str = Depends(get_tenant_id)):
    results = await request.app.state.retrieval.list_items(tenant_id)
    return [SearchResultDTO.from_result(r) for r in results]


@app.delete("/api/ai/documents/{document_id}")
async def delete_document(request: Request, document_id: str, tenant_id: str = Depends(get_tenant_id)):
    removed = await request.app.state.indexing.remove(document_id, tenant_id)
    return {"status": "deleted", "id": document_id, "removed": removed}


@app.delete("/api/ai/documents")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def purge_tenant_documents(request: Request, tenant_id: str = Depends(get_tenant_id)):
    removed = await request.app.state.backend.clear_tenant(tenant_id)
    logger.warning(f"Purged {removed} knowledge record(s) for tenant {tenant_id}")
    return {"status": "purged", "removed": removed}


@app.post("/api/ai/reindex", response_model=ReindexResponse)
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def reindex(request: Request, tenant_id: str = Depends(get_tenant_id)):
    summary = await request.app.state.indexing.reindex_all(tenant_id, request.app.state.source_provider)
    return ReindexResponse(
        status="completed",
        indexed=ReindexCounts(
            requirements=summary.requirements,
            bugs=summary.bugs,
            failed=summary.failed,
            total=summary.requirements + summary.bugs,
        ),
    )


@app.post("/api/ai/admin/clear")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def clear_all(request: Request):
    if request.app.state.settings.is_production:
        raise HTTPException(status_code=403, detail="Clearing the knowledge store is disabled in production")
    await request.app.state.backend.clear()
    logger.warning("Knowledge store cleared")
    return {"status": "cleared"}


@app.post("/api/ai/admin/purge")
@limiter.limit(settings.ADMIN_RATE_LIMIT)
async def purge_expired(request: Request, days: Optional[int] = Query(None, ge=1)):
    retention = days or request.app.state.settings.RAG_RETENTION_DAYS
    removed = await request.app.state.indexing.purge_expired(retention)
    return {"status": "purged", "days": retention, "removed": removed}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
