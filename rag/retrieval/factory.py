"""Select the process-wide knowledge backend from settings."""

import logging

from knowledge.config import Settings
from knowledge.core.db import KnowledgeDatabase
from knowledge.resilience.errors import ConfigurationError
from rag.llms.factory import ProviderFactory

from .backend import KnowledgeBackend
from .in_memory import InMemoryKnowledgeBackend
from .pgvector_backend import PgVectorKnowledgeBackend

logger = logging.getLogger(__name__)


def create_backend(settings: Settings, provider_factory: ProviderFactory) -> KnowledgeBackend:
    store = settings.VECTOR_STORE.lower()
    if store == "memory":
        logger.info("Using in-memory knowledge backend")
        return InMemoryKnowledgeBackend()
    if store == "pgvector":
        logger.info("Using pgvector knowledge backend")
        database = KnowledgeDatabase(
            settings.DATABASE_URL,
            dimensions=settings.EMBEDDING_DIMENSIONS,
            min_size=settings.DB_POOL_MIN_SIZE,
            max_size=settings.DB_POOL_MAX_SIZE,
        )
        return PgVectorKnowledgeBackend(database, embedder=lambda texts, tenant_id: provider_factory.embed(texts, tenant_id))
    raise ConfigurationError(f"Unknown VECTOR_STORE '{settings.VECTOR_STORE}' (expected 'memory' or 'pgvector')")
