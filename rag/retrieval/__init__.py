"""
Retrieval
=========

Knowledge backends (in-memory and pgvector) and the retrieval service.
"""

from .backend import KnowledgeBackend
from .factory import create_backend
from .in_memory import InMemoryKnowledgeBackend
from .pgvector_backend import PgVectorKnowledgeBackend
from .service import RetrievalService, format_context_block

__all__ = [
    "InMemoryKnowledgeBackend",
    "KnowledgeBackend",
    "PgVectorKnowledgeBackend",
    "RetrievalService",
    "create_backend",
    "format_context_block",
]
