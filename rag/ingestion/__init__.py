"""
Ingestion
=========

Chunking and the indexing (write) path.
"""

from .chunker import ChunkSpan, chunk, chunk_spans, reconstruct
from .indexing_service import IndexingReport, IndexingService, ReindexSummary, chunk_id
from .sources import SourceEntity, SourceEntityProvider, StaticSourceProvider

__all__ = [
    "ChunkSpan",
    "IndexingReport",
    "IndexingService",
    "ReindexSummary",
    "SourceEntity",
    "SourceEntityProvider",
    "StaticSourceProvider",
    "chunk",
    "chunk_id",
    "chunk_spans",
    "reconstruct",
]
