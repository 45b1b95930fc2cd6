"""
Knowledge Service - SQLAlchemy Table Definitions
================================================

The durable knowledge store is a single table, ``rag_documents``, holding one
row per indexed item or chunk. Rows are keyed by ``(tenant_id, id)`` so two
tenants can index entities that happen to share an id.

The embedding column width is fixed at table creation time; the table object
is therefore built per dimension.

Usage:
    from knowledge.core.models import documents_table

    table = documents_table(1536)
"""

from functools import lru_cache

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .schemas import ItemType

TABLE_NAME = "rag_documents"
DEFAULT_EMBEDDING_DIMENSIONS = 1536

_ITEM_TYPES = ", ".join(f"'{t.value}'" for t in ItemType)


@lru_cache
def documents_table(dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS) -> Table:
    metadata_obj = MetaData()
    return Table(
        TABLE_NAME,
        metadata_obj,
        Column("id", Text, nullable=False),
        Column("tenant_id", Text, nullable=False),
        Column("type", Text, nullable=False),
        Column("content", Text, nullable=False),
        Column("metadata", JSONB, nullable=False, server_default="{}"),
        # Nullable: items whose embedding failed are never written, but rows
        # loaded by other tools may lack one
        Column("embedding", Vector(dimensions), nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        PrimaryKeyConstraint("tenant_id", "id", name=f"{TABLE_NAME}_pkey"),
        CheckConstraint(f"type IN ({_ITEM_TYPES})", name=f"{TABLE_NAME}_type_check"),
        Index(f"idx_{TABLE_NAME}_tenant", "tenant_id"),
        Index(f"idx_{TABLE_NAME}_type", "type"),
        Index(f"idx_{TABLE_NAME}_created_at", "created_at"),
    )
