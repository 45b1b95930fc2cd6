"""
Knowledge Service - Pydantic Schemas
====================================

Validated shapes for knowledge items and retrieval results. Metadata keeps
the camelCase keys used in the stored JSON (``isChunk``, ``chunkIndex``...)
as aliases so rows written by other services stay readable.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ItemType(str, Enum):
    REQUIREMENT = "REQUIREMENT"
    BUG = "BUG"
    TEST = "TEST"
    RELEASE = "RELEASE"
    SPRINT = "SPRINT"


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ItemMetadata(BaseSchema):
    """Reserved metadata keys plus any caller-supplied extras."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True, extra="allow")

    title: str | None = None
    is_chunk: bool = Field(default=False, alias="isChunk")
    chunk_index: int | None = Field(default=None, alias="chunkIndex", ge=0)
    total_chunks: int | None = Field(default=None, alias="totalChunks", ge=1)
    original_id: str | None = Field(default=None, alias="originalId")

    @model_validator(mode="after")
    def check_chunk_fields(self) -> "ItemMetadata":
        if self.is_chunk:
            if not self.original_id:
                raise ValueError("chunk metadata requires originalId")
            if self.chunk_index is None or self.total_chunks is None:
                raise ValueError("chunk metadata requires chunkIndex and totalChunks")
            if self.chunk_index >= self.total_chunks:
                raise ValueError("chunkIndex must be less than totalChunks")
        return self

    def to_json(self) -> dict[str, Any]:
        """Serialize with stored key names, dropping unset reserved keys."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KnowledgeItem(BaseSchema):
    id: str = Field(..., min_length=1)
    tenant_id: str = Field(..., min_length=1, frozen=True)
    item_type: ItemType
    content: str
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @property
    def title(self) -> str | None:
        return self.metadata.title


class RetrievalResult(BaseSchema):
    id: str
    tenant_id: str
    item_type: ItemType
    content: str
    metadata: ItemMetadata = Field(default_factory=ItemMetadata)
    similarity: float | None = Field(default=None, ge=0.0, le=1.0)
    created_at: datetime | None = None

    @classmethod
    def from_item(cls, item: KnowledgeItem, similarity: float | None = None) -> "RetrievalResult":
        return cls(
            id=item.id,
            tenant_id=item.tenant_id,
            item_type=item.item_type,
            content=item.content,
            metadata=item.metadata,
            similarity=similarity,
            created_at=item.created_at,
        )

    @property
    def title(self) -> str | None:
        return self.metadata.title

    @property
    def label(self) -> str:
        return f"[{self.item_type.value}] {self.title or 'Untitled'}"
