"""Database domain models."""

from typing import Any

from pydantic import BaseModel, Field


class ChunkCreate(BaseModel):
    """Payload for inserting a new chunk."""

    document_id: int
    document_name: str
    chunk_index: int = Field(..., ge=0)
    text: str = Field(..., min_length=1)
    embedding: list[float] = Field(..., min_length=1)
    metadata: dict[str, Any] | None = None
