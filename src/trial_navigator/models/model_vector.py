"""Models for the in-memory semantic matcher."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VectorDocument(BaseModel):
    """A stored text with its embedding. Never mutated after insertion."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    metadata: dict[str, Any] = {}
    embedding: list[float]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SearchHit(BaseModel):
    document: VectorDocument
    similarity: float = Field(ge=0.0, le=1.0)


class CorpusStats(BaseModel):
    total_documents: int = 0
    average_content_length: float = 0.0
