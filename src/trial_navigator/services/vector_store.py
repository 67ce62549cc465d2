"""
In-memory semantic matcher over trial eligibility text.

Search is a brute-force linear scan with cosine similarity. That is fine up
to a few thousand documents; beyond that an approximate index is needed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import numpy as np

from trial_navigator.models.model_vector import CorpusStats, SearchHit, VectorDocument
from trial_navigator.services.embeddings import embed_async

logger = logging.getLogger(__name__)

Embedder = Callable[[list[str]], Awaitable[list[list[float]]]]

# Embedding failures the matcher degrades on rather than propagating.
EMBEDDING_ERRORS = (asyncio.TimeoutError, RuntimeError, ValueError, OSError)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """dot(a, b) / (|a| * |b|). Raises ValueError on a length mismatch.

    A zero vector has similarity 0.0 with everything.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)
    denom = np.linalg.norm(a_arr) * np.linalg.norm(b_arr)
    if denom == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / denom)


class SemanticMatcher:
    """Store of embedded documents with threshold-filtered similarity search.

    A document is rejected when its id, its exact content, or its
    ``trial_id`` metadata value is already present. Inserts are serialised,
    so when two inserts race for the same trial the first one wins.
    """

    def __init__(self, embedder: Embedder | None = None):
        self._embedder = embedder or embed_async
        self._documents: dict[str, VectorDocument] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._documents)

    def _is_duplicate(self, doc_id: str, content: str, metadata: dict[str, Any]) -> bool:
        if doc_id in self._documents:
            return True
        trial_id = metadata.get("trial_id")
        for doc in self._documents.values():
            if doc.content == content:
                return True
            if trial_id is not None and doc.metadata.get("trial_id") == trial_id:
                return True
        return False

    async def add_document(
        self, doc_id: str, content: str, metadata: dict[str, Any] | None = None
    ) -> bool:
        """Embed and store a document. Returns False if it was a duplicate."""
        metadata = metadata or {}
        async with self._lock:
            if self._is_duplicate(doc_id, content, metadata):
                logger.debug("Skipping duplicate document %s", doc_id)
                return False
            [embedding] = await self._embedder([content])
            self._documents[doc_id] = VectorDocument(
                id=doc_id, content=content, metadata=metadata, embedding=embedding
            )
        return True

    async def search(
        self, query: str, limit: int = 5, threshold: float = 0.7
    ) -> list[SearchHit]:
        """Documents with similarity >= threshold, best first, at most `limit`.

        An embedding failure degrades to an empty result.
        """
        documents = list(self._documents.values())
        if not documents or limit <= 0:
            return []
        try:
            [query_embedding] = await self._embedder([query])
        except EMBEDDING_ERRORS as e:
            logger.warning("Query embedding failed, returning no matches: %s", e)
            return []

        scored = []
        for doc in documents:
            similarity = cosine_similarity(query_embedding, doc.embedding)
            if similarity >= threshold:
                scored.append((similarity, doc))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            SearchHit(document=doc, similarity=max(0.0, min(1.0, sim)))
            for sim, doc in scored[:limit]
        ]

    def get_document(self, doc_id: str) -> VectorDocument | None:
        return self._documents.get(doc_id)

    def delete_document(self, doc_id: str) -> bool:
        return self._documents.pop(doc_id, None) is not None

    def stats(self) -> CorpusStats:
        if not self._documents:
            return CorpusStats()
        lengths = [len(d.content) for d in self._documents.values()]
        return CorpusStats(
            total_documents=len(lengths),
            average_content_length=sum(lengths) / len(lengths),
        )

    def clear(self) -> None:
        self._documents.clear()
