"""Chunk/embedding store contract and the in-memory implementation."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from threading import Lock
from typing import Protocol

from agent_pipeline.types import DocumentChunk, ScoredChunk


class ChunkStore(Protocol):
    """Read-many/write-few store of chunk vectors."""

    def replace_document(
        self,
        document_id: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> None:
        """Delete every chunk of `document_id`, then insert the new set."""

    def delete_document(self, document_id: str) -> int:
        """Delete every chunk of `document_id`; return how many were removed."""

    def chunks_for_document(self, document_id: str) -> list[DocumentChunk]:
        """Return stored chunks of one document in chunk order."""

    def match_agent_chunks(
        self,
        query_embedding: list[float],
        *,
        agent_id: str,
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        """Chunks linked to one agent, most similar first."""

    def match_shared_chunks(
        self,
        query_embedding: list[float],
        *,
        company_id: str,
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        """Company chunks not linked to any agent, most similar first."""


@dataclass(slots=True)
class _StoredVector:
    chunk: DocumentChunk
    embedding: list[float]


class InMemoryChunkStore:
    """Deterministic chunk store used for tests and local runs."""

    def __init__(self) -> None:
        self._store: dict[str, _StoredVector] = {}
        self._lock = Lock()

    def replace_document(
        self,
        document_id: str,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        if any(chunk.document_id != document_id for chunk in chunks):
            raise ValueError("all chunks must belong to the replaced document")
        with self._lock:
            self._delete(document_id)
            for chunk, embedding in zip(chunks, embeddings, strict=True):
                self._store[chunk.chunk_id] = _StoredVector(chunk=chunk, embedding=embedding)

    def delete_document(self, document_id: str) -> int:
        with self._lock:
            return self._delete(document_id)

    def chunks_for_document(self, document_id: str) -> list[DocumentChunk]:
        chunks = [
            record.chunk
            for record in list(self._store.values())
            if record.chunk.document_id == document_id
        ]
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    def match_agent_chunks(
        self,
        query_embedding: list[float],
        *,
        agent_id: str,
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        candidates = [
            record
            for record in list(self._store.values())
            if record.chunk.agent_id == agent_id
        ]
        return _rank(query_embedding, candidates, threshold, limit)

    def match_shared_chunks(
        self,
        query_embedding: list[float],
        *,
        company_id: str,
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        candidates = [
            record
            for record in list(self._store.values())
            if record.chunk.company_id == company_id and record.chunk.agent_id is None
        ]
        return _rank(query_embedding, candidates, threshold, limit)

    def __len__(self) -> int:
        return len(self._store)

    def _delete(self, document_id: str) -> int:
        stale = [
            chunk_id
            for chunk_id, record in self._store.items()
            if record.chunk.document_id == document_id
        ]
        for chunk_id in stale:
            del self._store[chunk_id]
        return len(stale)


def _rank(
    query_embedding: list[float],
    candidates: list[_StoredVector],
    threshold: float,
    limit: int,
) -> list[ScoredChunk]:
    scored = [
        ScoredChunk(chunk=record.chunk, score=_cosine_similarity(query_embedding, record.embedding))
        for record in candidates
    ]
    kept = [item for item in scored if item.score >= threshold]
    kept.sort(key=lambda item: item.score, reverse=True)
    return kept[:limit]


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
