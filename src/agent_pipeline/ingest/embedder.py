"""Embedding abstractions, a deterministic baseline and the OpenAI provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from agent_pipeline.errors import EmbeddingProviderError


class Embedder(ABC):
    """Embedder interface used by ingest and retrieval components."""

    dimension: int

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Deterministic bag-of-words embedding without external model calls.

    Used for local runs without provider credentials and throughout the tests.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbedder(Embedder):
    """Wraps `langchain_openai.OpenAIEmbeddings`; provider errors are re-raised
    as `EmbeddingProviderError`."""

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-large",
        dimension: int = 1536,
        api_key: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        client: Any | None = None,
    ) -> None:
        self.dimension = dimension
        if client is None:
            from langchain_openai import OpenAIEmbeddings

            client = OpenAIEmbeddings(
                model=model,
                dimensions=dimension,
                api_key=api_key,
                timeout=timeout,
                max_retries=max_retries,
            )
        self._client = client

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = self._client.embed_documents(texts)
        except Exception as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        return vectors

    def embed_query(self, text: str) -> list[float]:
        try:
            return self._client.embed_query(text)
        except Exception as exc:
            raise EmbeddingProviderError(f"Embedding request failed: {exc}") from exc
