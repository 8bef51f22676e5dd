"""Embedding abstractions, a LangChain adapter and a deterministic baseline."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections import Counter
from hashlib import blake2b
from math import sqrt
from typing import Any

from schema_rag.errors import EmbeddingError

_WORD = re.compile(r"\w+")


class Embedder(ABC):
    """Turns query text into a fixed-length vector."""

    dimension: int

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query; raises `EmbeddingError` on failure."""


class LangChainEmbedder(Embedder):
    """Adapts any `langchain_core.embeddings.Embeddings` implementation."""

    def __init__(self, embeddings: Any, *, dimension: int = 0) -> None:
        self._embeddings = embeddings
        self.dimension = dimension

    def embed_query(self, text: str) -> list[float]:
        if not text.strip():
            raise EmbeddingError("cannot embed empty text")
        try:
            vector = self._embeddings.embed_query(text)
        except Exception as exc:
            raise EmbeddingError(f"embedding service failed: {exc}") from exc
        if not vector:
            raise EmbeddingError("embedding service returned an empty vector")
        if self.dimension and len(vector) != self.dimension:
            raise EmbeddingError(
                f"expected {self.dimension}-dimensional vector, got {len(vector)}"
            )
        return [float(value) for value in vector]


class HashingEmbedder(Embedder):
    """Feature-hashing embedder for local indexes and tests.

    Word tokens are lower-cased and hashed into `dimension` signed buckets,
    then L2-normalized. No model calls; the same text always maps to the
    same vector.
    """

    def __init__(self, dimension: int = 256) -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        buckets: dict[int, float] = {}
        for token, count in Counter(_WORD.findall(text.lower())).items():
            index, sign = self._bucket(token)
            buckets[index] = buckets.get(index, 0.0) + sign * count

        vector = [0.0] * self.dimension
        norm = sqrt(sum(value * value for value in buckets.values()))
        if norm == 0:
            return vector
        for index, value in buckets.items():
            vector[index] = value / norm
        return vector

    def _bucket(self, token: str) -> tuple[int, float]:
        digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest[:4], "little") % self.dimension, (
            -1.0 if digest[4] & 1 else 1.0
        )
