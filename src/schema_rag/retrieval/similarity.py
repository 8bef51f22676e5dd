"""Similarity search contracts and concrete adapters."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from schema_rag.errors import SearchError
from schema_rag.types import ScoredMatch


class SimilarityClient(Protocol):
    """Top-K similarity search scoped to one namespace of a vector index."""

    def search(
        self, namespace: str, query_vector: list[float], count: int
    ) -> list[ScoredMatch]:
        """Return matches ordered by descending score; raises `SearchError`."""


@dataclass(slots=True)
class _StoredVector:
    match_id: str
    embedding: list[float]
    metadata: dict[str, Any]


class InMemorySimilarityIndex:
    """Deterministic namespaced index used for tests and local prototyping."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, _StoredVector]] = {}

    def upsert(
        self,
        namespace: str,
        match_id: str,
        embedding: list[float],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        records = self._namespaces.setdefault(namespace, {})
        records[match_id] = _StoredVector(
            match_id=match_id, embedding=list(embedding), metadata=dict(metadata or {})
        )

    def namespaces(self) -> list[str]:
        return sorted(self._namespaces)

    def search(
        self, namespace: str, query_vector: list[float], count: int
    ) -> list[ScoredMatch]:
        if not namespace:
            raise SearchError("namespace must be non-empty")
        if count < 1:
            return []
        records = self._namespaces.get(namespace, {})
        ranked = sorted(
            (
                ScoredMatch(
                    match_id=record.match_id,
                    score=_cosine_similarity(query_vector, record.embedding),
                    metadata=dict(record.metadata),
                )
                for record in records.values()
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        return ranked[:count]


class LangChainSimilarityClient:
    """Adapter over a LangChain `VectorStore` (FAISS, Pinecone, ...).

    Stores that partition by namespace natively receive it as a keyword
    argument; others are filtered on a `namespace` metadata field. Stores that
    return distances instead of similarities are converted so that higher
    always means more relevant.
    """

    def __init__(
        self,
        vector_store: Any,
        *,
        namespace_as_kwarg: bool = False,
        namespace_field: str = "namespace",
        score_is_distance: bool = False,
    ) -> None:
        self._store = vector_store
        self._namespace_as_kwarg = namespace_as_kwarg
        self._namespace_field = namespace_field
        self._score_is_distance = score_is_distance

    @classmethod
    def from_faiss_folder(cls, folder: str, embeddings: Any) -> LangChainSimilarityClient:
        try:
            from langchain_community.vectorstores import FAISS
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise SearchError(
                "FAISS dependencies are not available. Install langchain-community/faiss-cpu."
            ) from exc

        store = FAISS.load_local(
            folder, embeddings, allow_dangerous_deserialization=True
        )
        return cls(store, score_is_distance=True)

    def search(
        self, namespace: str, query_vector: list[float], count: int
    ) -> list[ScoredMatch]:
        if not namespace:
            raise SearchError("namespace must be non-empty")
        kwargs: dict[str, Any]
        if self._namespace_as_kwarg:
            kwargs = {"namespace": namespace}
        else:
            kwargs = {"filter": {self._namespace_field: namespace}}
        try:
            docs_and_scores = self._store.similarity_search_with_score_by_vector(
                query_vector, k=count, **kwargs
            )
        except Exception as exc:
            raise SearchError(f"similarity search failed in {namespace!r}: {exc}") from exc

        matches: list[ScoredMatch] = []
        for rank, (doc, raw_score) in enumerate(docs_and_scores, start=1):
            metadata = dict(getattr(doc, "metadata", {}) or {})
            page_content = getattr(doc, "page_content", "")
            if page_content and "content" not in metadata:
                metadata["content"] = page_content
            score = float(raw_score)
            if self._score_is_distance:
                score = 1.0 / (1.0 + score)
            matches.append(
                ScoredMatch(
                    match_id=str(getattr(doc, "id", None) or metadata.get("id") or f"{namespace}-{rank}"),
                    score=score,
                    metadata=metadata,
                )
            )
        return sorted(matches, key=lambda item: item.score, reverse=True)


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
