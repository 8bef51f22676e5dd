from types import SimpleNamespace

import pytest

from schema_rag.config import RetrievalConfig
from schema_rag.errors import EmbeddingError, SearchError
from schema_rag.obs.tracing import StageTimings
from schema_rag.retrieval.embedder import HashingEmbedder, LangChainEmbedder
from schema_rag.retrieval.retriever import SimilarityRetriever
from schema_rag.retrieval.similarity import InMemorySimilarityIndex, LangChainSimilarityClient
from schema_rag.types import ScoredMatch


class RecordingClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    def search(self, namespace: str, query_vector: list[float], count: int) -> list[ScoredMatch]:
        self.calls.append((namespace, count))
        return []


class FakeEmbeddings:
    def __init__(self, vector: list[float] | None = None, error: Exception | None = None) -> None:
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.error = error

    def embed_query(self, text: str) -> list[float]:
        if self.error is not None:
            raise self.error
        return self.vector


class FakeVectorStore:
    def __init__(self, results: list[tuple[object, float]], error: Exception | None = None) -> None:
        self.results = results
        self.error = error
        self.kwargs: dict[str, object] = {}

    def similarity_search_with_score_by_vector(self, embedding, k, **kwargs):
        self.kwargs = {"k": k, **kwargs}
        if self.error is not None:
            raise self.error
        return self.results


def test_search_is_padded_by_candidate_overhead() -> None:
    client = RecordingClient()
    retriever = SimilarityRetriever(
        HashingEmbedder(), client, RetrievalConfig(default_top_k=4, candidate_overhead=5)
    )

    retriever.match("schemas-json", "add an orders table", 3)
    retriever.match("schemas-json", "add an orders table")

    assert client.calls == [("schemas-json", 8), ("schemas-json", 9)]


def test_retriever_records_stage_timings() -> None:
    timings = StageTimings()
    retriever = SimilarityRetriever(HashingEmbedder(), RecordingClient())

    retriever.match("ns", "query", timings=timings)

    assert set(timings.stages) == {"embedding", "search"}


def test_in_memory_search_is_scoped_to_namespace() -> None:
    embedder = HashingEmbedder()
    index = InMemorySimilarityIndex()
    index.upsert("schemas-json", "s1", embedder.embed_query("foreign keys and indexes"), {"source_url": "https://s/1"})
    index.upsert("database-articles", "a1", embedder.embed_query("foreign keys and indexes"), {"source_url": "https://a/1"})
    index.upsert("database-articles", "a2", embedder.embed_query("backup retention policy"), {"source_url": "https://a/2"})

    matches = index.search("database-articles", embedder.embed_query("foreign keys"), 5)

    assert [m.match_id for m in matches] == ["a1", "a2"]
    assert matches[0].score > matches[1].score
    assert index.search("unknown", embedder.embed_query("foreign keys"), 5) == []
    assert index.search("database-articles", embedder.embed_query("x"), 0) == []
    assert index.namespaces() == ["database-articles", "schemas-json"]


def test_empty_namespace_is_a_search_error() -> None:
    with pytest.raises(SearchError):
        InMemorySimilarityIndex().search("", [1.0], 3)


def test_hashing_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashingEmbedder(dimension=32)
    first = embedder.embed_query("Primary keys identify rows")

    assert first == embedder.embed_query("primary KEYS identify rows")
    assert abs(sum(value * value for value in first) - 1.0) < 1e-9
    assert embedder.embed_documents(["", "a"])[0] == [0.0] * 32


def test_langchain_embedder_wraps_service_errors() -> None:
    with pytest.raises(EmbeddingError):
        LangChainEmbedder(FakeEmbeddings(error=RuntimeError("rate limited"))).embed_query("q")
    with pytest.raises(EmbeddingError):
        LangChainEmbedder(FakeEmbeddings(vector=[])).embed_query("q")
    with pytest.raises(EmbeddingError):
        LangChainEmbedder(FakeEmbeddings(), dimension=1536).embed_query("q")
    with pytest.raises(EmbeddingError):
        LangChainEmbedder(FakeEmbeddings()).embed_query("   ")

    assert LangChainEmbedder(FakeEmbeddings(), dimension=3).embed_query("q") == [0.1, 0.2, 0.3]


def test_langchain_similarity_client_filters_and_converts_distances() -> None:
    docs = [
        (SimpleNamespace(id="far", page_content="far text", metadata={"source_url": "https://far"}), 3.0),
        (SimpleNamespace(id="near", page_content="near text", metadata={"source_url": "https://near"}), 0.0),
    ]
    store = FakeVectorStore(docs)
    client = LangChainSimilarityClient(store, score_is_distance=True)

    matches = client.search("database-articles", [0.1], 4)

    assert store.kwargs == {"k": 4, "filter": {"namespace": "database-articles"}}
    assert [m.match_id for m in matches] == ["near", "far"]
    assert matches[0].score == pytest.approx(1.0)
    assert matches[1].score == pytest.approx(0.25)
    assert matches[0].content() == "near text"


def test_langchain_similarity_client_passes_namespace_kwarg() -> None:
    store = FakeVectorStore([])
    LangChainSimilarityClient(store, namespace_as_kwarg=True).search("schemas-json", [0.1], 2)

    assert store.kwargs == {"k": 2, "namespace": "schemas-json"}


def test_langchain_similarity_client_wraps_errors() -> None:
    client = LangChainSimilarityClient(FakeVectorStore([], error=ConnectionError("index offline")))

    with pytest.raises(SearchError, match="index offline"):
        client.search("schemas-json", [0.1], 2)
