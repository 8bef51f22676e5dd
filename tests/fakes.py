from __future__ import annotations

import asyncio

from schema_rag.agent.orchestrator import RagOrchestrator
from schema_rag.config import AggregationConfig, RetrievalConfig
from schema_rag.errors import FetchError
from schema_rag.retrieval.aggregator import ResourceAggregator
from schema_rag.retrieval.embedder import HashingEmbedder
from schema_rag.retrieval.retriever import SimilarityRetriever
from schema_rag.retrieval.similarity import InMemorySimilarityIndex
from schema_rag.types import ScoredMatch


class FakeFetcher:
    """Fetcher driven by a plan of `locator -> (delay_seconds, body or exception)`."""

    def __init__(self, plan: dict[str, tuple[float, str | Exception]] | None = None) -> None:
        self.plan = plan or {}
        self.calls: list[str] = []

    async def fetch(self, locator: str) -> str:
        self.calls.append(locator)
        delay, outcome = self.plan.get(
            locator, (0.0, FetchError(locator, "non-success status", status_code=404))
        )
        await asyncio.sleep(delay)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeGenerator:
    def __init__(self, text: str = "ok", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


def make_match(index: int, score: float, locator: str | None = None, **metadata: object) -> ScoredMatch:
    meta: dict[str, object] = dict(metadata)
    meta["source_url"] = locator if locator is not None else f"https://docs.example/{index}"
    return ScoredMatch(match_id=f"m-{index}", score=score, metadata=meta)


def build_orchestrator(
    *,
    documents: dict[str, list[tuple[str, str]]],
    fetch_plan: dict[str, tuple[float, str | Exception]],
    generator: FakeGenerator,
    retrieval: RetrievalConfig | None = None,
    aggregation: AggregationConfig | None = None,
    embedder: object | None = None,
) -> tuple[RagOrchestrator, FakeFetcher]:
    """Index `namespace -> [(locator, text)]` and wire fakes around it."""
    hashing = HashingEmbedder()
    index = InMemorySimilarityIndex()
    for namespace, entries in documents.items():
        for position, (locator, text) in enumerate(entries):
            index.upsert(
                namespace,
                f"{namespace}-{position}",
                hashing.embed_query(text),
                {"source_url": locator, "content": text},
            )

    retrieval = retrieval or RetrievalConfig()
    fetcher = FakeFetcher(fetch_plan)
    retriever = SimilarityRetriever(embedder or hashing, index, retrieval)  # type: ignore[arg-type]
    aggregator = ResourceAggregator(
        fetcher, aggregation or AggregationConfig(per_fetch_timeout_seconds=1.0, overall_deadline_seconds=2.0)
    )
    orchestrator = RagOrchestrator(
        retriever=retriever,
        aggregator=aggregator,
        generator=generator,
        config=retrieval,
    )
    return orchestrator, fetcher
