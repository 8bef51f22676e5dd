"""Query-time matching: embed the query, then search one namespace."""

from __future__ import annotations

import logging

from schema_rag.config import RetrievalConfig
from schema_rag.obs.tracing import StageTimings, Timer
from schema_rag.retrieval.embedder import Embedder
from schema_rag.retrieval.similarity import SimilarityClient
from schema_rag.types import ScoredMatch

logger = logging.getLogger(__name__)


class SimilarityRetriever:
    """Embeds a query and fetches padded top-K matches from a namespace.

    The search asks for `top_k + candidate_overhead` matches so that the
    resource aggregator can still reach `top_k` documents when some of the
    candidate fetches fail.
    """

    def __init__(
        self,
        embedder: Embedder,
        similarity_client: SimilarityClient,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.similarity_client = similarity_client
        self.config = config or RetrievalConfig()

    def candidate_count(self, top_k: int) -> int:
        return top_k + self.config.candidate_overhead

    def match(
        self,
        namespace: str,
        query: str,
        top_k: int | None = None,
        *,
        timings: StageTimings | None = None,
    ) -> list[ScoredMatch]:
        final_k = top_k or self.config.default_top_k
        count = self.candidate_count(final_k)

        with Timer() as timer:
            query_vector = self.embedder.embed_query(query)
        logger.info("embedding the query took %.3f seconds", timer.elapsed_ms / 1000.0)
        if timings is not None:
            timings.record("embedding", timer)

        with Timer() as timer:
            matches = self.similarity_client.search(namespace, query_vector, count)
        logger.info(
            "vector search in %s returned %d matches in %.3f seconds",
            namespace,
            len(matches),
            timer.elapsed_ms / 1000.0,
        )
        if timings is not None:
            timings.record("search", timer)
        return matches
