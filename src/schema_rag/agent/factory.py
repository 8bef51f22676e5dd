"""Wiring of production collaborators from process settings."""

from __future__ import annotations

import logging

from schema_rag.agent.orchestrator import RagOrchestrator
from schema_rag.config import Settings
from schema_rag.errors import NotConfiguredError
from schema_rag.generation.generator import ChatModelGenerator, create_chat_model
from schema_rag.obs.tracing import TraceStore
from schema_rag.retrieval.aggregator import ResourceAggregator
from schema_rag.retrieval.embedder import LangChainEmbedder
from schema_rag.retrieval.fetcher import HttpDocumentFetcher
from schema_rag.retrieval.retriever import SimilarityRetriever
from schema_rag.retrieval.similarity import LangChainSimilarityClient

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, *, trace_store: TraceStore | None = None) -> RagOrchestrator:
    """Create an orchestrator backed by OpenAI models and a local FAISS index.

    Raises `NotConfiguredError` when credentials or the index path are missing.
    """
    if not settings.openai_api_key:
        raise NotConfiguredError("OPENAI_API_KEY is required")
    if not settings.vector_store_path:
        raise NotConfiguredError("VECTOR_STORE_PATH is required")

    from langchain_openai import OpenAIEmbeddings

    generation = settings.generation_config()
    retrieval = settings.retrieval_config()
    aggregation = settings.aggregation_config()

    embeddings = OpenAIEmbeddings(
        model=generation.embedding_model, api_key=settings.openai_api_key
    )
    similarity = LangChainSimilarityClient.from_faiss_folder(
        settings.vector_store_path, embeddings
    )
    retriever = SimilarityRetriever(LangChainEmbedder(embeddings), similarity, retrieval)

    fetcher = HttpDocumentFetcher(timeout_seconds=aggregation.per_fetch_timeout_seconds)
    aggregator = ResourceAggregator(
        fetcher,
        aggregation,
        locator_key=retrieval.locator_key,
        content_key=retrieval.content_key,
    )
    chat_aggregator = ResourceAggregator(
        fetcher,
        aggregation.model_copy(update={"use_inline_content": True}),
        locator_key=retrieval.locator_key,
        content_key=retrieval.content_key,
    )
    generator = ChatModelGenerator(
        create_chat_model(
            api_key=settings.openai_api_key,
            model=generation.model,
            temperature=generation.temperature,
        )
    )
    logger.info(
        "orchestrator ready (model=%s, index=%s)", generation.model, settings.vector_store_path
    )
    return RagOrchestrator(
        retriever=retriever,
        aggregator=aggregator,
        chat_aggregator=chat_aggregator,
        generator=generator,
        trace_store=trace_store,
        config=retrieval,
    )
