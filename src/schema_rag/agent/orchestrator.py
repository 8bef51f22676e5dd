"""Request orchestration for the agent, chat and report modes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from schema_rag.config import RetrievalConfig
from schema_rag.extraction.extractor import ResponseExtractor, strip_code_fences
from schema_rag.generation.generator import Generator
from schema_rag.generation.prompts import (
    build_agent_prompt,
    build_chat_prompt,
    build_report_prompt,
)
from schema_rag.obs.tracing import StageTimings, Timer, TraceStore
from schema_rag.retrieval.aggregator import (
    ResourceAggregator,
    rank_matches,
    unique_by_locator,
)
from schema_rag.retrieval.retriever import SimilarityRetriever
from schema_rag.types import AgentResponse, AggregationResult, ChatResponse, ScoredMatch

logger = logging.getLogger(__name__)

CHAT_FALLBACK_MESSAGE = (
    "I'm sorry, I couldn't find any information about that in the database "
    "knowledge base. Could you rephrase the question or ask about another topic?"
)


class RagOrchestrator:
    """Runs retrieval, prompting, generation and extraction for one request.

    All collaborators are injected so the pipeline can run against fakes.
    The public methods block until the pipeline finishes. Embedding, search
    and generation errors propagate unchanged; fetch failures only shrink the
    context.
    """

    def __init__(
        self,
        *,
        retriever: SimilarityRetriever,
        aggregator: ResourceAggregator,
        generator: Generator,
        extractor: ResponseExtractor | None = None,
        chat_aggregator: ResourceAggregator | None = None,
        trace_store: TraceStore | None = None,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.retriever = retriever
        self.aggregator = aggregator
        self.chat_aggregator = chat_aggregator or aggregator
        self.generator = generator
        self.extractor = extractor or ResponseExtractor()
        self.trace_store = trace_store or TraceStore()
        self.config = config or retriever.config

    def run_agent(
        self,
        namespace: str,
        current_schema: str,
        user_request: str,
        top_k: int = 0,
    ) -> AgentResponse:
        """Propose a schema change plus DDL for `user_request`."""
        namespace = namespace or self.config.agent_namespace
        top_k = top_k or self.config.default_top_k
        locator_key = self.config.locator_key
        timings = StageTimings()

        with Timer() as total:
            matches = self.retriever.match(namespace, user_request, top_k, timings=timings)
            candidates = _candidates(self.aggregator, matches, locator_key)
            aggregation = self._aggregate(self.aggregator, candidates, top_k, timings)
            sources = _cited_sources(candidates, aggregation, locator_key)
            resources = "" if aggregation.is_empty else aggregation.as_context(
                self.aggregator.config.separator
            )
            prompt = build_agent_prompt(
                resources=resources, schema=current_schema, request=user_request
            )
            text = self._generate(prompt, timings)
            with timings.measure("extraction"):
                segments = self.extractor.extract(text)

        if not segments.schema_changes:
            logger.warning("agent response contained no schema changes segment")
        record = self.trace_store.create_record(
            mode="agent",
            question=user_request,
            answer=text,
            sources=sources,
            documents_used=len(aggregation.documents),
            stage_timings_ms=timings.stages,
            prompt=prompt,
            latency_ms=total.elapsed_ms,
        )
        return AgentResponse(
            response=text,
            schema_changes=segments.schema_changes,
            schema_ddl=segments.schema_ddl,
            segments=segments,
            sources=sources,
            trace_id=record.trace_id,
        )

    def run_chat(self, user_query: str, top_k: int = 0) -> ChatResponse:
        """Answer a free-form database question with cited sources."""
        namespace = self.config.chat_namespace
        top_k = top_k or self.config.chat_top_k
        locator_key = self.config.locator_key
        timings = StageTimings()
        logger.info("processing chat query in %s", namespace)

        with Timer() as total:
            matches = self.retriever.match(namespace, user_query, top_k, timings=timings)
            candidates = _candidates(self.chat_aggregator, matches, locator_key)
            aggregation = (
                self._aggregate(self.chat_aggregator, candidates, top_k, timings)
                if candidates
                else AggregationResult(target=top_k)
            )
            if aggregation.is_empty:
                logger.info("no usable context for chat query; returning fallback answer")
                text, prompt, sources = CHAT_FALLBACK_MESSAGE, "", []
            else:
                sources = _cited_sources(candidates, aggregation, locator_key)
                prompt = build_chat_prompt(
                    resources=_chat_context(aggregation, self.chat_aggregator.config.separator),
                    question=user_query,
                )
                text = strip_code_fences(self._generate(prompt, timings)).strip()

        record = self.trace_store.create_record(
            mode="chat",
            question=user_query,
            answer=text,
            sources=sources,
            documents_used=len(aggregation.documents),
            stage_timings_ms=timings.stages,
            prompt=prompt,
            latency_ms=total.elapsed_ms,
        )
        return ChatResponse(response=text, sources=sources, trace_id=record.trace_id)

    def run_report(self, analytics_data: str, schema_data: str) -> str:
        """Write a markdown report from analytics and schema; no retrieval."""
        timings = StageTimings()
        with Timer() as total:
            prompt = build_report_prompt(analytics=analytics_data, schema=schema_data)
            text = self._generate(prompt, timings)

        self.trace_store.create_record(
            mode="report",
            question="report",
            answer=text,
            sources=[],
            documents_used=0,
            stage_timings_ms=timings.stages,
            prompt=prompt,
            latency_ms=total.elapsed_ms,
        )
        return text

    def _aggregate(
        self,
        aggregator: ResourceAggregator,
        matches: Sequence[ScoredMatch],
        top_k: int,
        timings: StageTimings,
    ) -> AggregationResult:
        with timings.measure("fetch") as timer:
            result = asyncio.run(aggregator.aggregate(matches, top_k))
        logger.info("fetching the resources took %.3f seconds", timer.elapsed_ms / 1000.0)
        return result

    def _generate(self, prompt: str, timings: StageTimings) -> str:
        with timings.measure("generation") as timer:
            text = self.generator.generate(prompt)
        logger.info("generating the response took %.3f seconds", timer.elapsed_ms / 1000.0)
        return text


def _candidates(
    aggregator: ResourceAggregator, matches: Sequence[ScoredMatch], locator_key: str
) -> list[ScoredMatch]:
    # Inline chunks sharing a locator hold distinct text; fetched ones do not.
    ranked = rank_matches(matches)
    if aggregator.config.use_inline_content:
        return ranked
    return unique_by_locator(ranked, locator_key)


def _cited_sources(
    candidates: Sequence[ScoredMatch], aggregation: AggregationResult, locator_key: str
) -> list[str]:
    admitted = set(aggregation.locators)
    sources: list[str] = []
    for match in candidates:
        locator = match.locator(locator_key)
        if locator and locator in admitted and locator not in sources:
            sources.append(locator)
    return sources


def _chat_context(aggregation: AggregationResult, separator: str) -> str:
    """One block per locator, its bodies in arrival order under a single header."""
    grouped: dict[str, list[str]] = {}
    for doc in aggregation.documents:
        grouped.setdefault(doc.locator, []).append(doc.body)

    parts: list[str] = []
    for locator, bodies in grouped.items():
        header = f"Source: {locator}\n\n" if locator else ""
        joined = "\n\n".join(bodies)
        parts.append(f"{separator}\n{header}{joined}\n")
    parts.append(f"{separator}\n")
    return "".join(parts)
