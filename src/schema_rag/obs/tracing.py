"""Per-request tracing, stage timings and token cost accounting."""

from __future__ import annotations

import re
import uuid
from collections import Counter, OrderedDict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    mode: str
    question: str
    answer: str
    sources: list[str]
    documents_used: int
    stage_timings_ms: dict[str, float]
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float


@dataclass(slots=True)
class TokenPricing:
    """USD per 1K tokens; defaults match gpt-4o-mini list prices."""

    prompt_per_1k: float = 0.00015
    completion_per_1k: float = 0.0006

    def cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (
            prompt_tokens * self.prompt_per_1k + completion_tokens * self.completion_per_1k
        ) / 1000.0


class Timer:
    """Context manager measuring wall time in milliseconds."""

    def __init__(self) -> None:
        self._started = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> Timer:
        self._started = perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (perf_counter() - self._started) * 1000.0


@dataclass(slots=True)
class StageTimings:
    """Named stage durations (ms) collected over one request."""

    stages: dict[str, float] = field(default_factory=dict)

    def record(self, name: str, timer: Timer) -> None:
        self.stages[name] = timer.elapsed_ms

    @contextmanager
    def measure(self, name: str) -> Iterator[Timer]:
        timer = Timer()
        try:
            with timer:
                yield timer
        finally:
            self.record(name, timer)

    def total_ms(self) -> float:
        return sum(self.stages.values())


class TraceStore:
    """Keeps the most recent request traces in memory.

    Oldest records are evicted once `max_records` is exceeded, so a long
    running API process does not grow without bound.
    """

    def __init__(self, *, pricing: TokenPricing | None = None, max_records: int = 1000) -> None:
        if max_records < 1:
            raise ValueError("max_records must be >= 1")
        self.pricing = pricing or TokenPricing()
        self.max_records = max_records
        self._records: OrderedDict[str, TraceRecord] = OrderedDict()

    def create_record(
        self,
        *,
        mode: str,
        question: str,
        answer: str,
        sources: list[str],
        documents_used: int,
        stage_timings_ms: dict[str, float],
        prompt: str,
        latency_ms: float,
    ) -> TraceRecord:
        # Chat fallbacks skip generation and carry no prompt.
        input_tokens = estimate_token_count(prompt)
        output_tokens = estimate_token_count(answer) if prompt else 0
        record = TraceRecord(
            trace_id=uuid.uuid4().hex,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            mode=mode,
            question=question,
            answer=answer,
            sources=list(sources),
            documents_used=documents_used,
            stage_timings_ms=dict(stage_timings_ms),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self.pricing.cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
        )
        self._records[record.trace_id] = record
        while len(self._records) > self.max_records:
            self._records.popitem(last=False)
        return record

    def get(self, trace_id: str) -> TraceRecord:
        try:
            return self._records[trace_id]
        except KeyError:
            raise KeyError(f"Trace not found: {trace_id}") from None

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        if limit < 1:
            return []
        return list(self._records.values())[-limit:]

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> dict[str, Any]:
        """Request counts, latency, document usage, stage averages and cost."""
        records = list(self._records.values())
        stage_totals: Counter[str] = Counter()
        stage_counts: Counter[str] = Counter()
        for record in records:
            stage_totals.update(record.stage_timings_ms)
            stage_counts.update(record.stage_timings_ms.keys())

        count = len(records)
        latencies = sorted(record.latency_ms for record in records)
        return {
            "total_requests": count,
            "requests_by_mode": dict(Counter(record.mode for record in records)),
            "avg_latency_ms": sum(latencies) / count if count else 0.0,
            "p95_latency_ms": _percentile(latencies, 0.95),
            "avg_documents_used": (
                sum(record.documents_used for record in records) / count if count else 0.0
            ),
            "avg_stage_ms": {name: stage_totals[name] / stage_counts[name] for name in stage_totals},
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))


def _percentile(sorted_values: list[float], fraction: float) -> float:
    if not sorted_values:
        return 0.0
    index = min(len(sorted_values) - 1, max(0, round(fraction * len(sorted_values)) - 1))
    return sorted_values[index]
