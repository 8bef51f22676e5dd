"""Concurrent resource aggregation with an admission gate and a global deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from schema_rag.config import AggregationConfig
from schema_rag.errors import FetchError
from schema_rag.retrieval.fetcher import DocumentFetcher
from schema_rag.types import AggregationResult, RetrievedDocument, ScoredMatch

logger = logging.getLogger(__name__)


class AdmissionGate:
    """Fixed-capacity sink shared by concurrent fetch tasks.

    `admit` is the only way into the result. Once `target` documents are held,
    or the gate has been closed, every further document is discarded.
    """

    def __init__(self, target: int) -> None:
        if target < 1:
            raise ValueError("target must be >= 1")
        self.target = target
        self.discarded = 0
        self._documents: list[RetrievedDocument] = []
        self._closed = False
        self._lock = asyncio.Lock()

    @property
    def admitted(self) -> int:
        return len(self._documents)

    @property
    def is_full(self) -> bool:
        return len(self._documents) >= self.target

    @property
    def is_open(self) -> bool:
        return not self._closed and not self.is_full

    async def admit(self, document: RetrievedDocument) -> bool:
        async with self._lock:
            if self._closed or len(self._documents) >= self.target:
                self.discarded += 1
                return False
            self._documents.append(document)
            return True

    async def close(self) -> list[RetrievedDocument]:
        """Stop admissions and return a snapshot in arrival order."""
        async with self._lock:
            self._closed = True
            return list(self._documents)


@dataclass(slots=True)
class _RunStats:
    failed: int = 0


def rank_matches(matches: Iterable[ScoredMatch]) -> list[ScoredMatch]:
    """Sort by descending score; ties keep their original order."""
    return sorted(matches, key=lambda match: match.score, reverse=True)


def unique_by_locator(
    matches: Iterable[ScoredMatch], locator_key: str = "source_url"
) -> list[ScoredMatch]:
    """Drop matches whose locator was already seen, keeping first occurrences."""
    seen: set[str] = set()
    unique: list[ScoredMatch] = []
    for match in matches:
        locator = match.locator(locator_key)
        if locator and locator in seen:
            continue
        if locator:
            seen.add(locator)
        unique.append(match)
    return unique


class ResourceAggregator:
    """Fetches the documents behind ranked matches, in parallel.

    One task is started per match, highest score first. Each fetch has its own
    timeout; the whole call has one deadline. Failed fetches are logged and
    skipped, so the result may be smaller than `target` or empty. Documents are
    kept in the order they were admitted, which is completion order.
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        config: AggregationConfig | None = None,
        *,
        locator_key: str = "source_url",
        content_key: str = "content",
    ) -> None:
        self.fetcher = fetcher
        self.config = config or AggregationConfig()
        self.locator_key = locator_key
        self.content_key = content_key

    async def aggregate(
        self,
        matches: Sequence[ScoredMatch],
        target: int,
        *,
        per_fetch_timeout: float | None = None,
        overall_deadline: float | None = None,
    ) -> AggregationResult:
        if target < 1:
            raise ValueError("target must be >= 1")
        fetch_timeout = per_fetch_timeout or self.config.per_fetch_timeout_seconds
        deadline = overall_deadline or self.config.overall_deadline_seconds

        ranked = rank_matches(matches)
        result = AggregationResult(target=target, attempted=len(ranked))
        if not ranked:
            return result

        gate = AdmissionGate(target)
        stats = _RunStats()
        tasks = [
            asyncio.create_task(
                self._fetch_and_admit(match, gate, stats, fetch_timeout),
                name=f"fetch-{index}",
            )
            for index, match in enumerate(ranked)
        ]

        loop = asyncio.get_running_loop()
        deadline_at = loop.time() + deadline
        pending: set[asyncio.Task[None]] = set(tasks)
        while pending and not gate.is_full:
            remaining = deadline_at - loop.time()
            if remaining <= 0:
                result.deadline_reached = True
                break
            _, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )

        result.documents = await gate.close()
        if pending:
            logger.info(
                "stopping resource fetching with %d fetches still running (%s)",
                len(pending),
                "deadline reached" if result.deadline_reached else "target reached",
            )
            if self.config.cancel_late_fetches:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        result.failed = stats.failed
        result.discarded = gate.discarded
        logger.info(
            "aggregated %d/%d resources from %d candidates (%d failed)",
            len(result.documents),
            target,
            len(ranked),
            result.failed,
        )
        return result

    async def _fetch_and_admit(
        self,
        match: ScoredMatch,
        gate: AdmissionGate,
        stats: _RunStats,
        timeout: float,
    ) -> None:
        if not gate.is_open:
            return
        locator = match.locator(self.locator_key)
        try:
            body = await self._resolve(match, locator, timeout)
        except FetchError as exc:
            stats.failed += 1
            logger.warning("skipping resource: %s", exc)
            return

        document = RetrievedDocument(locator=locator, body=body, score=match.score)
        if await gate.admit(document):
            logger.debug("admitted resource %d/%d from %s", gate.admitted, gate.target, locator)
        else:
            logger.debug("discarded late resource from %s", locator)

    async def _resolve(self, match: ScoredMatch, locator: str, timeout: float) -> str:
        if self.config.use_inline_content:
            inline = match.content(self.content_key)
            if inline:
                return inline

        try:
            body = await asyncio.wait_for(self.fetcher.fetch(locator), timeout)
        except asyncio.TimeoutError as exc:
            raise FetchError(locator, "timeout") from exc
        except FetchError:
            raise
        except Exception as exc:
            # Fetchers are pluggable; anything they raise is a per-document failure.
            raise FetchError(locator, f"unexpected error: {exc}") from exc

        if not body or not body.strip():
            raise FetchError(locator, "empty body")
        return body
