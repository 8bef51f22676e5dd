"""Document fetching over HTTP."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from schema_rag.errors import FetchError

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {"User-Agent": "schema-rag-agent/0.1", "Accept": "text/*, application/json"}


class DocumentFetcher(Protocol):
    """Retrieves the textual body behind a document locator."""

    async def fetch(self, locator: str) -> str:
        """Return the body; raises `FetchError` on any failure."""


class HttpDocumentFetcher:
    """Fetches documents with `httpx.AsyncClient`.

    Any transport error, timeout, non-200 status or empty body is reported as
    `FetchError`. A custom `transport` can be injected for tests.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 5.0,
        max_bytes: int = 2_000_000,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self._headers = {**_DEFAULT_HEADERS, **(headers or {})}
        self._transport = transport

    async def fetch(self, locator: str) -> str:
        if not locator:
            raise FetchError(locator, "empty locator")

        timeout = httpx.Timeout(self.timeout_seconds)
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.get(locator)
        except httpx.TimeoutException as exc:
            raise FetchError(locator, "timeout") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(locator, f"transport error: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise FetchError(locator, "non-success status", status_code=response.status_code)

        raw = response.content[: self.max_bytes]
        body = raw.decode(response.encoding or "utf-8", errors="replace").strip()
        if not body:
            raise FetchError(locator, "empty body")
        logger.debug("fetched %s (%d bytes)", locator, len(raw))
        return body
