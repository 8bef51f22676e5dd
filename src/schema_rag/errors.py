"""Error taxonomy for the retrieval/generation pipeline.

Only `EmbeddingError`, `SearchError` and `GenerationError` abort a request.
`FetchError` is absorbed by the aggregator and `ExtractionError` is stored on
the extracted segment.
"""

from __future__ import annotations


class RagError(Exception):
    """Base class for pipeline errors."""


class EmbeddingError(RagError):
    """The embedding service failed to produce a vector."""


class SearchError(RagError):
    """The similarity search service failed."""


class GenerationError(RagError):
    """The generative model failed to produce a response."""


class FetchError(RagError):
    """A single document could not be fetched."""

    def __init__(self, locator: str, reason: str, *, status_code: int | None = None) -> None:
        self.locator = locator
        self.reason = reason
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else reason
        super().__init__(f"failed to fetch {locator or '<empty locator>'}: {detail}")


class ExtractionError(RagError):
    """A code segment could not be parsed into structured data."""


class NotConfiguredError(RagError):
    """Credentials or backing services required by a front end are missing."""
