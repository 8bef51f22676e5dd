"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_LOCATOR_STRIP = "\"\n \t"


@dataclass(frozen=True, slots=True)
class ScoredMatch:
    """A candidate document reference returned by similarity search."""

    match_id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def locator(self, key: str = "source_url") -> str:
        value = self.metadata.get(key)
        if value is None:
            return ""
        return str(value).strip(_LOCATOR_STRIP)

    def content(self, key: str = "content") -> str:
        value = self.metadata.get(key)
        if value is None:
            return ""
        return str(value).strip(_LOCATOR_STRIP)


@dataclass(frozen=True, slots=True)
class RetrievedDocument:
    """Body fetched for one match, plus the locator it came from."""

    locator: str
    body: str
    score: float = 0.0


@dataclass(slots=True)
class AggregationResult:
    """Documents admitted by the resource aggregator, in arrival order."""

    target: int
    documents: list[RetrievedDocument] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0
    discarded: int = 0
    deadline_reached: bool = False

    @property
    def locators(self) -> list[str]:
        return [doc.locator for doc in self.documents]

    @property
    def is_empty(self) -> bool:
        return not self.documents

    def as_context(self, separator: str = "--------------------------------") -> str:
        """Concatenate bodies the way prompt templates expect them."""
        parts: list[str] = []
        for doc in self.documents:
            parts.append(f"{separator}\n{doc.body}\n")
        parts.append(f"{separator}\n")
        return "".join(parts)


class StatementKind(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE = "CREATE"
    ALTER = "ALTER"
    DROP = "DROP"
    OTHER = "OTHER"


@dataclass(frozen=True, slots=True)
class GenericCodeSegment:
    """Any fenced block, tagged with its declared language."""

    language: str
    raw: str


@dataclass(frozen=True, slots=True)
class JSONSegment:
    """A JSON block with its parsed value, or the parse error message."""

    language: str
    raw: str
    parsed: Any = None
    error: str | None = None

    @property
    def has_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True, slots=True)
class SQLSegment:
    """A SQL block classified by its leading statement keyword."""

    language: str
    raw: str
    statement_kind: StatementKind = StatementKind.OTHER


@dataclass(frozen=True, slots=True)
class ExtractedSegments:
    """Result of one extraction pass over generated text.

    `schema_json` and `schema_sql` are the authoritative segments (first match
    of the highest-priority strategy); the block lists keep everything found.
    """

    schema_json: JSONSegment | None = None
    schema_sql: SQLSegment | None = None
    json_blocks: tuple[JSONSegment, ...] = ()
    sql_blocks: tuple[SQLSegment, ...] = ()
    all_blocks: tuple[GenericCodeSegment, ...] = ()

    @property
    def schema_changes(self) -> str:
        return self.schema_json.raw if self.schema_json is not None else ""

    @property
    def schema_ddl(self) -> str:
        return self.schema_sql.raw if self.schema_sql is not None else ""


@dataclass(slots=True)
class AgentResponse:
    """Agent-mode envelope: raw answer plus the proposed schema and DDL."""

    response: str
    schema_changes: str
    schema_ddl: str
    segments: ExtractedSegments = field(default_factory=ExtractedSegments)
    sources: list[str] = field(default_factory=list)
    trace_id: str = ""


@dataclass(slots=True)
class ChatResponse:
    """Chat-mode envelope: answer text plus de-duplicated cited locators."""

    response: str
    sources: list[str] = field(default_factory=list)
    trace_id: str = ""
