"""Extraction of JSON and SQL segments from generated markdown text.

Segments are located by an ordered list of strategies. The first strategy
that finds a segment of a given kind wins, so fenced code blocks take
precedence over explicit `# SCHEMA CHANGES` / `# SCHEMA DDL` sections.
Adding a new format means appending a strategy.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from enum import Enum
from typing import Any, Protocol

from schema_rag.errors import ExtractionError
from schema_rag.types import (
    ExtractedSegments,
    GenericCodeSegment,
    JSONSegment,
    SQLSegment,
    StatementKind,
)

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL)
_FENCE_MARKER = re.compile(r"```[\w+#.-]*")
_INLINE_CODE = re.compile(r"`([^`\n]+)`")
_BLANK_LINE = re.compile(r"\n[ \t]*\n")
_SQL_LEADING_COMMENTS = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)*", re.DOTALL)
_SQL_FIRST_TOKEN = re.compile(r"[A-Za-z]+")

JSON_LANGUAGES = frozenset({"json", "jsonc", "json5", "javascript", "js"})
SQL_LANGUAGES = frozenset(
    {"sql", "mysql", "mariadb", "postgresql", "postgres", "pgsql", "psql", "sqlite", "plsql", "tsql", "mssql"}
)
_STATEMENT_KINDS = {kind.value: kind for kind in StatementKind if kind is not StatementKind.OTHER}


class SegmentKind(str, Enum):
    JSON = "json"
    SQL = "sql"

    @property
    def languages(self) -> frozenset[str]:
        return JSON_LANGUAGES if self is SegmentKind.JSON else SQL_LANGUAGES


Segment = JSONSegment | SQLSegment


class ExtractionStrategy(Protocol):
    """Finds the first segment of a kind in text, or returns `None`."""

    name: str

    def find(self, text: str, kind: SegmentKind) -> Segment | None:
        ...


class FencedBlockStrategy:
    """Looks for ```lang fenced blocks tagged with a language of the kind."""

    name = "fenced"

    def find(self, text: str, kind: SegmentKind) -> Segment | None:
        for block in extract_code_blocks(text):
            if block.language not in kind.languages:
                continue
            segment = build_segment(kind, block.language, block.raw)
            if segment is not None:
                return segment
        return None


class MarkerStrategy:
    """Takes everything between a literal start header and end header.

    When the end header is missing, the segment stops at the first blank line
    after its content, at the next header in `stop_markers`, or at the end of
    the text. A fenced block right after the header is taken whole and
    unwrapped.
    """

    name = "marker"

    def __init__(
        self,
        kind: SegmentKind,
        start_marker: str,
        end_marker: str,
        stop_markers: Iterable[str] = (),
    ) -> None:
        self.kind = kind
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.stop_markers = tuple(stop_markers)
        self._start = _header_pattern(start_marker)
        self._end = _header_pattern(end_marker)
        self._stops = [_header_pattern(marker) for marker in self.stop_markers]

    def find(self, text: str, kind: SegmentKind) -> Segment | None:
        if kind is not self.kind:
            return None
        start = self._start.search(text)
        if start is None:
            return None

        rest = text[start.end():]
        end = self._end.search(rest)
        if end is not None:
            body = rest[: end.start()]
        else:
            body = _implicit_body(rest)
            for stop in self._stops:
                found = stop.search(body)
                if found is not None:
                    body = body[: found.start()]
        body = _unfence(body).strip()
        if not body:
            return None
        return build_segment(kind, kind.value, body)


def default_strategies() -> list[ExtractionStrategy]:
    changes = ("SCHEMA CHANGES", "END SCHEMA CHANGES")
    ddl = ("SCHEMA DDL", "END SCHEMA DDL")
    return [
        FencedBlockStrategy(),
        MarkerStrategy(SegmentKind.JSON, *changes, stop_markers=ddl),
        MarkerStrategy(SegmentKind.SQL, *ddl, stop_markers=changes),
    ]


class ResponseExtractor:
    """Pulls the authoritative schema JSON and DDL out of a model answer.

    Never raises: a missing segment is `None` (an empty string through
    `ExtractedSegments.schema_changes` / `schema_ddl`) and malformed JSON is
    kept with its `error` set.
    """

    def __init__(self, strategies: Sequence[ExtractionStrategy] | None = None) -> None:
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def extract(self, text: str) -> ExtractedSegments:
        blocks = extract_code_blocks(text)
        json_blocks: list[JSONSegment] = []
        sql_blocks: list[SQLSegment] = []
        for block in blocks:
            if block.language in JSON_LANGUAGES:
                json_segment = build_json_segment(block.language, block.raw)
                if json_segment is not None:
                    json_blocks.append(json_segment)
            elif block.language in SQL_LANGUAGES:
                sql_blocks.append(build_sql_segment(block.language, block.raw))

        schema_json = self.find(text, SegmentKind.JSON)
        schema_sql = self.find(text, SegmentKind.SQL)
        return ExtractedSegments(
            schema_json=schema_json if isinstance(schema_json, JSONSegment) else None,
            schema_sql=schema_sql if isinstance(schema_sql, SQLSegment) else None,
            json_blocks=tuple(json_blocks),
            sql_blocks=tuple(sql_blocks),
            all_blocks=tuple(blocks),
        )

    def find(self, text: str, kind: SegmentKind) -> Segment | None:
        for strategy in self.strategies:
            segment = strategy.find(text, kind)
            if segment is not None:
                logger.debug("found %s segment with %s strategy", kind.value, strategy.name)
                return segment
        return None


def extract_code_blocks(text: str) -> list[GenericCodeSegment]:
    """Every fenced block in order of appearance; untagged blocks are `unknown`."""
    blocks: list[GenericCodeSegment] = []
    for match in _FENCED_BLOCK.finditer(text):
        language = match.group(1).lower() or "unknown"
        blocks.append(GenericCodeSegment(language=language, raw=match.group(2).strip()))
    return blocks


def build_segment(kind: SegmentKind, language: str, raw: str) -> Segment | None:
    if kind is SegmentKind.JSON:
        return build_json_segment(language, raw)
    return build_sql_segment(language, raw)


def build_json_segment(language: str, raw: str) -> JSONSegment | None:
    """Parse a JSON block; keep JSON-looking failures, drop false positives."""
    code = raw.strip()
    try:
        parsed = parse_json(code)
    except ExtractionError as exc:
        if not looks_like_json(code):
            return None
        return JSONSegment(language=language, raw=code, error=str(exc))
    return JSONSegment(language=language, raw=code, parsed=parsed)


def build_sql_segment(language: str, raw: str) -> SQLSegment:
    code = raw.strip()
    return SQLSegment(language=language, raw=code, statement_kind=classify_sql(code))


def parse_json(code: str) -> Any:
    try:
        return json.loads(code)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Invalid JSON syntax: {exc}") from exc


def looks_like_json(code: str) -> bool:
    return code.lstrip().startswith(("{", "["))


def classify_sql(code: str) -> StatementKind:
    """Classify by the first keyword, ignoring case and leading comments."""
    remainder = _SQL_LEADING_COMMENTS.sub("", code, count=1)
    token = _SQL_FIRST_TOKEN.match(remainder)
    if token is None:
        return StatementKind.OTHER
    return _STATEMENT_KINDS.get(token.group(0).upper(), StatementKind.OTHER)


def extract_inline_code(text: str) -> list[str]:
    """Inline `code` spans outside fenced blocks."""
    return _INLINE_CODE.findall(_FENCED_BLOCK.sub("", text))


def filter_blocks_by_language(
    blocks: Iterable[GenericCodeSegment], languages: Iterable[str]
) -> list[GenericCodeSegment]:
    wanted = {language.lower() for language in languages}
    return [block for block in blocks if block.language in wanted]


def pretty_json(code: str) -> str:
    return json.dumps(parse_json(code), indent=2, ensure_ascii=False)


def strip_code_fences(text: str) -> str:
    """Remove ``` markers (with any language tag) but keep their content."""
    return _FENCE_MARKER.sub("", text)


def _header_pattern(label: str) -> re.Pattern[str]:
    words = r"[ \t]+".join(re.escape(word) for word in label.split())
    return re.compile(
        rf"^[ \t]*(?:#+[ \t]*)?(?:\*\*)?{words}(?:\*\*)?[ \t:]*$",
        re.IGNORECASE | re.MULTILINE,
    )


def _implicit_body(rest: str) -> str:
    body = rest.lstrip(" \t\r\n")
    fenced = _FENCED_BLOCK.match(body)
    if fenced is not None:
        return fenced.group(0)
    blank = _BLANK_LINE.search(body)
    return body[: blank.start()] if blank is not None else body


def _unfence(body: str) -> str:
    stripped = body.strip()
    fenced = _FENCED_BLOCK.match(stripped)
    if fenced is not None:
        return fenced.group(2)
    return strip_code_fences(stripped)
