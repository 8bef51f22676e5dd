"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys

_HANDLER_NAME = "schema_rag.structured"


class StructuredFormatter(logging.Formatter):
    """Formats records as `key=value` pairs on a single line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        trace_id = getattr(record, "trace_id", None)
        if trace_id:
            log_data["trace_id"] = trace_id
        line = " ".join(f"{key}={value}" for key, value in log_data.items())
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach one stdout handler to the package logger; safe to call repeatedly."""
    logger = logging.getLogger("schema_rag")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(handler.get_name() == _HANDLER_NAME for handler in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
    return logger
