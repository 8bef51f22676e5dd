"""Pydantic models for the relational schema and analytics payloads.

Field names follow the upper-case JSON layout the prompts ask the model to
produce (`TABLES`, `COLUMNS`, `PRIMARY_KEYS`, ...).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ColumnInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(alias="TYPE")
    nullable: bool | None = Field(default=None, alias="NULLABLE")
    unique: bool | None = Field(default=None, alias="UNIQUE")
    default: Any = Field(default=None, alias="DEFAULT")
    checks: list[Any] = Field(default_factory=list, alias="CHECKS")
    is_primary: bool = Field(default=False, alias="IS_PRIMARY")
    is_index: bool = Field(default=False, alias="IS_INDEX")
    comment: str | None = Field(default=None, alias="COMMENT")


class ForeignKeyInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    columns: list[str] = Field(alias="COLUMNS")
    foreign_table: str = Field(alias="FOREIGN_TABLE")
    referred_columns: list[str] = Field(alias="REFERRED_COLUMNS")
    on_delete: str | None = Field(default=None, alias="ON_DELETE")
    on_update: str | None = Field(default=None, alias="ON_UPDATE")


class TableInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    columns: dict[str, ColumnInfo] = Field(default_factory=dict, alias="COLUMNS")
    primary_keys: list[str] = Field(default_factory=list, alias="PRIMARY_KEYS")
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list, alias="FOREIGN_KEYS")
    checks: list[Any] = Field(default_factory=list, alias="CHECKS")
    indexes: list[list[str]] = Field(default_factory=list, alias="INDEXES")
    comment: str | None = Field(default=None, alias="COMMENT")


class DatabaseSchema(BaseModel):
    """Schema document exchanged with the model in agent mode."""

    model_config = ConfigDict(populate_by_name=True)

    tables: dict[str, TableInfo] = Field(default_factory=dict, alias="TABLES")

    @classmethod
    def try_parse(cls, raw: Any) -> DatabaseSchema | None:
        """Validate a parsed JSON value or raw JSON text; `None` if invalid."""
        try:
            if isinstance(raw, str):
                return cls.model_validate_json(raw)
            return cls.model_validate(raw)
        except (ValidationError, ValueError):
            return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class MonthlyAnalytic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    disk_usage: float = Field(default=0.0, ge=0.0, alias="DiskUsage")
    cpu_usage: float = Field(default=0.0, ge=0.0, alias="CPUUsage")
    memory_usage: float = Field(default=0.0, ge=0.0, alias="MemoryUsage")
    network_usage: float = Field(default=0.0, ge=0.0, alias="NetworkUsage")
    costs: float = Field(default=0.0, ge=0.0, alias="Costs")


class Analytics(BaseModel):
    """Usage analytics keyed by month (`YYYY-MM`) for report mode."""

    model_config = ConfigDict(populate_by_name=True)

    monthly: dict[str, MonthlyAnalytic] = Field(
        default_factory=dict, alias="MonthlyAnalytics"
    )

    def to_prompt_text(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=2, sort_keys=True)


def analytics_prompt_text(value: str | dict[str, Any]) -> str:
    """Normalize an analytics payload for the report prompt.

    JSON carrying `MonthlyAnalytics` is validated and re-rendered; anything
    else, including payloads that fail validation, is passed through as text.
    """
    payload: Any = value
    if isinstance(value, str):
        try:
            payload = json.loads(value)
        except json.JSONDecodeError:
            return value
    if isinstance(payload, dict) and "MonthlyAnalytics" in payload:
        try:
            return Analytics.model_validate(payload).to_prompt_text()
        except ValidationError as exc:
            logger.warning("analytics payload did not validate, sending it verbatim: %s", exc)
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, sort_keys=True)
