"""FastAPI entrypoint for agent/chat/report and trace endpoints."""

from __future__ import annotations

import json
from dataclasses import asdict
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from schema_rag.agent.factory import build_orchestrator
from schema_rag.agent.orchestrator import RagOrchestrator
from schema_rag.config import get_settings
from schema_rag.errors import NotConfiguredError, RagError
from schema_rag.obs.logging import configure_logging
from schema_rag.schema import DatabaseSchema, analytics_prompt_text


class AgentRequest(BaseModel):
    namespace: str = Field(default="schemas-json", min_length=1)
    current_schema: str | dict[str, Any] = ""
    user_request: str = Field(min_length=1)
    top_k: int = Field(default=0, ge=0, le=20)


class ChatRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=0, ge=0, le=20)


class ReportRequest(BaseModel):
    analytics: str | dict[str, Any]
    current_schema: str | dict[str, Any] = ""


app = FastAPI(title="Schema RAG Agent", version="0.1.0")


@lru_cache
def get_orchestrator() -> RagOrchestrator:
    settings = get_settings()
    configure_logging(settings.log_level)
    return build_orchestrator(settings)


def orchestrator_dependency() -> RagOrchestrator:
    try:
        return get_orchestrator()
    except NotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


Orchestrator = Annotated[RagOrchestrator, Depends(orchestrator_dependency)]


@app.get("/health")
def health(orchestrator: Orchestrator) -> dict[str, Any]:
    return {
        "status": "ok",
        "env": get_settings().env,
        "agent_namespace": orchestrator.config.agent_namespace,
        "chat_namespace": orchestrator.config.chat_namespace,
        "trace_count": len(orchestrator.trace_store),
    }


@app.post("/agent")
def agent(request: AgentRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    try:
        result = orchestrator.run_agent(
            request.namespace,
            _as_text(request.current_schema),
            request.user_request,
            request.top_k,
        )
    except RagError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    proposed = DatabaseSchema.try_parse(result.schema_changes) if result.schema_changes else None
    schema_error = (
        result.segments.schema_json.error if result.segments.schema_json is not None else None
    )
    return {
        "response": result.response,
        "schema_changes": result.schema_changes,
        "schema_ddl": result.schema_ddl,
        "schema_changes_error": schema_error,
        "ddl_statement_kind": (
            result.segments.schema_sql.statement_kind.value
            if result.segments.schema_sql is not None
            else None
        ),
        "schema_valid": proposed is not None,
        "sources": result.sources,
        "trace_id": result.trace_id,
    }


@app.post("/chat")
def chat(request: ChatRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    try:
        result = orchestrator.run_chat(request.query, request.top_k)
    except RagError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"response": result.response, "sources": result.sources, "trace_id": result.trace_id}


@app.post("/report")
def report(request: ReportRequest, orchestrator: Orchestrator) -> dict[str, Any]:
    try:
        text = orchestrator.run_report(
            analytics_prompt_text(request.analytics), _as_text(request.current_schema)
        )
    except RagError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"report": text}


@app.get("/traces")
def traces(orchestrator: Orchestrator, limit: int = 20) -> dict[str, Any]:
    records = [asdict(record) for record in orchestrator.trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str, orchestrator: Orchestrator) -> dict[str, Any]:
    try:
        record = orchestrator.trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics(orchestrator: Orchestrator) -> dict[str, Any]:
    return orchestrator.trace_store.summary()


def _as_text(value: str | dict[str, Any]) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, sort_keys=True)

