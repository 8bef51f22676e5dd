import pytest
from fastapi.testclient import TestClient

from schema_rag.api import main
from schema_rag.errors import GenerationError, NotConfiguredError
from tests.fakes import FakeGenerator, build_orchestrator

AGENT_ANSWER = (
    "# SCHEMA CHANGES\n"
    "```json\n"
    '{"TABLES": {"users": {"COLUMNS": {"id": {"TYPE": "serial"}}, "PRIMARY_KEYS": ["id"]}}}\n'
    "```\n"
    "# END SCHEMA CHANGES\n\n"
    "# SCHEMA DDL\n"
    "```sql\nCREATE TABLE users (id serial PRIMARY KEY);\n```\n"
    "# END SCHEMA DDL\n"
)


@pytest.fixture
def client_for():
    def make(generator: FakeGenerator) -> TestClient:
        orchestrator, _ = build_orchestrator(
            documents={
                "schemas-json": [("https://refs.example/keys", "primary keys")],
                "database-articles": [("https://articles.example/keys", "primary keys")],
            },
            fetch_plan={
                "https://refs.example/keys": (0.0, "Every table needs a primary key."),
                "https://articles.example/keys": (0.0, "Primary keys uniquely identify rows."),
            },
            generator=generator,
        )
        main.app.dependency_overrides[main.orchestrator_dependency] = lambda: orchestrator
        return TestClient(main.app)

    yield make
    main.app.dependency_overrides.clear()


def test_agent_chat_report_traces_metrics(client_for) -> None:
    client = client_for(FakeGenerator(AGENT_ANSWER))

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["chat_namespace"] == "database-articles"

    agent_resp = client.post(
        "/agent",
        json={"current_schema": {"TABLES": {}}, "user_request": "add a users table", "top_k": 1},
    )
    assert agent_resp.status_code == 200
    agent = agent_resp.json()
    assert agent["schema_valid"] is True
    assert agent["schema_changes_error"] is None
    assert agent["ddl_statement_kind"] == "CREATE"
    assert agent["schema_ddl"] == "CREATE TABLE users (id serial PRIMARY KEY);"
    assert agent["sources"] == ["https://refs.example/keys"]

    chat_resp = client.post("/chat", json={"query": "what is a primary key?"})
    assert chat_resp.status_code == 200
    assert chat_resp.json()["sources"] == ["https://articles.example/keys"]

    report_resp = client.post(
        "/report",
        json={"analytics": {"MonthlyAnalytics": {"2024-05": {"Costs": 12}}}, "current_schema": ""},
    )
    assert report_resp.status_code == 200
    assert report_resp.json()["report"] == AGENT_ANSWER

    trace_resp = client.get(f"/traces/{agent['trace_id']}")
    assert trace_resp.status_code == 200
    assert trace_resp.json()["mode"] == "agent"
    assert len(client.get("/traces").json()["items"]) == 3
    assert client.get("/traces/unknown").status_code == 404

    metrics = client.get("/metrics").json()
    assert metrics["total_requests"] == 3


def test_generation_failure_maps_to_bad_gateway(client_for) -> None:
    client = client_for(FakeGenerator(error=GenerationError("model overloaded")))

    response = client.post("/agent", json={"user_request": "add an index"})

    assert response.status_code == 502
    assert "model overloaded" in response.json()["detail"]


def test_invalid_request_is_rejected(client_for) -> None:
    client = client_for(FakeGenerator())

    assert client.post("/chat", json={"query": ""}).status_code == 422
    assert client.post("/agent", json={"user_request": "x", "top_k": 99}).status_code == 422


def test_missing_configuration_maps_to_service_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def not_configured():
        raise NotConfiguredError("OPENAI_API_KEY is required")

    monkeypatch.setattr(main, "get_orchestrator", not_configured)

    response = TestClient(main.app).get("/health")

    assert response.status_code == 503
    assert response.json()["detail"] == "OPENAI_API_KEY is required"


def test_health_reports_deployment_env(client_for, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SCHEMA_RAG_ENV", "staging")
    main.get_settings.cache_clear()
    client = client_for(FakeGenerator())

    try:
        response = client.get("/health")
    finally:
        main.get_settings.cache_clear()

    assert response.json()["env"] == "staging"
