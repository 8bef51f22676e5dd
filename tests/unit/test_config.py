import pytest
from pydantic import ValidationError

from schema_rag.config import AggregationConfig, RetrievalConfig, Settings


def test_defaults() -> None:
    retrieval = RetrievalConfig()
    aggregation = AggregationConfig()

    assert retrieval.default_top_k == 5
    assert retrieval.candidate_overhead == 5
    assert retrieval.agent_namespace == "schemas-json"
    assert retrieval.chat_namespace == "database-articles"
    assert aggregation.cancel_late_fetches is True
    assert aggregation.use_inline_content is False
    assert aggregation.separator == "-" * 32


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        RetrievalConfig(default_top_k=0)
    with pytest.raises(ValidationError):
        AggregationConfig(overall_deadline_seconds=0)


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("VECTOR_STORE_PATH", "/data/index")
    monkeypatch.setenv("SCHEMA_RAG_TOP_K", "7")
    monkeypatch.setenv("SCHEMA_RAG_CANDIDATE_OVERHEAD", "2")
    monkeypatch.setenv("SCHEMA_RAG_FETCH_TIMEOUT_SECONDS", "1.5")
    monkeypatch.setenv("SCHEMA_RAG_FETCH_DEADLINE_SECONDS", "4")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")

    settings = Settings(_env_file=None)

    assert settings.openai_api_key == "sk-test"
    assert settings.vector_store_path == "/data/index"
    assert settings.retrieval_config().default_top_k == 7
    assert settings.retrieval_config().candidate_overhead == 2
    assert settings.aggregation_config().per_fetch_timeout_seconds == 1.5
    assert settings.aggregation_config().overall_deadline_seconds == 4.0
    assert settings.generation_config().model == "gpt-4o"


def test_settings_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("VECTOR_STORE_PATH", raising=False)

    settings = Settings(_env_file=None)

    assert settings.openai_api_key is None
    assert settings.vector_store_path is None
    assert settings.log_level == "INFO"


def test_settings_env_defaults_to_dev(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SCHEMA_RAG_ENV", raising=False)
    assert Settings(_env_file=None).env == "dev"

    monkeypatch.setenv("SCHEMA_RAG_ENV", "prod")
    assert Settings(_env_file=None).env == "prod"
