"""Configuration models for the schema assistant."""

from __future__ import annotations

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrievalConfig(BaseModel):
    """Configures similarity search and candidate padding."""

    default_top_k: int = Field(default=5, ge=1)
    # Extra candidates requested so failed fetches can be replaced.
    candidate_overhead: int = Field(default=5, ge=0)
    agent_namespace: str = Field(default="schemas-json", min_length=1)
    chat_namespace: str = Field(default="database-articles", min_length=1)
    chat_top_k: int = Field(default=3, ge=1)
    locator_key: str = Field(default="source_url", min_length=1)
    content_key: str = Field(default="content", min_length=1)


class AggregationConfig(BaseModel):
    """Configures concurrent document fetching."""

    per_fetch_timeout_seconds: float = Field(default=5.0, gt=0.0)
    overall_deadline_seconds: float = Field(default=10.0, gt=0.0)
    cancel_late_fetches: bool = True
    use_inline_content: bool = False
    separator: str = "--------------------------------"


class GenerationConfig(BaseModel):
    """Configures the generative model."""

    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)


class Settings(BaseSettings):
    """Process settings loaded from the environment and an optional `.env`."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    openai_embedding_model: str = Field(
        default="text-embedding-3-small", alias="OPENAI_EMBEDDING_MODEL"
    )
    vector_store_path: str | None = Field(default=None, alias="VECTOR_STORE_PATH")
    env: str = Field(default="dev", alias="SCHEMA_RAG_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    top_k: int = Field(default=5, ge=1, alias="SCHEMA_RAG_TOP_K")
    candidate_overhead: int = Field(default=5, ge=0, alias="SCHEMA_RAG_CANDIDATE_OVERHEAD")
    fetch_timeout_seconds: float = Field(
        default=5.0, gt=0.0, alias="SCHEMA_RAG_FETCH_TIMEOUT_SECONDS"
    )
    fetch_deadline_seconds: float = Field(
        default=10.0, gt=0.0, alias="SCHEMA_RAG_FETCH_DEADLINE_SECONDS"
    )

    def retrieval_config(self) -> RetrievalConfig:
        return RetrievalConfig(
            default_top_k=self.top_k,
            candidate_overhead=self.candidate_overhead,
        )

    def aggregation_config(self) -> AggregationConfig:
        return AggregationConfig(
            per_fetch_timeout_seconds=self.fetch_timeout_seconds,
            overall_deadline_seconds=self.fetch_deadline_seconds,
        )

    def generation_config(self) -> GenerationConfig:
        return GenerationConfig(
            model=self.openai_model,
            embedding_model=self.openai_embedding_model,
        )


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings()
