"""Configuration models for the agent conversation pipeline."""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChunkingConfig(BaseModel):
    """Configures fixed-window chunking with backward overlap."""

    chunk_size: int = Field(default=1000, ge=1)
    overlap: int = Field(default=50, ge=0)
    min_chunk_chars: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError("overlap must be less than chunk_size")
        return self


class ValidationConfig(BaseModel):
    """Thresholds for the extracted-content quality gate."""

    min_length: int = Field(default=10, ge=1)
    max_non_printable_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    min_words: int = Field(default=3, ge=0)
    min_word_length: int = Field(default=3, ge=1)
    max_text_chars: int = Field(default=80_000, ge=1000)


class RetrievalConfig(BaseModel):
    """Per-agent retrieval options bag.

    Field names match the stored agent settings so the bag can be validated
    straight from the agent record.
    """

    enable_company_profile: bool = True
    enable_agent_docs: bool = True
    enable_shared_docs: bool = True
    enable_playbooks: bool = True
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_chunks_per_source: int = Field(default=5, ge=1)
    total_max_chunks: int = Field(default=15, ge=1)
    content_preview_chars: int = Field(default=200, ge=1)
    playbook_snippet_chars: int = Field(default=1000, ge=1)

    @property
    def any_enabled(self) -> bool:
        return (
            self.enable_company_profile
            or self.enable_agent_docs
            or self.enable_shared_docs
            or self.enable_playbooks
        )


class ClassifierConfig(BaseModel):
    """Configures intent classification and override rules."""

    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    history_window: int = Field(default=8, ge=0)
    research_tool_name: str = "web_research"


class AgentConfig(BaseModel):
    """Configures one conversation turn."""

    history_limit: int = Field(default=25, ge=0)
    tool_timeout_seconds: float = Field(default=30.0, gt=0.0)


class Settings(BaseSettings):
    """Process-level settings read from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_PIPELINE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    chat_model: str = "gpt-4o-mini"
    fallback_chat_model: str | None = "gpt-4o"
    classifier_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-large"
    embedding_dimensions: int = Field(default=1536, ge=1)
    llm_timeout_seconds: float = Field(default=60.0, gt=0.0)
    llm_max_retries: int = Field(default=2, ge=0)
    embedding_timeout_seconds: float = Field(default=30.0, gt=0.0)
    embedding_max_retries: int = Field(default=2, ge=0)
    log_level: str = "INFO"
    log_json: bool = False
    api_token: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
