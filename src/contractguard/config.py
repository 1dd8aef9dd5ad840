"""
Configuration management for ContractGuard.

Loads settings from environment variables with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    json_logs: bool = False

    # ==========================================================================
    # Completion Providers (OpenAI-compatible chat API)
    # ==========================================================================
    groq_api_key: str = Field(default="", description="Groq API key")
    groq_api_url: str = "https://api.groq.com/openai/v1/chat/completions"
    primary_llm_model: str = "llama-3.3-70b-versatile"
    fallback_llm_model: str = "llama-3.1-8b-instant"
    llm_max_retries: int = 2
    llm_base_retry_delay: float = 1.0
    llm_default_retry_after: float = 5.0

    # Clause, date and type extraction
    extraction_temperature: float = 0.1
    extraction_max_tokens: int = 4096
    extraction_timeout: float = 20.0

    # Executive summary
    summary_temperature: float = 0.3
    summary_max_tokens: int = 512
    summary_timeout: float = 45.0

    # ==========================================================================
    # Embedding Service
    # ==========================================================================
    jina_api_key: str = Field(default="", description="Jina AI API key")
    jina_api_url: str = "https://api.jina.ai/v1/embeddings"
    embedding_model: str = "jina-embeddings-v2-base-en"
    embedding_dimension: int = 768
    embedding_batch_size: int = 8
    embedding_batch_pause_ms: int = 50
    embedding_max_retries: int = 3
    embedding_base_retry_delay: float = 1.0
    embedding_default_retry_after: float = 5.0
    embedding_timeout: float = 30.0

    # ==========================================================================
    # PostgreSQL (pgvector)
    # ==========================================================================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "contractguard"
    postgres_password: str = "contractguard_dev_password"
    postgres_db: str = "contractguard"
    database_url: str | None = None

    @property
    def postgres_url(self) -> str:
        """Get PostgreSQL connection URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # ==========================================================================
    # Redis
    # ==========================================================================
    redis_url: str = "redis://localhost:6379/0"

    # ==========================================================================
    # Object Storage
    # ==========================================================================
    storage_dir: Path = Path("./storage")

    @field_validator("storage_dir", mode="before")
    @classmethod
    def convert_to_path(cls, v: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(v) if isinstance(v, str) else v

    # ==========================================================================
    # API Configuration
    # ==========================================================================
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # ==========================================================================
    # Pipeline Configuration
    # ==========================================================================
    # Chunking (tokens)
    chunk_token_size: int = 1000
    chunk_overlap_tokens: int = 200
    chunk_encoding: str = "cl100k_base"

    # Clause extraction windows (characters)
    clause_window_chars: int = 12_000
    clause_window_overlap_chars: int = 500

    # Extraction gate
    min_word_count: int = 20

    # Risk scoring
    deep_risk_enabled: bool = True
    algorithmic_weight: float = 0.7

    # ==========================================================================
    # Semantic Search
    # ==========================================================================
    search_default_limit: int = 10
    search_max_limit: int = 50
    search_min_score: float = 0.4
    search_cache_ttl: int = 300
    search_max_query_length: int = 1000
    search_overfetch_factor: int = 3

    # ==========================================================================
    # Workers
    # ==========================================================================
    analysis_concurrency: int = 2
    embedding_concurrency: int = 3
    job_attempts: int = 3
    analysis_backoff_seconds: float = 10.0
    default_backoff_seconds: float = 5.0
    stalled_interval_seconds: float = 30.0
    max_stalled_count: int = 2
    lock_duration_seconds: float = 60.0
    lock_renew_seconds: float = 15.0

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.storage_dir.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    settings.ensure_directories()
    return settings
