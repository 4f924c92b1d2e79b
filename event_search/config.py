"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
No secrets are hardcoded.
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingBackend(str, Enum):
    """Where embeddings are computed."""

    LOCAL = "local"
    HTTP = "http"


class EmbeddingSettings(BaseSettings):
    """Embedding provider configuration.

    The local backend loads a sentence-transformers model in-process;
    the HTTP backend talks to an OpenAI-compatible or TEI server.
    """

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_")

    backend: EmbeddingBackend = Field(
        default=EmbeddingBackend.LOCAL,
        description="Embedding backend (local model or HTTP server)",
    )
    model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Pretrained embedding model identifier",
    )
    base_url: str = Field(
        default="http://localhost:8080",
        description="Embedding server base URL (HTTP backend only)",
    )
    precision: str = Field(
        default="float32",
        description="Numeric precision for the local model weights",
    )
    device: str | None = Field(
        default=None,
        description="Torch device for the local model (auto-detected if unset)",
    )
    batch_size: int = Field(
        default=32,
        ge=1,
        description="Batch size for embedding requests",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound in seconds for a single inference call",
    )
    load_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Upper bound in seconds for loading model weights",
    )


class QdrantSettings(BaseSettings):
    """Qdrant vector index configuration."""

    model_config = SettingsConfigDict(env_prefix="QDRANT_")

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Qdrant API key (optional for local)",
    )
    collection_name: str = Field(
        default="events",
        description="Collection holding event description embeddings",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound in seconds for index calls",
    )


class MongoSettings(BaseSettings):
    """MongoDB document store configuration."""

    model_config = SettingsConfigDict(env_prefix="MONGODB_")

    uri: SecretStr = Field(
        default=SecretStr("mongodb://localhost:27017"),
        description="MongoDB connection string",
    )
    database: str = Field(
        default="ticketing",
        description="Database name",
    )
    events_collection: str = Field(
        default="events",
        description="Collection holding event documents",
    )
    tickets_collection: str = Field(
        default="tickets",
        description="Collection holding ticket documents",
    )


class SearchSettings(BaseSettings):
    """Ranking pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="SEARCH_")

    result_limit: int = Field(
        default=200,
        ge=1,
        description="Maximum candidates returned by the vector index",
    )
    min_candidate_pool: int = Field(
        default=200,
        ge=1,
        description="Candidate pool used when the indexed population is small",
    )
    max_candidate_pool: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on the candidate pool size",
    )
    index_fallback: bool = Field(
        default=True,
        description="Rank without the vector index when it is unavailable",
    )
    fallback_scan_limit: int = Field(
        default=5_000,
        ge=1,
        description="Maximum events scanned from the store in fallback mode",
    )
    require_keyword_match: bool = Field(
        default=True,
        description="Drop candidates whose fields do not contain the keyword",
    )
    default_page_size: int = Field(
        default=8,
        ge=1,
        description="Page size used when the request omits a limit",
    )
    max_page_size: int = Field(
        default=100,
        ge=1,
        description="Largest accepted page size",
    )

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "SearchSettings":
        if self.max_candidate_pool < self.result_limit:
            raise ValueError("max_candidate_pool must be >= result_limit")
        return self


class BackfillSettings(BaseSettings):
    """Embedding backfill configuration."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    batch_size: int = Field(
        default=100,
        ge=1,
        description="Events per bulk write",
    )
    concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum embeddings computed concurrently",
    )


class Settings(BaseSettings):
    """Main application settings.

    Aggregates all configuration sections.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # API settings
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        description="API server port",
    )

    # Nested settings
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    qdrant: QdrantSettings = Field(default_factory=QdrantSettings)
    mongodb: MongoSettings = Field(default_factory=MongoSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    backfill: BackfillSettings = Field(default_factory=BackfillSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
