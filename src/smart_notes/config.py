"""
============================================================================
Smart Notes - Configuration
============================================================================
Environment-based configuration using Pydantic Settings
Supports .env files and environment variables
============================================================================
"""

from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Neo4jSettings(BaseSettings):
    """Neo4j database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="NEO4J_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    uri: str = Field(
        default="bolt://localhost:7687",
        description="Neo4j connection URI (bolt://, neo4j://, or neo4j+s://)",
    )

    username: str = Field(
        default="neo4j",
        description="Neo4j database username",
    )

    password: SecretStr = Field(
        default=SecretStr("password"),
        description="Neo4j database password",
    )

    database: str = Field(
        default="neo4j",
        description="Neo4j database name",
    )

    max_connection_pool_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum number of connections in the pool",
    )

    connection_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Connection timeout in seconds",
    )

    max_transaction_retry_time: float = Field(
        default=30.0,
        gt=0,
        description="Maximum retry time for transactions in seconds",
    )

    encrypted: bool = Field(
        default=False,
        description="Use an encrypted connection (ignored for +s URI schemes)",
    )

    @field_validator("uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        """Validate Neo4j URI format."""
        if not v.startswith(("bolt://", "neo4j://", "neo4j+s://", "bolt+s://")):
            raise ValueError(
                "URI must start with bolt://, neo4j://, bolt+s://, or neo4j+s://"
            )
        return v


class EmbeddingSettings(BaseSettings):
    """Embedding model configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    model_name: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="SentenceTransformer model name from HuggingFace",
    )

    dimensions: int = Field(
        default=384,
        ge=1,
        description="Neural embedding dimensions (MiniLM-L6 = 384)",
    )

    fallback_dimensions: int = Field(
        default=256,
        ge=8,
        description="Bucket count of the hashed fallback embedding",
    )

    device: Literal["cpu", "cuda", "mps"] = Field(
        default="cpu",
        description="Compute device (cpu, cuda for NVIDIA GPUs, mps for Apple Silicon)",
    )

    normalize_embeddings: bool = Field(
        default=True,
        description="L2 normalize embeddings for cosine similarity",
    )

    cache_folder: str | None = Field(
        default=None,
        description="Local cache folder for downloaded models",
    )


class LLMSettings(BaseSettings):
    """LLM configuration for note enrichment and query interpretation."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    provider: Literal["google"] = Field(
        default="google",
        description="LLM provider (currently only Google Gemini supported)",
    )

    model_name: str = Field(
        default="gemini-2.5-flash-lite",
        description="Google Gemini model name",
    )

    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("LLM_API_KEY", "GOOGLE_API_KEY"),
        description="Google API key for Gemini (can also use GOOGLE_API_KEY env var)",
    )

    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for titles, tags and interpretation",
    )

    max_tokens: int = Field(
        default=256,
        ge=1,
        le=8192,
        description="Maximum tokens for LLM responses",
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds",
    )


class QueueSettings(BaseSettings):
    """Background enrichment queue settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    stage_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Pause between generator-dependent stages and between jobs",
    )

    readiness_timeout_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="How long a job waits for the generator to become ready",
    )

    readiness_poll_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="Polling interval while waiting for generator readiness",
    )

    min_ai_content_length: int = Field(
        default=20,
        ge=0,
        description="Content shorter than this skips the generator and uses rules",
    )


class SearchSettings(BaseSettings):
    """Hybrid retrieval tuning."""

    model_config = SettingsConfigDict(
        env_prefix="SEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_results: int = Field(default=50, ge=1, le=500)

    both_bonus: float = Field(
        default=0.1,
        ge=0.0,
        description="Bonus added to notes found by keyword and semantic search",
    )

    neural_threshold: float = Field(default=0.25, ge=0.0, le=1.0)
    fallback_threshold: float = Field(default=0.20, ge=0.0, le=1.0)

    neural_floor: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Minimum best score for low-confidence semantic results",
    )
    fallback_floor: float = Field(default=0.08, ge=0.0, le=1.0)

    low_confidence_limit: int = Field(default=5, ge=1)

    related_neural_threshold: float = Field(default=0.30, ge=0.0, le=1.0)
    related_fallback_threshold: float = Field(default=0.25, ge=0.0, le=1.0)
    related_limit: int = Field(default=5, ge=1, le=20)

    interpretation_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Upper bound on LLM query interpretation before falling back",
    )


class ApplicationSettings(BaseSettings):
    """General application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    enable_metrics: bool = Field(
        default=False,
        description="Expose Prometheus metrics over HTTP",
    )

    metrics_port: int = Field(
        default=9090,
        ge=1,
        le=65535,
        description="Port for the Prometheus metrics endpoint",
    )


class Settings(BaseSettings):
    """Main application settings combining all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sub-settings
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    app: ApplicationSettings = Field(default_factory=ApplicationSettings)


# Example .env file content:
"""
# Neo4j Configuration
NEO4J_URI=bolt://localhost:7687
NEO4J_USERNAME=neo4j
NEO4J_PASSWORD=your_secure_password_here

# Embedding Configuration
EMBEDDING_MODEL_NAME=sentence-transformers/all-MiniLM-L6-v2
EMBEDDING_DIMENSIONS=384
EMBEDDING_DEVICE=cpu

# LLM Configuration
GOOGLE_API_KEY=your_key_here
LLM_MODEL_NAME=gemini-2.5-flash-lite

# Queue / Search
QUEUE_STAGE_DELAY_SECONDS=2.0
QUEUE_READINESS_TIMEOUT_SECONDS=3.0
SEARCH_MAX_RESULTS=50

# Application Configuration
APP_ENVIRONMENT=development
APP_LOG_LEVEL=INFO
APP_ENABLE_METRICS=false
"""
