"""Configuration management for the meeting context engine.

This module provides:
- Type-safe configuration with Pydantic
- Environment variable loading (one prefix per section)
- Validation with explanatory messages
- A process-wide settings accessor for the hosting application
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class StoreConfig(BaseSettings):
    """Tiered store configuration (SQLite metadata tier + ChromaDB vector tier)."""

    sqlite_path: str = Field(
        default="./data/meeting_context.db",
        description="SQLite database path for meeting metadata and transcripts (':memory:' allowed)"
    )
    chroma_directory: str = Field(
        default="./data/chroma",
        description="ChromaDB persistence directory for transcript embeddings"
    )
    embedding_collection: str = Field(
        default="transcript_embeddings",
        description="ChromaDB collection holding transcript embeddings"
    )
    timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every store call",
        gt=0.0,
        le=120.0
    )

    @field_validator('embedding_collection')
    def validate_collection_name(cls, v):
        """ChromaDB collection names must be 3-63 characters."""
        if not 3 <= len(v) <= 63:
            raise ValueError(
                f'embedding_collection must be 3-63 characters long, got {len(v)}: {v!r}'
            )
        return v

    model_config = {
        "env_prefix": "STORE_",
        "case_sensitive": False
    }


class EmbeddingConfig(BaseSettings):
    """Embedding provider configuration."""

    base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL"
    )
    model: str = Field(
        default="nomic-embed-text",
        description="Embedding model name"
    )
    timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for a single provider call in seconds",
        gt=0.0,
        le=300.0
    )
    max_retries: int = Field(
        default=2,
        description="Attempts per provider call for transient transport errors",
        ge=1,
        le=5
    )
    batch_size: int = Field(
        default=100,
        description="Texts per provider call in batch embedding",
        ge=1,
        le=2048
    )
    max_chars: int = Field(
        default=32768,
        description="Texts longer than this are truncated before embedding",
        ge=256
    )
    normalize: bool = Field(
        default=False,
        description="L2-normalize returned vectors"
    )

    @field_validator('base_url')
    def validate_base_url(cls, v):
        """Validate provider URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(
                f'base_url must start with http:// or https://, got: {v}'
            )
        return v.rstrip('/')

    model_config = {
        "env_prefix": "EMBEDDING_",
        "case_sensitive": False
    }


class RetrievalConfig(BaseSettings):
    """Retrieval strategy tunables."""

    targeted_max_meetings: int = Field(default=10, ge=1, le=200)
    targeted_threshold: float = Field(default=0.5, ge=-1.0, le=1.0)
    targeted_result_cap: int = Field(default=8, ge=1, le=200)

    comprehensive_max_meetings: int = Field(default=20, ge=1, le=200)
    comprehensive_threshold: float = Field(default=0.3, ge=-1.0, le=1.0)
    comprehensive_result_cap: int = Field(default=25, ge=1, le=200)

    fallback_trigger: int = Field(
        default=15,
        description="Comprehensive queries with fewer similarity hits than this merge in recent rows",
        ge=0
    )
    fallback_recent_rows: int = Field(
        default=20,
        description="Number of most-recent embedding rows considered by the fallback merge",
        ge=0
    )
    fallback_merged_cap: int = Field(
        default=25,
        description="Upper bound on historical lines after the fallback merge",
        ge=1
    )

    @model_validator(mode="after")
    def validate_caps(self):
        """The merged cap can never be below the first-pass cap."""
        if self.fallback_merged_cap < self.comprehensive_result_cap:
            raise ValueError(
                f'fallback_merged_cap ({self.fallback_merged_cap}) must be >= '
                f'comprehensive_result_cap ({self.comprehensive_result_cap})'
            )
        return self

    model_config = {
        "env_prefix": "RETRIEVAL_",
        "case_sensitive": False
    }


class SessionConfig(BaseSettings):
    """Conversation session store configuration."""

    max_turns: int = Field(
        default=20,
        description="Turns kept per room before the oldest is evicted",
        ge=1,
        le=1000
    )

    model_config = {
        "env_prefix": "SESSION_",
        "case_sensitive": False
    }


class AppConfig(BaseSettings):
    """Application-level configuration."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON instead of console format"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional rotating log file path"
    )
    environment: str = Field(
        default="development",
        description="Environment name (development, production, testing, staging)"
    )

    @field_validator('log_level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(
                f'Invalid log_level: {v}. Must be one of: {", ".join(valid_levels)}'
            )
        return v_upper

    @field_validator('environment')
    def validate_environment(cls, v):
        """Validate environment name."""
        valid_envs = ['development', 'production', 'testing', 'staging']
        v_lower = v.lower()
        if v_lower not in valid_envs:
            raise ValueError(
                f'Invalid environment: {v}. Must be one of: {", ".join(valid_envs)}'
            )
        return v_lower

    model_config = {
        "env_prefix": "APP_",
        "case_sensitive": False
    }


class Settings(BaseSettings):
    """Main settings class combining all configurations.

    Examples:
        >>> settings = Settings()
        >>> print(settings.retrieval.targeted_threshold)
        0.5
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app.environment == "production"

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.environment == "development"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.app.environment == "testing"

    def to_dict(self) -> Dict[str, Any]:
        """Export current configuration as dictionary."""
        return {
            "store": self.store.model_dump(),
            "embedding": self.embedding.model_dump(),
            "retrieval": self.retrieval.model_dump(),
            "session": self.session.model_dump(),
            "app": self.app.model_dump(),
        }

    def validate_all(self) -> List[str]:
        """Validate cross-section concerns.

        Returns:
            List of validation messages (empty if all valid)
        """
        messages = []

        if self.is_production():
            if self.store.sqlite_path == ":memory:":
                messages.append("WARNING: in-memory metadata store in production environment")
            if not self.app.json_logs:
                messages.append("INFO: Consider json_logs=True in production")

        if self.embedding.timeout_seconds < self.store.timeout_seconds / 10:
            messages.append(
                "WARNING: embedding timeout is much shorter than store timeout; "
                "most queries will degrade to live-only context"
            )

        return messages


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """Get or create the process-wide settings instance.

    Args:
        reload: Force reload settings from environment

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None or reload:
        _settings = Settings()
    return _settings


def reset_settings():
    """Reset global settings (useful for testing)."""
    global _settings
    _settings = None
