"""Application settings using Pydantic BaseSettings."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "From now on, you will assume the role of a professional digital marketing advisor. "
    "You will only discuss marketing related questions. "
    "Please do not entertain non-marketing related questions."
)


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    # backend/advisor/config/ -> backend/
    config_dir = os.path.dirname(os.path.abspath(__file__))
    backend_dir = os.path.dirname(os.path.dirname(config_dir))
    db_path = os.path.join(backend_dir, "data", "advisor.db")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    cors_origins: str = Field(default="http://localhost:5173")

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)

    # Bearer tokens (issued elsewhere, verified here)
    jwt_secret: str = Field(default="")
    jwt_algorithm: str = Field(default="HS256")
    jwt_issuer: str = Field(default="backend")

    # Completion provider
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_api_key: str = Field(default="")
    completion_model: str = Field(default="gpt-3.5-turbo")
    provider_timeout_seconds: int = Field(default=60)
    provider_max_retries: int = Field(default=1)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    # Relay
    stream_batch_chunks: int = Field(default=10)
    stream_batch_interval_ms: int = Field(default=0)
    ws_send_timeout_seconds: float = Field(default=5.0)
    shutdown_grace_seconds: float = Field(default=10.0)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment.lower() == "production"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "staging", "production"}:
            raise ValueError("ENVIRONMENT must be one of: development, staging, production")
        return vv

    @field_validator("stream_batch_chunks")
    @classmethod
    def validate_stream_batch_chunks(cls, v: int) -> int:
        if v < 1:
            raise ValueError("STREAM_BATCH_CHUNKS must be at least 1")
        return v

    @field_validator("stream_batch_interval_ms")
    @classmethod
    def validate_stream_batch_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("STREAM_BATCH_INTERVAL_MS must not be negative")
        return v

    @model_validator(mode="after")
    def validate_cross_field_constraints(self) -> "Settings":
        # Tokens signed with an empty secret are trivially forgeable.
        if self.is_production and not self.jwt_secret:
            raise ValueError("JWT_SECRET must be set in production")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
