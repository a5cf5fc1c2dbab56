"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database (Supabase Postgres)
    database_url: str = Field(..., description="PostgreSQL URL for the user-scoped role")
    admin_database_url: str = Field(
        ..., description="PostgreSQL URL for the service role (bypasses RLS, webhook only)"
    )
    run_migrations_on_startup: bool = Field(
        default=False, description="Apply pending SQL migrations with the admin pool on startup"
    )

    # Supabase Auth
    supabase_jwt_secret: str = Field(..., description="Secret used to sign Supabase access tokens")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_audience: str = Field(default="authenticated", description="Expected JWT audience")

    # Livepeer
    livepeer_api_key: str = Field(default="", description="Livepeer Studio API key")
    livepeer_api_url: str = Field(
        default="https://livepeer.studio/api", description="Livepeer Studio API base URL"
    )
    livepeer_webhook_secret: str = Field(
        default="", description="Shared secret for Livepeer-Signature verification (optional)"
    )

    # Chat moderation (OpenAI-compatible chat completions)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    groq_api_key: str = Field(default="", description="Groq API key, used when no OpenAI key")
    moderation_model: str = Field(default="", description="Override the classifier model")
    moderation_timeout: float = Field(
        default=5.0, gt=0, description="Classifier timeout in seconds before failing open"
    )

    # Server URLs
    frontend_url: str = Field(default="http://localhost:3000", description="Frontend URL for CORS")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Keep-Alive
    enable_keep_alive: bool = Field(default=True, description="Enable heartbeat keep-alive task")
    keep_alive_interval: int = Field(default=300, description="Heartbeat interval in seconds")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @property
    def cors_origins(self) -> list[str]:
        return [self.frontend_url]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
