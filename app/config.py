"""Application configuration using pydantic-settings."""

import tempfile
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    shutdown_grace_seconds: float = 30.0

    # AWS / object store
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "infraless-static-sites-bucket"
    s3_max_attempts: int = Field(default=3, ge=1)
    cloudfront_url: str = Field(default="http://localhost:8000/static")
    upload_concurrency: int = Field(default=10, ge=1)

    # Optional: Redis
    redis_url: str | None = None
    redis_ttl: int = 3600

    # Build
    build_timeout_seconds: float = 600.0
    clone_timeout_seconds: float = 300.0
    temp_dir: str = Field(default_factory=tempfile.gettempdir)
    default_build_command: str = "npm run build"
    default_output_dir: str = "build"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "deployer.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def cdn_base_url(self) -> str:
        return self.cloudfront_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
