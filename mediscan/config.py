"""
Configuration management for MediScan AI.

Uses Pydantic Settings for type-safe environment variable handling.
All configuration is loaded from environment variables or .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "MediScan AI"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = "0.0.0.0"
    port: int = 8000
    public_base_url: str = "http://localhost:8000"

    # ==========================================================================
    # AI Gateway (OpenAI-compatible chat completions)
    # ==========================================================================
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_gateway_api_key: str = ""
    ai_model: str = "google/gemini-2.5-flash"
    ai_temperature: float = 0.3
    inference_timeout_seconds: float = 60.0

    # ==========================================================================
    # Storage & Persistence
    # ==========================================================================
    storage_backend: Literal["local", "supabase"] = "local"
    supabase_url: str = ""
    supabase_key: str = ""
    storage_bucket: str = "medical-scans"
    scans_table: str = "scans"
    upload_dir: str = "uploads"

    # ==========================================================================
    # Rate Limiting
    # ==========================================================================
    rate_limit_per_minute: int = 30

    # ==========================================================================
    # File Upload
    # ==========================================================================
    max_file_size_mb: int = 10

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def max_file_size_bytes(self) -> int:
        """Maximum file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def upload_path(self) -> Path:
        """Path to the local upload directory."""
        path = Path(self.upload_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience access
settings = get_settings()
