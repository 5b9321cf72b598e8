"""
Shellmate Configuration

Settings management using Pydantic Settings. Values come from environment
variables or a local .env file (case-insensitive, e.g. BACKEND=local).
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend selection
    backend: Literal["cloud", "local", "scripted"] = "cloud"
    cloud_provider: Literal["gemini", "openai"] = "gemini"

    # Cloud providers
    openai_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    cloud_model: Optional[str] = None
    cloud_base_url: Optional[str] = None

    # Local runtime (Ollama-compatible)
    local_url: str = "http://localhost:11434"
    local_model: str = "llama3.2"

    # Scripted playback (JSON script file)
    script_path: Optional[str] = None

    # Orchestration
    max_iterations: int = Field(default=25, ge=1)
    request_timeout: float = 120.0
    max_retries: int = Field(default=3, ge=1)
    include_project_context: bool = True

    # Tools
    shell_timeout: float = 60.0
    tree_depth: int = Field(default=3, ge=1)
    max_structure_files: int = Field(default=50, ge=0)

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
