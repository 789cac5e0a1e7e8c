from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from a .env file if present (local dev only)
load_dotenv()


class Settings(BaseSettings):
    """Application configuration loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Google service account
    gapi_project_id: Optional[str] = Field(default=None, description="GCP project ID")
    gapi_client_email: Optional[str] = Field(default=None, description="Service-account email.")
    gapi_private_key: Optional[str] = Field(
        default=None,
        description="Service-account PEM key. Literal \\n sequences are accepted.",
    )
    private_key_id: Optional[str] = Field(default=None)

    # Cloud Storage
    gcs_bucket_name: str = Field("sri-travel-attachments")
    signed_url_ttl_seconds: int = Field(3600, ge=1)

    # Local uploads
    upload_path: str = Field("public/uploads", description="Directory served under /uploads/.")

    # Chat / Vertex AI
    llm_provider: str = Field("vertex")
    sri_system_instruction: Optional[str] = Field(
        default=None,
        description="System prompt template; {{CURRENT_DATE}} is replaced per request.",
    )
    gemini_model: str = Field("gemini-2.5-flash-preview-09-2025")
    gemini_location: str = Field("global")
    gemini_temperature: float = Field(0.7)
    gemini_top_p: float = Field(0.8)
    gemini_top_k: int = Field(40)
    gemini_max_output_tokens: int = Field(2048)
    chat_timeout_seconds: float = Field(60.0, gt=0)
    chat_max_attempts: int = Field(3, ge=1)
    chat_backoff_seconds: float = Field(2.0, ge=0)

    # HTTP
    cors_allowed_origins: str = Field("http://localhost:3000")
    log_level: str = Field("INFO")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:  # pragma: no cover
    """Return a cached Settings instance so it is only parsed once."""

    return Settings()
