"""
PromptLens Backend - Application Configuration
================================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by main.py and the route layer. The analyzer classes never
       import it; they receive already-resolved values from the registry.
When:  Loaded once at module import time; validated before app starts.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development. With no API keys
    configured the service runs entirely on the mock analyzer.

    Attributes are grouped by concern for readability.
    """

    # ── Provider Selection ────────────────────────────────────────────────
    # What: Name of the preferred analyzer (mock, openai, gemini)
    # Unknown or unavailable names fall back to the mock analyzer
    ai_service_provider: str = Field(
        default="mock",
        description="Preferred image-analysis provider name",
    )

    # ── OpenAI-compatible Vision API ──────────────────────────────────────
    openai_api_key: str = Field(default="", description="API key for the vision endpoint")
    openai_api_base_url: str = Field(default="https://api.openai.com/v1")
    openai_model: str = Field(default="gpt-4-vision-preview")

    # ── Google Gemini ─────────────────────────────────────────────────────
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash")

    # What: Upper bound for a single upstream analysis request, in seconds
    ai_request_timeout: float = Field(default=30.0, gt=0, le=300)

    # ── Upload Limits (mock analyzer) ─────────────────────────────────────
    # Remote providers enforce their own fixed limits (20MB, fixed type set)
    max_file_size_mb: int = Field(default=10, ge=1, le=50)

    # Format: comma-separated extensions, e.g. "jpg,jpeg,png,gif,webp"
    allowed_file_types: str = Field(default="jpg,jpeg,png,gif,webp")

    @property
    def allowed_file_types_list(self) -> List[str]:
        """Splits the comma-separated type list, dropping blanks."""
        return [t.strip().lower() for t in self.allowed_file_types.split(",") if t.strip()]

    # ── Retry Configuration ───────────────────────────────────────────────
    # What: Backoff settings for outbound calls to remote providers
    # delay = min(base * factor^attempt, max) + jitter(0..1s)
    retry_max_attempts: int = Field(default=3, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0, le=30)
    retry_max_delay: float = Field(default=10.0, ge=0, le=120)
    retry_backoff_factor: float = Field(default=2.0, ge=1, le=10)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("ai_service_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower() or "mock"

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def validate_provider_configuration(self) -> List[str]:
        """
        What:  Reports configuration problems for the selected provider.
        When:  Called during app startup (lifespan).
        How:   Returns human-readable warnings instead of raising, because the
               registry falls back to the mock analyzer anyway.
        """
        warnings = []
        if self.ai_service_provider == "openai" and not self.openai_api_key:
            warnings.append("AI_SERVICE_PROVIDER=openai but OPENAI_API_KEY is not set")
        if self.ai_service_provider == "gemini" and not self.gemini_api_key:
            warnings.append("AI_SERVICE_PROVIDER=gemini but GEMINI_API_KEY is not set")
        return warnings


# Singleton instance, imported by the application layer only
settings = Settings()
