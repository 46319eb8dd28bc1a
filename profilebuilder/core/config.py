"""
Configuration module with strict validation.

Key principles:
- APP STARTUP does NOT require any source credential
- A missing credential disables that source at routing time, never a hard failure
- All concurrency, retry and base-URL settings are configurable
- Safe defaults for all optional settings
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Credential attribute each source needs before it can run.
# Sources absent from this map talk to public endpoints.
SOURCE_CREDENTIALS = {
    "exa": "exa_api_key",
    "x": "xai_api_key",
    "youtube": "google_api_key",
    "perplexity": "perplexity_api_key",
}


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./profilebuilder.db",
        description="SQLAlchemy connection URL"
    )

    # Source credentials (all OPTIONAL)
    exa_api_key: Optional[str] = Field(
        default=None,
        description="Exa web search API key"
    )
    xai_api_key: Optional[str] = Field(
        default=None,
        description="xAI API key used for social-post search"
    )
    google_api_key: Optional[str] = Field(
        default=None,
        description="Google API key for the YouTube Data API"
    )
    github_token: Optional[str] = Field(
        default=None,
        description="GitHub token - optional, raises the search rate limit"
    )
    perplexity_api_key: Optional[str] = Field(
        default=None,
        description="Perplexity API key - only used on forced refresh"
    )

    # LLM / translation credentials
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI (or OpenAI-compatible) API key"
    )
    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key"
    )
    llm_provider: Optional[str] = Field(
        default=None,
        description="Preferred LLM provider (openai or anthropic)"
    )
    llm_model: Optional[str] = Field(
        default=None,
        description="Model name override for knowledge fallback and translation"
    )
    llm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for an OpenAI-compatible endpoint"
    )
    llm_max_tokens: int = Field(
        default=1000,
        ge=100,
        le=8000,
        description="Maximum tokens per LLM completion"
    )

    # Base-URL overrides for mirrored or proxied APIs
    xai_base_url: str = Field(default="https://api.x.ai/v1")
    exa_base_url: str = Field(default="https://api.exa.ai")
    github_base_url: str = Field(default="https://api.github.com")
    youtube_base_url: str = Field(default="https://www.googleapis.com/youtube/v3")
    openalex_base_url: str = Field(default="https://api.openalex.org")
    itunes_base_url: str = Field(default="https://itunes.apple.com")
    wikidata_sparql_url: str = Field(default="https://query.wikidata.org/sparql")
    baike_base_url: str = Field(default="https://baike.baidu.com")
    perplexity_base_url: str = Field(default="https://api.perplexity.ai")

    # Concurrency
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=50,
        description="Maximum concurrent requests per external API client"
    )
    max_concurrent_builds: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum person builds running at once"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # Retry Configuration
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts for a single HTTP request"
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff factor for retries"
    )
    build_step_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per build step before it is marked failed"
    )
    http_timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="HTTP request timeout in seconds"
    )

    # Scheduler
    refresh_check_minutes: int = Field(
        default=60,
        ge=1,
        description="How often the refresh scheduler looks for stale people"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("llm_provider")
    @classmethod
    def validate_llm_provider(cls, v: Optional[str]) -> Optional[str]:
        """Only openai and anthropic are supported."""
        if v is None:
            return v
        v_lower = v.lower()
        if v_lower not in {"openai", "anthropic"}:
            raise ValueError("llm_provider must be 'openai' or 'anthropic'")
        return v_lower

    def has_llm_credentials(self) -> bool:
        """True when any LLM provider key is configured."""
        return bool(self.openai_api_key or self.anthropic_api_key)

    def has_credential(self, source: str) -> bool:
        """
        Check whether the credential a source needs is configured.

        Args:
            source: Source identifier (e.g. 'exa', 'x', 'ai_knowledge')

        Returns:
            True if the source can authenticate, or needs no credential
        """
        if source == "ai_knowledge":
            return self.has_llm_credentials()
        attr = SOURCE_CREDENTIALS.get(source)
        if attr is None:
            return True
        return bool(getattr(self, attr))


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Lazily loaded on first access and shared afterwards; tests call
    reset_settings() to start from a clean environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance."""
    global _settings
    _settings = None
