"""Configuration management for the CSR Draft Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Anthropic configuration
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    DRAFT_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, test, prod")

    # Content mapping
    MAPPER_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for content-to-section mapping"
    )
    MAPPER_MAX_TOKENS: int = Field(default=16000, description="Max output tokens for mapping")

    # Section drafting
    DRAFT_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for per-section drafting"
    )
    DRAFT_MAX_TOKENS: int = Field(default=4000, description="Max output tokens per section draft")
    DRAFT_TEMPERATURE: float = Field(default=0.2, description="Temperature for drafting calls")

    # Single-shot drafting
    FULL_DRAFT_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for whole-document drafting"
    )
    FULL_DRAFT_MAX_TOKENS: int = Field(
        default=32000, description="Max output tokens for whole-document drafting"
    )

    # Retry policy for every LLM call site
    RETRY_MAX_ATTEMPTS: int = Field(default=3, description="Attempts per LLM call")
    RETRY_INITIAL_DELAY_MS: int = Field(default=5000, description="Delay before first retry")
    RETRY_BACKOFF_FACTOR: float = Field(default=2.0, description="Backoff multiplier")

    # Upload limits
    MAX_UPLOAD_BYTES: int = Field(default=20_000_000, description="Max file upload size in bytes")
    MAX_PDF_PAGES: int = Field(default=500, description="Max PDF pages extracted per file")

    # Drafting behaviour
    INSUFFICIENT_INFO_POLICY: str = Field(
        default="sentinel",
        description="sentinel: mark thin sections insufficient; best_effort: draft from partial context",
    )
    DEFAULT_GENERATION_MODE: str = Field(
        default="mapped", description="per_section, mapped or single_shot"
    )
    PER_SECTION_PREFILTER: bool = Field(
        default=False,
        description="In per_section mode, narrow the corpus per section before drafting",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables fail validation
    """
    return Settings()
