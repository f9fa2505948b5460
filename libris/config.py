"""Configuration management for Libris using Pydantic Settings."""

from typing import Annotated

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from libris.core.ingestion.taxonomy import validate_genre_names


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database settings
    database_url: str | None = Field(
        default=None,
        description="Database URL with async driver (postgresql+asyncpg://...). Ingestion refuses to run without it",
    )
    database_echo: bool = Field(
        default=False,
        description="Echo SQL queries to console",
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    environment: str = Field(
        default="development",
        description="Environment (development or production)",
    )

    # CORS settings
    cors_allowed_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins for API requests",
    )

    # API Security settings
    api_key: SecretStr | None = Field(
        default=None,
        description="Primary API key for authentication (required in production)",
    )
    require_api_key: bool = Field(
        default=True,
        description="Require API key authentication for protected endpoints",
    )

    # Ingestion run defaults
    ingest_batch_size: int = Field(
        default=30,
        description="Fallback page size when a source configuration does not set one",
    )
    ingest_max_books: int = Field(
        default=100,
        description="Default per-run cap on processed records",
    )
    ingest_max_duration_seconds: float = Field(
        default=50.0,
        description="Default wall-clock ceiling for one ingestion run",
    )
    ingest_error_cap: int = Field(
        default=50,
        description="Maximum number of error entries kept in a run result and job log",
    )

    # Outbound HTTP settings for source fetchers
    http_user_agent: str = Field(
        default="LibrisBot/1.0 (digital library catalog ingestion)",
        description="User-Agent header sent to external catalog sources",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for source fetches",
    )
    http_max_retries: int = Field(
        default=3,
        description="Retries for transient source fetch failures",
    )

    # PDF archiving (bucket storage); disabled unless URL and key are both set
    storage_url: str | None = Field(
        default=None,
        description="Supabase project URL hosting the PDF bucket",
    )
    storage_service_key: SecretStr | None = Field(
        default=None,
        description="Service role key used to upload into the bucket",
    )
    storage_bucket: str = Field(
        default="books",
        description="Public bucket that receives archived PDFs",
    )
    pdf_max_size_mb: int = Field(
        default=100,
        description="Largest PDF accepted for archiving",
    )
    pdf_download_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout for PDF downloads",
    )

    # Ingestion filter settings
    enable_genre_filter: bool = Field(
        default=False,
        description="Only ingest books matching INGEST_ALLOWED_GENRES",
    )
    ingest_allowed_genres: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated allow-list of taxonomy genres",
    )
    enable_author_filter: bool = Field(
        default=False,
        description="Only ingest books whose author contains one of INGEST_ALLOWED_AUTHORS",
    )
    ingest_allowed_authors: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Comma-separated allow-list of author name fragments",
    )

    # Extraction job defaults
    extraction_max_time_minutes: int = Field(
        default=60,
        description="Default time limit for a new extraction job",
    )
    extraction_max_books: int = Field(
        default=100,
        description="Default book limit for a new extraction job",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator(
        "cors_allowed_origins",
        "ingest_allowed_genres",
        "ingest_allowed_authors",
        mode="before",
    )
    @classmethod
    def parse_comma_separated(cls, v: str | list[str]) -> list[str]:
        """Parse list settings from comma-separated string or list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("ingest_allowed_genres")
    @classmethod
    def validate_allowed_genres(cls, v: list[str]) -> list[str]:
        """Validate allowed genres are taxonomy genres."""
        invalid = validate_genre_names(v)
        if invalid:
            raise ValueError(
                f"Invalid ingest_allowed_genres: {', '.join(invalid)}. "
                "Use names from the primary genre taxonomy."
            )
        return v

    @field_validator(
        "ingest_batch_size",
        "ingest_max_books",
        "ingest_error_cap",
        "extraction_max_time_minutes",
        "extraction_max_books",
        "pdf_max_size_mb",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate limits are positive."""
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator(
        "ingest_max_duration_seconds", "http_timeout_seconds", "pdf_download_timeout_seconds"
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError(f"Duration must be positive, got {v}")
        return v

    @model_validator(mode="after")
    def validate_api_key(self) -> "Settings":
        """Validate API key is set when required in production."""
        if (
            self.require_api_key
            and self.environment == "production"
            and not self.api_key
        ):
            raise ValueError(
                "API_KEY must be set when REQUIRE_API_KEY=true in production environment. "
                "Set API_KEY environment variable or set REQUIRE_API_KEY=false."
            )
        return self


# Global settings instance
settings = Settings()
