"""Configuration management for Query Workbench"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    database_url: str = Field(default="sqlite:///workbench.db", alias="DATABASE_URL")
    read_only: bool = Field(default=False, alias="WORKBENCH_READ_ONLY")

    # Application Configuration
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    max_rows_return: int = Field(default=1000, alias="MAX_ROWS_RETURN")

    # Metadata Cache Configuration
    metadata_cache_ttl_seconds: float = Field(default=30.0, alias="METADATA_CACHE_TTL_SECONDS")

    # Completion Configuration
    completion_preload_limit: int = Field(default=20, alias="COMPLETION_PRELOAD_LIMIT")
    completion_preload_concurrency: int = Field(default=4, alias="COMPLETION_PRELOAD_CONCURRENCY")
    completion_preload_timeout_seconds: float = Field(
        default=5.0, alias="COMPLETION_PRELOAD_TIMEOUT_SECONDS"
    )
    completion_include_keywords: bool = Field(default=False, alias="COMPLETION_INCLUDE_KEYWORDS")

    # Search Configuration
    search_debounce_ms: int = Field(default=300, alias="SEARCH_DEBOUNCE_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )


# Load settings from environment
settings = Settings()
