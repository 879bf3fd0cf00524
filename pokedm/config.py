"""
Configuration management for the PokeDM engine
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # LLM Provider Configuration
    model_provider: Literal["openai", "generic"] = Field(default="openai")
    openai_api_base: str = Field(default="https://api.openai.com/v1")
    openai_api_key: str = Field(default="")
    model_name: str = Field(default="gpt-5-nano")
    router_model_name: Optional[str] = Field(
        default=None,
        description="Model used for intent classification (defaults to model_name)",
    )
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    request_timeout: float = Field(default=60.0, gt=0)

    # Retry policy for generation calls
    generation_max_attempts: int = Field(default=3, ge=1)
    generation_initial_delay: float = Field(default=1.0, ge=0)
    generation_max_delay: float = Field(default=30.0, ge=0)
    generation_backoff_multiplier: float = Field(default=2.0, ge=1.0)

    # Storage Configuration
    storage_provider: Literal["file", "database"] = Field(default="file")
    sessions_dir: str = Field(
        default="data/sessions",
        description="Directory holding one JSON document per session",
    )
    database_url: str = Field(
        default="sqlite:///data/pokedm.db",
        description="SQLAlchemy URL used by the database storage adapter",
    )

    # Canon cache defaults
    memory_cache_ttl_seconds: int = Field(default=3600, gt=0)
    memory_cache_max_entries: int = Field(default=2000, gt=0)
    default_cache_ttl_hours: int = Field(default=168, gt=0)
    default_max_entries_per_kind: int = Field(default=5000, gt=0)

    # Reference data fetched on a cache miss
    canon_fetch_enabled: bool = Field(default=True)
    pokeapi_base_url: str = Field(default="https://pokeapi.co/api/v2")
    pokeapi_timeout: float = Field(default=10.0, gt=0)

    # Content
    encounter_profiles_path: Optional[str] = Field(
        default=None,
        description="JSON file with 'wild' and 'trainer' profile lists",
    )
    llm_recaps: bool = Field(default=True)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_file: Optional[str] = Field(default=None)


# Global settings instance
settings = Settings()
