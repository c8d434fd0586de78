"""Configuration management for Lexi.

This module provides centralized configuration loading from environment
variables (and an optional lexi.yaml) with validation and type safety.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a legal contract expert. Generate professional, legally sound contracts."
)


def _config_search_paths() -> list[Path]:
    """Locations searched for lexi.yaml, project root first."""
    return [
        Path(__file__).parent.parent.parent / "lexi.yaml",  # Lexi project root
        Path("lexi.yaml"),  # Current directory
        Path.cwd() / "lexi.yaml",  # Explicit current directory
    ]


def load_yaml_section(section: str) -> dict[str, Any]:
    """Load one top-level section from lexi.yaml.

    Args:
        section: Top-level key (e.g. "retrieval", "cache")

    Returns:
        The section as a dict, or an empty dict if no YAML file or section exists
    """
    for config_path in _config_search_paths():
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read {config_path}: {e}")
            continue

        if isinstance(config, dict):
            value = config.get(section, {})
            if isinstance(value, dict):
                return value
    return {}


def parse_env_value(value: str) -> Any:
    """Parse an environment variable string into bool/int/float/str.

    Args:
        value: Raw environment variable value

    Returns:
        Parsed value

    Example:
        >>> parse_env_value("true")
        True
        >>> parse_env_value("0.75")
        0.75
    """
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _load_layered(
    section: str, env_prefix: str, defaults: dict[str, Any]
) -> dict[str, Any]:
    """Merge defaults <- environment <- YAML for one config section."""
    result = defaults.copy()

    for key in defaults:
        raw = os.getenv(f"{env_prefix}{key.upper()}")
        if raw is not None:
            result[key] = parse_env_value(raw)

    yaml_section = load_yaml_section(section)
    for key, value in yaml_section.items():
        if key in defaults:
            result[key] = value

    return result


def load_retrieval_config() -> dict[str, Any]:
    """Load context retrieval tuning constants.

    3-tier fallback chain:
        1. YAML config (lexi.yaml retrieval section)
        2. Environment variables (RETRIEVAL_SIMILARITY_THRESHOLD, ...)
        3. Hardcoded defaults

    The oversampling factors and threshold are empirical: the right values
    depend on embedding quality and corpus size.

    Returns:
        Dict with retrieval configuration

    Example:
        >>> config = load_retrieval_config()
        >>> config["fallback_oversample_factor"]
        3
    """
    defaults = {
        "similarity_threshold": 0.7,
        "semantic_limit": 5,
        "recent_limit": 3,
        "native_candidates_factor": 10,
        "native_result_factor": 2,
        "fallback_oversample_factor": 3,
        "dedupe_prefix_chars": 100,
        "native_search_enabled": True,
    }
    return _load_layered("retrieval", "RETRIEVAL_", defaults)


def load_cache_config(settings: "Settings | None" = None) -> dict[str, Any]:
    """Load in-process cache configuration.

    3-tier fallback chain:
        1. YAML config (lexi.yaml cache section)
        2. Settings (cache_default_ttl, ...; environment when not given)
        3. Hardcoded defaults

    Args:
        settings: Settings to read; get_settings() when None

    Returns:
        Dict with cache configuration

    Example:
        >>> config = load_cache_config()
        >>> config["sweep_interval"]
        300.0
    """
    current = settings or get_settings()
    defaults = {
        "enabled": True,
        "default_ttl": current.cache_default_ttl,
        "sweep_interval": current.cache_sweep_interval,
        "max_entries": current.cache_max_entries,
    }

    yaml_section = load_yaml_section("cache")
    result = defaults.copy()
    for key, value in yaml_section.items():
        if key in defaults:
            result[key] = value
    return result


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Provider API keys
    openai_api_key: str = Field(default="", description="OpenAI API key")
    google_api_key: str = Field(default="", description="Google/Gemini API key")

    # MongoDB embedding store
    mongodb_uri: str = Field(
        default="", description="MongoDB connection string (empty = in-memory store)"
    )
    mongodb_database: str = Field(default="lexi", description="MongoDB database name")
    embeddings_collection: str = Field(
        default="message_embeddings", description="Collection holding message embeddings"
    )
    vector_index_name: str = Field(
        default="vector_index", description="Atlas Vector Search index name"
    )

    # Generation
    generation_providers: list[str] = Field(
        default_factory=lambda: ["google", "openai"],
        description="Generation providers in priority order",
    )
    google_generation_models: list[str] = Field(
        default_factory=lambda: ["gemini-2.5-flash", "gemini-1.5-flash", "gemini-pro"],
        description="Gemini model variants, tried in order",
    )
    openai_generation_models: list[str] = Field(
        default_factory=lambda: ["gpt-4o", "gpt-4"],
        description="OpenAI chat model variants, tried in order",
    )
    default_system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT, description="System instruction when none given"
    )
    generation_temperature: float = Field(
        default=0.7, description="Default sampling temperature", ge=0.0, le=2.0
    )
    generation_max_tokens: int = Field(
        default=4000, description="Default output length cap", ge=1, le=32000
    )
    generation_cache_ttl: int = Field(
        default=3600, description="Generated response cache TTL (seconds)", ge=1
    )
    provider_affinity_ttl: int = Field(
        default=86400, description="Conversation provider affinity TTL (seconds)", ge=60
    )
    provider_timeout: float = Field(
        default=60.0, description="Per-request SDK timeout (seconds)", ge=1.0, le=600.0
    )

    # Embeddings
    embedding_provider: str = Field(
        default="openai", description="Preferred embedding provider (openai, google)"
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    google_embedding_model: str = Field(
        default="gemini-embedding-001", description="Google embedding model"
    )
    embedding_dimension: int = Field(
        default=1536, description="Embedding dimension shared by all backends", ge=8
    )
    embedding_max_chars: int = Field(
        default=8000, description="Input length cap before truncation", ge=1
    )

    # In-process cache
    cache_default_ttl: int = Field(
        default=3600, description="Default cache TTL (seconds)", ge=1
    )
    cache_sweep_interval: float = Field(
        default=300.0, description="Expired entry sweep interval (seconds)", gt=0.0
    )
    cache_max_entries: int = Field(
        default=10_000, description="Maximum cache entries before LRU eviction", ge=1
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str | None = Field(
        default=None, description="Log format (json, console); default by environment"
    )
    environment: str = Field(
        default="development", description="Environment (development, production)"
    )

    # Lifecycle
    shutdown_timeout: float = Field(
        default=30.0, description="Max seconds to drain background writes", ge=0.0
    )

    @field_validator("generation_providers")
    @classmethod
    def validate_generation_providers(cls, v: list[str]) -> list[str]:
        """Validate provider names and keep order."""
        normalized = [p.strip().lower() for p in v if p.strip()]
        unknown = set(normalized) - {"google", "openai"}
        if unknown:
            raise ValueError(f"Unknown generation providers: {sorted(unknown)}")
        if not normalized:
            raise ValueError("At least one generation provider is required")
        return normalized

    @field_validator("embedding_provider")
    @classmethod
    def validate_embedding_provider(cls, v: str) -> str:
        """Validate the preferred embedding provider name."""
        v = v.strip().lower()
        if v not in ("openai", "google"):
            raise ValueError(f"Unknown embedding provider: {v}")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
