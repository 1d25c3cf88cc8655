"""Configuration management for Lexivault.

Loads from environment variables, .env files, and an optional TOML file.
All secrets come from env vars; structural config from TOML.

Default base directory: ~/.lexivault/
  data/<profile>.db — documents, full-text index and embeddings for one profile
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LEXIVAULT_HOME = Path.home() / ".lexivault"

DEFAULT_CANONICAL_WIDTH = 2048


class StorageConfig(BaseSettings):
    """SQLite storage configuration."""

    data_dir: Path = Field(default_factory=lambda: LEXIVAULT_HOME / "data")
    profile: str = "default"

    @field_validator("data_dir")
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        v = v.strip()
        if not v or any(sep in v for sep in ("/", "\\", "..")):
            raise ValueError(f"Invalid profile name: {v!r}")
        return v

    @property
    def db_path(self) -> Path:
        """Database file for the active profile."""
        return self.data_dir / f"{self.profile}.db"


class SemanticConfig(BaseSettings):
    """Embedding model and semantic search defaults."""

    enabled: bool = True
    provider: Literal["openai", "gemini"] = "openai"
    model: str = "text-embedding-3-small"
    endpoint: str = ""  # Empty = provider default
    canonical_width: int = Field(default=DEFAULT_CANONICAL_WIDTH, gt=0)
    request_dimensions: int | None = None  # Only for models that accept `dimensions`
    batch_size: int = Field(default=10, gt=0)
    similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    result_limit: int = Field(default=50, gt=0)


class Settings(BaseSettings):
    """Root configuration — aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="LEXIVAULT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    semantic: SemanticConfig = Field(default_factory=SemanticConfig)

    # API keys, always from env vars
    openai_api_key: str = ""
    gemini_api_key: str = ""

    @property
    def embedding_api_key(self) -> str:
        """Resolve the API key for the configured embedding provider."""
        keys = {
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
        }
        return keys.get(self.semantic.provider, "")

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("config/lexivault.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
