"""Configuration settings for depbuild.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_work_dir() -> Path:
    """Return the default directory for source checkouts."""
    return Path.home() / ".cache" / "depbuild" / "src"


def _default_cache_dir() -> Path:
    """Return the default local artifact cache directory."""
    return Path.home() / ".cache" / "depbuild" / "artifacts"


def _default_lock_dir() -> Path:
    """Return the default lock directory."""
    return Path.home() / ".cache" / "depbuild" / ".locks"


def _default_log_dir() -> Path:
    """Return the default build log directory."""
    return Path.home() / ".local" / "share" / "depbuild" / "logs"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the DEPBUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for source checkouts",
    )
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for the local artifact cache backend",
    )
    lock_dir: Path = Field(
        default_factory=_default_lock_dir,
        description="Directory for per-cache-key lock files",
    )
    log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory for build logs",
    )

    # Cache
    use_cache: bool = Field(
        default=False,
        description="Restore and save artifacts through the cache backend",
    )
    cache_backend: Literal["cache-util", "local", "http"] = Field(
        default="cache-util",
        description="Cache backend used when caching is enabled",
    )
    cache_util_path: str = Field(
        default="cache-util",
        description="Executable for the cache-util backend",
    )
    cache_url: str | None = Field(
        default=None,
        description="Base URL for the http cache backend",
    )
    cache_http_timeout: int = Field(
        default=600,
        ge=1,
        description="Timeout for http cache transfers (seconds)",
    )

    # External tools
    git_path: str = Field(
        default="git",
        description="Executable used for source checkouts",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    lock_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Seconds to wait for a per-key lock (blocks if not set)",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
