"""Configuration settings for aws_build.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from aws_build.types import DEFAULT_RUST_VERSION


def _default_cache_dir() -> Path:
    """Return the default cache directory."""
    return Path.home() / ".cache" / "aws-build"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the AWS_BUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="AWS_BUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Container
    container_cmd: str | None = Field(
        default=None,
        description="Container engine command (docker, podman, sudo-docker); "
        "auto-detected if not set",
    )
    rust_version: str = Field(
        default=DEFAULT_RUST_VERSION,
        description="Rust toolchain installed in the build image",
    )
    image_repo_url: str | None = Field(
        default=None,
        description="Repository to build the image from (uses bundled files if not set)",
    )
    image_revision: str = Field(
        default="HEAD",
        description="Branch, tag or commit of the image repository",
    )
    relabel: Literal["shared", "unshared"] | None = Field(
        default=None,
        description="SELinux relabel option for bind mounts",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for cargo caches and image sources",
    )
    output_dir: Path | None = Field(
        default=None,
        description="Artifact output root (uses <project>/target/aws-build if not set)",
    )

    # Tools
    strip_cmd: str = Field(
        default="strip",
        description="Program used to strip debug symbols",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Timeouts (in seconds)
    build_timeout: int | None = Field(
        default=None,
        ge=60,
        description="Timeout for the container build (no timeout if not set)",
    )
    lock_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Timeout waiting for another build of the same project",
    )


def get_settings() -> Settings:
    """Get the application settings.

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
