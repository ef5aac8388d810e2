"""Configuration settings for component_insertion.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_temp_root() -> Path:
    """Return the platform temp root used for extracted artifacts."""
    return Path(tempfile.gettempdir())


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the INSERTION_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="INSERTION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Component build source
    component_build_azdo_uri: str = Field(
        default="https://dev.azure.com/dnceng",
        description="Azure DevOps collection URI hosting the component builds",
    )
    component_build_project_name: str = Field(
        default="internal",
        description="Project containing the component build definitions",
    )
    component_build_queue_name: str = Field(
        default="",
        description="Name of the component build definition (queue)",
    )
    component_branch_name: str = Field(
        default="main",
        description="Component branch whose builds are inserted",
    )
    azdo_username: str = Field(
        default="",
        description="Username for Azure DevOps basic authentication",
    )
    azdo_password: SecretStr | None = Field(
        default=None,
        description="Personal access token for Azure DevOps",
    )

    # Downstream target
    visual_studio_branch_name: str = Field(
        default="main",
        description="Downstream branch the insertion targets",
    )
    insertion_name: str = Field(
        default="Insertion",
        description="Display name of the insertion, also used for the temp directory",
    )

    # Source hosting
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API",
    )
    github_token: SecretStr | None = Field(
        default=None,
        description="Optional GitHub token for the compare API",
    )

    # Paths
    build_drop_path: Path | None = Field(
        default=None,
        description="Local artifact directory used instead of downloading (offline runs)",
    )
    temp_root: Path = Field(
        default_factory=_default_temp_root,
        description="Root directory for extracted artifact downloads",
    )

    # Timeouts (in seconds)
    temp_delete_timeout: float = Field(
        default=20.0,
        ge=0,
        description="Best-effort wait for a deleted temp directory to disappear",
    )
    temp_delete_poll_interval: float = Field(
        default=0.1,
        gt=0,
        description="Poll interval while waiting for temp directory deletion",
    )
    http_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Timeout for HTTP requests",
    )
    policy_requeue_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Wall-clock bound when searching for a build policy to requeue",
    )

    # Changelog
    changelog_hard_limit: int = Field(
        default=4000,
        ge=100,
        description="Maximum pull request description length",
    )
    platform_committer: str = Field(
        default="GitHub",
        description="Committer name used by the hosting platform for merge/squash commits",
    )
    dependency_bot_author: str = Field(
        default="dotnet-maestro[bot]",
        description="Author name of the automated dependency update bot",
    )
    release_flow_pattern: str = Field(
        default=r"^Merge pull request #\d+ from dotnet/merges/",
        description="Regex matching automated release-flow merge commits",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Secrets are masked by pydantic's SecretStr serialization.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
