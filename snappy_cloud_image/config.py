"""Configuration settings for snappy_cloud_image.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_IMAGE_URL = "http://system-image.ubuntu.com/ubuntu-core"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the SCI_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (unknown levels fall back to INFO)",
    )

    # Upstream
    system_image_base_url: str = Field(
        default=DEFAULT_SYSTEM_IMAGE_URL,
        description="Base URL of the system-image server",
    )

    # Image store
    openstack_bin: str = Field(
        default="openstack",
        description="OpenStack client executable used for image operations",
    )

    # Image builder
    qcow2_compat: str = Field(
        default="1.1",
        description="QCOW2 compatibility level passed to qemu-img",
    )
    tmp_dir: Path | None = Field(
        default=None,
        description="Temporary directory for builds (uses system default if not set)",
    )

    # Timeouts (in seconds)
    http_timeout: int = Field(
        default=60,
        ge=1,
        description="Timeout for system-image requests",
    )
    command_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Timeout for image store commands (None = no timeout)",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for image build commands",
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


__all__ = ["DEFAULT_SYSTEM_IMAGE_URL", "Settings", "get_settings", "print_settings_json"]
