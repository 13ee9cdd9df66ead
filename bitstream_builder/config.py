"""Configuration settings for bitstream_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

Every setting can be given as ``BITBUILD_<NAME>``. The toolchain, container
and remote settings also honour the historical variable names used by the
shell build scripts (``VIVADO_BIN``, ``VIVADO_DOCKER_IMAGE``, ``REMOTE_DIR``
and so on).
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bitstream_builder.types import OsGeneration


def _default_log_dir() -> Path:
    """Return the default build log directory."""
    return Path.home() / ".local" / "share" / "bitstream-builder" / "logs"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the BITBUILD_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="BITBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Workspace
    workspace_root: Path = Field(
        default_factory=Path.cwd,
        description="Root of the source tree that is built and synchronized",
    )
    fpga_subdir: str = Field(
        default="fpga",
        description="Vivado project directory relative to the workspace root",
    )

    # Local toolchain
    toolchain: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BITBUILD_TOOLCHAIN", "VIVADO_BIN"),
        description="Vivado command name or path for local builds",
    )

    # Container backend
    container_image: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BITBUILD_CONTAINER_IMAGE", "VIVADO_DOCKER_IMAGE"
        ),
        description="Docker image containing Vivado",
    )
    container_platform: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "BITBUILD_CONTAINER_PLATFORM", "VIVADO_DOCKER_PLATFORM"
        ),
        description="Docker platform, e.g. linux/amd64",
    )
    container_toolchain: str = Field(
        default="vivado",
        description="Vivado command inside the container",
    )

    # Remote backend
    remote_user: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BITBUILD_REMOTE_USER", "REMOTE_USER"),
        description="SSH user for the remote host",
    )
    remote_port: int = Field(
        default=22,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("BITBUILD_REMOTE_PORT", "REMOTE_PORT"),
        description="SSH port for the remote host",
    )
    remote_dir: str = Field(
        default="~/rpll-dev",
        validation_alias=AliasChoices("BITBUILD_REMOTE_DIR", "REMOTE_DIR"),
        description="Workspace mirror directory on the remote host",
    )
    remote_toolchain: str | None = Field(
        default=None,
        validation_alias=AliasChoices("BITBUILD_REMOTE_TOOLCHAIN", "REMOTE_VIVADO"),
        description="Vivado binary on the remote host",
    )

    # Packaging
    os_generation: OsGeneration = Field(
        default=OsGeneration.FPGA_MANAGER,
        description="Target OS generation; 2.x requires .bit.bin packaging",
    )
    packaging_search_roots: list[Path] = Field(
        default_factory=lambda: [Path("/opt/Xilinx")],
        description="Directories searched for bootgen as a last resort",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory for toolchain build logs",
    )

    # Timeouts (in seconds)
    build_timeout: int | None = Field(
        default=None,
        ge=60,
        description="Timeout for a toolchain run (unbounded if not set)",
    )
    transfer_timeout: int = Field(
        default=3600,
        ge=10,
        description="Timeout for workspace synchronization",
    )
    connect_timeout: int = Field(
        default=10,
        ge=1,
        le=300,
        description="SSH connection timeout",
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
