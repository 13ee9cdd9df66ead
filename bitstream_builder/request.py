"""Build request model and backend selection.

A BuildRequest is constructed once from CLI options and settings and then
passed explicitly to every pipeline stage. It is immutable; there is no
shared mutable configuration.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt

from bitstream_builder.boards import get_board_info
from bitstream_builder.config import Settings
from bitstream_builder.errors import ConfigError
from bitstream_builder.types import (
    Board,
    BuildAction,
    OsGeneration,
    Variant,
)

logger = logging.getLogger(__name__)

DEFAULT_TOOLCHAIN_COMMAND = "vivado"


class LocalBackendConfig(BaseModel):
    """Run the toolchain installed on this machine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["local"] = "local"
    toolchain: Path = Field(description="Resolved Vivado executable")


class ContainerBackendConfig(BaseModel):
    """Run the toolchain in an ephemeral Docker container."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["container"] = "container"
    image: str = Field(min_length=1, description="Docker image with Vivado")
    platform: str | None = Field(default=None, description="Docker platform")
    toolchain: str = Field(default=DEFAULT_TOOLCHAIN_COMMAND)


class RemoteBackendConfig(BaseModel):
    """Run the toolchain on a remote host over SSH."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["remote"] = "remote"
    host: str = Field(min_length=1)
    user: str | None = None
    port: int = Field(default=22, ge=1, le=65535)
    root_dir: str = Field(default="~/rpll-dev", min_length=1)
    toolchain: str = Field(default=DEFAULT_TOOLCHAIN_COMMAND)


BackendConfig = Annotated[
    LocalBackendConfig | ContainerBackendConfig | RemoteBackendConfig,
    Field(discriminator="kind"),
]


class BuildRequest(BaseModel):
    """A single, immutable build (or clean) request.

    Attributes:
        board: Target board.
        variant: Build variant.
        jobs: Parallelism hint; None lets the backend detect it.
        force: Overwrite existing generated project state.
        make_cores: Generate custom IP cores before the build.
        action: Build or clean.
        os_generation: Target OS generation (decides packaging).
        backend: Exactly one backend configuration.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    board: Board
    variant: Variant = Variant.LASER_LOCK
    jobs: PositiveInt | None = None
    force: bool = False
    make_cores: bool = True
    action: BuildAction = BuildAction.BUILD
    os_generation: OsGeneration = OsGeneration.FPGA_MANAGER
    backend: BackendConfig


def split_user_host(host: str, user: str | None = None) -> tuple[str | None, str]:
    """Split ``user@host``; an explicit user takes precedence over the prefix.

    Returns:
        Tuple of (user, host).
    """
    if "@" in host:
        user_part, _, host = host.rpartition("@")
        return user or user_part or None, host
    return user, host


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def resolve_toolchain_binary(board: Board, override: str | None = None) -> Path:
    """Resolve the local Vivado executable.

    Order: explicit override (command name on PATH, or a path), then
    ``vivado`` on PATH, then the board's well-known install path.

    Raises:
        ConfigError: If no executable toolchain can be found.
    """
    if override:
        found = shutil.which(override)
        candidate = Path(found) if found else Path(override).expanduser()
    else:
        found = shutil.which(DEFAULT_TOOLCHAIN_COMMAND)
        candidate = Path(found) if found else get_board_info(board).default_toolchain

    if not _is_executable(candidate):
        raise ConfigError(
            f"Vivado not found (tried {candidate}). Use --vivado or set VIVADO_BIN.",
            code="toolchain_not_found",
        )
    logger.debug("Resolved toolchain: %s", candidate)
    return candidate


def select_backend(
    board: Board,
    settings: Settings,
    *,
    toolchain: str | None = None,
    use_container: bool = False,
    container_image: str | None = None,
    container_platform: str | None = None,
    remote_host: str | None = None,
    remote_user: str | None = None,
    remote_port: int | None = None,
    remote_dir: str | None = None,
    remote_toolchain: str | None = None,
) -> LocalBackendConfig | ContainerBackendConfig | RemoteBackendConfig:
    """Choose and validate the backend for a request.

    Container is selected by ``use_container`` or an explicit image; remote
    by a host. Options fall back to settings (environment) values.

    Raises:
        ConfigError: If both container and remote are selected, a selected
            backend is missing a required value, or no local toolchain can be
            resolved.
    """
    wants_container = use_container or bool(container_image)
    wants_remote = bool(remote_host)

    if wants_container and wants_remote:
        raise ConfigError(
            "Container and remote backends cannot be used together",
            code="backend_conflict",
        )

    if remote_host:
        user, host = split_user_host(remote_host, remote_user)
        user = user or settings.remote_user
        if not host:
            raise ConfigError("Remote backend requires a host", code="remote_host_missing")
        return RemoteBackendConfig(
            host=host,
            user=user,
            port=remote_port or settings.remote_port,
            root_dir=remote_dir or settings.remote_dir,
            toolchain=remote_toolchain
            or settings.remote_toolchain
            or DEFAULT_TOOLCHAIN_COMMAND,
        )

    if wants_container:
        image = container_image or settings.container_image
        if not image:
            raise ConfigError(
                "Container backend requires --docker-image or VIVADO_DOCKER_IMAGE",
                code="container_image_missing",
            )
        return ContainerBackendConfig(
            image=image,
            platform=container_platform or settings.container_platform,
            toolchain=settings.container_toolchain,
        )

    return LocalBackendConfig(
        toolchain=resolve_toolchain_binary(board, toolchain or settings.toolchain)
    )


__all__ = [
    "BackendConfig",
    "BuildRequest",
    "ContainerBackendConfig",
    "LocalBackendConfig",
    "RemoteBackendConfig",
    "resolve_toolchain_binary",
    "select_backend",
    "split_user_host",
]
