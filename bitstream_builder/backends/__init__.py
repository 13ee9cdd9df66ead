"""Toolchain execution backends.

This module handles:
- Path translation between the workspace and backend roots
- Local, container and remote execution of the toolchain
- Remote workspace synchronization
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bitstream_builder.backends.base import Backend
from bitstream_builder.backends.container import ContainerBackend
from bitstream_builder.backends.local import LocalBackend
from bitstream_builder.backends.remote import RemoteBackend
from bitstream_builder.backends.ssh import SshTarget
from bitstream_builder.backends.sync import sync_excludes
from bitstream_builder.request import (
    ContainerBackendConfig,
    LocalBackendConfig,
    RemoteBackendConfig,
)

if TYPE_CHECKING:
    from bitstream_builder.config import Settings
    from bitstream_builder.request import BackendConfig
    from bitstream_builder.workspace import Workspace


def create_backend(
    config: BackendConfig,
    workspace: Workspace,
    settings: Settings,
) -> Backend:
    """Instantiate the backend for a request's backend configuration.

    A new backend is created per request and never reused.
    """
    if isinstance(config, LocalBackendConfig):
        return LocalBackend(workspace, toolchain=config.toolchain)
    if isinstance(config, ContainerBackendConfig):
        return ContainerBackend(
            workspace,
            image=config.image,
            platform=config.platform,
            toolchain=config.toolchain,
        )
    if isinstance(config, RemoteBackendConfig):
        target = SshTarget(
            host=config.host,
            user=config.user,
            port=config.port,
            connect_timeout=settings.connect_timeout,
        )
        return RemoteBackend(
            workspace,
            target=target,
            root_dir=config.root_dir,
            toolchain=config.toolchain,
            transfer_timeout=settings.transfer_timeout,
            excludes=sync_excludes(workspace.fpga_subdir),
        )
    raise TypeError(f"Unknown backend configuration: {config!r}")


__all__ = [
    "Backend",
    "ContainerBackend",
    "LocalBackend",
    "RemoteBackend",
    "create_backend",
]
