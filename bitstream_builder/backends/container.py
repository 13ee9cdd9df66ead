"""Container backend: the toolchain inside an ephemeral Docker container.

Each command starts a fresh ``docker run --rm`` with the workspace
bind-mounted at /work, so files written in the container appear directly in
the local workspace and no transfer step is needed.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TextIO

from bitstream_builder.backends.base import Backend, run_logged, toolchain_command
from bitstream_builder.backends.discovery import probe_script
from bitstream_builder.errors import ConnectivityError
from bitstream_builder.types import BackendKind
from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)

CONTAINER_MOUNT_POINT = PurePosixPath("/work")


class ContainerBackend(Backend):
    """Runs Vivado via ``docker run``.

    Args:
        workspace: Local workspace layout.
        image: Docker image containing Vivado.
        platform: Optional ``--platform`` value (e.g. ``linux/amd64``).
        toolchain: Vivado command inside the image.
        probe_timeout: Timeout for the Docker daemon availability check.
    """

    kind = BackendKind.CONTAINER

    def __init__(
        self,
        workspace: Workspace,
        image: str,
        platform: str | None = None,
        toolchain: str = "vivado",
        probe_timeout: int = 60,
    ) -> None:
        super().__init__(workspace)
        self.image = image
        self.platform = platform
        self._toolchain = toolchain
        self.probe_timeout = probe_timeout

    @property
    def root(self) -> PurePosixPath:
        return CONTAINER_MOUNT_POINT

    @property
    def toolchain(self) -> str:
        return self._toolchain

    def open(self) -> None:
        """Check that the docker CLI exists and the daemon answers."""
        if shutil.which("docker") is None:
            raise ConnectivityError("docker not found in PATH", code="docker_missing")
        try:
            result = subprocess.run(
                ["docker", "info"],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ConnectivityError(
                f"Docker daemon unavailable: {e}", code="docker_unavailable"
            ) from e
        if result.returncode != 0:
            raise ConnectivityError(
                f"Docker daemon unavailable: {result.stderr.strip()}",
                code="docker_unavailable",
            )
        logger.debug("Docker daemon reachable")

    def run_argv(self, work_dir: Path, command: str) -> list[str]:
        """Compose the ``docker run`` invocation for a shell command."""
        argv = ["docker", "run", "--rm"]
        if self.platform:
            argv += ["--platform", self.platform]
        argv += [
            "-v",
            f"{self.workspace.root}:{CONTAINER_MOUNT_POINT}",
            "-w",
            str(self.translate(work_dir)),
            self.image,
            "bash",
            "-lc",
            command,
        ]
        return argv

    def invoke(
        self,
        script: Path,
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        command = shlex.join(toolchain_command(self.toolchain, self.translate(script)))
        return run_logged(
            self.run_argv(work_dir, command), log_file=log_file, timeout=timeout
        )

    def execute(
        self,
        argv: Sequence[str],
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        return run_logged(
            self.run_argv(work_dir, shlex.join(argv)),
            log_file=log_file,
            timeout=timeout,
        )

    def find_packaging_tool(self, name: str, search_roots: Sequence[Path]) -> str | None:
        script = probe_script(name, self.toolchain, search_roots)
        try:
            result = subprocess.run(
                self.run_argv(self.workspace.root, script),
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ConnectivityError(
                f"Could not search {self.image} for {name}: {e}",
                code="docker_unavailable",
            ) from e
        found = result.stdout.strip().splitlines()
        return found[-1] if result.returncode == 0 and found else None

    def remove_trees(self, paths: Sequence[Path]) -> None:
        # The bind mount makes container paths local paths.
        for path in paths:
            if path.exists():
                logger.info("Removing %s", path)
                shutil.rmtree(path)

    def describe(self) -> str:
        platform = f", {self.platform}" if self.platform else ""
        return f"container ({self.image}{platform})"


__all__ = ["CONTAINER_MOUNT_POINT", "ContainerBackend"]
