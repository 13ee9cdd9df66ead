"""Backend interface.

A backend is the execution context the toolchain runs in. Every backend
sees the workspace under its own root and implements the same operations, so
the build service never branches on where the toolchain lives.

Backends are context managers: entering acquires whatever the context needs
(connectivity checks, control channels) and exiting releases it on every
exit path.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TextIO

from bitstream_builder.backends.paths import translate
from bitstream_builder.types import BackendKind
from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_JOBS = 4


def toolchain_command(toolchain: str, script: PurePosixPath | Path) -> list[str]:
    """Vivado batch-mode invocation sourcing a TCL script."""
    return [toolchain, "-mode", "batch", "-source", str(script)]


def run_logged(
    argv: Sequence[str],
    cwd: Path | None = None,
    log_file: TextIO | None = None,
    timeout: int | None = None,
) -> int:
    """Run a command with stdout/stderr appended to a log file.

    Args:
        argv: Command to run.
        cwd: Working directory.
        log_file: Open log file; output is inherited from the caller if None.
        timeout: Timeout in seconds.

    Returns:
        Process exit code.

    Raises:
        subprocess.TimeoutExpired: If the command exceeds timeout.
        OSError: If the command cannot be started.
    """
    cmd_str = shlex.join(argv)
    logger.debug("Running: %s (cwd=%s)", cmd_str, cwd)
    if log_file is not None:
        log_file.write(f"# $ {cmd_str}\n")
        log_file.flush()
    result = subprocess.run(
        list(argv),
        cwd=cwd,
        stdout=log_file,
        stderr=subprocess.STDOUT if log_file is not None else None,
        timeout=timeout,
        check=False,
    )
    return result.returncode


class Backend(ABC):
    """Execution context for toolchain and packaging commands.

    Args:
        workspace: Local workspace layout.
    """

    kind: BackendKind

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace

    def __enter__(self) -> Backend:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Verify the context is reachable and acquire its resources."""

    def close(self) -> None:
        """Release resources acquired by open()."""

    @property
    @abstractmethod
    def root(self) -> PurePosixPath:
        """Workspace root in the backend's namespace."""

    @property
    @abstractmethod
    def toolchain(self) -> str:
        """Toolchain command in the backend's namespace."""

    def translate(self, path: Path) -> PurePosixPath:
        """Map a local workspace path into the backend's namespace."""
        return translate(path, self.workspace.root, self.root)

    @abstractmethod
    def invoke(
        self,
        script: Path,
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        """Run the toolchain in batch mode against a workspace script.

        Args:
            script: Local path of the TCL script (under the workspace).
            work_dir: Local working directory (under the workspace).
            log_file: Open log file receiving toolchain output.
            timeout: Timeout in seconds.

        Returns:
            Toolchain exit code.
        """

    @abstractmethod
    def execute(
        self,
        argv: Sequence[str],
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        """Run an auxiliary command (e.g. bootgen) in the backend context."""

    @abstractmethod
    def find_packaging_tool(self, name: str, search_roots: Sequence[Path]) -> str | None:
        """Locate a packaging program in the backend's namespace."""

    @abstractmethod
    def remove_trees(self, paths: Sequence[Path]) -> None:
        """Delete workspace directories as seen by the backend."""

    def detect_jobs(self) -> int:
        """Parallelism to use when the request does not specify it."""
        return os.cpu_count() or DEFAULT_JOBS

    def push_files(self, paths: Sequence[Path]) -> None:
        """Make local workspace files visible to the backend."""

    def pull_files(self, paths: Sequence[Path]) -> None:
        """Bring backend-side workspace files back to the local workspace."""

    def discard_files(self, paths: Sequence[Path]) -> None:
        """Remove backend-side copies of transient workspace files."""

    def fetch_outputs(self, output_dir: Path) -> None:
        """Make artifacts in a backend output directory available locally."""

    def describe(self) -> str:
        return self.kind.value


__all__ = ["DEFAULT_JOBS", "Backend", "run_logged", "toolchain_command"]
