"""Toolchain runner for executing Vivado batch builds.

This module handles:
- Composing the TCL command scripts for IP core generation and bitstream builds
- Placing command scripts inside the workspace so every backend can see them
- Executing the toolchain through a backend
- Capturing toolchain output to log files
- Enforcing build timeouts
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from bitstream_builder.errors import ConfigError, ToolchainError
from bitstream_builder.types import Board, Variant
from bitstream_builder.workspace import BUILD_PROCEDURE, CORES_PROCEDURE

if TYPE_CHECKING:
    from bitstream_builder.backends.base import Backend
    from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class ToolchainResult:
    """Result of a toolchain run.

    Attributes:
        exit_code: Toolchain exit code.
        log_path: Path to the log file.
        script: Contents of the command script that was sourced.
        work_dir: Local working directory of the run.
        started_at: Run start time.
        finished_at: Run finish time.
    """

    exit_code: int
    log_path: Path
    script: str
    work_dir: Path
    started_at: datetime
    finished_at: datetime

    @property
    def duration(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


def compose_build_script(
    board: Board,
    variant: Variant,
    jobs: int,
    force: bool = False,
) -> str:
    """Compose the TCL script that regenerates the project and builds it.

    Args:
        board: Target board.
        variant: Build variant.
        jobs: Parallel jobs for the implementation run.
        force: Overwrite existing generated project state.

    Returns:
        Script text.
    """
    lines = [
        f"set rp_model {board.value}",
        f"set rp_variant {variant.value}",
    ]
    if force:
        lines.append("set rp_force 1")
    lines += [
        f"source {BUILD_PROCEDURE}",
        f"launch_runs impl_1 -to_step write_bitstream -jobs {jobs}",
        "wait_on_run impl_1",
    ]
    return "\n".join(lines) + "\n"


def compose_cores_script(board: Board, force: bool = False) -> str:
    """Compose the TCL script that generates the custom IP cores."""
    lines = [f"set rp_model {board.value}"]
    if force:
        lines.append("set rp_force 1")
    lines.append(f"source {CORES_PROCEDURE}")
    return "\n".join(lines) + "\n"


@contextmanager
def command_script(
    workspace: Workspace,
    directory: Path,
    content: str,
    prefix: str = ".build_",
) -> Iterator[Path]:
    """Write a uniquely named hidden command script and remove it afterwards.

    The script has to live inside the workspace: container and remote
    backends only see it through the translated workspace root.

    Args:
        workspace: Workspace layout.
        directory: Directory the script is created in.
        content: Script text.
        prefix: File name prefix.

    Yields:
        Path of the script.

    Raises:
        ConfigError: If the script would land outside the workspace.
    """
    fd, name = tempfile.mkstemp(prefix=prefix, suffix=".tcl", dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if not workspace.contains(path):
            raise ConfigError(
                f"Command script created outside the workspace: {path}",
                code="script_outside_workspace",
            )
        logger.debug("Wrote command script %s", path)
        yield path
    finally:
        path.unlink(missing_ok=True)


def run_toolchain(
    backend: Backend,
    script: Path,
    work_dir: Path,
    log_path: Path,
    timeout: int | None = None,
) -> ToolchainResult:
    """Run the toolchain against a command script through a backend.

    Args:
        backend: Open backend to dispatch through.
        script: Local path of the command script.
        work_dir: Local working directory for the toolchain.
        log_path: Log file; output is appended.
        timeout: Timeout in seconds (None = no timeout).

    Returns:
        ToolchainResult for a successful run.

    Raises:
        ToolchainError: If the toolchain exits nonzero, times out or cannot
            be started. Runs are never retried.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    content = script.read_text(encoding="utf-8")

    logger.info("Running %s on %s", script.name, backend.describe())
    logger.info("Working directory: %s", work_dir)
    logger.info("Log file: %s", log_path)

    started_at = datetime.now(timezone.utc)
    try:
        with log_path.open("a") as log_file:
            log_file.write(f"# Backend: {backend.describe()}\n")
            log_file.write(f"# Script: {script}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {work_dir}\n")
            for line in content.splitlines():
                log_file.write(f"#   {line}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            exit_code = backend.invoke(
                script, work_dir, log_file=log_file, timeout=timeout
            )

    except subprocess.TimeoutExpired as e:
        message = f"Toolchain timed out after {timeout} seconds"
        logger.error("%s. See log: %s", message, log_path)
        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise ToolchainError(
            message, exit_code=-1, log_path=log_path, code="toolchain_timeout"
        ) from e

    except OSError as e:
        message = f"Failed to execute toolchain: {e}"
        logger.error(message)
        raise ToolchainError(
            message, log_path=log_path, code="execution_error"
        ) from e

    finished_at = datetime.now(timezone.utc)
    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n")

    if exit_code != 0:
        message = f"Toolchain failed with exit code {exit_code}"
        logger.error("%s. See log: %s", message, log_path)
        raise ToolchainError(message, exit_code=exit_code, log_path=log_path)

    return ToolchainResult(
        exit_code=exit_code,
        log_path=log_path,
        script=content,
        work_dir=work_dir,
        started_at=started_at,
        finished_at=finished_at,
    )


__all__ = [
    "ToolchainResult",
    "command_script",
    "compose_build_script",
    "compose_cores_script",
    "run_toolchain",
]
