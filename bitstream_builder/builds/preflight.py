"""Preflight validation.

A bitstream build runs for many minutes, so every required input is checked
up front and all missing paths are reported together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from bitstream_builder.errors import PreflightError
from bitstream_builder.types import Board
from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequiredPath:
    """A path that must exist before the build starts.

    Attributes:
        path: Absolute local path.
        is_dir: Whether a directory (rather than a file) is expected.
    """

    path: Path
    is_dir: bool = False

    def present(self) -> bool:
        return self.path.is_dir() if self.is_dir else self.path.is_file()


def required_paths(
    workspace: Workspace,
    board: Board,
    make_cores: bool = True,
) -> list[RequiredPath]:
    """List the inputs a build of board needs.

    Args:
        workspace: Workspace layout.
        board: Target board.
        make_cores: Whether custom IP core generation will run.

    Returns:
        Required paths in reporting order.
    """
    name = board.value
    paths = [
        RequiredPath(workspace.build_procedure),
        RequiredPath(workspace.tcl_dir / f"board_config_{name}.tcl"),
        RequiredPath(workspace.tcl_dir / "create_project_common.tcl"),
        RequiredPath(workspace.source_dir / f"cfg_{name}" / "rpll.tcl"),
        RequiredPath(workspace.source_dir / f"system_design_bd_{name}" / "system.tcl"),
    ]
    if make_cores:
        paths += [
            RequiredPath(workspace.cores_procedure),
            RequiredPath(workspace.lib_dir / "my_cores_build_src", is_dir=True),
        ]
    return paths


def find_missing(checks: list[RequiredPath]) -> list[Path]:
    """Return every required path that does not exist."""
    return [check.path for check in checks if not check.present()]


def run_preflight(
    workspace: Workspace,
    board: Board,
    make_cores: bool = True,
) -> list[RequiredPath]:
    """Verify all build inputs exist.

    Returns:
        The checked paths.

    Raises:
        PreflightError: Listing every missing path.
    """
    checks = required_paths(workspace, board, make_cores=make_cores)
    missing = find_missing(checks)
    if missing:
        logger.error("Preflight failed: %d required path(s) missing", len(missing))
        raise PreflightError(missing)
    logger.info("Preflight passed (%d paths checked)", len(checks))
    return checks


__all__ = ["RequiredPath", "find_missing", "required_paths", "run_preflight"]
