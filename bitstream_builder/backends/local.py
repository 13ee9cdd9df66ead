"""Local backend: the toolchain installed on this machine."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TextIO

from bitstream_builder.backends.base import Backend, run_logged, toolchain_command
from bitstream_builder.backends.discovery import discover_program
from bitstream_builder.types import BackendKind
from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)


class LocalBackend(Backend):
    """Runs Vivado directly; the backend root is the workspace root itself."""

    kind = BackendKind.LOCAL

    def __init__(self, workspace: Workspace, toolchain: Path) -> None:
        super().__init__(workspace)
        self._toolchain = Path(toolchain)

    @property
    def root(self) -> PurePosixPath:
        return PurePosixPath(self.workspace.root)

    @property
    def toolchain(self) -> str:
        return str(self._toolchain)

    def invoke(
        self,
        script: Path,
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        return run_logged(
            toolchain_command(self.toolchain, self.translate(script)),
            cwd=Path(self.translate(work_dir)),
            log_file=log_file,
            timeout=timeout,
        )

    def execute(
        self,
        argv: Sequence[str],
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        return run_logged(argv, cwd=work_dir, log_file=log_file, timeout=timeout)

    def find_packaging_tool(self, name: str, search_roots: Sequence[Path]) -> str | None:
        found = discover_program(name, self._toolchain, search_roots)
        return str(found) if found else None

    def remove_trees(self, paths: Sequence[Path]) -> None:
        for path in paths:
            if path.exists():
                logger.info("Removing %s", path)
                shutil.rmtree(path)

    def describe(self) -> str:
        return f"local ({self._toolchain})"


__all__ = ["LocalBackend"]
