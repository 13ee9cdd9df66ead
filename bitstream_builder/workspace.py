"""Workspace layout.

All paths used by the pipeline are derived from the workspace root so that
they can be translated onto container and remote roots.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bitstream_builder.boards import get_board_info
from bitstream_builder.types import Board

# Name of the Vivado project inside a board work directory
PROJECT_NAME = "rpll"
# Top-level TCL script that regenerates the project and block design
BUILD_PROCEDURE = "regenerate_project_and_bd.tcl"
# IP core generation entry script inside the library directory
CORES_PROCEDURE = "make_cores.tcl"


@dataclass(frozen=True)
class Workspace:
    """Local source tree root and the FPGA project layout under it.

    Attributes:
        root: Workspace root; synchronized to remote hosts as a whole.
        fpga_subdir: Directory of the Vivado project relative to root.
    """

    root: Path
    fpga_subdir: str = "fpga"

    @classmethod
    def at(cls, root: Path | str, fpga_subdir: str = "fpga") -> Workspace:
        """Create a workspace from a (possibly relative) root path."""
        return cls(root=Path(root).expanduser().resolve(), fpga_subdir=fpga_subdir)

    @property
    def fpga_dir(self) -> Path:
        return self.root / self.fpga_subdir

    @property
    def tcl_dir(self) -> Path:
        return self.fpga_dir / "tcl"

    @property
    def source_dir(self) -> Path:
        return self.fpga_dir / "source"

    @property
    def lib_dir(self) -> Path:
        """IP core library sources (custom hardware extensions)."""
        return self.fpga_dir / "library" / "lib_src"

    @property
    def build_procedure(self) -> Path:
        return self.fpga_dir / BUILD_PROCEDURE

    @property
    def cores_procedure(self) -> Path:
        return self.lib_dir / CORES_PROCEDURE

    @property
    def shared_work_dir(self) -> Path:
        """Board-independent scratch directory Vivado may create."""
        return self.fpga_dir / "work"

    def work_dir(self, board: Board) -> Path:
        return self.fpga_dir / get_board_info(board).work_dir_name

    def impl_dir(self, board: Board) -> Path:
        """Directory the implementation run writes bitstreams into."""
        return self.work_dir(board) / f"{PROJECT_NAME}.runs" / "impl_1"

    def contains(self, path: Path) -> bool:
        """Return True if path lies under the workspace root."""
        try:
            Path(path).resolve().relative_to(self.root)
        except ValueError:
            return False
        return True


__all__ = [
    "BUILD_PROCEDURE",
    "CORES_PROCEDURE",
    "PROJECT_NAME",
    "Workspace",
]
