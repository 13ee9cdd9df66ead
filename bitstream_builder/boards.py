"""Board registry.

Static per-board facts: Vivado work directory name, the well-known install
path of the Vivado release the board's TCL sources target, and the FPGA
architecture passed to ``bootgen``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from bitstream_builder.types import Board, ConversionPolicy, OsGeneration


@dataclass(frozen=True)
class BoardInfo:
    """Static description of a target board."""

    board: Board
    work_dir_name: str
    default_toolchain: Path
    bootgen_arch: str = "zynq"


BOARDS: dict[Board, BoardInfo] = {
    Board.RP125_14: BoardInfo(
        board=Board.RP125_14,
        work_dir_name="work125_14",
        default_toolchain=Path("/opt/Xilinx/Vivado/2017.2/bin/vivado"),
    ),
    Board.RP250_12: BoardInfo(
        board=Board.RP250_12,
        work_dir_name="work250_12",
        default_toolchain=Path("/opt/Xilinx/Vivado/2020.2/bin/vivado"),
    ),
}


def get_board_info(board: Board | str) -> BoardInfo:
    """Look up a board by enum or name.

    Raises:
        ValueError: If the board is unknown.
    """
    return BOARDS[Board(board)]


def conversion_policy(board: Board, os_generation: OsGeneration) -> ConversionPolicy:
    """Return whether ``.bit.bin`` packaging is mandatory for a board/OS pair.

    All supported boards are Zynq-7000 parts, so the OS generation alone
    decides: the FPGA Manager on 2.x only accepts the packaged format.
    """
    get_board_info(board)
    if os_generation == OsGeneration.FPGA_MANAGER:
        return ConversionPolicy.REQUIRED
    return ConversionPolicy.OPTIONAL


__all__ = ["BOARDS", "BoardInfo", "conversion_policy", "get_board_info"]
