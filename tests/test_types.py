"""Tests for shared types, the board registry and the workspace layout."""

from pathlib import Path

import pytest

from bitstream_builder.boards import BOARDS, conversion_policy, get_board_info
from bitstream_builder.errors import (
    ArtifactError,
    BitstreamBuildError,
    ConfigError,
    ConnectivityError,
    PreflightError,
    ToolchainError,
)
from bitstream_builder.types import Board, ConversionPolicy, OsGeneration, Variant
from bitstream_builder.workspace import Workspace


class TestEnums:
    """Tests for string enums."""

    def test_values(self):
        assert Board("rp125_14") is Board.RP125_14
        assert Variant("phasemeter") is Variant.PHASEMETER
        assert OsGeneration("1.x") is OsGeneration.LEGACY

    def test_str_compat(self):
        """Enums should compare equal to their values."""
        assert Board.RP250_12 == "rp250_12"


class TestBoards:
    """Tests for the board registry."""

    def test_every_board_registered(self):
        assert set(BOARDS) == set(Board)

    def test_board_info(self):
        info = get_board_info("rp250_12")
        assert info.work_dir_name == "work250_12"
        assert info.default_toolchain == Path("/opt/Xilinx/Vivado/2020.2/bin/vivado")

    def test_unknown_board(self):
        with pytest.raises(ValueError):
            get_board_info("rp999")

    @pytest.mark.parametrize("board", list(Board))
    def test_conversion_policy(self, board):
        """OS 2.x requires packaging; 1.x makes it optional."""
        assert conversion_policy(board, OsGeneration.FPGA_MANAGER) == ConversionPolicy.REQUIRED
        assert conversion_policy(board, OsGeneration.LEGACY) == ConversionPolicy.OPTIONAL


class TestWorkspace:
    """Tests for the workspace layout."""

    def test_paths(self, tmp_path):
        workspace = Workspace.at(tmp_path)
        assert workspace.fpga_dir == tmp_path.resolve() / "fpga"
        assert workspace.impl_dir(Board.RP125_14) == (
            tmp_path.resolve() / "fpga" / "work125_14" / "rpll.runs" / "impl_1"
        )
        assert workspace.lib_dir == tmp_path.resolve() / "fpga" / "library" / "lib_src"

    def test_custom_subdir(self, tmp_path):
        workspace = Workspace.at(tmp_path, fpga_subdir="hw")
        assert workspace.build_procedure == tmp_path.resolve() / "hw" / "regenerate_project_and_bd.tcl"

    def test_contains(self, tmp_path):
        workspace = Workspace.at(tmp_path / "repo")
        assert workspace.contains(tmp_path / "repo" / "fpga" / "x")
        assert not workspace.contains(tmp_path / "other")


class TestErrors:
    """Tests for the error taxonomy."""

    @pytest.mark.parametrize(
        ("error", "exit_code"),
        [
            (ConfigError("x"), 2),
            (PreflightError([Path("/a")]), 3),
            (ConnectivityError("x"), 4),
            (ToolchainError("x"), 5),
            (ArtifactError("x"), 6),
        ],
    )
    def test_exit_codes(self, error, exit_code):
        """Each category should map to a distinct exit status."""
        assert isinstance(error, BitstreamBuildError)
        assert error.exit_code == exit_code

    def test_toolchain_error_keeps_exit_status(self):
        error = ToolchainError("failed", exit_code=1, log_path=Path("/tmp/l"))
        assert error.returncode == 1
        assert error.exit_code == 5
