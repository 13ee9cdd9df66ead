"""Shared fixtures for bitstream_builder tests."""

import os
import shlex
import subprocess
from pathlib import Path, PurePosixPath
from unittest.mock import patch

import pytest

from bitstream_builder.config import Settings
from bitstream_builder.types import Board
from bitstream_builder.workspace import Workspace


def populate_workspace(root: Path, board: Board = Board.RP125_14) -> Workspace:
    """Create every input a build of board needs under root."""
    workspace = Workspace.at(root)
    name = board.value
    files = [
        workspace.build_procedure,
        workspace.tcl_dir / f"board_config_{name}.tcl",
        workspace.tcl_dir / "create_project_common.tcl",
        workspace.source_dir / f"cfg_{name}" / "rpll.tcl",
        workspace.source_dir / f"system_design_bd_{name}" / "system.tcl",
        workspace.cores_procedure,
    ]
    for path in files:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("# tcl\n")
    (workspace.lib_dir / "my_cores_build_src").mkdir(parents=True, exist_ok=True)
    return workspace


class FakeBuildHost:
    """subprocess.run stand-in for an SSH host with Vivado and bootgen.

    Files pushed with scp and files written by the fake tools are kept in
    ``files`` by remote path; scp pulls write them back to the local path.
    Vivado bitstream builds leave ``system_wrapper.bit`` in the remote
    implementation directory next to a ``runme.log``.
    """

    def __init__(self, workspace: Workspace, home: str = "/home/alice"):
        self.home = home
        self.root = PurePosixPath(home) / "rpll-dev"
        self.impl_dir = self.root / workspace.impl_dir(Board.RP125_14).relative_to(
            workspace.root
        ).as_posix()
        self.bootgen: str | None = "/opt/Xilinx/Vivado/2020.2/bin/bootgen"
        self.bootgen_rc = 0
        self.files: dict[PurePosixPath, bytes] = {}
        self.calls: list[list[str]] = []

    @property
    def commands(self) -> list[str]:
        """Remote commands run over ssh, in order."""
        return [
            c[-1]
            for c in self.calls
            if c[0] == "ssh" and "-N" not in c and "-O" not in c
        ]

    @property
    def pulled(self) -> list[str]:
        """Names of files copied back from the host."""
        return [
            PurePosixPath(c[-2].split(":", 1)[1]).name
            for c in self.calls
            if c[0] == "scp" and ":" in c[-2]
        ]

    def _ok(self, argv, stdout=""):
        return subprocess.CompletedProcess(argv, 0, stdout=stdout, stderr="")

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        if argv[0] == "scp":
            return self._copy(argv)
        if "-N" in argv or "-O" in argv:
            return self._ok(argv)
        command = argv[-1]
        if "$HOME" in command:
            return self._ok(argv, self.home)
        if "command -v" in command:
            return self._ok(argv, self.bootgen or "")
        if command.startswith("ls -1 "):
            directory = PurePosixPath(shlex.split(command)[2])
            names = sorted(p.name for p in self.files if p.parent == directory)
            return self._ok(argv, "\n".join([*names, "runme.log"]) + "\n")
        if command.startswith("rm -f "):
            for path in shlex.split(command)[2:]:
                self.files.pop(PurePosixPath(path), None)
            return self._ok(argv)
        if command.startswith("bash -lc "):
            return self._login(argv, shlex.split(command)[2])
        return self._ok(argv)

    def _copy(self, argv):
        source, destination = argv[-2], argv[-1]
        if ":" in destination:
            local = Path(source)
            if "-r" not in argv and local.is_file():
                remote = destination.split(":", 1)[1].replace("\\ ", " ")
                self.files[PurePosixPath(remote)] = local.read_bytes()
        else:
            remote = PurePosixPath(source.split(":", 1)[1].replace("\\ ", " "))
            Path(destination).write_bytes(self.files[remote])
        return self._ok(argv)

    def _login(self, argv, script):
        words = shlex.split(script)
        if "-process_bitstream" in words:
            if self.bootgen_rc == 0:
                descriptor = self.files[self.impl_dir / "design.bif"].decode()
                source = self.impl_dir / descriptor.split()[2]
                output = self.impl_dir / words[words.index("-o") + 1]
                self.files[output] = b"packaged:" + self.files[source]
            return subprocess.CompletedProcess(argv, self.bootgen_rc)
        if "/.build_" in script:
            self.files[self.impl_dir / "system_wrapper.bit"] = b"remote bitstream"
        return subprocess.CompletedProcess(argv, 0)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """A complete workspace for rp125_14."""
    return populate_workspace(tmp_path / "repo")


@pytest.fixture
def build_host(workspace) -> FakeBuildHost:
    """A fake SSH build host mirroring the workspace under ~/rpll-dev."""
    return FakeBuildHost(workspace)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and any .env file."""
    with patch.dict(os.environ, {}, clear=True):
        return Settings(
            _env_file=None,
            workspace_root=tmp_path / "repo",
            log_dir=tmp_path / "logs",
            packaging_search_roots=[],
        )


@pytest.fixture
def completed():
    """Factory for subprocess.CompletedProcess results."""

    def make(returncode: int = 0, stdout: str = "", stderr: str = ""):
        return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)

    return make
