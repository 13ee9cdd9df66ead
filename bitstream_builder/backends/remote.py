"""Remote backend: the toolchain on another host, reached over SSH.

The workspace is mirrored to a directory on the remote host before each
toolchain run and bitstreams are pulled back afterwards. Commands run in a
login shell so the remote profile can set up the Xilinx environment.

Entering the backend probes connectivity before anything is transferred or
created on the remote side; exiting tears down the SSH control channel.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import TextIO

from bitstream_builder.backends.base import (
    DEFAULT_JOBS,
    Backend,
    run_logged,
    toolchain_command,
)
from bitstream_builder.backends.discovery import probe_script
from bitstream_builder.backends.ssh import (
    SSH_CONNECTION_FAILURE,
    ControlChannel,
    SshTarget,
)
from bitstream_builder.backends.sync import RemoteSync, sync_excludes
from bitstream_builder.errors import ConfigError, ConnectivityError
from bitstream_builder.types import BackendKind
from bitstream_builder.workspace import Workspace

logger = logging.getLogger(__name__)


class RemoteBackend(Backend):
    """Runs Vivado on a remote host.

    Args:
        workspace: Local workspace layout.
        target: SSH connection parameters.
        root_dir: Workspace mirror directory on the remote host; a leading
            ``~`` is expanded against the remote ``$HOME`` on open().
        toolchain: Vivado command on the remote host.
        transfer_timeout: Timeout for each synchronization step.
        excludes: Subtrees never synchronized; derived from the workspace
            project directory when omitted.
    """

    kind = BackendKind.REMOTE

    def __init__(
        self,
        workspace: Workspace,
        target: SshTarget,
        root_dir: str,
        toolchain: str = "vivado",
        transfer_timeout: int | None = None,
        excludes: Sequence[str] | None = None,
    ) -> None:
        super().__init__(workspace)
        self.target = target
        self.root_dir = root_dir
        self._toolchain = toolchain
        self._root: PurePosixPath | None = None
        self._channel: ControlChannel | None = None
        if excludes is None:
            excludes = sync_excludes(workspace.fpga_subdir)
        self.sync = RemoteSync(target, timeout=transfer_timeout, excludes=excludes)

    @property
    def root(self) -> PurePosixPath:
        if self._root is None:
            raise ConfigError(
                "Remote root is not resolved; use the backend as a context manager",
                code="remote_not_open",
            )
        return self._root

    @property
    def toolchain(self) -> str:
        return self._toolchain

    def open(self) -> None:
        """Open the control channel (probing the host) and resolve the root.

        Raises:
            ConnectivityError: If the host cannot be reached. Nothing has been
                transferred or created remotely at that point.
        """
        self._channel = ControlChannel(self.target)
        self._channel.open()
        try:
            self._root = self._resolve_root()
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if self._channel is not None:
            self._channel.close()
            self._channel = None

    def _ssh(
        self,
        command: str,
        capture: bool = True,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess:
        argv = self.target.ssh_argv(command)
        logger.debug("Running: %s", shlex.join(argv))
        try:
            result = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ConnectivityError(
                f"SSH command on {self.target.host} timed out", code="ssh_timeout"
            ) from e
        except OSError as e:
            raise ConnectivityError(f"Failed to run ssh: {e}", code="ssh_missing") from e
        if result.returncode == SSH_CONNECTION_FAILURE:
            detail = (result.stderr or "").strip() if capture else ""
            raise ConnectivityError(
                f"Cannot reach {self.target.destination} on port {self.target.port}"
                + (f": {detail}" if detail else ""),
                code="host_unreachable",
            )
        return result

    def _resolve_root(self) -> PurePosixPath:
        root_dir = self.root_dir
        if root_dir.startswith("~"):
            home = self._ssh('printf %s "$HOME"').stdout.strip()
            if not home:
                raise ConnectivityError(
                    f"Could not determine $HOME on {self.target.host}",
                    code="remote_home_unknown",
                )
            root_dir = home + root_dir[1:]
        normalized = root_dir.rstrip("/") or "/"
        return PurePosixPath(normalized)

    def sync_in(self) -> None:
        """Mirror the local workspace to the remote root."""
        self.sync.sync_in(self.workspace.root, self.root)

    def sync_out(self, output_dir: Path) -> None:
        """Pull bitstream artifacts from the remote counterpart of output_dir."""
        self.sync.sync_out(self.translate(output_dir), output_dir)

    def _run_login(
        self,
        work_dir: Path,
        command: str,
        log_file: TextIO | None,
        timeout: int | None,
    ) -> int:
        script = f"cd {shlex.quote(str(self.translate(work_dir)))} && {command}"
        returncode = run_logged(
            self.target.login_shell_argv(script), log_file=log_file, timeout=timeout
        )
        if returncode == SSH_CONNECTION_FAILURE:
            raise ConnectivityError(
                f"Lost connection to {self.target.destination}",
                code="host_unreachable",
            )
        return returncode

    def invoke(
        self,
        script: Path,
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        self.sync_in()
        remote_script = self.translate(script)
        try:
            return self._run_login(
                work_dir,
                shlex.join(toolchain_command(self.toolchain, remote_script)),
                log_file,
                timeout,
            )
        finally:
            self._discard_remote([remote_script])

    def execute(
        self,
        argv: Sequence[str],
        work_dir: Path,
        log_file: TextIO | None = None,
        timeout: int | None = None,
    ) -> int:
        return self._run_login(work_dir, shlex.join(argv), log_file, timeout)

    def _discard_remote(self, remote_paths: Sequence[PurePosixPath]) -> None:
        quoted = " ".join(shlex.quote(str(p)) for p in remote_paths)
        try:
            self._ssh(f"rm -f {quoted}")
        except ConnectivityError as e:
            logger.warning("Could not remove remote file(s) %s: %s", quoted, e)

    def push_files(self, paths: Sequence[Path]) -> None:
        for path in paths:
            self.sync.push_file(path, self.translate(path))

    def pull_files(self, paths: Sequence[Path]) -> None:
        for path in paths:
            self.sync.pull_file(self.translate(path), path)

    def discard_files(self, paths: Sequence[Path]) -> None:
        self._discard_remote([self.translate(p) for p in paths])

    def fetch_outputs(self, output_dir: Path) -> None:
        self.sync_out(output_dir)

    def find_packaging_tool(self, name: str, search_roots: Sequence[Path]) -> str | None:
        result = self._ssh(
            f"bash -lc {shlex.quote(probe_script(name, self.toolchain, search_roots))}"
        )
        found = result.stdout.strip().splitlines()
        return found[-1] if result.returncode == 0 and found else None

    def detect_jobs(self) -> int:
        result = self._ssh(
            "getconf _NPROCESSORS_ONLN 2>/dev/null || nproc 2>/dev/null || echo 4"
        )
        try:
            return max(1, int(result.stdout.strip().splitlines()[-1]))
        except (ValueError, IndexError):
            logger.warning("Could not detect remote CPU count; using %d", DEFAULT_JOBS)
            return DEFAULT_JOBS

    def remove_trees(self, paths: Sequence[Path]) -> None:
        remote = " ".join(shlex.quote(str(self.translate(p))) for p in paths)
        logger.info("Removing on %s: %s", self.target.host, remote)
        result = self._ssh(f"rm -rf {remote}")
        if result.returncode != 0:
            raise ConnectivityError(
                f"Failed to remove remote directories: {result.stderr.strip()}",
                code="remote_clean_failed",
            )

    def describe(self) -> str:
        return f"remote ({self.target.destination}:{self.root_dir})"


__all__ = ["RemoteBackend"]
