"""SSH connection parameters and the multiplexed control channel.

All ssh, scp and rsync invocations for one build share a single OpenSSH
ControlMaster connection so that authentication happens once. The control
socket lives in a private temporary directory that is torn down when the
channel is closed.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePath

from bitstream_builder.backends.paths import escape_spaces
from bitstream_builder.errors import ConnectivityError

logger = logging.getLogger(__name__)

# ssh reserves exit status 255 for its own (connection) errors
SSH_CONNECTION_FAILURE = 255


@dataclass
class SshTarget:
    """Connection parameters for a remote host.

    Attributes:
        host: Hostname or address.
        user: Login user (ssh default if None).
        port: SSH port.
        connect_timeout: Seconds before a connection attempt is abandoned.
        control_path: ControlMaster socket path, set while a channel is open.
    """

    host: str
    user: str | None = None
    port: int = 22
    connect_timeout: int = 10
    control_path: Path | None = field(default=None, repr=False)

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}" if self.user else self.host

    def ssh_options(self) -> list[str]:
        """Options shared by ssh and scp (port excluded)."""
        opts = ["-o", f"ConnectTimeout={self.connect_timeout}"]
        if self.control_path is not None:
            opts += ["-o", f"ControlPath={self.control_path}"]
        return opts

    def ssh_argv(self, command: str | None = None, batch: bool = False) -> list[str]:
        """Compose an ssh invocation, optionally running a remote command."""
        argv = ["ssh", "-p", str(self.port), *self.ssh_options()]
        if batch:
            argv += ["-o", "BatchMode=yes"]
        argv.append(self.destination)
        if command is not None:
            argv.append(command)
        return argv

    def login_shell_argv(self, script: str) -> list[str]:
        """Run a command in a remote login shell.

        ``bash -lc`` sources the remote profile, which is where Xilinx
        environment setup usually lives.
        """
        return self.ssh_argv(f"bash -lc {shlex.quote(script)}")

    def scp_argv(self, *paths: str, recursive: bool = False) -> list[str]:
        argv = ["scp", "-P", str(self.port), *self.ssh_options()]
        if recursive:
            argv.append("-r")
        return [*argv, *paths]

    def rsync_shell(self) -> str:
        """Value for ``rsync -e``."""
        return shlex.join(["ssh", "-p", str(self.port), *self.ssh_options()])

    def remote_spec(self, path: PurePath | str) -> str:
        """``destination:path`` argument for scp/rsync."""
        return f"{self.destination}:{escape_spaces(path)}"


class ControlChannel:
    """Context manager owning the ControlMaster connection of an SshTarget.

    Opening the channel authenticates once in the background (``ssh -fN``)
    and doubles as the connectivity probe: nothing else has touched the
    remote host when it fails.
    """

    def __init__(self, target: SshTarget) -> None:
        self.target = target
        self._socket_dir: Path | None = None

    def __enter__(self) -> SshTarget:
        self.open()
        return self.target

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open(self) -> None:
        """Start the master connection.

        Raises:
            ConnectivityError: If the host is unreachable or refuses
                non-interactive authentication.
        """
        self._socket_dir = Path(tempfile.mkdtemp(prefix="bitbuild-ssh-"))
        control_path = self._socket_dir / "cm"
        stderr_path = self._socket_dir / "master.err"
        argv = [
            "ssh",
            "-p",
            str(self.target.port),
            "-o",
            f"ConnectTimeout={self.target.connect_timeout}",
            "-o",
            "BatchMode=yes",
            "-o",
            "ControlMaster=yes",
            "-o",
            f"ControlPath={control_path}",
            "-o",
            "ControlPersist=yes",
            "-f",
            "-N",
            self.target.destination,
        ]
        logger.debug("Opening SSH control channel: %s", shlex.join(argv))
        try:
            # The backgrounded master keeps its stderr open; use a file, not a pipe.
            with stderr_path.open("w") as stderr_file:
                result = subprocess.run(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=stderr_file,
                    timeout=self.target.connect_timeout + 30,
                    check=False,
                )
            returncode = result.returncode
            detail = stderr_path.read_text(errors="replace").strip()
        except subprocess.TimeoutExpired:
            returncode, detail = None, "connection attempt timed out"
        except OSError as e:
            returncode, detail = None, str(e)

        if returncode != 0:
            self.close()
            raise ConnectivityError(
                f"Cannot reach {self.target.destination} on port {self.target.port}"
                + (f": {detail}" if detail else ""),
                code="host_unreachable",
            )
        self.target.control_path = control_path
        logger.debug("SSH control channel to %s open", self.target.destination)

    def close(self) -> None:
        """Stop the master connection (if any) and remove the socket dir."""
        if self._socket_dir is None:
            return
        control_path = self.target.control_path
        try:
            if control_path is not None:
                subprocess.run(
                    [
                        "ssh",
                        "-o",
                        f"ControlPath={control_path}",
                        "-O",
                        "exit",
                        self.target.destination,
                    ],
                    capture_output=True,
                    timeout=10,
                    check=False,
                )
                logger.debug("Closed SSH control channel to %s", self.target.host)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("Failed to close SSH control channel: %s", e)
        finally:
            shutil.rmtree(self._socket_dir, ignore_errors=True)
            self.target.control_path = None
            self._socket_dir = None



__all__ = [
    "SSH_CONNECTION_FAILURE",
    "ControlChannel",
    "SshTarget",
]
