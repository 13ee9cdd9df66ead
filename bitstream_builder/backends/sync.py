"""Remote workspace synchronization.

This module handles:
- Mirroring the workspace to the remote root before a remote build
  (rsync delta transfer, recursive scp fallback)
- Excluding generated and cache subtrees from the transfer
- Pulling bitstream artifacts back after the build

All transfers are synchronous. Any transfer failure raises ConnectivityError.
"""

from __future__ import annotations

import fnmatch
import logging
import shlex
import shutil
import subprocess
from collections import defaultdict
from collections.abc import Iterable, Sequence
from pathlib import Path, PurePosixPath

from bitstream_builder.backends.ssh import SshTarget
from bitstream_builder.boards import BOARDS
from bitstream_builder.errors import ConnectivityError

logger = logging.getLogger(__name__)

# Directories below the Vivado project that are never transferred
FPGA_EXCLUDES: tuple[str, ...] = (
    "work",
    *(info.work_dir_name for info in BOARDS.values()),
    ".Xil",
    "library/lib_src/.Xil",
    "library/lib_src/ip_user_files",
    "library/lib_src/.cache",
    "ip_user_files",
)

# Files pulled back from the remote implementation directory
ARTIFACT_PATTERNS: tuple[str, ...] = ("*.bit", "*.bit.bin")


def sync_excludes(fpga_subdir: str = "fpga") -> tuple[str, ...]:
    """Build the exclusion entries for a project directory.

    Entries with a leading ``/`` are anchored at the workspace root, as in
    rsync filter rules; bare names match at any depth.

    Args:
        fpga_subdir: Vivado project directory relative to the workspace root.

    Returns:
        Exclusion entries for is_excluded(), plan_copy() and rsync.
    """
    base = PurePosixPath("/") / fpga_subdir
    return (".DS_Store", *(str(base / entry) for entry in FPGA_EXCLUDES))


SYNC_EXCLUDES: tuple[str, ...] = sync_excludes()


def _entry_parts(entry: str) -> tuple[tuple[str, ...], bool]:
    """Split an exclusion entry into path components and an anchored flag."""
    anchored = entry.startswith("/")
    return PurePosixPath(entry.lstrip("/")).parts, anchored


def is_excluded(relative: PurePosixPath, excludes: Sequence[str] = SYNC_EXCLUDES) -> bool:
    """Check whether a workspace-relative path lies in an excluded subtree.

    Args:
        relative: Path relative to the workspace root.
        excludes: Exclusion entries.

    Returns:
        True if the path or any of its ancestors is excluded.
    """
    parts = relative.parts
    for entry in excludes:
        entry_parts, anchored = _entry_parts(entry)
        if not anchored:
            if entry_parts[0] in parts:
                return True
        elif parts[: len(entry_parts)] == entry_parts:
            return True
    return False


def rsync_exclude_args(excludes: Sequence[str] = SYNC_EXCLUDES) -> list[str]:
    """Render exclusion entries as rsync filter arguments."""
    return [f"--exclude={entry}" for entry in excludes]


def _contains_excluded(
    local_dir: Path,
    relative: PurePosixPath,
    excludes: Sequence[str],
) -> bool:
    """Return True if an excluded path exists somewhere below a directory."""
    depth = len(relative.parts)
    for entry in excludes:
        entry_parts, anchored = _entry_parts(entry)
        if not anchored:
            if next(local_dir.rglob(entry_parts[0]), None) is not None:
                return True
        elif (
            len(entry_parts) > depth
            and entry_parts[:depth] == relative.parts
        ):
            return True
    return False


def plan_copy(root: Path, excludes: Sequence[str] = SYNC_EXCLUDES) -> list[PurePosixPath]:
    """Compute the minimal set of paths whose recursive copy skips exclusions.

    Directories free of excluded descendants are returned whole; directories
    containing one are expanded into their children.

    Args:
        root: Local workspace root.
        excludes: Exclusion entries.

    Returns:
        Sorted workspace-relative paths to copy recursively.
    """
    plan: list[PurePosixPath] = []

    def visit(relative: PurePosixPath) -> None:
        directory = root.joinpath(*relative.parts)
        for entry in sorted(directory.iterdir()):
            child = relative / entry.name
            if is_excluded(child, excludes):
                continue
            if (
                entry.is_dir()
                and not entry.is_symlink()
                and _contains_excluded(entry, child, excludes)
            ):
                visit(child)
            else:
                plan.append(child)

    visit(PurePosixPath())
    return plan


class RemoteSync:
    """Transfers between the local workspace and a remote root.

    Args:
        target: SSH connection parameters (shares its control channel).
        timeout: Timeout in seconds for each transfer command.
        excludes: Exclusion entries for sync_in.
    """

    def __init__(
        self,
        target: SshTarget,
        timeout: int | None = None,
        excludes: Sequence[str] = SYNC_EXCLUDES,
    ) -> None:
        self.target = target
        self.timeout = timeout
        self.excludes = tuple(excludes)

    def _run(self, argv: list[str], capture: bool = False) -> subprocess.CompletedProcess:
        logger.debug("Running: %s", shlex.join(argv))
        try:
            result = subprocess.run(
                argv,
                capture_output=capture,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ConnectivityError(
                f"Transfer to {self.target.host} timed out after {self.timeout}s",
                code="sync_timeout",
            ) from e
        except OSError as e:
            raise ConnectivityError(
                f"Failed to run {argv[0]}: {e}", code="sync_failed"
            ) from e
        if result.returncode != 0:
            detail = (result.stderr or "").strip() if capture else ""
            raise ConnectivityError(
                f"{argv[0]} to {self.target.host} failed with exit code "
                f"{result.returncode}" + (f": {detail}" if detail else ""),
                code="sync_failed",
            )
        return result

    def _transfer_tool(self) -> str:
        if shutil.which("rsync"):
            return "rsync"
        if shutil.which("scp"):
            return "scp"
        raise ConnectivityError(
            "Neither rsync nor scp found in PATH; cannot synchronize workspace",
            code="transfer_tool_missing",
        )

    def _mkdirs(self, remote_dirs: Iterable[PurePosixPath]) -> None:
        quoted = " ".join(shlex.quote(str(d)) for d in sorted(set(remote_dirs)))
        if quoted:
            self._run(self.target.ssh_argv(f"mkdir -p {quoted}"))

    def sync_in(self, local_root: Path, remote_root: PurePosixPath) -> None:
        """Mirror the workspace to the remote root (one-way, incremental)."""
        tool = self._transfer_tool()
        logger.info("Syncing workspace to %s:%s", self.target.host, remote_root)
        self._mkdirs([remote_root])

        if tool == "rsync":
            self._run(
                [
                    "rsync",
                    "-az",
                    *rsync_exclude_args(self.excludes),
                    "-e",
                    self.target.rsync_shell(),
                    f"{local_root}/",
                    self.target.remote_spec(f"{remote_root}/"),
                ]
            )
            return

        logger.warning("rsync not found; using scp (slower, not incremental)")
        plan = plan_copy(local_root, self.excludes)
        by_parent: dict[PurePosixPath, list[PurePosixPath]] = defaultdict(list)
        for relative in plan:
            by_parent[relative.parent].append(relative)

        self._mkdirs(
            remote_root / parent for parent in by_parent if parent.parts
        )
        for parent, entries in sorted(by_parent.items()):
            sources = [str(local_root.joinpath(*e.parts)) for e in entries]
            destination = remote_root / parent if parent.parts else remote_root
            self._run(
                self.target.scp_argv(
                    *sources,
                    self.target.remote_spec(f"{destination}/"),
                    recursive=True,
                )
            )

    def sync_out(
        self,
        remote_dir: PurePosixPath,
        local_dir: Path,
        patterns: Sequence[str] = ARTIFACT_PATTERNS,
    ) -> None:
        """Pull files matching artifact patterns from a remote directory."""
        tool = self._transfer_tool()
        local_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Fetching artifacts from %s:%s", self.target.host, remote_dir)

        if tool == "rsync":
            includes = [f"--include={p}" for p in patterns]
            self._run(
                [
                    "rsync",
                    "-az",
                    "-e",
                    self.target.rsync_shell(),
                    *includes,
                    "--exclude=*",
                    self.target.remote_spec(f"{remote_dir}/"),
                    f"{local_dir}/",
                ]
            )
            return

        listing = self._run(
            self.target.ssh_argv(f"ls -1 {shlex.quote(str(remote_dir))}"),
            capture=True,
        )
        names = [
            name
            for name in listing.stdout.splitlines()
            if any(fnmatch.fnmatch(name, p) for p in patterns)
        ]
        for name in names:
            self.pull_file(remote_dir / name, local_dir / name)

    def push_file(self, local: Path, remote: PurePosixPath) -> None:
        """Copy a single file to the remote host."""
        self._run(self.target.scp_argv(str(local), self.target.remote_spec(remote)))

    def pull_file(self, remote: PurePosixPath, local: Path) -> None:
        """Copy a single file from the remote host."""
        local.parent.mkdir(parents=True, exist_ok=True)
        self._run(self.target.scp_argv(self.target.remote_spec(remote), str(local)))


__all__ = [
    "ARTIFACT_PATTERNS",
    "FPGA_EXCLUDES",
    "SYNC_EXCLUDES",
    "RemoteSync",
    "is_excluded",
    "plan_copy",
    "rsync_exclude_args",
    "sync_excludes",
]
