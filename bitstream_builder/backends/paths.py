"""Workspace path translation.

Backends see the workspace under a different root: the container bind-mount
point or the remote mirror directory. Paths are carried as a validated
(root, relative suffix) pair and rebased onto the backend root, so the suffix
relative to the workspace root is always preserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath, PurePosixPath

from bitstream_builder.errors import ConfigError


@dataclass(frozen=True)
class RootedPath:
    """A path known to lie under a root directory.

    Attributes:
        root: The root the path was validated against.
        relative: Suffix of the path beyond root (POSIX form).
    """

    root: PurePath
    relative: PurePosixPath

    @classmethod
    def under(cls, root: PurePath | str, path: PurePath | str) -> RootedPath:
        """Validate that path is under root and split off its suffix.

        Raises:
            ConfigError: If path is not under root.
        """
        root_p = PurePath(root)
        path_p = PurePath(path)
        try:
            suffix = path_p.relative_to(root_p)
        except ValueError:
            raise ConfigError(
                f"Path {path_p} is not under workspace root {root_p}",
                code="path_outside_root",
            ) from None
        return cls(root=root_p, relative=PurePosixPath(*suffix.parts))

    def rebase(self, new_root: PurePath | str) -> PurePosixPath:
        """Return the same suffix joined onto another root."""
        base = PurePosixPath(str(new_root))
        if not self.relative.parts:
            return base
        return base / self.relative


def translate(
    path: PurePath | str,
    local_root: PurePath | str,
    backend_root: PurePath | str,
) -> PurePosixPath:
    """Map a path under the local workspace root onto a backend root.

    Args:
        path: Path under local_root.
        local_root: Local workspace root.
        backend_root: Equivalent root in the backend's namespace.

    Returns:
        backend_root joined with the suffix of path beyond local_root.

    Raises:
        ConfigError: If path is not under local_root.
    """
    return RootedPath.under(local_root, path).rebase(backend_root)


def escape_spaces(path: PurePath | str) -> str:
    """Backslash-escape spaces for ``host:path`` transfer arguments.

    The remote side of rsync and scp re-splits the path on whitespace, so
    spaces must survive one round of remote shell word splitting.
    """
    return str(path).replace(" ", "\\ ")


__all__ = ["RootedPath", "escape_spaces", "translate"]
