"""Best-effort discovery of auxiliary Xilinx programs.

``bootgen`` ships with Vivado but is not always on PATH. The lookup order is:
PATH, then the directory of the Vivado binary, then a search below the
configured install roots. This is a heuristic and may miss unusual installs.

The same strategy exists twice: as Python for the local filesystem and as a
shell snippet for container and remote contexts, where it has to run inside
the backend's own namespace.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
from collections.abc import Sequence
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)

PACKAGING_TOOL = "bootgen"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def discover_program(
    name: str,
    toolchain: str | Path | None = None,
    search_roots: Sequence[Path] = (),
) -> Path | None:
    """Locate a program on the local filesystem.

    Args:
        name: Program name, e.g. ``bootgen``.
        toolchain: Vivado binary; its directory is tried after PATH.
        search_roots: Directories searched recursively as a last resort.

    Returns:
        Path to the program, or None if not found.
    """
    on_path = shutil.which(name)
    if on_path:
        return Path(on_path)

    if toolchain:
        toolchain_path = Path(shutil.which(str(toolchain)) or toolchain)
        sibling = toolchain_path.parent / name
        if _is_executable(sibling):
            return sibling

    for root in search_roots:
        if not Path(root).is_dir():
            continue
        try:
            for candidate in sorted(Path(root).rglob(name)):
                if _is_executable(candidate):
                    logger.debug("Found %s by search under %s", name, root)
                    return candidate
        except OSError as e:
            logger.debug("Search under %s failed: %s", root, e)

    return None


def probe_script(
    name: str,
    toolchain: str | None = None,
    search_roots: Sequence[PurePath | str] = (),
) -> str:
    """Return a shell snippet printing the program's path, or nothing.

    The snippet always exits 0; an empty stdout means not found.
    """
    lines = [
        f"p=$(command -v {shlex.quote(name)} 2>/dev/null || true)",
    ]
    if toolchain:
        lines += [
            'if [ -z "$p" ]; then',
            f"  t=$(command -v {shlex.quote(toolchain)} 2>/dev/null || true)",
            f'  if [ -n "$t" ] && [ -x "$(dirname "$t")/{name}" ]; then'
            f' p="$(dirname "$t")/{name}"; fi',
            "fi",
        ]
    for root in search_roots:
        lines.append(
            f'[ -n "$p" ] || p=$(find {shlex.quote(str(root))} -name '
            f"{shlex.quote(name)} -type f 2>/dev/null | head -1)"
        )
    lines.append('printf "%s" "$p"')
    return "\n".join(lines)


__all__ = ["PACKAGING_TOOL", "discover_program", "probe_script"]
