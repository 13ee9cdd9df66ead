"""Packaging of raw bitstreams into the FPGA Manager ``.bit.bin`` format.

Red Pitaya OS 2.x loads bitstreams through the Linux FPGA Manager, which only
accepts the byte-swapped binary ``bootgen`` produces. On OS 1.x the raw
``.bit`` is loaded directly and packaging is a convenience.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from bitstream_builder.backends.discovery import PACKAGING_TOOL
from bitstream_builder.boards import get_board_info
from bitstream_builder.builds.artifacts import packaged_path
from bitstream_builder.errors import ArtifactError
from bitstream_builder.types import ArtifactFormat, BuildArtifact, ConversionPolicy

if TYPE_CHECKING:
    from bitstream_builder.backends.base import Backend

logger = logging.getLogger(__name__)

DESCRIPTOR_NAME = "design.bif"


def descriptor_text(bitstream_name: str) -> str:
    """Boot image descriptor listing a single bitstream."""
    return f"all:\n{{\n  {bitstream_name}\n}}\n"


@contextmanager
def transient_descriptor(directory: Path, bitstream_name: str) -> Iterator[Path]:
    """Write ``design.bif`` into directory and remove it on exit."""
    path = directory / DESCRIPTOR_NAME
    path.write_text(descriptor_text(bitstream_name), encoding="utf-8")
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


def bootgen_command(
    tool: str,
    descriptor: str,
    output_name: str,
    arch: str = "zynq",
) -> list[str]:
    return [
        tool,
        "-image",
        descriptor,
        "-arch",
        arch,
        "-process_bitstream",
        "bin",
        "-o",
        output_name,
        "-w",
    ]


def convert(
    artifact: BuildArtifact,
    backend: Backend,
    policy: ConversionPolicy,
    search_roots: Sequence[Path] = (),
    log_file: TextIO | None = None,
    timeout: int | None = None,
) -> BuildArtifact:
    """Package a raw bitstream as ``<name>.bit.bin`` beside it.

    Args:
        artifact: Raw bitstream artifact on the local filesystem.
        backend: Open backend to run the packaging tool through.
        policy: Whether packaging is mandatory.
        search_roots: Install roots searched for the packaging tool.
        log_file: Open log file receiving tool output.
        timeout: Timeout in seconds.

    Returns:
        A new packaged artifact, or the original one when packaging is
        optional and the tool is unavailable.

    Raises:
        ArtifactError: If the tool is missing under a required policy, exits
            nonzero, or produces no output.
    """
    tool = backend.find_packaging_tool(PACKAGING_TOOL, search_roots)
    if tool is None:
        if policy == ConversionPolicy.REQUIRED:
            raise ArtifactError(
                f"{PACKAGING_TOOL} not found on {backend.describe()}; it is required "
                "for OS 2.x .bit.bin output and normally ships beside vivado",
                code="packaging_tool_missing",
            )
        logger.warning(
            "%s not found; skipping .bit.bin packaging of %s",
            PACKAGING_TOOL,
            artifact.path.name,
        )
        return artifact

    work_dir = artifact.path.parent
    output = packaged_path(artifact.path)
    arch = get_board_info(artifact.board).bootgen_arch
    logger.info("Packaging %s with %s", artifact.path.name, tool)

    with transient_descriptor(work_dir, artifact.path.name) as descriptor:
        backend.push_files([descriptor, artifact.path])
        try:
            returncode = backend.execute(
                bootgen_command(tool, descriptor.name, output.name, arch=arch),
                work_dir,
                log_file=log_file,
                timeout=timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ArtifactError(
                f"Failed to run {PACKAGING_TOOL}: {e}", code="packaging_failed"
            ) from e
        finally:
            backend.discard_files([descriptor])

    if returncode != 0:
        raise ArtifactError(
            f"{PACKAGING_TOOL} failed with exit code {returncode}",
            code="packaging_failed",
        )
    backend.pull_files([output])
    if not output.is_file():
        raise ArtifactError(
            f"{PACKAGING_TOOL} did not produce {output}",
            code="packaging_output_missing",
        )

    logger.info("Generated %s", output.name)
    return BuildArtifact(
        path=output,
        board=artifact.board,
        variant=artifact.variant,
        format=ArtifactFormat.PACKAGED_BINARY,
        source=artifact.path,
    )


__all__ = [
    "DESCRIPTOR_NAME",
    "bootgen_command",
    "convert",
    "descriptor_text",
    "transient_descriptor",
]
