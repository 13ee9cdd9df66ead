"""Shared type definitions for bitstream_builder.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Board(str, Enum):
    """Supported target boards."""

    RP125_14 = "rp125_14"
    RP250_12 = "rp250_12"


class Variant(str, Enum):
    """Bitstream build variants."""

    LASER_LOCK = "laser_lock"
    PHASEMETER = "phasemeter"


class OsGeneration(str, Enum):
    """Target OS generation of the board.

    OS 2.x loads bitstreams through the FPGA Manager and needs the packaged
    ``.bit.bin`` format; 1.x loads the raw ``.bit`` directly.
    """

    LEGACY = "1.x"
    FPGA_MANAGER = "2.x"


class BuildAction(str, Enum):
    """Action requested for a board."""

    BUILD = "build"
    CLEAN = "clean"


class BackendKind(str, Enum):
    """Execution context for the toolchain."""

    LOCAL = "local"
    CONTAINER = "container"
    REMOTE = "remote"


class ArtifactFormat(str, Enum):
    """Format tag of a build artifact."""

    RAW_BITSTREAM = "raw-bitstream"
    PACKAGED_BINARY = "packaged-binary"


class ConversionPolicy(str, Enum):
    """Whether packaging into ``.bit.bin`` is mandatory."""

    REQUIRED = "required"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class BuildArtifact:
    """A bitstream produced by a build.

    Attributes:
        path: Location of the artifact on the local filesystem.
        board: Board the artifact was built for.
        variant: Build variant.
        format: Raw toolchain output or packaged binary.
        source: File the artifact was derived from (same as path if none).
    """

    path: Path
    board: Board
    variant: Variant
    format: ArtifactFormat
    source: Path | None = None


@dataclass
class ArtifactInfo:
    """Manifest entry for an artifact written to disk."""

    filename: str
    relative_path: str
    size_bytes: int
    sha256: str
    kind: str | None = None
    labels: list[str] = field(default_factory=list)


__all__ = [
    "ArtifactFormat",
    "ArtifactInfo",
    "BackendKind",
    "Board",
    "BuildAction",
    "BuildArtifact",
    "ConversionPolicy",
    "OsGeneration",
    "Variant",
]
