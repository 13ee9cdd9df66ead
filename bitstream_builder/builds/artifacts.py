"""Artifact resolution and manifest generation.

This module handles:
- Resolving the bitstream a build produced from an ordered candidate list
- Giving it a variant-qualified canonical name without touching the original
- Computing checksums
- Generating build manifests
- Verifying the canonical outputs after a build
"""

from __future__ import annotations

import hashlib
import json
import logging
import shutil
from collections.abc import Sequence
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bitstream_builder.errors import ArtifactError, VerificationError
from bitstream_builder.types import (
    ArtifactFormat,
    ArtifactInfo,
    Board,
    BuildArtifact,
    Variant,
)

logger = logging.getLogger(__name__)

# Names the implementation run may give the bitstream, highest priority first
BITSTREAM_CANDIDATES = ("system_wrapper.bit", "red_pitaya_top.bit", "rpll.bit")

PACKAGED_SUFFIX = ".bin"

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB


def candidates_for(variant: Variant) -> list[str]:
    """Candidate file names in priority order, ending with the canonical name."""
    return [*BITSTREAM_CANDIDATES, canonical_name(variant)]


def canonical_name(variant: Variant) -> str:
    return f"{variant.value}.bit"


def packaged_path(bitstream: Path) -> Path:
    """``<name>.bit.bin`` beside a ``<name>.bit``."""
    return bitstream.with_name(bitstream.name + PACKAGED_SUFFIX)


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def files_identical(a: Path, b: Path) -> bool:
    """Return True if both files exist with the same size and content."""
    if not (a.is_file() and b.is_file()):
        return False
    if a.stat().st_size != b.stat().st_size:
        return False
    return compute_file_hash(a) == compute_file_hash(b)


def resolve_bitstream(output_dir: Path, candidates: Sequence[str]) -> Path:
    """Return the first candidate that exists in output_dir.

    Priority is the order of candidates; modification times are ignored.

    Raises:
        ArtifactError: If no candidate exists.
    """
    for name in candidates:
        path = output_dir / name
        if path.is_file():
            logger.debug("Resolved bitstream %s", path)
            return path
    raise ArtifactError(
        f"No bitstream found in {output_dir} (looked for: {', '.join(candidates)})",
        code="artifact_not_found",
    )


def _copy_if_changed(src: Path, dst: Path) -> bool:
    if src == dst or files_identical(src, dst):
        return False
    shutil.copy2(src, dst)
    logger.info("Copied %s -> %s", src.name, dst.name)
    return True


def canonicalize(path: Path, variant: Variant) -> Path:
    """Copy a bitstream to its variant-qualified name in the same directory.

    The source is never moved, and the copy is skipped when the canonical
    file already has identical content. A packaged sibling
    (``<name>.bit.bin``) is carried along to ``<variant>.bit.bin``.

    Returns:
        Path of the canonical bitstream.
    """
    target = path.with_name(canonical_name(variant))
    _copy_if_changed(path, target)

    packaged = packaged_path(path)
    if packaged.is_file():
        _copy_if_changed(packaged, packaged_path(target))
    return target


def resolve_artifact(output_dir: Path, board: Board, variant: Variant) -> BuildArtifact:
    """Resolve the produced bitstream and canonicalize it.

    Raises:
        ArtifactError: If no candidate exists in output_dir.
    """
    source = resolve_bitstream(output_dir, candidates_for(variant))
    canonical = canonicalize(source, variant)
    return BuildArtifact(
        path=canonical,
        board=board,
        variant=variant,
        format=ArtifactFormat.RAW_BITSTREAM,
        source=source,
    )


def describe_artifact(artifact: BuildArtifact, root: Path) -> ArtifactInfo:
    """Build the manifest entry for an artifact on disk."""
    path = artifact.path
    try:
        relative_path = path.relative_to(root).as_posix()
    except ValueError:
        relative_path = path.name
    labels = [artifact.variant.value]
    if artifact.format == ArtifactFormat.PACKAGED_BINARY:
        labels.append("for_fpga_manager")
    return ArtifactInfo(
        filename=path.name,
        relative_path=relative_path,
        size_bytes=path.stat().st_size,
        sha256=compute_file_hash(path),
        kind=artifact.format.value,
        labels=labels,
    )


def generate_manifest(
    artifacts: list[ArtifactInfo],
    board: Board,
    variant: Variant,
    backend: str | None = None,
    build_inputs: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate a build manifest.

    Args:
        artifacts: Entries for the produced artifacts.
        board: Target board.
        variant: Build variant.
        backend: Description of the backend that ran the build.
        build_inputs: Optional build inputs dictionary.

    Returns:
        Manifest dictionary suitable for JSON serialization.
    """
    now = datetime.now(timezone.utc)

    manifest: dict[str, Any] = {
        "version": "1.0",
        "generated_at": now.isoformat(),
        "board": board.value,
        "variant": variant.value,
        "artifacts": [asdict(a) for a in artifacts],
    }
    if backend:
        manifest["backend"] = backend
    if build_inputs:
        manifest["build_inputs"] = build_inputs

    manifest["summary"] = {
        "total_artifacts": len(artifacts),
        "total_size_bytes": sum(a.size_bytes for a in artifacts),
        "kinds": sorted({a.kind for a in artifacts if a.kind}),
    }
    return manifest


def write_manifest(
    manifest: dict[str, Any],
    output_path: Path,
) -> Path:
    """Write manifest to a JSON file.

    Args:
        manifest: Manifest dictionary.
        output_path: Output file path.

    Returns:
        Path to written manifest file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, sort_keys=True)

    logger.info("Wrote manifest to %s", output_path)
    return output_path


def manifest_path(output_dir: Path, variant: Variant) -> Path:
    return output_dir / f"{variant.value}.manifest.json"


def verify_outputs(artifacts: Sequence[BuildArtifact]) -> None:
    """Check that every artifact exists and is non-empty.

    Raises:
        VerificationError: Naming every failing artifact.
    """
    problems = []
    for artifact in artifacts:
        if not artifact.path.is_file():
            problems.append(f"{artifact.path} is missing")
        elif artifact.path.stat().st_size == 0:
            problems.append(f"{artifact.path} is empty")
    if problems:
        raise VerificationError("; ".join(problems))


__all__ = [
    "BITSTREAM_CANDIDATES",
    "HASH_CHUNK_SIZE",
    "canonical_name",
    "canonicalize",
    "candidates_for",
    "compute_file_hash",
    "describe_artifact",
    "files_identical",
    "generate_manifest",
    "manifest_path",
    "packaged_path",
    "resolve_artifact",
    "resolve_bitstream",
    "verify_outputs",
    "write_manifest",
]
