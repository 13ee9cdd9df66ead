"""Build service module.

This module provides the high-level build API:
- run_request(): Main entry point - dispatch a BuildRequest to build or clean
- run_build_pipeline(): preflight -> invoke -> resolve -> convert -> verify
- clean_build_outputs(): remove board work directories

Stages run strictly in sequence and every stage scopes its own resources,
so an error or interrupt at any point still removes command scripts and
descriptors and closes the backend.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from bitstream_builder.backends import create_backend
from bitstream_builder.boards import conversion_policy
from bitstream_builder.builds.artifacts import (
    describe_artifact,
    generate_manifest,
    manifest_path,
    resolve_artifact,
    verify_outputs,
    write_manifest,
)
from bitstream_builder.builds.convert import convert
from bitstream_builder.builds.preflight import run_preflight
from bitstream_builder.builds.runner import (
    command_script,
    compose_build_script,
    compose_cores_script,
    run_toolchain,
)
from bitstream_builder.config import Settings, get_settings
from bitstream_builder.errors import VerificationError
from bitstream_builder.types import BuildAction, BuildArtifact
from bitstream_builder.workspace import Workspace

if TYPE_CHECKING:
    from bitstream_builder.backends.base import Backend
    from bitstream_builder.request import BackendConfig, BuildRequest

logger = logging.getLogger(__name__)

BackendFactory = Callable[["BackendConfig", Workspace, Settings], "Backend"]


class ArtifactSummary(BaseModel):
    """An artifact in a build outcome."""

    path: Path
    format: str
    source: Path | None = None


class BuildOutcome(BaseModel):
    """Result of a build or clean request, as reported by the CLI."""

    board: str
    variant: str
    action: str
    backend: str
    jobs: int | None = None
    log_path: Path | None = None
    manifest_path: Path | None = None
    artifacts: list[ArtifactSummary] = Field(default_factory=list)
    removed: list[Path] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def build_log_path(settings: Settings, request: BuildRequest) -> Path:
    """Per-build log file: ``<log_dir>/<board>-<variant>-<action>.log``."""
    name = f"{request.board.value}-{request.variant.value}-{request.action.value}.log"
    return settings.log_dir / name


def _summarize(artifacts: list[BuildArtifact]) -> list[ArtifactSummary]:
    return [
        ArtifactSummary(path=a.path, format=a.format.value, source=a.source)
        for a in artifacts
    ]


def run_build_pipeline(
    request: BuildRequest,
    workspace: Workspace,
    settings: Settings | None = None,
    backend_factory: BackendFactory = create_backend,
) -> BuildOutcome:
    """Build a bitstream for a request.

    Args:
        request: The build request.
        workspace: Workspace layout.
        settings: Application settings.
        backend_factory: Creates the backend for the request.

    Returns:
        BuildOutcome describing the produced artifacts.

    Raises:
        PreflightError: If required inputs are missing (before any backend
            resource is touched).
        ConnectivityError: If the backend context is unreachable.
        ToolchainError: If the toolchain fails.
        ArtifactError: If no bitstream is produced or packaging fails.
    """
    if settings is None:
        settings = get_settings()

    board, variant = request.board, request.variant
    run_preflight(workspace, board, make_cores=request.make_cores)

    log_path = build_log_path(settings, request)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text("")
    impl_dir = workspace.impl_dir(board)

    with backend_factory(request.backend, workspace, settings) as backend:
        jobs = request.jobs or backend.detect_jobs()
        logger.info(
            "Building %s (%s) on %s with %d jobs",
            board.value,
            variant.value,
            backend.describe(),
            jobs,
        )

        if request.make_cores:
            logger.info("Generating custom IP cores")
            with command_script(
                workspace,
                workspace.lib_dir,
                compose_cores_script(board, force=request.force),
                prefix=f".make_cores_{board.value}_",
            ) as script:
                run_toolchain(
                    backend,
                    script,
                    workspace.lib_dir,
                    log_path,
                    timeout=settings.build_timeout,
                )

        logger.info("Building FPGA bitstream")
        with command_script(
            workspace,
            workspace.fpga_dir,
            compose_build_script(board, variant, jobs, force=request.force),
            prefix=f".build_{board.value}_",
        ) as script:
            run_toolchain(
                backend,
                script,
                workspace.fpga_dir,
                log_path,
                timeout=settings.build_timeout,
            )

        backend.fetch_outputs(impl_dir)
        artifact = resolve_artifact(impl_dir, board, variant)

        policy = conversion_policy(board, request.os_generation)
        with log_path.open("a") as log_file:
            packaged = convert(
                artifact,
                backend,
                policy,
                search_roots=settings.packaging_search_roots,
                log_file=log_file,
                timeout=settings.build_timeout,
            )
        backend_description = backend.describe()

    produced = [artifact] if packaged is artifact else [artifact, packaged]

    manifest = generate_manifest(
        [describe_artifact(a, workspace.root) for a in produced],
        board=board,
        variant=variant,
        backend=backend_description,
        build_inputs={
            "jobs": jobs,
            "force": request.force,
            "make_cores": request.make_cores,
            "os_generation": request.os_generation.value,
            "source": artifact.source.name if artifact.source else None,
        },
    )
    manifest_file = write_manifest(manifest, manifest_path(impl_dir, variant))

    outcome = BuildOutcome(
        board=board.value,
        variant=variant.value,
        action=BuildAction.BUILD.value,
        backend=backend_description,
        jobs=jobs,
        log_path=log_path,
        manifest_path=manifest_file,
        artifacts=_summarize(produced),
    )

    try:
        verify_outputs(produced)
    except VerificationError as e:
        logger.warning("Post-build verification failed: %s", e)
        outcome.warnings.append(e.message)

    logger.info("FPGA build completed: %s", ", ".join(a.path.name for a in produced))
    return outcome


def clean_build_outputs(
    request: BuildRequest,
    workspace: Workspace,
    settings: Settings | None = None,
    backend_factory: BackendFactory = create_backend,
) -> BuildOutcome:
    """Remove the board work directory and the shared work directory.

    Preflight is skipped: cleaning must work on an incomplete workspace.
    Remote requests remove the directories on the remote host.
    """
    if settings is None:
        settings = get_settings()

    targets = [workspace.work_dir(request.board), workspace.shared_work_dir]
    with backend_factory(request.backend, workspace, settings) as backend:
        logger.info("Cleaning work directories on %s", backend.describe())
        backend.remove_trees(targets)
        backend_description = backend.describe()

    return BuildOutcome(
        board=request.board.value,
        variant=request.variant.value,
        action=BuildAction.CLEAN.value,
        backend=backend_description,
        removed=targets,
    )


def run_request(
    request: BuildRequest,
    workspace: Workspace,
    settings: Settings | None = None,
    backend_factory: BackendFactory = create_backend,
) -> BuildOutcome:
    """Dispatch a request to the build or clean pipeline."""
    if request.action == BuildAction.CLEAN:
        return clean_build_outputs(request, workspace, settings, backend_factory)
    return run_build_pipeline(request, workspace, settings, backend_factory)


__all__ = [
    "ArtifactSummary",
    "BuildOutcome",
    "build_log_path",
    "clean_build_outputs",
    "run_build_pipeline",
    "run_request",
]
