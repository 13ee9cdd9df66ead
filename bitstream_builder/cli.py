"""Thin CLI wrapper for bitstream_builder.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from bitstream_builder import __version__
from bitstream_builder.config import Settings, get_settings, print_settings_json
from bitstream_builder.errors import (
    EXIT_INTERRUPTED,
    BitstreamBuildError,
    PreflightError,
    ToolchainError,
)
from bitstream_builder.types import Board, BuildAction, OsGeneration, Variant
from bitstream_builder.workspace import Workspace

app = typer.Typer(
    name="bitbuild",
    help="FPGA bitstream builder - build Red Pitaya bitstreams locally, in Docker or over SSH",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich, once per process."""
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        root.setLevel(level)
        return
    handler = RichHandler(console=err_console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"bitstream-builder version {__version__}")
        raise typer.Exit()


def _report_error(error: BitstreamBuildError, json_output: bool) -> None:
    if json_output:
        payload: dict[str, object] = {
            "error": error.code,
            "message": error.message,
            "exit_code": error.exit_code,
        }
        if isinstance(error, PreflightError):
            payload["missing"] = [str(p) for p in error.missing]
        if isinstance(error, ToolchainError) and error.log_path:
            payload["log_path"] = str(error.log_path)
        typer.echo(json.dumps(payload, indent=2))
        return
    err_console.print(f"[red]Error:[/red] {escape(error.message)}", highlight=False)
    if isinstance(error, ToolchainError) and error.log_path:
        err_console.print(f"  See log: {error.log_path}", highlight=False)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """FPGA bitstream builder for Red Pitaya boards."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    def show(value: object) -> str:
        return "(not set)" if value is None else str(value)

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Workspace:[/bold]")
    console.print(f"  Root:                {settings.workspace_root}")
    console.print(f"  FPGA subdirectory:   {settings.fpga_subdir}")
    console.print()
    console.print("[bold]Toolchain:[/bold]")
    console.print(f"  Local Vivado:        {show(settings.toolchain)}")
    console.print(f"  Docker image:        {show(settings.container_image)}")
    console.print(f"  Docker platform:     {show(settings.container_platform)}")
    console.print(f"  Remote user:         {show(settings.remote_user)}")
    console.print(f"  Remote port:         {settings.remote_port}")
    console.print(f"  Remote directory:    {settings.remote_dir}")
    console.print(f"  Remote Vivado:       {show(settings.remote_toolchain)}")
    console.print()
    console.print("[bold]Output:[/bold]")
    console.print(f"  OS generation:       {settings.os_generation.value}")
    console.print(f"  Log directory:       {settings.log_dir}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {show(settings.build_timeout)}")
    console.print(f"  Transfer timeout:    {settings.transfer_timeout}")
    console.print(f"  Connect timeout:     {settings.connect_timeout}")


def _workspace(settings: Settings, workspace_root: Path | None) -> Workspace:
    return Workspace.at(workspace_root or settings.workspace_root, settings.fpga_subdir)


@app.command()
def preflight(
    target: Annotated[
        Board,
        typer.Option("--target", "-t", help="Target board"),
    ],
    make_cores: Annotated[
        bool,
        typer.Option("--make-cores/--skip-cores", help="Check IP core sources"),
    ] = True,
    workspace_root: Annotated[
        Path | None,
        typer.Option("--workspace", help="Workspace root (default: current directory)"),
    ] = None,
) -> None:
    """Check that every input the build needs exists."""
    from bitstream_builder.builds.preflight import run_preflight

    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        checks = run_preflight(
            _workspace(settings, workspace_root), target, make_cores=make_cores
        )
    except BitstreamBuildError as e:
        _report_error(e, json_output=False)
        raise typer.Exit(code=e.exit_code) from None
    console.print(f"[green]✓ All {len(checks)} required paths present[/green]")


@app.command()
def build(
    target: Annotated[
        Board,
        typer.Option("--target", "-t", help="Target board"),
    ],
    variant: Annotated[
        Variant,
        typer.Option("--variant", help="Build variant"),
    ] = Variant.LASER_LOCK,
    vivado: Annotated[
        str | None,
        typer.Option("--vivado", help="Local Vivado command or path"),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", min=1, help="Parallel jobs (default: CPU count)"),
    ] = None,
    make_cores: Annotated[
        bool,
        typer.Option("--make-cores/--skip-cores", help="Generate custom IP cores"),
    ] = True,
    clean: Annotated[
        bool,
        typer.Option("--clean", help="Remove work directories instead of building"),
    ] = False,
    docker: Annotated[
        bool,
        typer.Option("--docker", help="Run Vivado in a Docker container"),
    ] = False,
    docker_image: Annotated[
        str | None,
        typer.Option("--docker-image", help="Docker image containing Vivado"),
    ] = None,
    docker_platform: Annotated[
        str | None,
        typer.Option("--docker-platform", help="Docker platform, e.g. linux/amd64"),
    ] = None,
    remote: Annotated[
        str | None,
        typer.Option("--remote", help="Build on a remote host (host or user@host)"),
    ] = None,
    remote_user: Annotated[
        str | None,
        typer.Option("--remote-user", help="SSH user for the remote host"),
    ] = None,
    remote_port: Annotated[
        int | None,
        typer.Option("--remote-port", min=1, max=65535, help="SSH port"),
    ] = None,
    remote_dir: Annotated[
        str | None,
        typer.Option("--remote-dir", help="Workspace mirror on the remote host"),
    ] = None,
    remote_vivado: Annotated[
        str | None,
        typer.Option("--remote-vivado", help="Vivado binary on the remote host"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing Vivado projects"),
    ] = False,
    os_generation: Annotated[
        OsGeneration | None,
        typer.Option("--os-generation", help="Target OS generation (1.x or 2.x)"),
    ] = None,
    workspace_root: Annotated[
        Path | None,
        typer.Option("--workspace", help="Workspace root (default: current directory)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Build (or clean) an FPGA bitstream for a board.

    Produces <variant>.bit and, for OS 2.x, <variant>.bit.bin in the
    implementation run directory of the board.
    """
    from bitstream_builder.builds.service import run_request
    from bitstream_builder.request import BuildRequest, select_backend

    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        backend = select_backend(
            target,
            settings,
            toolchain=vivado,
            use_container=docker,
            container_image=docker_image,
            container_platform=docker_platform,
            remote_host=remote,
            remote_user=remote_user,
            remote_port=remote_port,
            remote_dir=remote_dir,
            remote_toolchain=remote_vivado,
        )
        request = BuildRequest(
            board=target,
            variant=variant,
            jobs=jobs,
            force=force,
            make_cores=make_cores,
            action=BuildAction.CLEAN if clean else BuildAction.BUILD,
            os_generation=os_generation or settings.os_generation,
            backend=backend,
        )
        outcome = run_request(request, _workspace(settings, workspace_root), settings)
    except BitstreamBuildError as e:
        _report_error(e, json_output)
        raise typer.Exit(code=e.exit_code) from None
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED) from None

    if json_output:
        typer.echo(outcome.model_dump_json(indent=2))
        return

    if request.action == BuildAction.CLEAN:
        console.print(f"[green]✓ Cleaned work directories on {outcome.backend}[/green]")
        for path in outcome.removed:
            console.print(f"  {path}")
        return

    console.print(f"[green]✓ FPGA build completed on {outcome.backend}[/green]")
    for artifact in outcome.artifacts:
        console.print(f"  {artifact.format}: {artifact.path}")
    if outcome.manifest_path:
        console.print(f"  Manifest: {outcome.manifest_path}")
    for warning in outcome.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


if __name__ == "__main__":
    app()
