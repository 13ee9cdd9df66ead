"""Smoke tests for the CLI.

These tests verify CLI behaviour without Vivado, Docker or SSH: the build
service is patched out where a command would otherwise run a toolchain.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from bitstream_builder import __version__
from bitstream_builder.builds.service import ArtifactSummary, BuildOutcome
from bitstream_builder.cli import app
from bitstream_builder.errors import ToolchainError

runner = CliRunner()


@pytest.fixture
def quiet_env(tmp_path: Path):
    """Environment with logging silenced and logs under tmp_path."""
    env = {
        "BITBUILD_LOG_LEVEL": "CRITICAL",
        "BITBUILD_LOG_DIR": str(tmp_path / "logs"),
        "BITBUILD_WORKSPACE_ROOT": str(tmp_path / "repo"),
    }
    with patch.dict(os.environ, env, clear=True):
        yield env


def fake_outcome(action="build") -> BuildOutcome:
    return BuildOutcome(
        board="rp125_14",
        variant="laser_lock",
        action=action,
        backend="container (img)",
        jobs=4,
        artifacts=[
            ArtifactSummary(path=Path("/repo/laser_lock.bit"), format="raw-bitstream"),
            ArtifactSummary(
                path=Path("/repo/laser_lock.bit.bin"), format="packaged-binary"
            ),
        ],
    )


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "bitstream builder" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_build_help(self) -> None:
        """build --help should list the backend options."""
        result = runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        for option in ("--target", "--docker-image", "--remote-port", "--clean"):
            assert option in result.stdout


class TestConfigCommand:
    """Test the config command."""

    def test_config_json(self, quiet_env) -> None:
        """config --json should emit the effective settings."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["log_level"] == "CRITICAL"
        assert data["remote_dir"] == "~/rpll-dev"

    def test_config_human(self, quiet_env) -> None:
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Effective Configuration" in result.stdout


class TestPreflightCommand:
    """Test the preflight command."""

    def test_missing_paths(self, quiet_env, tmp_path) -> None:
        """An empty workspace should exit with the preflight status."""
        result = runner.invoke(
            app, ["preflight", "--target", "rp125_14", "--workspace", str(tmp_path)]
        )
        assert result.exit_code == 3
        assert "required path(s) missing" in result.output

    def test_complete_workspace(self, quiet_env, workspace) -> None:
        result = runner.invoke(
            app, ["preflight", "-t", "rp125_14", "--workspace", str(workspace.root)]
        )
        assert result.exit_code == 0
        assert "required paths present" in result.stdout


class TestBuildCommand:
    """Test the build command."""

    def test_invalid_board(self, quiet_env) -> None:
        result = runner.invoke(app, ["build", "--target", "rp999"])
        assert result.exit_code != 0

    def test_backend_conflict(self, quiet_env) -> None:
        """--docker with --remote should be a configuration error."""
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "rp125_14",
                "--docker",
                "--docker-image",
                "img",
                "--remote",
                "builder",
            ],
        )
        assert result.exit_code == 2
        assert "cannot be used together" in result.output

    def test_preflight_error_json(self, quiet_env, tmp_path) -> None:
        """--json should report structured errors."""
        result = runner.invoke(
            app,
            [
                "build",
                "-t",
                "rp125_14",
                "--docker-image",
                "img",
                "--workspace",
                str(tmp_path),
                "--json",
            ],
        )
        assert result.exit_code == 3
        data = json.loads(result.stdout)
        assert data["error"] == "preflight_missing_paths"
        assert len(data["missing"]) == 7

    def test_build_json(self, quiet_env) -> None:
        """A successful build should print the outcome as JSON."""
        with patch(
            "bitstream_builder.builds.service.run_request",
            return_value=fake_outcome(),
        ) as mock_run:
            result = runner.invoke(
                app,
                [
                    "build",
                    "-t",
                    "rp125_14",
                    "--docker",
                    "--docker-image",
                    "img",
                    "--variant",
                    "phasemeter",
                    "-j",
                    "4",
                    "--skip-cores",
                    "--os-generation",
                    "1.x",
                    "--json",
                ],
            )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [a["format"] for a in data["artifacts"]] == [
            "raw-bitstream",
            "packaged-binary",
        ]
        request = mock_run.call_args.args[0]
        assert request.variant.value == "phasemeter"
        assert request.jobs == 4
        assert request.make_cores is False
        assert request.os_generation.value == "1.x"
        assert request.backend.kind == "container"

    def test_clean_flag(self, quiet_env) -> None:
        """--clean should request the clean action."""
        with patch(
            "bitstream_builder.builds.service.run_request",
            return_value=fake_outcome("clean"),
        ) as mock_run:
            result = runner.invoke(
                app, ["build", "-t", "rp250_12", "--remote", "alice@builder", "--clean"]
            )
        assert result.exit_code == 0
        request = mock_run.call_args.args[0]
        assert request.action.value == "clean"
        assert request.backend.user == "alice"

    def test_toolchain_failure_exit_code(self, quiet_env) -> None:
        """A toolchain failure should exit 5 and point at the log."""
        error = ToolchainError(
            "Toolchain failed with exit code 1", exit_code=1, log_path=Path("/tmp/b.log")
        )
        with patch("bitstream_builder.builds.service.run_request", side_effect=error):
            result = runner.invoke(
                app, ["build", "-t", "rp125_14", "--docker-image", "img"]
            )
        assert result.exit_code == 5
        assert "/tmp/b.log" in result.output

    def test_interrupt_exit_code(self, quiet_env) -> None:
        """Ctrl-C should exit with status 130."""
        with patch(
            "bitstream_builder.builds.service.run_request",
            side_effect=KeyboardInterrupt,
        ):
            result = runner.invoke(
                app, ["build", "-t", "rp125_14", "--docker-image", "img"]
            )
        assert result.exit_code == 130
