"""Error taxonomy for bitstream builds.

Every error carries a stable ``code`` for programmatic handling and maps to a
distinct process exit status in the CLI:

- ConfigError: conflicting or missing options, unresolved toolchain
- PreflightError: required workspace paths missing (reported as a batch)
- ConnectivityError: remote host unreachable, transfer tool or Docker missing
- ToolchainError: nonzero exit (or timeout) from the build tool
- ArtifactError: expected output missing, packaging tool missing when required
- VerificationError: post-build state check failed (reported as a warning)
"""

from __future__ import annotations

from pathlib import Path

# Exit statuses used by the CLI for each failure category
EXIT_CONFIG = 2
EXIT_PREFLIGHT = 3
EXIT_CONNECTIVITY = 4
EXIT_TOOLCHAIN = 5
EXIT_ARTIFACT = 6
EXIT_INTERRUPTED = 130


class BitstreamBuildError(Exception):
    """Base error for all build pipeline failures."""

    exit_code = 1

    def __init__(self, message: str, code: str = "build_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigError(BitstreamBuildError):
    """Conflicting or missing configuration."""

    exit_code = EXIT_CONFIG

    def __init__(self, message: str, code: str = "config_error") -> None:
        super().__init__(message, code=code)


class PreflightError(BitstreamBuildError):
    """One or more required paths are missing from the workspace."""

    exit_code = EXIT_PREFLIGHT

    def __init__(self, missing: list[Path]) -> None:
        listing = "\n".join(f"  {p}" for p in missing)
        super().__init__(
            f"required path(s) missing:\n{listing}",
            code="preflight_missing_paths",
        )
        self.missing = list(missing)


class ConnectivityError(BitstreamBuildError):
    """Remote host or container runtime is unavailable."""

    exit_code = EXIT_CONNECTIVITY

    def __init__(self, message: str, code: str = "connectivity_error") -> None:
        super().__init__(message, code=code)


class ToolchainError(BitstreamBuildError):
    """The toolchain exited with a nonzero status."""

    exit_code = EXIT_TOOLCHAIN

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        log_path: Path | None = None,
        code: str = "toolchain_failed",
    ) -> None:
        super().__init__(message, code=code)
        self.returncode = exit_code
        self.log_path = log_path


class ArtifactError(BitstreamBuildError):
    """Expected build output is missing or could not be packaged."""

    exit_code = EXIT_ARTIFACT

    def __init__(self, message: str, code: str = "artifact_error") -> None:
        super().__init__(message, code=code)


class VerificationError(BitstreamBuildError):
    """A post-operation state check failed.

    Verification is best-effort, so callers log this as a warning instead of
    aborting the pipeline.
    """

    def __init__(self, message: str, code: str = "verification_failed") -> None:
        super().__init__(message, code=code)


__all__ = [
    "EXIT_ARTIFACT",
    "EXIT_CONFIG",
    "EXIT_CONNECTIVITY",
    "EXIT_INTERRUPTED",
    "EXIT_PREFLIGHT",
    "EXIT_TOOLCHAIN",
    "ArtifactError",
    "BitstreamBuildError",
    "ConfigError",
    "ConnectivityError",
    "PreflightError",
    "ToolchainError",
    "VerificationError",
]
