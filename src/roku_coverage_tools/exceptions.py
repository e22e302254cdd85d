"""Custom exceptions for coverage collection."""

from __future__ import annotations


class RokuCoverageToolsError(Exception):
    """Common base exception for all roku_coverage_tools errors."""
    pass


class ConfigurationError(RokuCoverageToolsError):
    """Exception for missing credentials or project files.

    Raised before any file is mutated or any connection is opened.
    """
    pass


class ManifestError(RokuCoverageToolsError):
    """Exception for failures reading or writing the manifest."""
    pass


class DeployError(RokuCoverageToolsError):
    """Exception for a build/deploy subprocess that could not be started.

    Attributes:
        command: The command that was attempted (password redacted).
        return_code: Exit code the run should finish with.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str,
        return_code: int = 1,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.return_code = return_code


class ConsoleStreamError(RokuCoverageToolsError):
    """Exception for debug console connection or read errors."""
    pass


class CoverageReportError(RokuCoverageToolsError):
    """Exception for failures reading or writing the coverage report."""
    pass
