"""Error types for checkview.

Every failure a collaborator can raise derives from CheckviewError so the
CLI can report it in one place. Missing optional metadata is never an
error; only unreadable or corrupt inputs are.
"""

from __future__ import annotations

from pathlib import Path


class CheckviewError(Exception):
    """Base class for all checkview failures."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None


class ConfigError(CheckviewError):
    """The checkview configuration file is unreadable or has invalid values."""


class MetadataError(CheckviewError):
    """config.dump, spec.dump or another metadata file is missing or corrupt."""


class ArchiveError(CheckviewError):
    """The checkpoint archive cannot be read or extracted."""


class CritError(CheckviewError):
    """The crit tool failed to decode a CRIU image."""


class DumpStatsError(CritError):
    """Dump statistics are absent or unparsable."""


class ProcessTreeError(CritError):
    """The process snapshot cannot be explored."""


class ProcessTreeDepthError(ProcessTreeError):
    """The process hierarchy is deeper than the configured ceiling."""

    def __init__(self, max_depth: int) -> None:
        super().__init__(f"process tree exceeds maximum depth of {max_depth}")
        self.max_depth = max_depth


def format_error(error: BaseException) -> str:
    """Format an error as a single line for terminal output."""
    if isinstance(error, CheckviewError):
        message = error.message
        cause = error.__cause__
        if cause is not None and str(cause) and str(cause) not in message:
            message = f"{message}: {cause}"
        return f"Error: {message}"
    return f"Error: {error}"
