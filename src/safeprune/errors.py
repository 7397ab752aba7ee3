"""Exception hierarchy. Fatal errors abort a run; the others are reported and skipped."""
from __future__ import annotations


class SafePruneError(Exception):
    """Base class for all analyzer errors."""


class ConfigError(SafePruneError):
    """Configuration file missing, unreadable or invalid."""


class ProjectLoadError(SafePruneError):
    """The project's module set could not be loaded (fatal)."""


class FileWalkError(SafePruneError):
    """The target directory could not be enumerated (fatal)."""


class FileParseError(SafePruneError):
    """A single file could not be parsed; the file is skipped."""

    def __init__(self, path: str, message: str):
        super().__init__(f"failed to parse file {path}: {message}")
        self.path = path


class GraphBuildError(SafePruneError):
    """Building the call or import graph failed part way; analysis continues."""
