"""
Custom exception types used across untangle.

Defining explicit error classes makes it easier for the CLI and higher
layers to distinguish between fatal failures of a run and per-file
problems that only degrade the result.
"""

from __future__ import annotations


class UntangleError(Exception):
    """Base class for all untangle specific errors."""


class ConfigError(UntangleError):
    """Raised when a configuration value is outside its domain."""


class GitError(UntangleError):
    """Raised when git operations fail."""


class DiffParseError(UntangleError):
    """Raised when parsing a diff fails."""


class FrontendError(UntangleError):
    """Raised when the source tree cannot be enumerated or read."""


class ParseError(UntangleError):
    """Raised when a single source file cannot be parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to parse {path}: {reason}")
        self.path = path
        self.reason = reason


class AnchorNotFound(UntangleError):
    """Raised when a covered declaration has no node in the graph."""


class GraphIntegrityError(UntangleError):
    """Raised when an insertion would break a graph invariant."""


class PartitionError(UntangleError):
    """Raised when the produced groups do not cover every hunk exactly once."""
