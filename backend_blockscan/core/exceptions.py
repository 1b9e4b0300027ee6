"""
Application-level exceptions.

Recoverable conditions (missing block, malformed transaction, undecodable
instruction) are reported as typed outcomes, never raised. Everything here is
fatal for a run and maps to a non-zero exit code in the CLI.
"""

from __future__ import annotations


class BlockscanError(Exception):
    """Base class for fatal run errors."""

    exit_code = 1


class ConfigError(BlockscanError):
    """Invalid configuration value (env var or CLI flag)."""


class BlockSourceError(BlockscanError):
    """The block source cannot be reached at all (e.g. getSlot fails)."""

    def __init__(self, message: str, *, method: str | None = None) -> None:
        super().__init__(message)
        self.method = method


class SinkError(BlockscanError):
    """Writing the record sequence to the output destination failed."""

    def __init__(self, message: str, *, destination: str | None = None) -> None:
        super().__init__(message)
        self.destination = destination
