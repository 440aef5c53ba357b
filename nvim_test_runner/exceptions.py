"""Custom exceptions for nvim-test-runner."""

from __future__ import annotations


class RunnerError(Exception):
    """Base exception for all harness errors (never raised for a failing test)."""


class ConfigError(RunnerError):
    """Raised when the config file is unreadable or a dependency is malformed."""


class ResolutionError(RunnerError):
    """Raised when a test dependency cannot be materialized."""


class GitError(ResolutionError):
    """Raised when a git subprocess exits non-zero or cannot be started."""

    def __init__(self, cmd: list[str], returncode: int | None, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        status = "not started" if returncode is None else f"exit {returncode}"
        super().__init__(f"git command failed ({status}): {' '.join(cmd)}\n{stderr}".rstrip())


class StatePersistenceError(RunnerError):
    """Raised when the state file cannot be written."""


class EditorNotFoundError(RunnerError):
    """Raised when the host editor executable cannot be located."""
