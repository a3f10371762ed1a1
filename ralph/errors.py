"""Exception hierarchy shared by the Ralph components."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

__all__ = [
    "BacklogNotFoundError",
    "CheckpointError",
    "ConfigError",
    "ItemNotFoundError",
    "PersistenceError",
    "ProgressNotFoundError",
    "RalphError",
    "VcsError",
    "WorkerLaunchError",
]


class RalphError(Exception):
    """Base class for every error raised by Ralph."""


class BacklogNotFoundError(RalphError):
    """Raised when no usable backlog exists at the requested location.

    Missing, unreadable and malformed files all surface as this error so
    callers can treat "no usable backlog" uniformly.
    """

    def __init__(self, path: Union[str, Path], reason: Optional[str] = None) -> None:
        self.path = Path(path)
        self.reason = reason
        message = f"No usable backlog at {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ProgressNotFoundError(RalphError):
    """Raised when the progress log has not been created yet."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        super().__init__(f"No progress log found at {self.path}")


class ItemNotFoundError(RalphError, LookupError):
    """Raised when the completion protocol references an unknown item."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Story {item_id} not found")


class PersistenceError(RalphError, OSError):
    """Raised when the backlog or progress log cannot be written."""


class CheckpointError(RalphError):
    """Raised when a git checkpoint could not be recorded."""


class VcsError(RalphError):
    """Raised when git is unavailable or refuses a required operation."""


class WorkerLaunchError(RalphError):
    """Raised when the worker command cannot be started at all."""

    def __init__(self, command: list[str], cause: BaseException) -> None:
        self.command = list(command)
        self.cause = cause
        program = command[0] if command else "<empty>"
        super().__init__(f"Unable to launch worker '{program}': {cause}")


class ConfigError(RalphError):
    """Raised when the configuration file cannot be parsed."""
