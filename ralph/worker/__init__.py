"""Spawning of the external, stateless worker process."""

from .invoker import (
    WorkerCancelled,
    WorkerExited,
    WorkerInvoker,
    WorkerOutcome,
    WorkerTimedOut,
    display_excerpt,
)
from .prompt import build_iteration_prompt, contains_completion_marker

__all__ = [
    "WorkerCancelled",
    "WorkerExited",
    "WorkerInvoker",
    "WorkerOutcome",
    "WorkerTimedOut",
    "build_iteration_prompt",
    "contains_completion_marker",
    "display_excerpt",
]
