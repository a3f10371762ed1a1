"""Durable file stores shared between the controller and worker processes."""

from .backlog import load_backlog, save_backlog
from .progress import ProgressEntry, append_progress, read_progress

__all__ = [
    "ProgressEntry",
    "append_progress",
    "load_backlog",
    "read_progress",
    "save_backlog",
]
