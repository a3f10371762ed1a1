"""Domain models for Ralph."""

from .backlog import Backlog, BacklogFormatError, WorkItem
from .iteration import IterationOutcome, IterationRecord, LoopStatus, RunReport

__all__ = [
    "Backlog",
    "BacklogFormatError",
    "IterationOutcome",
    "IterationRecord",
    "LoopStatus",
    "RunReport",
    "WorkItem",
]
