"""Transient records describing a single controller run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

__all__ = ["IterationOutcome", "IterationRecord", "LoopStatus", "RunReport"]


class LoopStatus(Enum):
    """States of the iteration controller."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED_COMPLETE = "stopped_complete"
    STOPPED_BUDGET_EXHAUSTED = "stopped_budget_exhausted"
    STOPPED_CANCELLED = "stopped_cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (LoopStatus.IDLE, LoopStatus.RUNNING)


class IterationOutcome(Enum):
    SUCCESS = "success"
    WORKER_ERROR = "worker_error"
    WORKER_TIMEOUT = "worker_timeout"
    CANCELLED = "cancelled"
    ALREADY_COMPLETE = "already_complete"


@dataclass
class IterationRecord:
    """What happened during one iteration; never persisted."""

    index: int
    outcome: IterationOutcome
    output: str = ""
    elapsed: float = 0.0
    exit_code: Optional[int] = None
    error: Optional[str] = None
    done_after: Optional[int] = None
    total_after: Optional[int] = None


@dataclass
class RunReport:
    """Summary produced when the controller reaches a terminal state."""

    status: LoopStatus
    max_iterations: int
    records: List[IterationRecord] = field(default_factory=list)
    completed: int = 0
    total: int = 0
    marker_seen: bool = False
    project: str = ""

    @property
    def iterations(self) -> int:
        """Iterations that consumed budget by invoking the worker."""

        return sum(
            1 for record in self.records if record.outcome is not IterationOutcome.ALREADY_COMPLETE
        )

    @property
    def all_complete(self) -> bool:
        return self.completed == self.total
