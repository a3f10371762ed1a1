"""Deterministic choice of the next work item."""

from __future__ import annotations

from typing import List, Optional

from ralph.domain.backlog import Backlog, WorkItem

__all__ = ["completed_items", "pending_items", "select_next"]


def pending_items(backlog: Backlog) -> List[WorkItem]:
    """Return unfinished items ordered by priority, then backlog position."""

    # sorted() is stable, so equal priorities keep their file order.
    return sorted((item for item in backlog.items if not item.done), key=lambda item: item.priority)


def completed_items(backlog: Backlog) -> List[WorkItem]:
    return [item for item in backlog.items if item.done]


def select_next(backlog: Backlog) -> Optional[WorkItem]:
    """Return the most urgent pending item, or ``None`` when all are done."""

    pending = pending_items(backlog)
    return pending[0] if pending else None
