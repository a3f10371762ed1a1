"""Helpers for building checkpoint commit messages."""

from __future__ import annotations

import re

from ralph.domain.backlog import WorkItem

__all__ = ["format_checkpoint_message"]


_WHITESPACE_PATTERN = re.compile(r"\s+")


def _collapse(value: str) -> str:
    return _WHITESPACE_PATTERN.sub(" ", (value or "").strip())


def format_checkpoint_message(item: WorkItem, commit_type: str = "feat") -> str:
    """Return ``"<type>: <id> - <title>"`` on a single line."""

    identifier = _collapse(item.identifier)
    title = _collapse(item.title)
    if not title:
        return f"{commit_type}: {identifier}"
    return f"{commit_type}: {identifier} - {title}"
