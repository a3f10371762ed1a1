"""Worker-facing operations: fetch the next story and mark one complete.

The worker calls these through ``ralph next`` and ``ralph complete``. They
are the only code paths that mutate the backlog, and each completion runs
the same fixed sequence: reload, update, save the backlog, append the
progress entry, then attempt a git checkpoint. A failed checkpoint is logged
and reported, never raised, because the saved backlog is already the durable
record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from ralph.domain.backlog import Backlog, WorkItem
from ralph.errors import CheckpointError, ItemNotFoundError, VcsError
from ralph.logging import get_logger
from ralph.selector import select_next
from ralph.store.backlog import load_backlog, save_backlog
from ralph.store.progress import ProgressEntry, append_progress
from ralph.vcs.commits import format_checkpoint_message
from ralph.vcs.git import Git

__all__ = ["CompletionProtocol", "CompletionResult"]


logger = get_logger(__name__)


@dataclass
class CompletionResult:
    item: WorkItem
    entry: ProgressEntry
    commit_message: str
    checkpointed: bool
    all_complete: bool
    done_count: int
    total_count: int
    commit: Optional[str] = None
    checkpoint_error: Optional[str] = None


class CompletionProtocol:
    def __init__(
        self,
        backlog_path: Union[str, Path],
        progress_path: Union[str, Path],
        git: Optional[Git] = None,
    ) -> None:
        self.backlog_path = Path(backlog_path)
        self.progress_path = Path(progress_path)
        self.git = git

    def load(self) -> Backlog:
        return load_backlog(self.backlog_path)

    def next_item(self) -> Optional[WorkItem]:
        """Return the next story to work on, or ``None`` when all are done."""

        return select_next(self.load())

    def complete_item(
        self,
        item_id: str,
        learnings: str,
        *,
        timestamp: Optional[datetime] = None,
    ) -> CompletionResult:
        backlog = self.load()
        item = backlog.find(item_id)
        if item is None:
            raise ItemNotFoundError(item_id)

        item.mark_done(learnings)
        # Persist before logging progress: if this raises, the story is
        # still pending on disk and the next iteration retries it.
        save_backlog(self.backlog_path, backlog)
        entry = append_progress(self.progress_path, item.identifier, learnings, timestamp=timestamp)

        message = format_checkpoint_message(item)
        result = CompletionResult(
            item=item,
            entry=entry,
            commit_message=message,
            checkpointed=False,
            all_complete=backlog.is_complete,
            done_count=backlog.done_count,
            total_count=backlog.total_count,
        )

        if self.git is None:
            result.checkpoint_error = "git checkpointing disabled"
            return result

        try:
            result.commit = self.git.checkpoint([self.backlog_path, self.progress_path], message)
        except (CheckpointError, VcsError) as exc:
            # The worker may already have committed these files.
            logger.warning("Checkpoint for %s skipped: %s", item.identifier, exc)
            result.checkpoint_error = str(exc)
        else:
            result.checkpointed = True
            logger.info("Checkpoint committed: %s", message)
        return result
