"""Append-only progress log read by every worker iteration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ralph.errors import PersistenceError, ProgressNotFoundError

__all__ = [
    "ENTRY_DELIMITER",
    "LOG_TITLE",
    "ProgressEntry",
    "append_progress",
    "read_progress",
]

LOG_TITLE = "# Ralph Progress Log"
ENTRY_DELIMITER = "---"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProgressEntry:
    timestamp: datetime
    item_id: str
    body: str

    def render(self) -> str:
        # Workers skim this text; keep the layout stable.
        return f"\n## {self.timestamp.isoformat()} - {self.item_id}\n{self.body}\n{ENTRY_DELIMITER}\n"


def _header(started: datetime) -> str:
    return f"{LOG_TITLE}\nStarted: {started.isoformat()}\n{ENTRY_DELIMITER}\n"


def append_progress(
    path: Union[str, Path],
    item_id: str,
    learnings: str,
    *,
    timestamp: Optional[datetime] = None,
) -> ProgressEntry:
    """Append one entry, creating the log with its header on first use."""

    progress_path = Path(path)
    entry = ProgressEntry(timestamp=timestamp or _now(), item_id=item_id, body=learnings)
    try:
        progress_path.parent.mkdir(parents=True, exist_ok=True)
        with progress_path.open("a", encoding="utf-8") as handle:
            if handle.tell() == 0:
                handle.write(_header(entry.timestamp))
            handle.write(entry.render())
    except OSError as exc:
        raise PersistenceError(f"Unable to append to progress log {progress_path}: {exc}") from exc
    return entry


def read_progress(path: Union[str, Path]) -> str:
    progress_path = Path(path)
    try:
        return progress_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ProgressNotFoundError(progress_path) from None
    except OSError as exc:
        raise PersistenceError(f"Unable to read progress log {progress_path}: {exc}") from exc
