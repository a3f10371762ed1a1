"""Load and persist the backlog file (``prd.json``)."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Union

from ralph.domain.backlog import Backlog, BacklogFormatError
from ralph.errors import BacklogNotFoundError, PersistenceError
from ralph.logging import get_logger

__all__ = ["dump_backlog", "load_backlog", "save_backlog"]


logger = get_logger(__name__)


def load_backlog(path: Union[str, Path]) -> Backlog:
    """Return the backlog stored at ``path``.

    Missing, unreadable and malformed files all raise
    :class:`~ralph.errors.BacklogNotFoundError`.
    """

    backlog_path = Path(path)
    try:
        raw_text = backlog_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise BacklogNotFoundError(backlog_path, "file does not exist") from None
    except (OSError, UnicodeDecodeError) as exc:
        raise BacklogNotFoundError(backlog_path, f"unreadable ({exc})") from exc

    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise BacklogNotFoundError(backlog_path, f"invalid JSON ({exc})") from exc

    try:
        return Backlog.from_mapping(data)
    except BacklogFormatError as exc:
        raise BacklogNotFoundError(backlog_path, str(exc)) from exc


def dump_backlog(backlog: Backlog) -> str:
    return json.dumps(backlog.to_dict(), indent=2, ensure_ascii=False) + "\n"


def save_backlog(path: Union[str, Path], backlog: Backlog) -> Path:
    """Overwrite ``path`` with ``backlog``.

    The file is written to a sibling temporary file first and then moved into
    place, so readers only ever observe the old or the new content.
    """

    backlog_path = Path(path)
    payload = dump_backlog(backlog)
    tmp_name = None
    try:
        backlog_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=backlog_path.parent,
            prefix=f".{backlog_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(payload)
        os.replace(tmp_name, backlog_path)
    except OSError as exc:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
        raise PersistenceError(f"Unable to save backlog to {backlog_path}: {exc}") from exc

    logger.debug(
        "Saved backlog %s (%d/%d done)",
        backlog_path,
        backlog.done_count,
        backlog.total_count,
    )
    return backlog_path
