"""Cooperative cancellation driven by an in-process event and a stop file."""

from __future__ import annotations

import threading
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Union

__all__ = ["CancellationToken", "RunState", "read_run_state", "write_run_state"]


class RunState(Enum):
    """Directives a user can leave in the run-state file."""

    CONTINUE = "CONTINUE"
    STOP = "STOP"

    @classmethod
    def from_string(cls, raw: str) -> "RunState":
        """Normalize a string into a :class:`RunState` value.

        Unknown values default to :pydata:`RunState.CONTINUE`.
        """

        normalized = (raw or "").strip().upper()
        if normalized == cls.STOP.value:
            return cls.STOP
        return cls.CONTINUE


def read_run_state(path: Union[str, Path, None]) -> RunState:
    """Return the directive recorded at ``path``.

    Missing or unreadable files mean :pydata:`RunState.CONTINUE`.
    """

    if not path:
        return RunState.CONTINUE
    try:
        raw_text = Path(path).read_text(encoding="utf-8")
    except OSError:
        return RunState.CONTINUE
    return RunState.from_string(raw_text)


def write_run_state(path: Union[str, Path], state: RunState) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(f"{state.value}\n", encoding="utf-8")
    return target


class CancellationToken:
    """Single cancellation signal checked between and during iterations.

    ``cancel()`` works in-process (signal handlers, tests); the optional
    ``stop_file`` lets another process request a stop via ``ralph stop``.
    """

    def __init__(
        self,
        stop_file: Union[str, Path, None] = None,
        *,
        poll_interval: float = 0.2,
    ) -> None:
        self._event = threading.Event()
        self.stop_file = Path(stop_file) if stop_file else None
        self.poll_interval = poll_interval

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.stop_file is not None and read_run_state(self.stop_file) is RunState.STOP:
            self._event.set()
            return True
        return False

    def clear_stop_file(self) -> None:
        """Forget a stop request left on disk by an earlier run.

        An in-process ``cancel()`` is kept.
        """

        if self.stop_file is not None and self.stop_file.exists():
            write_run_state(self.stop_file, RunState.CONTINUE)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``True`` early if cancelled."""

        deadline = time.monotonic() + max(0.0, seconds)
        while True:
            if self.is_cancelled():
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(self.poll_interval, remaining))
