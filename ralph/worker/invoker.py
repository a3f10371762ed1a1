"""Run one worker process with a deadline and a cancellation signal."""

from __future__ import annotations

import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

from ralph.controls.run_state import CancellationToken
from ralph.errors import WorkerLaunchError
from ralph.logging import get_logger

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "WorkerCancelled",
    "WorkerExited",
    "WorkerInvoker",
    "WorkerOutcome",
    "WorkerTimedOut",
    "display_excerpt",
]


logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DISPLAY_LIMIT = 500


def display_excerpt(text: Optional[str], limit: int = DISPLAY_LIMIT) -> str:
    """Shorten ``text`` for terminal display. Never use for marker scanning."""

    if not text:
        return ""
    snippet = text.strip()
    if len(snippet) <= limit:
        return snippet
    return snippet[:limit].rstrip() + "\n... (truncated)"


@dataclass(frozen=True)
class _CapturedOutput:
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def combined_output(self) -> str:
        return (self.stdout or "") + (self.stderr or "")


@dataclass(frozen=True)
class WorkerExited(_CapturedOutput):
    """The worker ran to completion; ``exit_code`` may still be non-zero."""

    exit_code: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class WorkerTimedOut(_CapturedOutput):
    timeout: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class WorkerCancelled(_CapturedOutput):
    spawned: bool = False


WorkerOutcome = Union[WorkerExited, WorkerTimedOut, WorkerCancelled]


class WorkerInvoker:
    """Spawn exactly one worker process per call.

    The invoker only observes the process: exit code and captured output.
    Anything the worker does to the backlog, the progress log or git is its
    own side effect.
    """

    def __init__(
        self,
        *,
        poll_interval: float = 0.25,
        kill_grace_period: float = 5.0,
        env: Optional[dict[str, str]] = None,
    ) -> None:
        self.poll_interval = poll_interval
        self.kill_grace_period = kill_grace_period
        self.env = env

    def spawn(
        self,
        command: Sequence[str],
        prompt: str,
        work_dir: Union[str, Path],
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT_SECONDS,
        cancel: Optional[CancellationToken] = None,
    ) -> WorkerOutcome:
        if cancel is not None and cancel.is_cancelled():
            return WorkerCancelled(spawned=False)

        argv = [*command, prompt]
        environment = os.environ.copy()
        if self.env:
            environment.update(self.env)

        start = time.perf_counter()
        try:
            process = subprocess.Popen(
                argv,
                cwd=Path(work_dir),
                env=environment,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise WorkerLaunchError(list(command), exc) from exc

        logger.debug("Spawned worker pid=%s: %s", process.pid, list(command))
        deadline = None if not timeout else time.monotonic() + timeout

        while True:
            wait_for = self.poll_interval
            if deadline is not None:
                wait_for = max(0.0, min(wait_for, deadline - time.monotonic()))
            try:
                stdout, stderr = process.communicate(timeout=wait_for)
            except subprocess.TimeoutExpired:
                pass
            else:
                duration = time.perf_counter() - start
                logger.debug(
                    "Worker pid=%s exited rc=%s after %.2fs",
                    process.pid,
                    process.returncode,
                    duration,
                )
                return WorkerExited(
                    stdout=stdout or "",
                    stderr=stderr or "",
                    duration=duration,
                    exit_code=process.returncode,
                )

            if cancel is not None and cancel.is_cancelled():
                stdout, stderr = self._terminate(process)
                logger.info("Worker pid=%s terminated after cancellation", process.pid)
                return WorkerCancelled(
                    stdout=stdout,
                    stderr=stderr,
                    duration=time.perf_counter() - start,
                    spawned=True,
                )

            if deadline is not None and time.monotonic() >= deadline:
                stdout, stderr = self._terminate(process)
                logger.warning("Worker pid=%s exceeded %.0fs timeout", process.pid, timeout)
                return WorkerTimedOut(
                    stdout=stdout,
                    stderr=stderr,
                    duration=time.perf_counter() - start,
                    timeout=float(timeout),
                )

    def _terminate(self, process: subprocess.Popen) -> Tuple[str, str]:
        process.terminate()
        try:
            stdout, stderr = process.communicate(timeout=self.kill_grace_period)
        except subprocess.TimeoutExpired:
            process.kill()
            stdout, stderr = process.communicate()
        return stdout or "", stderr or ""
