"""The iteration control loop.

Each iteration reloads the backlog, spawns one fresh worker and inspects
what it left behind. Nothing learned in memory is trusted across an
iteration boundary: the backlog file decides whether there is more work,
and a fresh ``start``/``resume`` re-derives progress from it.
"""

from __future__ import annotations

import time
from typing import Callable, List, Optional

from ralph.config import RalphConfig
from ralph.controls.loop_state import LoopState, load_loop_state, save_loop_state
from ralph.controls.run_state import CancellationToken
from ralph.domain.backlog import Backlog
from ralph.domain.iteration import IterationOutcome, IterationRecord, LoopStatus, RunReport
from ralph.errors import BacklogNotFoundError, WorkerLaunchError
from ralph.logging import get_logger, log_exceptions
from ralph.reporting import render_iteration
from ralph.store.backlog import load_backlog
from ralph.vcs.git import Git
from ralph.worker.invoker import (
    WorkerCancelled,
    WorkerExited,
    WorkerInvoker,
    WorkerOutcome,
    WorkerTimedOut,
)
from ralph.worker.prompt import (
    build_iteration_prompt,
    contains_completion_marker,
    load_prompt_template,
)

__all__ = ["IterationController"]


logger = get_logger(__name__)


class IterationController:
    """Drive the backlog to completion one worker invocation at a time."""

    def __init__(
        self,
        config: RalphConfig,
        *,
        invoker: Optional[WorkerInvoker] = None,
        git: Optional[Git] = None,
        cancel: Optional[CancellationToken] = None,
        on_update: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.config = config
        self.invoker = invoker or WorkerInvoker()
        self.git = git or Git(config.project_root)
        self.cancel = cancel or CancellationToken(config.stop_file_path)
        self._on_update = on_update
        self.status = LoopStatus.IDLE
        self.state = load_loop_state(config.state_path)
        self.records: List[IterationRecord] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start(self, max_iterations: Optional[int] = None) -> RunReport:
        """Enter ``running`` and iterate until a terminal state."""

        budget = max_iterations if max_iterations and max_iterations > 0 else self.config.max_iterations
        backlog = load_backlog(self.config.backlog_path)
        start_branch = self.git.current_branch()
        if backlog.branch_name and start_branch != backlog.branch_name:
            self._emit(f"Switching to branch: {backlog.branch_name}...")
            self.git.ensure_branch(backlog.branch_name)

        self.config.ensure_state_dir()
        self.cancel.clear_stop_file()
        self.records = []
        self.status = LoopStatus.RUNNING
        self.state = LoopState(
            running=True,
            current_iteration=0,
            max_iterations=budget,
            backlog_path=str(self.config.backlog_path),
            start_branch=start_branch,
        )
        self._save_state()

        run_log = get_logger(__name__, metadata={"project": backlog.project})
        run_log.info("Starting run: budget=%d, branch=%s", budget, backlog.branch_name or start_branch)
        self._emit(
            f"Starting Ralph: {backlog.project}\n"
            f"Max iterations: {budget}\n"
            f"Branch: {backlog.branch_name or start_branch}"
        )

        marker_seen = False
        try:
            with log_exceptions(run_log, message="Ralph run aborted"):
                self.status, marker_seen = self._run(budget)
        finally:
            self.state.running = False
            self._save_state()

        report = self._build_report(budget, marker_seen, fallback=backlog)
        run_log.info(
            "Run finished: status=%s, iterations=%d, completed=%d/%d",
            report.status.value,
            report.iterations,
            report.completed,
            report.total,
        )
        return report

    def resume(self, max_iterations: Optional[int] = None) -> RunReport:
        """Start a fresh running phase from whatever the backlog records.

        Counters restart at zero; the previous run's state only contributes
        the default budget when none is given.
        """

        previous = load_loop_state(self.config.state_path)
        if not max_iterations and previous.max_iterations:
            max_iterations = previous.max_iterations
        return self.start(max_iterations)

    # ------------------------------------------------------------------
    # Loop internals
    # ------------------------------------------------------------------
    def _run(self, budget: int) -> tuple[LoopStatus, bool]:
        for index in range(1, budget + 1):
            if self.cancel.is_cancelled():
                self._emit(f"Ralph stopped after {index - 1} iterations (cancelled)")
                return LoopStatus.STOPPED_CANCELLED, False

            self._emit(f"\n--- Iteration {index}/{budget} ---")
            backlog = self._reload()
            if backlog is not None and backlog.is_complete:
                self.records.append(
                    IterationRecord(
                        index=index,
                        outcome=IterationOutcome.ALREADY_COMPLETE,
                        done_after=backlog.done_count,
                        total_after=backlog.total_count,
                    )
                )
                self._emit("ALL STORIES COMPLETE!")
                return LoopStatus.STOPPED_COMPLETE, False

            self.state.current_iteration = index
            self._save_state()

            record = self._iterate(index, budget, backlog)
            self.records.append(record)
            for line in render_iteration(record, budget):
                self._emit(line)

            if record.outcome is IterationOutcome.CANCELLED:
                return LoopStatus.STOPPED_CANCELLED, False

            if contains_completion_marker(record.output):
                if self.config.trust_completion_marker:
                    self._emit("\nAll stories complete!")
                    return LoopStatus.STOPPED_COMPLETE, True
                logger.info("Completion marker seen; deferring to the backlog state")

            if index < budget and self.config.delay_seconds > 0:
                if self.cancel.wait(self.config.delay_seconds):
                    self._emit(f"Ralph stopped after {index} iterations (cancelled)")
                    return LoopStatus.STOPPED_CANCELLED, False

        # Budget spent; one last look in case the final iteration finished it.
        final = self._reload()
        if final is not None and final.is_complete:
            return LoopStatus.STOPPED_COMPLETE, False
        return LoopStatus.STOPPED_BUDGET_EXHAUSTED, False

    def _iterate(self, index: int, budget: int, backlog: Optional[Backlog]) -> IterationRecord:
        prompt = self._build_prompt(index, budget, backlog)
        self._emit(f"Spawning fresh worker for iteration {index}...")
        started = time.perf_counter()
        try:
            outcome = self.invoker.spawn(
                self.config.worker_command,
                prompt,
                self.config.project_root,
                timeout=self.config.worker_timeout,
                cancel=self.cancel,
            )
        except WorkerLaunchError as exc:
            logger.error("Iteration %d: %s", index, exc)
            record = IterationRecord(
                index=index,
                outcome=IterationOutcome.WORKER_ERROR,
                elapsed=time.perf_counter() - started,
                error=str(exc),
            )
        else:
            record = self._record_outcome(index, outcome)

        after = self._reload()
        if after is not None:
            record.done_after = after.done_count
            record.total_after = after.total_count
        return record

    @staticmethod
    def _record_outcome(index: int, outcome: WorkerOutcome) -> IterationRecord:
        if isinstance(outcome, WorkerExited):
            status = IterationOutcome.SUCCESS if outcome.succeeded else IterationOutcome.WORKER_ERROR
            if status is IterationOutcome.WORKER_ERROR:
                logger.warning("Iteration %d: worker exited with %s", index, outcome.exit_code)
            return IterationRecord(
                index=index,
                outcome=status,
                output=outcome.combined_output,
                elapsed=outcome.duration,
                exit_code=outcome.exit_code,
                error=(outcome.stderr.strip() or None) if not outcome.succeeded else None,
            )
        if isinstance(outcome, WorkerTimedOut):
            return IterationRecord(
                index=index,
                outcome=IterationOutcome.WORKER_TIMEOUT,
                output=outcome.combined_output,
                elapsed=outcome.duration,
                error=f"worker exceeded {outcome.timeout:.0f}s timeout",
            )
        if isinstance(outcome, WorkerCancelled):
            return IterationRecord(
                index=index,
                outcome=IterationOutcome.CANCELLED,
                output=outcome.combined_output,
                elapsed=outcome.duration,
            )
        raise TypeError(f"Unexpected worker outcome {outcome!r}")

    def _build_prompt(self, index: int, budget: int, backlog: Optional[Backlog]) -> str:
        template_path = self.config.prompt_template_path
        template = load_prompt_template(template_path) if template_path else None
        return build_iteration_prompt(
            index,
            budget,
            project=backlog.project if backlog is not None else "",
            backlog_file=self.config.backlog_file,
            progress_file=self.config.progress_file,
            cli=self.config.worker_cli,
            template=template,
        )

    def _reload(self) -> Optional[Backlog]:
        try:
            return load_backlog(self.config.backlog_path)
        except BacklogNotFoundError as exc:
            # The worker writes this file too; give the next iteration a
            # chance to repair it instead of aborting the run.
            logger.warning("Backlog unavailable mid-run: %s", exc)
            return None

    def _build_report(self, budget: int, marker_seen: bool, *, fallback: Backlog) -> RunReport:
        backlog = self._reload() or fallback
        return RunReport(
            status=self.status,
            max_iterations=budget,
            records=list(self.records),
            completed=backlog.done_count,
            total=backlog.total_count,
            marker_seen=marker_seen,
            project=backlog.project,
        )

    def _save_state(self) -> None:
        save_loop_state(self.config.state_path, self.state)

    def _emit(self, message: str) -> None:
        logger.debug(message.strip())
        if self._on_update is not None:
            self._on_update(message)
