"""Plain-text renderings shown to the user and to the worker."""

from __future__ import annotations

from typing import List, Optional

from ralph.domain.backlog import Backlog, WorkItem
from ralph.domain.iteration import IterationOutcome, IterationRecord, LoopStatus, RunReport
from ralph.protocol import CompletionResult
from ralph.worker.invoker import display_excerpt

__all__ = [
    "ALL_COMPLETE_BANNER",
    "render_completion",
    "render_iteration",
    "render_next_item",
    "render_run_report",
    "render_status",
]

# Printed by ``ralph complete`` once nothing is pending. It doubles as a
# completion marker when it appears in the worker's output.
ALL_COMPLETE_BANNER = "ALL STORIES COMPLETE!"
_RULE = "=" * 50


def render_status(backlog: Backlog) -> str:
    lines = [
        f"PRD: {backlog.project}",
        f"Status: {backlog.done_count}/{backlog.total_count} stories complete "
        f"({backlog.pending_count} pending)",
        "",
    ]
    for item in backlog.items:
        mark = "✓" if item.done else "○"
        lines.append(f"{mark} {item.identifier} [P{item.priority}] {item.title}")
    return "\n".join(lines)


def render_next_item(item: Optional[WorkItem]) -> str:
    if item is None:
        return "All stories are complete!"
    lines = [
        f"Next Story: {item.identifier} - {item.title}",
        "",
        f"Description: {item.description}",
        "",
        "Acceptance Criteria:",
    ]
    lines.extend(f"  - {criterion}" for criterion in item.acceptance_criteria)
    return "\n".join(lines)


def render_completion(result: CompletionResult, progress_name: str) -> str:
    lines = [f"✓ Marked {result.item.identifier} as complete"]
    if result.checkpointed:
        lines.append(f"Committed: {result.commit_message}")
    else:
        lines.append(f"Checkpoint skipped: {result.checkpoint_error}")
    lines.append(f"Progress saved to {progress_name}")
    lines.append(f"Progress: {result.done_count}/{result.total_count} stories done")
    if result.all_complete:
        lines.append("")
        lines.append(ALL_COMPLETE_BANNER)
    return "\n".join(lines)


def render_iteration(record: IterationRecord, max_iterations: int) -> List[str]:
    label = f"Iteration {record.index}/{max_iterations}"
    progress = ""
    if record.done_after is not None and record.total_after is not None:
        progress = f" Progress: {record.done_after}/{record.total_after} stories done."

    if record.outcome is IterationOutcome.SUCCESS:
        return [f"{label} complete ({record.elapsed:.1f}s).{progress}"]
    if record.outcome is IterationOutcome.WORKER_TIMEOUT:
        return [f"{label} timed out after {record.elapsed:.1f}s.{progress}"]
    if record.outcome is IterationOutcome.CANCELLED:
        return [f"{label} cancelled."]
    if record.outcome is IterationOutcome.ALREADY_COMPLETE:
        return [f"{label}: nothing left to do."]

    lines = [f"{label} had errors (exit code {record.exit_code}).{progress}"]
    detail = display_excerpt(record.error or record.output)
    if detail:
        lines.append(f"Error output:\n{detail}")
    return lines


def render_run_report(report: RunReport) -> str:
    lines = [
        _RULE,
        f"Ralph finished: {report.completed}/{report.total} stories complete",
        f"Iterations completed: {report.iterations}/{report.max_iterations}",
    ]
    if report.status is LoopStatus.STOPPED_COMPLETE and report.all_complete:
        lines.append(f"Status: {ALL_COMPLETE_BANNER}")
    elif report.status is LoopStatus.STOPPED_COMPLETE:
        lines.append(
            "Status: worker reported completion, but the backlog still has pending "
            "stories. Run `ralph status` to review."
        )
    elif report.status is LoopStatus.STOPPED_CANCELLED:
        lines.append("Status: Cancelled. Use `ralph continue` to pick up where you left off.")
    else:
        lines.append("Status: Max iterations reached. Use `ralph continue` to keep going.")

    failures = [
        record
        for record in report.records
        if record.outcome in (IterationOutcome.WORKER_ERROR, IterationOutcome.WORKER_TIMEOUT)
    ]
    if failures:
        lines.append(
            "Iterations with errors: "
            + ", ".join(f"{record.index} ({record.outcome.value})" for record in failures)
        )
    lines.append(_RULE)
    return "\n".join(lines)
