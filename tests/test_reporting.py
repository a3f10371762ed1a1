from datetime import datetime

import pytest

from ralph.domain.backlog import Backlog
from ralph.domain.iteration import IterationOutcome, IterationRecord, LoopStatus, RunReport
from ralph.errors import ConfigError
from ralph.protocol import CompletionResult
from ralph.reporting import (
    render_completion,
    render_iteration,
    render_next_item,
    render_run_report,
    render_status,
)
from ralph.store.progress import ProgressEntry
from ralph.worker.prompt import (
    build_iteration_prompt,
    contains_completion_marker,
    load_prompt_template,
)

from conftest import make_backlog, make_story


def _backlog() -> Backlog:
    return Backlog.from_mapping(
        make_backlog(
            [
                make_story("US-001", priority=1, passes=True, notes="done"),
                make_story("US-002", priority=2, title="Add login"),
            ]
        )
    )


def test_status_lists_every_story():
    text = render_status(_backlog())

    assert text.splitlines()[:2] == ["PRD: Demo", "Status: 1/2 stories complete (1 pending)"]
    assert "✓ US-001 [P1] Story US-001" in text
    assert "○ US-002 [P2] Add login" in text


def test_next_item_shows_acceptance_criteria():
    item = _backlog().find("US-002")

    text = render_next_item(item)

    assert text.startswith("Next Story: US-002 - Add login")
    assert "  - US-002 works" in text
    assert render_next_item(None) == "All stories are complete!"


def test_completion_banner_only_when_everything_is_done():
    backlog = _backlog()
    item = backlog.find("US-002")
    entry = ProgressEntry(datetime(2024, 1, 1, 12, 0, 0), "US-002", "notes")
    result = CompletionResult(
        item=item,
        entry=entry,
        commit_message="feat: US-002 - Add login",
        checkpointed=True,
        all_complete=True,
        done_count=2,
        total_count=2,
    )

    text = render_completion(result, "progress.txt")

    assert "Committed: feat: US-002 - Add login" in text
    assert text.endswith("ALL STORIES COMPLETE!")

    result.all_complete = False
    result.checkpointed = False
    result.checkpoint_error = "nothing to commit"
    text = render_completion(result, "progress.txt")
    assert "Checkpoint skipped: nothing to commit" in text
    assert "ALL STORIES COMPLETE!" not in text


def test_iteration_error_shows_truncated_output():
    record = IterationRecord(
        index=2,
        outcome=IterationOutcome.WORKER_ERROR,
        output="x" * 2000,
        exit_code=1,
        done_after=0,
        total_after=3,
    )

    lines = render_iteration(record, 5)

    assert lines[0] == "Iteration 2/5 had errors (exit code 1). Progress: 0/3 stories done."
    assert lines[1].endswith("... (truncated)")
    assert len(lines[1]) < 600


def test_iteration_error_from_stderr_is_truncated():
    record = IterationRecord(
        index=1,
        outcome=IterationOutcome.WORKER_ERROR,
        error="E" * 5000,
        exit_code=1,
    )

    lines = render_iteration(record, 3)

    assert lines[1].startswith("Error output:\n" + "E" * 10)
    assert lines[1].endswith("... (truncated)")
    assert len("\n".join(lines)) < 600


def test_run_report_mentions_continue_when_budget_spent():
    report = RunReport(
        status=LoopStatus.STOPPED_BUDGET_EXHAUSTED,
        max_iterations=3,
        records=[
            IterationRecord(index=1, outcome=IterationOutcome.SUCCESS),
            IterationRecord(index=2, outcome=IterationOutcome.WORKER_TIMEOUT),
            IterationRecord(index=3, outcome=IterationOutcome.WORKER_ERROR),
        ],
        completed=1,
        total=3,
    )

    text = render_run_report(report)

    assert "Ralph finished: 1/3 stories complete" in text
    assert "Iterations completed: 3/3" in text
    assert "ralph continue" in text
    assert "Iterations with errors: 2 (worker_timeout), 3 (worker_error)" in text


def test_prompt_substitutes_run_details():
    prompt = build_iteration_prompt(
        3, 7, project="Demo", backlog_file="plan.json", progress_file="notes.txt", cli="rl"
    )

    assert "iteration 3 of 7" in prompt
    assert "plan.json" in prompt
    assert "Read notes.txt FIRST" in prompt
    assert "`rl next`" in prompt
    assert not contains_completion_marker(prompt)


def test_custom_prompt_template(tmp_path):
    path = tmp_path / "prompt.md"
    path.write_text("Iteration $iteration/$max_iterations for $project; keep $unknown\n", encoding="utf-8")

    prompt = build_iteration_prompt(1, 2, project="Demo", template=load_prompt_template(path))

    assert prompt == "Iteration 1/2 for Demo; keep $unknown"


def test_marker_detected_anywhere_in_full_output():
    output = "x" * 10_000 + "\n<RALPH_COMPLETE>\n"

    assert contains_completion_marker(output)
    assert contains_completion_marker("... ALL STORIES COMPLETE! ...")
    assert not contains_completion_marker("all stories complete")
    assert not contains_completion_marker(None)


def test_unreadable_prompt_template_is_a_config_error(tmp_path):
    with pytest.raises(ConfigError):
        load_prompt_template(tmp_path / "gone.md")
