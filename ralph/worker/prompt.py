"""Instruction payload handed to each fresh worker instance."""

from __future__ import annotations

from pathlib import Path
from string import Template
from typing import Iterable, Optional, Union

from ralph.errors import ConfigError

__all__ = [
    "COMPLETION_MARKERS",
    "DEFAULT_PROMPT_TEMPLATE",
    "build_iteration_prompt",
    "contains_completion_marker",
    "load_prompt_template",
]

COMPLETION_MARKERS = ("<RALPH_COMPLETE>", "ALL STORIES COMPLETE")

DEFAULT_PROMPT_TEMPLATE = """\
You are Ralph, an autonomous coding agent. This is iteration $iteration of $max_iterations.

## CRITICAL: This is a FRESH instance
You have NO context from previous iterations. Your ONLY memory is:
- Git commits (history of completed work)
- $progress_file (learnings and patterns discovered)
- $backlog_file (which stories are done)

## Your Job:
Implement ONE user story from the backlog of $project.

## Step-by-step:
1. Read $progress_file FIRST - check the "Codebase Patterns" section at the top
2. Run `$cli next` to get the next pending story
3. Implement that single story
4. Run `$cli quality-check` to run tests, linting and type checks
5. If checks pass, run `$cli complete <STORY_ID> --learnings "<what you learned>"`
6. If checks fail, fix the issues and re-run the quality check until it passes

## Rules:
- Work on ONE story only
- ALL quality checks must pass before completing the story
- Record learnings through `$cli complete`; it appends them to $progress_file
- Commit is automatic when you complete the story

Begin now by reading $progress_file, then running `$cli next`.
"""


def load_prompt_template(path: Union[str, Path, None]) -> str:
    if not path:
        return DEFAULT_PROMPT_TEMPLATE
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read prompt template {path}: {exc}") from exc


def build_iteration_prompt(
    iteration: int,
    max_iterations: int,
    *,
    project: str = "",
    backlog_file: str = "prd.json",
    progress_file: str = "progress.txt",
    cli: str = "ralph",
    template: Optional[str] = None,
) -> str:
    """Render the single-item protocol for ``iteration`` (1-based)."""

    rendered = Template(template or DEFAULT_PROMPT_TEMPLATE).safe_substitute(
        iteration=iteration,
        max_iterations=max_iterations,
        project=project or "this project",
        backlog_file=backlog_file,
        progress_file=progress_file,
        cli=cli,
    )
    return rendered.strip()


def contains_completion_marker(
    output: Optional[str], markers: Iterable[str] = COMPLETION_MARKERS
) -> bool:
    """Scan the full, untruncated worker output for a completion marker."""

    if not output:
        return False
    return any(marker in output for marker in markers)
