"""Typer CLI wiring for the Ralph loop and its worker-facing commands."""

from __future__ import annotations

import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from ralph import __version__
from ralph.config import RalphConfig, load_config
from ralph.controller import IterationController
from ralph.controls.run_state import CancellationToken, RunState, write_run_state
from ralph.domain.iteration import LoopStatus
from ralph.errors import RalphError
from ralph.logging import configure_logging
from ralph.protocol import CompletionProtocol
from ralph.quality import discover_default_commands, run_quality_checks
from ralph.reporting import (
    render_completion,
    render_next_item,
    render_run_report,
    render_status,
)
from ralph.store.backlog import load_backlog
from ralph.store.progress import read_progress
from ralph.vcs.git import Git

app = typer.Typer(help="Autonomous agent loop: one fresh worker per user story")

_STATE: Dict[str, Any] = {"config_path": None, "log_level": None}


def _version_callback(value: bool) -> None:
    """Print the Ralph package version when requested."""

    if value:
        typer.echo(f"Ralph {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the Ralph version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "",
        "--log-level",
        help="Set Ralph log level (e.g. info, warning, debug). Overrides RALPH_LOG_LEVEL.",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
        help="Path to the ralph.yaml configuration file to use.",
    ),
) -> None:
    """Global callback to wire shared options like --version."""

    _STATE["config_path"] = config
    _STATE["log_level"] = log_level or None
    configure_logging(log_level or None)


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load_config(overrides: Optional[Dict[str, Any]] = None) -> RalphConfig:
    try:
        config = load_config(_STATE["config_path"], overrides=overrides)
    except RalphError as exc:
        _fail(str(exc))
    config.ensure_state_dir()
    configure_logging(_STATE["log_level"] or config.log_level, log_file=config.log_path)
    return config


def _loop_overrides(
    timeout: Optional[float], delay: Optional[float], worker: Optional[str]
) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if timeout is not None:
        overrides.setdefault("worker", {})["timeout_seconds"] = timeout
    if worker:
        overrides.setdefault("worker", {})["command"] = worker
    if delay is not None:
        overrides.setdefault("loop", {})["delay_seconds"] = delay
    return overrides


def _protocol(config: RalphConfig) -> CompletionProtocol:
    git = Git(config.project_root)
    return CompletionProtocol(
        config.backlog_path,
        config.progress_path,
        git=git if git.is_repository() else None,
    )


def _execute_loop(config: RalphConfig, max_iterations: Optional[int], *, resume: bool) -> None:
    cancel = CancellationToken(config.stop_file_path)
    controller = IterationController(config, cancel=cancel, on_update=typer.echo)

    def _request_stop(signum: int, frame: Any) -> None:
        typer.echo("\nStop requested; finishing up...")
        cancel.cancel()

    previous_handler = signal.signal(signal.SIGINT, _request_stop)
    try:
        if resume:
            report = controller.resume(max_iterations)
        else:
            report = controller.start(max_iterations)
    except RalphError as exc:
        _fail(str(exc))
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    typer.echo(render_run_report(report))
    if report.status is LoopStatus.STOPPED_CANCELLED:
        raise typer.Exit(code=130)


@app.command()
def run(
    max_iterations: Optional[int] = typer.Argument(
        None, min=1, help="Maximum number of iterations (default from ralph.yaml, else 10)."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Do not ask for confirmation when the tree is dirty."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=0, help="Seconds before a worker is terminated (0 disables)."
    ),
    delay: Optional[float] = typer.Option(
        None, "--delay", min=0, help="Seconds to wait between iterations."
    ),
    worker: Optional[str] = typer.Option(
        None, "--worker", help="Worker command; the prompt is appended as the last argument."
    ),
) -> None:
    """Start the loop: one fresh worker per iteration until the backlog is done."""

    config = _load_config(_loop_overrides(timeout, delay, worker))
    if not config.backlog_path.exists():
        typer.secho(f"No {config.backlog_file} found in {config.project_root}", fg=typer.colors.RED, err=True)
        typer.echo("Create one from your requirements document before running Ralph.")
        raise typer.Exit(code=1)

    git = Git(config.project_root)
    if not git.is_repository():
        _fail("Not in a git repository")
    try:
        dirty = git.has_uncommitted_changes()
    except RalphError as exc:
        _fail(str(exc))
    if dirty and not yes:
        typer.confirm(
            "You have uncommitted changes. Ralph will commit after each story. Continue anyway?",
            abort=True,
        )

    _execute_loop(config, max_iterations, resume=False)


@app.command("continue")
def continue_(
    max_iterations: Optional[int] = typer.Argument(
        None, min=1, help="Maximum number of iterations (default: the previous run's budget)."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0),
    delay: Optional[float] = typer.Option(None, "--delay", min=0),
    worker: Optional[str] = typer.Option(None, "--worker"),
) -> None:
    """Continue the loop from whatever the backlog records as done."""

    config = _load_config(_loop_overrides(timeout, delay, worker))
    try:
        backlog = load_backlog(config.backlog_path)
    except RalphError as exc:
        _fail(str(exc))

    if backlog.is_complete:
        typer.echo("All stories are complete!")
        return

    typer.echo(f"Continuing Ralph: {backlog.done_count}/{backlog.total_count} stories done")
    _execute_loop(config, max_iterations, resume=True)


@app.command()
def status() -> None:
    """Show the backlog with per-story completion."""

    config = _load_config()
    try:
        backlog = load_backlog(config.backlog_path)
    except RalphError as exc:
        _fail(str(exc))
    typer.echo(render_status(backlog))


@app.command("next")
def next_story() -> None:
    """Print the next pending story (used by the worker)."""

    config = _load_config()
    try:
        item = _protocol(config).next_item()
    except RalphError as exc:
        _fail(str(exc))
    typer.echo(render_next_item(item))


@app.command()
def complete(
    story_id: str = typer.Argument(..., help="Story ID to mark complete (e.g. US-001)."),
    learnings: str = typer.Option(
        ...,
        "--learnings",
        "-l",
        help="Patterns discovered, gotchas and useful context for future iterations.",
    ),
) -> None:
    """Mark a story done, log learnings and commit (used by the worker)."""

    config = _load_config()
    try:
        result = _protocol(config).complete_item(story_id, learnings)
    except RalphError as exc:
        _fail(str(exc))
    typer.echo(render_completion(result, config.progress_file))


@app.command()
def progress() -> None:
    """Print the progress log from previous iterations."""

    config = _load_config()
    try:
        text = read_progress(config.progress_path)
    except RalphError as exc:
        typer.echo(str(exc))
        return
    typer.echo(text, nl=False)


@app.command("quality-check")
def quality_check(
    commands: Optional[List[str]] = typer.Argument(
        None, help="Shell commands to run, e.g. 'pytest -q'. Defaults to configured or detected checks."
    ),
) -> None:
    """Run quality checks before completing a story."""

    config = _load_config()
    selected = list(commands or []) or config.quality_commands
    if not selected:
        selected = discover_default_commands(config.project_root)
    report = run_quality_checks(selected, config.project_root)
    typer.echo(report.render())
    if not report.all_passed:
        raise typer.Exit(code=1)


@app.command()
def stop() -> None:
    """Ask a loop running in another terminal to stop; its current worker is terminated."""

    config = _load_config()
    path = write_run_state(config.stop_file_path, RunState.STOP)
    typer.echo(f"Stop requested via {path}")


def main() -> None:
    """Entry point used by the console script."""

    app()


if __name__ == "__main__":
    main()
