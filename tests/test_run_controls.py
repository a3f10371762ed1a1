import json

from ralph.controls.loop_state import LoopState, load_loop_state, save_loop_state
from ralph.controls.run_state import (
    CancellationToken,
    RunState,
    read_run_state,
    write_run_state,
)


def test_read_run_state_defaults_to_continue(tmp_path):
    assert read_run_state(tmp_path / "run-state.txt") is RunState.CONTINUE
    assert read_run_state(None) is RunState.CONTINUE


def test_stop_directives_are_normalised(tmp_path):
    path = tmp_path / "run-state.txt"
    for raw in ("stop", " STOP\n", "Stop"):
        path.write_text(raw, encoding="utf-8")
        assert read_run_state(path) is RunState.STOP
    for raw in ("whatever", "HARD_STOP", "cancel", ""):
        path.write_text(raw, encoding="utf-8")
        assert read_run_state(path) is RunState.CONTINUE


def test_token_observes_stop_file(tmp_path):
    path = tmp_path / "state" / "run-state.txt"
    token = CancellationToken(path)
    assert not token.is_cancelled()

    write_run_state(path, RunState.STOP)

    assert token.is_cancelled()


def test_clear_stop_file_keeps_in_process_cancel(tmp_path):
    path = write_run_state(tmp_path / "run-state.txt", RunState.STOP)
    stale = CancellationToken(path)
    stale.clear_stop_file()
    assert not stale.is_cancelled()
    assert read_run_state(path) is RunState.CONTINUE

    token = CancellationToken(path)
    token.cancel()
    token.clear_stop_file()
    assert token.is_cancelled()


def test_wait_returns_early_when_cancelled():
    token = CancellationToken(poll_interval=0.01)
    assert token.wait(0.05) is False

    token.cancel()
    assert token.wait(30) is True


def test_loop_state_forces_running_false_on_reload(tmp_path):
    path = tmp_path / ".ralph" / "state.json"
    save_loop_state(
        path,
        LoopState(
            running=True,
            current_iteration=4,
            max_iterations=10,
            backlog_path="prd.json",
            start_branch="main",
        ),
    )
    assert json.loads(path.read_text(encoding="utf-8"))["running"] is True

    restored = load_loop_state(path)

    assert restored.running is False
    assert restored.current_iteration == 4
    assert restored.max_iterations == 10
    assert restored.start_branch == "main"


def test_loop_state_tolerates_missing_and_corrupt_files(tmp_path):
    missing = load_loop_state(tmp_path / "missing.json")
    assert missing.running is False
    assert missing.current_iteration == 0
    corrupt = tmp_path / "state.json"
    corrupt.write_text("{broken", encoding="utf-8")
    assert load_loop_state(corrupt).running is False
    corrupt.write_text(json.dumps({"current_iteration": "nope"}), encoding="utf-8")
    assert load_loop_state(corrupt).current_iteration == 0
