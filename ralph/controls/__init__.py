"""Run control primitives: cancellation and persisted loop state."""

from .loop_state import LoopState, load_loop_state, save_loop_state
from .run_state import CancellationToken, RunState, read_run_state, write_run_state

__all__ = [
    "CancellationToken",
    "LoopState",
    "RunState",
    "load_loop_state",
    "read_run_state",
    "save_loop_state",
    "write_run_state",
]
