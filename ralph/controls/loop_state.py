"""Serialized controller state that survives a host restart."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Union

from ralph.logging import get_logger

__all__ = ["LoopState", "load_loop_state", "save_loop_state"]


logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class LoopState:
    running: bool = False
    current_iteration: int = 0
    max_iterations: int = 0
    backlog_path: str = ""
    start_branch: str = ""
    updated_at: str = field(default_factory=_now_iso)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LoopState":
        def _int(key: str) -> int:
            try:
                return max(0, int(data.get(key, 0) or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            # The worker never survives a host restart, so a persisted
            # "running" flag is stale by definition.
            running=False,
            current_iteration=_int("current_iteration"),
            max_iterations=_int("max_iterations"),
            backlog_path=str(data.get("backlog_path") or ""),
            start_branch=str(data.get("start_branch") or ""),
            updated_at=str(data.get("updated_at") or _now_iso()),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_loop_state(path: Union[str, Path]) -> LoopState:
    """Return the saved state with ``running`` forced to ``False``."""

    state_path = Path(path)
    try:
        data = json.loads(state_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return LoopState()
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable loop state %s: %s", state_path, exc)
        return LoopState()
    if not isinstance(data, Mapping):
        return LoopState()
    return LoopState.from_mapping(data)


def save_loop_state(path: Union[str, Path], state: LoopState) -> None:
    state_path = Path(path)
    state.updated_at = _now_iso()
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_text(json.dumps(state.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        # Loop state is advisory; the backlog remains the record of progress.
        logger.warning("Unable to save loop state to %s: %s", state_path, exc)
