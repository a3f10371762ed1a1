from datetime import datetime, timedelta, timezone

import pytest

from ralph.errors import PersistenceError, ProgressNotFoundError
from ralph.store.progress import append_progress, read_progress

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_first_append_writes_header_then_entry(tmp_path):
    path = tmp_path / "progress.txt"

    append_progress(path, "US-001", "Use the repo helper", timestamp=T0)

    assert path.read_text(encoding="utf-8") == (
        "# Ralph Progress Log\n"
        f"Started: {T0.isoformat()}\n"
        "---\n"
        f"\n## {T0.isoformat()} - US-001\n"
        "Use the repo helper\n"
        "---\n"
    )


def test_later_appends_do_not_repeat_header(tmp_path):
    path = tmp_path / "progress.txt"
    append_progress(path, "US-001", "first", timestamp=T0)
    append_progress(path, "US-002", "second", timestamp=T0 + timedelta(minutes=5))

    text = path.read_text(encoding="utf-8")

    assert text.count("# Ralph Progress Log") == 1
    assert text.index("- US-001") < text.index("- US-002")
    assert text.endswith("second\n---\n")


def test_existing_content_is_never_rewritten(tmp_path):
    path = tmp_path / "progress.txt"
    path.write_text("## Codebase Patterns\n- use pathlib\n", encoding="utf-8")

    append_progress(path, "US-003", "learned", timestamp=T0)

    text = path.read_text(encoding="utf-8")
    assert text.startswith("## Codebase Patterns\n- use pathlib\n")
    assert "# Ralph Progress Log" not in text


def test_append_creates_parent_directories(tmp_path):
    path = tmp_path / "logs" / "progress.txt"

    entry = append_progress(path, "US-001", "x")

    assert path.exists()
    assert entry.item_id == "US-001"


def test_append_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")

    with pytest.raises(PersistenceError):
        append_progress(blocker / "progress.txt", "US-001", "x")


def test_read_missing_log(tmp_path):
    with pytest.raises(ProgressNotFoundError):
        read_progress(tmp_path / "progress.txt")
