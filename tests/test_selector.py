from ralph.domain.backlog import Backlog, WorkItem
from ralph.selector import completed_items, pending_items, select_next


def _backlog(*items: WorkItem) -> Backlog:
    return Backlog(project="Demo", items=list(items))


def test_selects_lowest_priority_number():
    backlog = _backlog(
        WorkItem("US-001", priority=2),
        WorkItem("US-002", priority=1),
        WorkItem("US-003", priority=3),
    )

    assert select_next(backlog).identifier == "US-002"


def test_skips_completed_items():
    backlog = _backlog(
        WorkItem("US-001", priority=1, done=True, notes="ok"),
        WorkItem("US-002", priority=5),
    )

    assert select_next(backlog).identifier == "US-002"


def test_ties_follow_backlog_order():
    backlog = _backlog(
        WorkItem("B", priority=1),
        WorkItem("A", priority=1),
        WorkItem("C", priority=0),
    )

    assert [item.identifier for item in pending_items(backlog)] == ["C", "B", "A"]


def test_returns_none_when_everything_is_done():
    backlog = _backlog(WorkItem("US-001", done=True, notes="x"))

    assert select_next(backlog) is None
    assert select_next(_backlog()) is None


def test_selection_is_repeatable_without_mutation():
    backlog = _backlog(WorkItem("X", priority=3), WorkItem("Y", priority=3))

    first = select_next(backlog)
    second = select_next(backlog)

    assert first is second
    assert [item.identifier for item in backlog.items] == ["X", "Y"]
    assert completed_items(backlog) == []
