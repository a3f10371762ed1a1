"""Backlog domain models mirroring the ``prd.json`` file layout."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

__all__ = [
    "Backlog",
    "BacklogFormatError",
    "WorkItem",
]

_ITEM_DEFAULTS: Mapping[str, Any] = {
    "title": "",
    "description": "",
    "acceptanceCriteria": [],
    "priority": 0,
    "passes": False,
    "notes": "",
}
_BACKLOG_DEFAULTS: Mapping[str, Any] = {
    "project": "",
    "branchName": "",
    "description": "",
    "userStories": [],
}


class BacklogFormatError(ValueError):
    """Raised when a mapping does not describe a well-formed backlog."""


def _text(data: Mapping[str, Any], key: str, *, where: str) -> str:
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise BacklogFormatError(f"{where}: '{key}' must be a string")
    return value


def _criteria(data: Mapping[str, Any], *, where: str) -> List[str]:
    value = data.get("acceptanceCriteria", [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise BacklogFormatError(f"{where}: 'acceptanceCriteria' must be a list of strings")
    return list(value)


def _priority(data: Mapping[str, Any], *, where: str) -> int:
    value = data.get("priority", 0)
    # bool is an int subclass; "priority": true is not a rank.
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise BacklogFormatError(f"{where}: 'priority' must be an integer")
    return value


def _write_back(
    source: Mapping[str, Any],
    values: Mapping[str, Any],
    defaults: Mapping[str, Any],
) -> Dict[str, Any]:
    """Overlay ``values`` onto a copy of the loaded mapping.

    The loaded key order and unknown keys survive. A field the file left out
    (or set to ``null``) stays that way unless its value has since changed.
    """

    payload = dict(source)
    for key, value in values.items():
        default = defaults.get(key)
        if key in payload:
            if payload[key] is None and value == default:
                continue
            payload[key] = value
        elif not source or key not in defaults or value != default:
            payload[key] = value
    return payload


@dataclass
class WorkItem:
    """A single user story tracked in the backlog."""

    identifier: str
    title: str = ""
    description: str = ""
    acceptance_criteria: List[str] = field(default_factory=list)
    priority: int = 0
    done: bool = False
    notes: str = ""
    source: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, index: int) -> "WorkItem":
        where = f"userStories[{index}]"
        if not isinstance(data, Mapping):
            raise BacklogFormatError(f"{where} must be an object")
        identifier = data.get("id")
        if not isinstance(identifier, str) or not identifier.strip():
            raise BacklogFormatError(f"{where}: 'id' must be a non-empty string")
        passes = data.get("passes", False)
        if not isinstance(passes, bool):
            raise BacklogFormatError(f"{where}: 'passes' must be a boolean")
        return cls(
            identifier=identifier,
            title=_text(data, "title", where=where),
            description=_text(data, "description", where=where),
            acceptance_criteria=_criteria(data, where=where),
            priority=_priority(data, where=where),
            done=passes,
            notes=_text(data, "notes", where=where),
            source=dict(data),
        )

    def to_dict(self) -> MutableMapping[str, Any]:
        values = {
            "id": self.identifier,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "passes": self.done,
            "notes": self.notes,
        }
        return _write_back(self.source, values, _ITEM_DEFAULTS)

    def mark_done(self, notes: str) -> None:
        self.done = True
        self.notes = notes


@dataclass
class Backlog:
    """Project metadata plus the ordered list of work items."""

    project: str = ""
    branch_name: str = ""
    description: str = ""
    items: List[WorkItem] = field(default_factory=list)
    source: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_mapping(cls, data: Any) -> "Backlog":
        if not isinstance(data, Mapping):
            raise BacklogFormatError("backlog must be a JSON object")
        raw_items = data.get("userStories", [])
        if not isinstance(raw_items, list):
            raise BacklogFormatError("'userStories' must be a list")

        items = [WorkItem.from_mapping(entry, index=index) for index, entry in enumerate(raw_items)]
        seen: set[str] = set()
        for item in items:
            if item.identifier in seen:
                raise BacklogFormatError(f"duplicate story id '{item.identifier}'")
            seen.add(item.identifier)

        return cls(
            project=_text(data, "project", where="backlog"),
            branch_name=_text(data, "branchName", where="backlog"),
            description=_text(data, "description", where="backlog"),
            items=items,
            source=dict(data),
        )

    def to_dict(self) -> MutableMapping[str, Any]:
        values = {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "userStories": [item.to_dict() for item in self.items],
        }
        return _write_back(self.source, values, _BACKLOG_DEFAULTS)

    def find(self, identifier: str) -> Optional[WorkItem]:
        for item in self.items:
            if item.identifier == identifier:
                return item
        return None

    @property
    def total_count(self) -> int:
        return len(self.items)

    @property
    def done_count(self) -> int:
        return sum(1 for item in self.items if item.done)

    @property
    def pending_count(self) -> int:
        return self.total_count - self.done_count

    @property
    def is_complete(self) -> bool:
        return all(item.done for item in self.items)
