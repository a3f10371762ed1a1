"""Pytest configuration for Ralph tests."""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path
from typing import Iterable, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)


def make_story(
    identifier: str,
    *,
    priority: int = 1,
    passes: bool = False,
    title: Optional[str] = None,
    notes: str = "",
) -> dict:
    return {
        "id": identifier,
        "title": title or f"Story {identifier}",
        "description": f"As a user I want {identifier}",
        "acceptanceCriteria": [f"{identifier} works", "Typecheck passes"],
        "priority": priority,
        "passes": passes,
        "notes": notes,
    }


def make_backlog(stories: Iterable[dict], *, branch: str = "ralph/feature") -> dict:
    return {
        "project": "Demo",
        "branchName": branch,
        "description": "Demo backlog",
        "userStories": list(stories),
    }


def write_backlog(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def git(path: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=path, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def init_repo(path: Path) -> Path:
    subprocess.run(["git", "init"], cwd=path, check=True, capture_output=True, text=True)
    subprocess.run(
        ["git", "config", "user.email", "tester@example.com"],
        cwd=path,
        check=True,
        capture_output=True,
        text=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test Runner"],
        cwd=path,
        check=True,
        capture_output=True,
        text=True,
    )
    (path / "README.md").write_text("Initial content\n", encoding="utf-8")
    subprocess.run(["git", "add", "."], cwd=path, check=True, capture_output=True, text=True)
    subprocess.run(
        ["git", "commit", "-m", "chore: initial"],
        cwd=path,
        check=True,
        capture_output=True,
        text=True,
    )
    return path


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    return init_repo(tmp_path)
