"""Thin wrapper around the git CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable, Sequence, Union

from ralph.errors import CheckpointError, VcsError
from ralph.logging import get_logger

__all__ = ["Git"]


logger = get_logger(__name__)


class Git:
    """Run git commands inside a single working tree."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.root,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise VcsError(f"git not available: {exc}") from exc

    @staticmethod
    def _diagnostics(result: subprocess.CompletedProcess) -> str:
        return (result.stderr or "").strip() or (result.stdout or "").strip() or "no diagnostics"

    def is_repository(self) -> bool:
        try:
            result = self._run("rev-parse", "--is-inside-work-tree")
        except VcsError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def current_branch(self) -> str:
        result = self._run("branch", "--show-current")
        if result.returncode != 0:
            raise VcsError(f"Unable to determine current branch: {self._diagnostics(result)}")
        return result.stdout.strip()

    def has_uncommitted_changes(self) -> bool:
        result = self._run("status", "--porcelain")
        if result.returncode != 0:
            raise VcsError(f"Unable to determine git status: {self._diagnostics(result)}")
        return bool(result.stdout.strip())

    def ensure_branch(self, branch: str) -> bool:
        """Switch to ``branch``, creating it when needed.

        Returns ``True`` when the working tree changed branch.
        """

        if not branch or self.current_branch() == branch:
            return False

        created = self._run("checkout", "-b", branch)
        if created.returncode == 0:
            logger.info("Created branch %s", branch)
            return True

        # Creation fails when the branch already exists.
        switched = self._run("checkout", branch)
        if switched.returncode != 0:
            raise VcsError(f"Unable to switch to branch {branch}: {self._diagnostics(switched)}")
        logger.info("Checked out existing branch %s", branch)
        return True

    def checkpoint(self, paths: Iterable[Union[str, Path]], message: str) -> str:
        """Stage exactly ``paths`` and commit them, returning the new HEAD."""

        relative: Sequence[str] = [self._relative(path) for path in paths]
        try:
            added = self._run("add", "--", *relative)
        except VcsError as exc:
            raise CheckpointError(str(exc)) from exc
        if added.returncode != 0:
            raise CheckpointError(f"git add failed: {self._diagnostics(added)}")

        committed = self._run("commit", "-m", message, "--", *relative)
        if committed.returncode != 0:
            raise CheckpointError(f"git commit failed: {self._diagnostics(committed)}")

        head = self._run("rev-parse", "HEAD")
        return head.stdout.strip() if head.returncode == 0 else ""

    def _relative(self, path: Union[str, Path]) -> str:
        candidate = Path(path)
        if not candidate.is_absolute():
            return str(candidate)
        try:
            return str(candidate.resolve().relative_to(self.root.resolve()))
        except ValueError:
            return str(candidate)
