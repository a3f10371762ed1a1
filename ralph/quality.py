"""Run the project's quality gate commands and summarise the results."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from ralph.logging import get_logger, log_action

__all__ = [
    "QualityCheckResult",
    "QualityReport",
    "discover_default_commands",
    "run_quality_checks",
]


logger = get_logger(__name__)

EXCERPT_LIMIT = 500

_PYTHON_MARKERS = ("pyproject.toml", "setup.py", "setup.cfg", "requirements.txt")
_PYTHON_CANDIDATES = (
    ("ruff", "ruff check ."),
    ("mypy", "mypy ."),
    ("pytest", "pytest -q"),
)
_NODE_CANDIDATES = (
    ("npm", "npm run typecheck --if-present"),
    ("npm", "npm run lint --if-present"),
    ("npm", "npm test --if-present"),
)


@dataclass
class QualityCheckResult:
    command: str
    passed: bool
    returncode: Optional[int]
    excerpt: str = ""


@dataclass
class QualityReport:
    results: List[QualityCheckResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(result.passed for result in self.results)

    def render(self) -> str:
        summary = "All quality checks passed!" if self.all_passed else "Some quality checks failed!"
        if not self.results:
            return "No quality checks configured or detected."
        blocks = []
        for result in self.results:
            mark = "✓" if result.passed else "✗"
            block = f"{mark} {result.command}"
            if result.excerpt:
                block = f"{block}\n{result.excerpt}"
            blocks.append(block)
        return summary + "\n\n" + "\n\n".join(blocks)


def discover_default_commands(project_root: Union[str, Path]) -> List[str]:
    """Probe for runnable checks when none are configured."""

    root = Path(project_root)
    candidates: List[tuple[str, str]] = []
    if any((root / marker).exists() for marker in _PYTHON_MARKERS):
        candidates.extend(_PYTHON_CANDIDATES)
    if (root / "package.json").exists():
        candidates.extend(_NODE_CANDIDATES)

    commands: List[str] = []
    for tool, command in candidates:
        if shutil.which(tool) and command not in commands:
            commands.append(command)
    return commands


def _excerpt(stdout: Optional[str], stderr: Optional[str]) -> str:
    combined = "\n".join(part.strip() for part in (stdout, stderr) if part and part.strip())
    if len(combined) <= EXCERPT_LIMIT:
        return combined
    return combined[:EXCERPT_LIMIT].rstrip() + "\n... (truncated)"


@log_action("quality_checks")
def run_quality_checks(
    commands: Iterable[str],
    cwd: Union[str, Path],
    *,
    timeout: Optional[float] = None,
) -> QualityReport:
    """Run every command to completion, in order, and report pass/fail.

    Commands are shell-style strings so pipelines and ``||`` fallbacks work
    the way they do in a terminal.
    """

    report = QualityReport()
    command_list: Sequence[str] = list(commands)
    for command in command_list:
        logger.info("Running quality check: %s", command)
        try:
            result = subprocess.run(
                command,
                shell=True,
                cwd=Path(cwd),
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            stdout = exc.stdout.decode() if isinstance(exc.stdout, bytes) else exc.stdout
            report.results.append(
                QualityCheckResult(
                    command=command,
                    passed=False,
                    returncode=None,
                    excerpt=_excerpt(stdout, f"timed out after {timeout}s"),
                )
            )
            continue
        except OSError as exc:
            report.results.append(
                QualityCheckResult(command=command, passed=False, returncode=None, excerpt=str(exc))
            )
            continue

        passed = result.returncode == 0
        if not passed:
            logger.warning("Quality check failed (exit %s): %s", result.returncode, command)
        report.results.append(
            QualityCheckResult(
                command=command,
                passed=passed,
                returncode=result.returncode,
                excerpt=_excerpt(result.stdout, result.stderr),
            )
        )
    return report
