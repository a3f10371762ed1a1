"""Configuration loading for ``ralph.yaml``."""

from __future__ import annotations

import shlex
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from ralph.errors import ConfigError
from ralph.logging import get_logger

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG",
    "RalphConfig",
    "load_config",
    "merge_overrides",
]


logger = get_logger(__name__)

CONFIG_FILENAME = "ralph.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "backlog": "prd.json",
        "progress": "progress.txt",
        "state_dir": ".ralph",
    },
    "loop": {
        "max_iterations": 10,
        "delay_seconds": 1.0,
        "trust_completion_marker": True,
    },
    "worker": {
        "command": ["pi", "-p"],
        "timeout_seconds": 300,
        "prompt_template": None,
        "cli": "ralph",
    },
    "quality": {"commands": []},
    "logging": {"level": None, "file": ".ralph/logs/ralph.log"},
}


def merge_overrides(base: Mapping[str, Any], overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Deep-merge ``overrides`` into a copy of ``base``."""

    merged = deepcopy(dict(base))
    if not overrides:
        return merged

    def merge(target: Dict[str, Any], updates: Mapping[str, Any]) -> None:
        for key, value in updates.items():
            if isinstance(value, Mapping) and isinstance(target.get(key), dict):
                merge(target[key], value)
            else:
                target[key] = deepcopy(value)

    merge(merged, overrides)
    return merged


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name)
    return value if isinstance(value, Mapping) else {}


def _resolve_positive_int(value: Any, *, key: str, default: int) -> int:
    try:
        resolved = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s'; defaulting to %d.", key, value, default)
        return default
    if resolved <= 0:
        logger.warning("%s must be positive; defaulting to %d.", key, default)
        return default
    return resolved


def _resolve_non_negative_float(value: Any, *, key: str, default: float) -> float:
    try:
        resolved = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s'; defaulting to %s.", key, value, default)
        return default
    if resolved < 0:
        logger.warning("%s must not be negative; defaulting to %s.", key, default)
        return default
    return resolved


def _resolve_command(value: Any, *, default: List[str]) -> List[str]:
    if isinstance(value, str):
        parsed = shlex.split(value)
        if parsed:
            return parsed
    elif isinstance(value, (list, tuple)) and value:
        return [str(part) for part in value]
    logger.warning("Invalid worker.command '%s'; defaulting to %s.", value, default)
    return list(default)


def _resolve_commands(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if str(item).strip()]
    logger.warning("Invalid quality.commands '%s'; ignoring.", value)
    return []


@dataclass
class RalphConfig:
    """Resolved settings for one project root."""

    project_root: Path
    backlog_file: str = "prd.json"
    progress_file: str = "progress.txt"
    state_dir: str = ".ralph"
    max_iterations: int = 10
    delay_seconds: float = 1.0
    trust_completion_marker: bool = True
    worker_command: List[str] = field(default_factory=lambda: ["pi", "-p"])
    worker_timeout: float = 300.0
    prompt_template: Optional[str] = None
    worker_cli: str = "ralph"
    quality_commands: List[str] = field(default_factory=list)
    log_level: Optional[str] = None
    log_file: Optional[str] = None

    @classmethod
    def from_mapping(
        cls, data: Optional[Mapping[str, Any]], *, project_root: Union[str, Path]
    ) -> "RalphConfig":
        merged = merge_overrides(DEFAULT_CONFIG, data or {})
        paths = _section(merged, "paths")
        loop = _section(merged, "loop")
        worker = _section(merged, "worker")
        quality = _section(merged, "quality")
        logging_cfg = _section(merged, "logging")
        defaults = DEFAULT_CONFIG

        config = cls(
            project_root=Path(project_root),
            backlog_file=str(paths.get("backlog") or defaults["paths"]["backlog"]),
            progress_file=str(paths.get("progress") or defaults["paths"]["progress"]),
            state_dir=str(paths.get("state_dir") or defaults["paths"]["state_dir"]),
            max_iterations=_resolve_positive_int(
                loop.get("max_iterations"),
                key="loop.max_iterations",
                default=defaults["loop"]["max_iterations"],
            ),
            delay_seconds=_resolve_non_negative_float(
                loop.get("delay_seconds"),
                key="loop.delay_seconds",
                default=defaults["loop"]["delay_seconds"],
            ),
            trust_completion_marker=bool(loop.get("trust_completion_marker", True)),
            worker_command=_resolve_command(
                worker.get("command"), default=defaults["worker"]["command"]
            ),
            worker_timeout=_resolve_non_negative_float(
                worker.get("timeout_seconds"),
                key="worker.timeout_seconds",
                default=float(defaults["worker"]["timeout_seconds"]),
            ),
            prompt_template=worker.get("prompt_template") or None,
            worker_cli=str(worker.get("cli") or defaults["worker"]["cli"]),
            quality_commands=_resolve_commands(quality.get("commands")),
            log_level=logging_cfg.get("level") or None,
            log_file=logging_cfg.get("file") or None,
        )
        template_path = config.prompt_template_path
        if template_path is not None and not template_path.is_file():
            raise ConfigError(f"worker.prompt_template {template_path} does not exist")
        return config

    def _resolve(self, relative: str) -> Path:
        candidate = Path(relative)
        if candidate.is_absolute():
            return candidate
        return self.project_root / candidate

    @property
    def backlog_path(self) -> Path:
        return self._resolve(self.backlog_file)

    @property
    def progress_path(self) -> Path:
        return self._resolve(self.progress_file)

    @property
    def state_dir_path(self) -> Path:
        return self._resolve(self.state_dir)

    @property
    def state_path(self) -> Path:
        return self.state_dir_path / "state.json"

    def ensure_state_dir(self) -> Path:
        """Create the state directory with a ``.gitignore`` that hides it from git."""

        directory = self.state_dir_path
        ignore_file = directory / ".gitignore"
        if directory.resolve() == self.project_root.resolve() or ignore_file.exists():
            return directory
        try:
            directory.mkdir(parents=True, exist_ok=True)
            ignore_file.write_text("*\n", encoding="utf-8")
        except OSError as exc:
            logger.warning("Unable to prepare state directory %s: %s", directory, exc)
        return directory

    @property
    def stop_file_path(self) -> Path:
        return self.state_dir_path / "run-state.txt"

    @property
    def log_path(self) -> Optional[Path]:
        return self._resolve(self.log_file) if self.log_file else None

    @property
    def prompt_template_path(self) -> Optional[Path]:
        return self._resolve(self.prompt_template) if self.prompt_template else None


def load_config(
    config_path: Union[str, Path, None] = None,
    *,
    project_root: Union[str, Path, None] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> RalphConfig:
    """Read ``ralph.yaml`` (if present) and apply ``overrides``.

    Without an explicit path the file is looked up in ``project_root`` (the
    current directory by default). A missing file means defaults.
    """

    root = Path(project_root) if project_root is not None else Path.cwd()
    path = Path(config_path) if config_path is not None else root / CONFIG_FILENAME
    if config_path is not None and project_root is None:
        root = path.resolve().parent

    loaded: Any = {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        if config_path is not None:
            raise ConfigError(f"Configuration file {path} does not exist") from None
        loaded = {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read configuration {path}: {exc}") from exc

    if not isinstance(loaded, Mapping):
        raise ConfigError(f"Configuration {path} must contain a mapping at the top level")

    return RalphConfig.from_mapping(merge_overrides(loaded, overrides), project_root=root)
