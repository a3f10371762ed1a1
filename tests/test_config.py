from pathlib import Path

import pytest
import yaml

from ralph.config import CONFIG_FILENAME, RalphConfig, load_config, merge_overrides
from ralph.errors import ConfigError


def _write_config(root: Path, data) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_defaults_without_config_file(tmp_path):
    config = load_config(project_root=tmp_path)

    assert config.project_root == tmp_path
    assert config.backlog_path == tmp_path / "prd.json"
    assert config.progress_path == tmp_path / "progress.txt"
    assert config.state_path == tmp_path / ".ralph" / "state.json"
    assert config.stop_file_path == tmp_path / ".ralph" / "run-state.txt"
    assert config.max_iterations == 10
    assert config.worker_timeout == 300.0
    assert config.worker_command == ["pi", "-p"]
    assert config.trust_completion_marker is True
    assert config.prompt_template_path is None


def test_reads_yaml_sections(tmp_path):
    (tmp_path / "prompt.md").write_text("Iteration $iteration\n", encoding="utf-8")
    _write_config(
        tmp_path,
        {
            "paths": {"backlog": "plans/prd.json", "progress": "notes/progress.txt"},
            "loop": {"max_iterations": 4, "delay_seconds": 0, "trust_completion_marker": False},
            "worker": {"command": "claude --print", "timeout_seconds": 0, "prompt_template": "prompt.md"},
            "quality": {"commands": ["pytest -q", "  "]},
            "logging": {"level": "debug", "file": None},
        },
    )

    config = load_config(project_root=tmp_path)

    assert config.backlog_path == tmp_path / "plans" / "prd.json"
    assert config.progress_path == tmp_path / "notes" / "progress.txt"
    assert config.max_iterations == 4
    assert config.delay_seconds == 0
    assert config.trust_completion_marker is False
    assert config.worker_command == ["claude", "--print"]
    assert config.worker_timeout == 0
    assert config.prompt_template_path == tmp_path / "prompt.md"
    assert config.quality_commands == ["pytest -q"]
    assert config.log_level == "debug"
    assert config.log_path is None


def test_explicit_path_sets_project_root(tmp_path):
    nested = tmp_path / "project"
    nested.mkdir()
    path = _write_config(nested, {"loop": {"max_iterations": 2}})

    config = load_config(path)

    assert config.project_root == nested.resolve()
    assert config.max_iterations == 2


def test_missing_explicit_path_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_non_mapping_config_raises(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(project_root=tmp_path)


def test_invalid_values_fall_back_to_defaults(tmp_path):
    config = RalphConfig.from_mapping(
        {
            "loop": {"max_iterations": "many", "delay_seconds": -1},
            "worker": {"command": [], "timeout_seconds": "soon"},
        },
        project_root=tmp_path,
    )

    assert config.max_iterations == 10
    assert config.delay_seconds == 1.0
    assert config.worker_command == ["pi", "-p"]
    assert config.worker_timeout == 300.0


def test_overrides_win_over_file(tmp_path):
    _write_config(tmp_path, {"worker": {"timeout_seconds": 60, "command": ["a"]}})

    config = load_config(
        project_root=tmp_path,
        overrides={"worker": {"timeout_seconds": 5}, "loop": {"delay_seconds": 0}},
    )

    assert config.worker_timeout == 5
    assert config.worker_command == ["a"]
    assert config.delay_seconds == 0


def test_merge_overrides_is_deep_and_non_mutating():
    base = {"loop": {"max_iterations": 10, "delay_seconds": 1}}

    merged = merge_overrides(base, {"loop": {"delay_seconds": 0}})

    assert merged == {"loop": {"max_iterations": 10, "delay_seconds": 0}}
    assert base["loop"]["delay_seconds"] == 1


def test_state_dir_is_hidden_from_git(tmp_path):
    config = load_config(project_root=tmp_path)

    directory = config.ensure_state_dir()

    assert directory == tmp_path / ".ralph"
    assert (directory / ".gitignore").read_text(encoding="utf-8") == "*\n"

    (directory / ".gitignore").write_text("state.json\n", encoding="utf-8")
    config.ensure_state_dir()
    assert (directory / ".gitignore").read_text(encoding="utf-8") == "state.json\n"


def test_missing_prompt_template_is_a_config_error(tmp_path):
    _write_config(tmp_path, {"worker": {"prompt_template": "prompts/missing.md"}})

    with pytest.raises(ConfigError, match="missing.md"):
        load_config(project_root=tmp_path)
