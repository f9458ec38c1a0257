"""Tests for config loading, path precedence and config edits."""

import json
from pathlib import Path

import pytest
import yaml

from sksync.config import (
    CONFIG_PATH_ENV,
    SKILLS_PATH_ENV,
    add_skill_to_config,
    default_skills_path,
    load_config,
    read_raw_config,
    remove_skill_from_config,
    resolve_config_path,
    skill_names_from_config,
)
from sksync.errors import ConfigError
from sksync.models import SkillConfig

CONFIG_YAML = """\
skillsPath: ~/my-skills
maxConcurrency: 3
skills:
  - pdf-tools:
      type: GIT_FOLDER
      remote: https://github.com/acme/skills/tree/main/pdf-tools
      agents: [codex]
  - review:
      type: GIST
      remote: https://gist.github.com/alice/54509080b47614a9
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "sksync.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestResolveConfigPath:
    """CLI option > environment variable > default."""

    def test_cli_option_wins(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "env.yaml"))
        assert resolve_config_path(str(tmp_path / "cli.yaml")) == tmp_path / "cli.yaml"

    def test_env_var(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "env.yaml"))
        assert resolve_config_path() == tmp_path / "env.yaml"

    def test_default(self, monkeypatch, tmp_path: Path):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert resolve_config_path() == tmp_path / ".agents" / "sksync.yaml"

    def test_skills_path_env(self, monkeypatch):
        monkeypatch.setenv(SKILLS_PATH_ENV, "/srv/skills")
        assert default_skills_path() == "/srv/skills"
        monkeypatch.delenv(SKILLS_PATH_ENV)
        assert default_skills_path() == "~/.agents/skills"


class TestLoadConfig:
    """Shape checks on the whole file."""

    def test_load_yaml(self, config_file: Path, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = load_config(config_file)
        assert config.max_concurrency == 3
        assert config.skill_names() == ["pdf-tools", "review"]
        assert config.resolved_skills_path == tmp_path / "my-skills"

    def test_load_json(self, tmp_path: Path):
        path = tmp_path / "sksync.json"
        path.write_text(json.dumps({
            "skills": [{"a": {"type": "GIT_REPO", "remote": "https://github.com/a/b"}}]
        }))
        config = load_config(path)
        assert config.entries() == [("a", {"type": "GIT_REPO", "remote": "https://github.com/a/b"})]
        assert config.max_concurrency == 5

    def test_default_skills_path(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(SKILLS_PATH_ENV, raising=False)
        path = tmp_path / "c.yaml"
        path.write_text("skillsPath: ''\nskills:\n  - a: {type: GIT_REPO, remote: x}\n")
        assert load_config(path).skills_path == "~/.agents/skills"

    def test_bad_skill_does_not_fail_load(self, tmp_path: Path):
        """Individual skills are validated at sync time."""
        path = tmp_path / "c.yaml"
        path.write_text("skills:\n  - ../evil: {type: NOPE}\n")
        assert load_config(path).skill_names() == ["../evil"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize(
        "text,match",
        [
            ("skills: [", "Invalid config file"),
            ("- just\n- a list\n", "must be a mapping"),
            ("skillsPath: x\n", "skills"),
            ("skills: []\n", "skills"),
            ("skills:\n  - a: {}\n    b: {}\n", "exactly one key"),
            ("maxConcurrency: 0\nskills:\n  - a: {}\n", "maxConcurrency"),
        ],
    )
    def test_invalid(self, tmp_path: Path, text: str, match: str):
        path = tmp_path / "c.yaml"
        path.write_text(text)
        with pytest.raises(ConfigError, match=match) as exc_info:
            load_config(path)
        assert exc_info.value.context["config_path"] == str(path)


class TestEditConfig:
    """add / remove entries."""

    def test_add_creates_file(self, tmp_path: Path):
        path = tmp_path / "nested" / "sksync.yaml"
        skill = SkillConfig(name="a", type="GIT_REPO", remote="https://github.com/a/b", agents=["codex"])
        add_skill_to_config(path, skill)

        data = yaml.safe_load(path.read_text())
        assert data["skills"] == [
            {"a": {"type": "GIT_REPO", "remote": "https://github.com/a/b", "agents": ["codex"]}}
        ]
        assert "skillsPath" in data

    def test_add_appends_and_keeps_existing(self, config_file: Path):
        skill = SkillConfig(name="new", type="GIT_REPO", remote="https://github.com/a/b")
        add_skill_to_config(config_file, skill)
        assert skill_names_from_config(config_file) == ["pdf-tools", "review", "new"]
        assert read_raw_config(config_file)["maxConcurrency"] == 3

    def test_add_duplicate(self, config_file: Path):
        skill = SkillConfig(name="review", type="GIT_REPO", remote="https://github.com/a/b")
        with pytest.raises(ConfigError, match="already exists"):
            add_skill_to_config(config_file, skill)

    def test_add_overwrite(self, config_file: Path):
        skill = SkillConfig(name="review", type="GIT_REPO", remote="https://github.com/a/b")
        add_skill_to_config(config_file, skill, overwrite=True)
        entries = load_config(config_file).entries()
        assert entries[1] == ("review", {"type": "GIT_REPO", "remote": "https://github.com/a/b"})

    def test_add_json(self, tmp_path: Path):
        path = tmp_path / "sksync.json"
        add_skill_to_config(path, SkillConfig(name="a", type="GIT_REPO", remote="https://github.com/a/b"))
        assert json.loads(path.read_text())["skills"][0]["a"]["type"] == "GIT_REPO"

    def test_remove(self, config_file: Path):
        assert remove_skill_from_config(config_file, "pdf-tools") is True
        assert skill_names_from_config(config_file) == ["review"]
        assert remove_skill_from_config(config_file, "pdf-tools") is False
