"""SKSync configuration — the skills list, read from YAML or JSON.

Example (~/.agents/sksync.yaml):

    skillsPath: ~/.agents/skills
    maxConcurrency: 5
    skills:
      - pdf-tools:
          type: GIT_FOLDER
          remote: https://github.com/acme/skills/tree/main/pdf-tools
          agents: [claude-code, codex]
      - review-notes:
          type: GIST
          remote: https://gist.github.com/alice/54509080b47614a9218e7948497d7764
          filename: REVIEW.md

Loading only checks the file's shape. Each skill entry is validated by the
syncer so one bad entry fails on its own instead of failing the whole run.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import SKILLS_PATH
from .errors import ConfigError
from .models import SkillConfig
from .paths import resolve_home_path

CONFIG_PATH_ENV = "SKSYNC_CONFIG_PATH"
SKILLS_PATH_ENV = "SKSYNC_SKILLS_PATH"
DEFAULT_CONFIG_PATH = "~/.agents/sksync.yaml"
DEFAULT_MAX_CONCURRENCY = 5


def default_skills_path() -> str:
    """SKSYNC_SKILLS_PATH if set, else ~/.agents/skills."""
    return os.environ.get(SKILLS_PATH_ENV) or SKILLS_PATH


def resolve_config_path(cli_option: Optional[str] = None) -> Path:
    """Config path precedence: CLI option > SKSYNC_CONFIG_PATH > default."""
    if cli_option:
        return resolve_home_path(cli_option)
    env = os.environ.get(CONFIG_PATH_ENV)
    if env:
        return resolve_home_path(env)
    return resolve_home_path(DEFAULT_CONFIG_PATH)


class SyncConfig(BaseModel):
    """A loaded configuration file."""

    model_config = ConfigDict(populate_by_name=True)

    skills_path: str = Field(default_factory=default_skills_path, alias="skillsPath")
    max_concurrency: int = Field(
        default=DEFAULT_MAX_CONCURRENCY, ge=1, le=32, alias="maxConcurrency"
    )
    skills: list[dict[str, Any]] = Field(min_length=1)

    @field_validator("skills_path", mode="before")
    @classmethod
    def default_when_empty(cls, v: Any) -> Any:
        return v or default_skills_path()

    @field_validator("skills")
    @classmethod
    def single_key_entries(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for index, entry in enumerate(v):
            if len(entry) != 1:
                raise ValueError(f"skills[{index}] must have exactly one key (the skill name)")
        return v

    @property
    def resolved_skills_path(self) -> Path:
        return resolve_home_path(self.skills_path)

    def entries(self) -> list[tuple[str, Any]]:
        """(name, raw config) pairs in file order."""
        return [next(iter(entry.items())) for entry in self.skills]

    def skill_names(self) -> list[str]:
        return [name for name, _ in self.entries()]


def read_raw_config(path: Path) -> dict[str, Any]:
    """Read a config file into a plain dict without validating skills.

    Raises:
        ConfigError: If the file is missing, unreadable or not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", {"config_path": str(path)})
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Failed to read config file: {exc}", {"config_path": str(path)}) from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid config file: {exc}", {"config_path": str(path)}) from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Config must be a mapping, got {type(raw).__name__}", {"config_path": str(path)}
        )
    return raw


def load_config(path: Path) -> SyncConfig:
    """Load and shape-check a configuration file.

    Args:
        path: YAML or JSON config file.

    Returns:
        SyncConfig: With ``~`` still unexpanded in ``skills_path``.

    Raises:
        ConfigError: If the file is missing, unparsable or the wrong shape.
    """
    raw = read_raw_config(path)
    try:
        return SyncConfig.model_validate(raw)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid config: {problems}", {"config_path": str(path)}) from exc


def save_config(path: Path, data: dict[str, Any]) -> None:
    """Write a raw config dict back to disk (JSON for .json, YAML otherwise)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".json":
        text = json.dumps(data, indent=2) + "\n"
    else:
        text = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to write config file: {exc}", {"config_path": str(path)}) from exc


def skill_to_entry(skill: SkillConfig) -> dict[str, Any]:
    """Serialise a SkillConfig as a ``{name: {...}}`` config entry."""
    body = skill.model_dump(mode="json", exclude={"name"}, exclude_none=True)
    if "agents" in body:
        body["agents"] = list(body["agents"])
    return {skill.name: body}


def add_skill_to_config(path: Path, skill: SkillConfig, overwrite: bool = False) -> None:
    """Append a skill to the config file, creating the file if needed.

    Raises:
        ConfigError: If a skill with the same name exists and ``overwrite`` is False.
    """
    path = Path(path)
    data = read_raw_config(path) if path.exists() else {"skillsPath": default_skills_path()}
    skills = data.setdefault("skills", [])
    if not isinstance(skills, list):
        raise ConfigError('Config "skills" must be a list', {"config_path": str(path)})

    for index, entry in enumerate(skills):
        if isinstance(entry, dict) and skill.name in entry:
            if not overwrite:
                raise ConfigError(
                    f'Skill "{skill.name}" already exists in config', {"skill": skill.name}
                )
            skills[index] = skill_to_entry(skill)
            break
    else:
        skills.append(skill_to_entry(skill))

    save_config(path, data)


def remove_skill_from_config(path: Path, skill_name: str) -> bool:
    """Drop a skill entry from the config file.

    Returns:
        bool: True if an entry was removed.
    """
    data = read_raw_config(path)
    skills = data.get("skills") or []
    kept = [e for e in skills if not (isinstance(e, dict) and skill_name in e)]
    if len(kept) == len(skills):
        return False
    data["skills"] = kept
    save_config(path, data)
    return True


def skill_names_from_config(path: Path) -> list[str]:
    """Names of all configured skills, in file order."""
    data = read_raw_config(path)
    names: list[str] = []
    for entry in data.get("skills") or []:
        if isinstance(entry, dict):
            names.extend(str(k) for k in entry)
    return names
