"""SKSync data models — skill config, sync metadata and per-skill results.

A configured skill is one of four source types:
  - GIT_FILE: a single file inside a git repository
  - GIT_FOLDER: a folder inside a git repository
  - GIT_REPO: an entire git repository
  - GIST: a file from a GitHub gist
"""

from __future__ import annotations

import enum
import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

SKILL_NAME_MAX_LENGTH = 100
MARKDOWN_EXTENSIONS = (".md", ".markdown")

_SKILL_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class SkillType(str, enum.Enum):
    """Where a skill's content comes from."""

    GIT_FILE = "GIT_FILE"
    GIT_FOLDER = "GIT_FOLDER"
    GIT_REPO = "GIT_REPO"
    GIST = "GIST"

    @property
    def is_git(self) -> bool:
        return self is not SkillType.GIST


_TYPE_ALIASES = {
    "FILE": SkillType.GIT_FILE,
    "FOLDER": SkillType.GIT_FOLDER,
    "REPO": SkillType.GIT_REPO,
}


def sanitize_skill_name(name: Any) -> str:
    """Validate a skill name for use as a directory and symlink name.

    Names may contain letters, digits, dots, dashes and underscores, must
    start with a letter or digit and never contain ``..``.

    Args:
        name: The raw name from the config.

    Returns:
        str: The trimmed, validated name.

    Raises:
        ConfigError: If the name is unsafe or malformed.
    """
    if not isinstance(name, str) or not name.strip():
        raise ConfigError("Skill name must be a non-empty string", {"name": repr(name)})

    cleaned = name.strip()
    if len(cleaned) > SKILL_NAME_MAX_LENGTH:
        raise ConfigError(
            f"Skill name is longer than {SKILL_NAME_MAX_LENGTH} characters",
            {"name": cleaned[:SKILL_NAME_MAX_LENGTH]},
        )
    if ".." in cleaned or not _SKILL_NAME_RE.match(cleaned):
        raise ConfigError(
            "Skill name may only contain letters, digits, '.', '-' and '_'",
            {"name": cleaned},
        )
    return cleaned


def validate_filename(filename: str) -> str:
    """Check a gist filename is a bare Markdown file name."""
    if not filename or "/" in filename or "\\" in filename or ".." in filename:
        raise ConfigError("Filename must be a plain file name", {"filename": filename})
    if not filename.lower().endswith(MARKDOWN_EXTENSIONS):
        raise ConfigError(
            f"Filename must end with one of: {', '.join(MARKDOWN_EXTENSIONS)}",
            {"filename": filename},
        )
    return filename


class SkillConfig(BaseModel):
    """One configured skill. Immutable for the duration of a sync run."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Unique skill identifier, also the content directory name")
    type: SkillType = Field(description="Source type")
    remote: str = Field(description="Source URL")
    ref: Optional[str] = Field(default=None, description="Branch, tag, commit SHA or gist revision")
    filename: Optional[str] = Field(default=None, description="File to pick from a multi-file gist")
    agents: Optional[tuple[str, ...]] = Field(
        default=None, description="Consumer ids to link into (all when absent)"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return sanitize_skill_name(v)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> Any:
        """Accept FILE / FOLDER / REPO as short forms and any casing."""
        if isinstance(v, str):
            upper = v.strip().upper()
            return _TYPE_ALIASES.get(upper, upper)
        return v

    @field_validator("remote")
    @classmethod
    def validate_remote(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Remote URL cannot be empty")
        return v.strip()

    @field_validator("ref", mode="before")
    @classmethod
    def normalize_ref(cls, v: Any) -> Any:
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError(f"ref must be a string, got {type(v).__name__}")
        return v.strip() or None

    @field_validator("agents", mode="before")
    @classmethod
    def normalize_agents(cls, v: Any) -> Any:
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        unique = list(dict.fromkeys(str(a).strip() for a in v if str(a).strip()))
        return tuple(unique) or None

    @model_validator(mode="after")
    def validate_remote_for_type(self) -> "SkillConfig":
        """The remote must parse as a URL of the configured type."""
        from .urls import parse_gist_url, parse_git_url

        if self.type is SkillType.GIST:
            parse_gist_url(self.remote)
            if self.filename is not None:
                validate_filename(self.filename)
        else:
            if self.filename is not None:
                raise ConfigError(
                    "filename is only supported for GIST skills", {"type": self.type.value}
                )
            parse_git_url(self.remote, self.type)
        return self

    @classmethod
    def from_entry(cls, name: str, raw: Any) -> "SkillConfig":
        """Build a SkillConfig from a ``{name: {...}}`` config entry.

        Raises:
            ConfigError: With the skill name in context, whatever was wrong.
        """
        if isinstance(raw, SkillConfig):
            return raw
        if not isinstance(raw, dict):
            raise ConfigError(
                f'Skill "{name}" must be a mapping, got {type(raw).__name__}', {"skill": name}
            )
        try:
            return cls.model_validate({**raw, "name": name})
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigError(f'Skill "{name}" is invalid: {problems}', {"skill": name}) from exc
        except ConfigError as exc:
            raise exc.with_context(skill=name)


class SyncMetadata(BaseModel):
    """What was last synced into a skill directory.

    Stored as ``.sksync.json`` next to the content. A record missing any of
    remote, type, lastSync or contentHash is treated as absent.
    """

    model_config = ConfigDict(populate_by_name=True)

    remote: str = Field(min_length=1)
    ref: str = Field(default="")
    type: SkillType
    last_sync: datetime = Field(alias="lastSync")
    content_hash: str = Field(alias="contentHash", min_length=1)

    @field_validator("ref", mode="before")
    @classmethod
    def none_ref_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class SkipDecision(BaseModel):
    """Whether a skill needs fetching, and why."""

    should_skip: bool
    reason: str
    needs_interaction: bool = Field(
        default=False, description="Local content drifted from the recorded hash"
    )


class FetchResult(BaseModel):
    """Outcome of one skill in one sync run."""

    skill_name: str
    success: bool
    error: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    linked_agents: list[str] = Field(default_factory=list)


class SyncSummary(BaseModel):
    """Counts over a list of FetchResults."""

    successful: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.successful + self.skipped + self.failed
