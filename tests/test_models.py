"""Tests for SKSync models — skill config validation and results."""

from datetime import datetime, timezone

import pytest

from sksync.errors import ConfigError
from sksync.models import (
    FetchResult,
    SkillConfig,
    SkillType,
    SyncMetadata,
    SyncSummary,
    sanitize_skill_name,
    validate_filename,
)

REPO = "https://github.com/acme/skills"
GIST = "https://gist.github.com/alice/54509080b47614a9"


class TestSanitizeSkillName:
    """Skill names become directory and symlink names."""

    @pytest.mark.parametrize("name", ["pdf-tools", "my_skill", "skill.v2", "A1", "x"])
    def test_accepts_safe_names(self, name: str):
        assert sanitize_skill_name(name) == name

    def test_trims_whitespace(self):
        assert sanitize_skill_name("  pdf-tools ") == "pdf-tools"

    @pytest.mark.parametrize(
        "name",
        ["", "   ", "../etc", "a/b", "a\\b", ".hidden", "-flag", "has space", "a..b", None, 42],
    )
    def test_rejects_unsafe_names(self, name):
        """Traversal, separators, hidden names and non-strings are refused."""
        with pytest.raises(ConfigError):
            sanitize_skill_name(name)

    def test_rejects_long_names(self):
        with pytest.raises(ConfigError, match="longer than 100"):
            sanitize_skill_name("a" * 101)
        assert sanitize_skill_name("a" * 100) == "a" * 100


class TestValidateFilename:
    """Gist filenames must be plain Markdown names."""

    def test_markdown_ok(self):
        assert validate_filename("SKILL.md") == "SKILL.md"
        assert validate_filename("notes.markdown") == "notes.markdown"

    @pytest.mark.parametrize("filename", ["script.py", "dir/SKILL.md", "../SKILL.md", ""])
    def test_rejects(self, filename: str):
        with pytest.raises(ConfigError):
            validate_filename(filename)


class TestSkillConfig:
    """SkillConfig construction and validation."""

    def test_minimal(self):
        skill = SkillConfig(name="tools", type=SkillType.GIT_REPO, remote=REPO)
        assert skill.ref is None
        assert skill.agents is None
        assert skill.type.is_git is True

    def test_type_aliases_and_case(self):
        """Short forms and lowercase type names are accepted."""
        assert SkillConfig(name="a", type="repo", remote=REPO).type is SkillType.GIT_REPO
        assert SkillConfig(name="a", type="git_repo", remote=REPO).type is SkillType.GIT_REPO
        assert SkillConfig(name="a", type="gist", remote=GIST).type is SkillType.GIST

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            SkillConfig(name="a", type="SVN", remote=REPO)

    def test_empty_remote_rejected(self):
        with pytest.raises(ValueError):
            SkillConfig(name="a", type=SkillType.GIT_REPO, remote="   ")

    def test_remote_must_match_type(self):
        """A GitHub repo URL is not a gist, and vice versa."""
        with pytest.raises(ValueError, match="gist.github.com"):
            SkillConfig(name="a", type=SkillType.GIST, remote=REPO)
        with pytest.raises(ValueError):
            SkillConfig(name="a", type=SkillType.GIT_REPO, remote="https://github.com/only-owner")

    def test_blank_ref_becomes_none(self):
        assert SkillConfig(name="a", type="GIT_REPO", remote=REPO, ref="  ").ref is None

    def test_agents_deduplicated(self):
        skill = SkillConfig(
            name="a", type="GIT_REPO", remote=REPO, agents=["codex", "cursor", "codex"]
        )
        assert skill.agents == ("codex", "cursor")

    def test_empty_agents_means_all(self):
        assert SkillConfig(name="a", type="GIT_REPO", remote=REPO, agents=[]).agents is None

    def test_filename_only_for_gists(self):
        ok = SkillConfig(name="a", type="GIST", remote=GIST, filename="REVIEW.md")
        assert ok.filename == "REVIEW.md"
        with pytest.raises(ValueError, match="only supported for GIST"):
            SkillConfig(name="a", type="GIT_REPO", remote=REPO, filename="REVIEW.md")

    def test_frozen(self):
        skill = SkillConfig(name="a", type="GIT_REPO", remote=REPO)
        with pytest.raises(ValueError):
            skill.remote = "https://github.com/other/repo"


class TestFromEntry:
    """Config-file entries become SkillConfigs or ConfigErrors."""

    def test_valid_entry(self):
        skill = SkillConfig.from_entry("pdf", {"type": "GIT_REPO", "remote": REPO})
        assert skill.name == "pdf"

    def test_non_mapping(self):
        with pytest.raises(ConfigError, match="must be a mapping") as exc_info:
            SkillConfig.from_entry("pdf", "https://github.com/acme/skills")
        assert exc_info.value.context["skill"] == "pdf"

    def test_missing_fields(self):
        with pytest.raises(ConfigError, match='Skill "pdf" is invalid') as exc_info:
            SkillConfig.from_entry("pdf", {"type": "GIT_REPO"})
        assert "remote" in str(exc_info.value)

    def test_bad_name(self):
        with pytest.raises(ConfigError):
            SkillConfig.from_entry("../evil", {"type": "GIT_REPO", "remote": REPO})


class TestSyncMetadata:
    """On-disk field names and JSON output."""

    def test_aliases(self):
        meta = SyncMetadata.model_validate(
            {
                "remote": REPO,
                "ref": "main",
                "type": "GIT_REPO",
                "lastSync": "2026-01-01T00:00:00Z",
                "contentHash": "abc",
            }
        )
        assert meta.content_hash == "abc"
        assert meta.last_sync == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_to_json_uses_aliases(self):
        meta = SyncMetadata(
            remote=REPO, ref="main", type=SkillType.GIT_REPO,
            last_sync=datetime(2026, 1, 1, tzinfo=timezone.utc), content_hash="abc",
        )
        text = meta.to_json()
        assert '"contentHash"' in text
        assert '"lastSync"' in text


class TestResults:
    """FetchResult and SyncSummary."""

    def test_fetch_result_defaults(self):
        result = FetchResult(skill_name="a", success=True)
        assert result.skipped is False
        assert result.error is None
        assert result.linked_agents == []

    def test_summary_total(self):
        assert SyncSummary(successful=2, skipped=1, failed=3).total == 6
