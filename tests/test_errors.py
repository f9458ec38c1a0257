"""Tests for the error family and path containment helpers."""

from pathlib import Path

import pytest

from sksync.errors import (
    ConfigError,
    ErrorKind,
    GitError,
    NetworkError,
    NotFoundError,
    PathTraversalError,
    SyncTimeoutError,
    describe_error,
)
from sksync.paths import ensure_owned_path, ensure_within, is_within, resolve_home_path


class TestSyncError:
    """Kinds, context and rendering."""

    def test_kinds(self):
        assert ConfigError("x").kind is ErrorKind.CONFIG
        assert NotFoundError("x").kind is ErrorKind.NOT_FOUND
        assert GitError("x").kind is ErrorKind.GIT
        assert SyncTimeoutError("x").kind is ErrorKind.NETWORK

    def test_retryable_defaults(self):
        assert NetworkError("x").retryable is True
        assert NetworkError("x", retryable=False).retryable is False
        assert ConfigError("x").retryable is False

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            raise ConfigError("bad")

    def test_detailed_message(self):
        exc = GitError("clone failed", {"skill": "pdf", "attempts": 3})
        assert exc.detailed_message() == "clone failed (skill: pdf, attempts: 3)"

    def test_detailed_message_without_context(self):
        assert NotFoundError("gone").detailed_message() == "gone"

    def test_with_context_keeps_existing_keys(self):
        exc = NetworkError("x", {"url": "https://a"})
        assert exc.with_context(url="https://b", skill="pdf", ref=None) is exc
        assert exc.context == {"url": "https://a", "skill": "pdf"}

    def test_to_dict(self):
        try:
            try:
                raise OSError("disk full")
            except OSError as inner:
                raise GitError("clone failed", {"skill": "pdf"}) from inner
        except GitError as exc:
            data = exc.to_dict()
        assert data["kind"] == "git"
        assert data["context"] == {"skill": "pdf"}
        assert data["cause"] == "OSError: disk full"

    def test_describe_error(self):
        assert describe_error(GitError("boom", {"ref": "main"})) == "boom (ref: main)"
        assert describe_error(RuntimeError("plain")) == "plain"
        assert describe_error(KeyError()) == "KeyError"


class TestPaths:
    """Home expansion and containment."""

    def test_expands_home(self, tmp_path: Path):
        assert resolve_home_path("~/.agents/skills", tmp_path) == tmp_path / ".agents" / "skills"
        assert resolve_home_path("~", tmp_path) == tmp_path

    def test_normalises(self, tmp_path: Path):
        assert resolve_home_path(str(tmp_path / "a" / ".." / "b")) == tmp_path / "b"

    def test_empty_rejected(self):
        with pytest.raises(ConfigError):
            resolve_home_path("")

    def test_is_within(self, tmp_path: Path):
        assert is_within(tmp_path, tmp_path / "a" / "b")
        assert is_within(tmp_path, tmp_path)
        assert not is_within(tmp_path / "a", tmp_path / "ab")
        assert not is_within(tmp_path / "a", tmp_path / "a" / ".." / "b")

    def test_ensure_within(self, tmp_path: Path):
        assert ensure_within(tmp_path, tmp_path / "x" / ".." / "y") == tmp_path / "y"
        with pytest.raises(PathTraversalError):
            ensure_within(tmp_path / "root", tmp_path / "root" / ".." / "escape")

    def test_ensure_owned_path(self, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        store = tmp_path / "store"
        store.mkdir()
        assert ensure_owned_path(store, store / "pdf") == store / "pdf"

        (store / "link").symlink_to(outside, target_is_directory=True)
        with pytest.raises(PathTraversalError, match="symlink"):
            ensure_owned_path(store, store / "link")
        with pytest.raises(PathTraversalError, match="outside allowed directory"):
            ensure_owned_path(store, store / "link" / "nested")
