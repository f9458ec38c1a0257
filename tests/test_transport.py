"""Tests for the git and HTTP transports (git itself is never run)."""

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from sksync.errors import DependencyError, GitError, NetworkError, NotFoundError
from sksync.retry import RetryPolicy
from sksync.transport import check_dependencies, clone_repository, http_get

FAST = RetryPolicy(max_retries=3, initial_backoff=0, max_backoff=0)
REPO = "https://github.com/acme/skills.git"


class FakeGit:
    """Records git invocations; fails the first ``failures`` clones."""

    def __init__(self, failures: int = 0, retryable: bool = True):
        self.failures = failures
        self.retryable = retryable
        self.calls: list[tuple[str, ...]] = []

    async def __call__(self, *args, cwd=None, timeout=None):
        self.calls.append(args)
        if args[0] == "clone":
            dest = Path(args[-1])
            dest.mkdir(parents=True)
            (dest / "partial").write_text("x")
            if self.failures:
                self.failures -= 1
                raise GitError("git clone failed: Connection reset by peer", retryable=self.retryable)
        return ""


class TestCloneRepository:
    """Branches, SHAs and retries."""

    @pytest.mark.asyncio
    async def test_branch_is_shallow(self, tmp_path: Path):
        git = FakeGit()
        with patch("sksync.transport.run_git", git):
            await clone_repository(REPO, tmp_path / "repo", "v1.2", FAST)
        assert git.calls == [
            ("clone", "--quiet", "--depth", "1", "--branch", "v1.2", REPO, str(tmp_path / "repo"))
        ]

    @pytest.mark.asyncio
    async def test_sha_full_clone_then_checkout(self, tmp_path: Path):
        git = FakeGit()
        with patch("sksync.transport.run_git", git):
            await clone_repository(REPO, tmp_path / "repo", "3f2a9c1", FAST)
        assert git.calls == [
            ("clone", "--quiet", REPO, str(tmp_path / "repo")),
            ("checkout", "--quiet", "3f2a9c1"),
        ]

    @pytest.mark.asyncio
    async def test_retries_and_clears_partial_clone(self, tmp_path: Path):
        """A half-written destination is removed before the next attempt."""
        git = FakeGit(failures=2)
        with patch("sksync.transport.run_git", git):
            await clone_repository(REPO, tmp_path / "repo", "main", FAST)
        assert len(git.calls) == 3

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, tmp_path: Path):
        git = FakeGit(failures=5, retryable=False)
        with patch("sksync.transport.run_git", git):
            with pytest.raises(GitError):
                await clone_repository(REPO, tmp_path / "repo", "main", FAST)
        assert len(git.calls) == 1


class TestHttpGet:
    """Status classification."""

    @staticmethod
    async def _get(status: int):
        transport = httpx.MockTransport(lambda request: httpx.Response(status, text="body"))
        async with httpx.AsyncClient(transport=transport) as client:
            return await http_get(client, "https://example.com/x")

    @pytest.mark.asyncio
    async def test_ok(self):
        response = await self._get(200)
        assert response.text == "body"

    @pytest.mark.asyncio
    async def test_404(self):
        with pytest.raises(NotFoundError):
            await self._get(404)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,retryable", [(401, False), (403, False), (500, False),
                                                  (429, True), (503, True)])
    async def test_error_statuses(self, status: int, retryable: bool):
        with pytest.raises(NetworkError) as exc_info:
            await self._get(status)
        assert exc_info.value.retryable is retryable
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_connection_error_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(NetworkError) as exc_info:
                await http_get(client, "https://example.com/x")
        assert exc_info.value.retryable is True


class TestCheckDependencies:
    def test_git_present(self):
        with patch("sksync.transport.shutil.which", return_value="/usr/bin/git"):
            check_dependencies()

    def test_git_missing(self):
        with patch("sksync.transport.shutil.which", return_value=None):
            with pytest.raises(DependencyError, match="git"):
                check_dependencies()
