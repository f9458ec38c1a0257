"""Low-level transports: the git CLI and HTTP over httpx.

These know nothing about skills. They turn process exits and HTTP
statuses into classified SyncErrors so the retry policy can tell
transient failures from permanent ones.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Optional

import httpx

from .errors import DependencyError, GitError, NetworkError, NotFoundError
from .retry import RetryPolicy, is_transient_message, with_retry
from .urls import is_commit_sha

logger = logging.getLogger("sksync.transport")

GIT_TIMEOUT_S = 300.0
REQUIRED_COMMANDS = ("git",)
RETRYABLE_STATUSES = frozenset({429, 502, 503, 504})


def check_dependencies() -> None:
    """Make sure external programs the fetchers shell out to are installed.

    Raises:
        DependencyError: Listing every missing command.
    """
    missing = [cmd for cmd in REQUIRED_COMMANDS if shutil.which(cmd) is None]
    if missing:
        raise DependencyError(
            f"Missing required dependencies: {', '.join(missing)}. "
            "Please install them and try again.",
            {"missing": missing},
        )


async def run_git(*args: str, cwd: Optional[Path] = None, timeout: float = GIT_TIMEOUT_S) -> str:
    """Run a git command and return its stdout.

    Raises:
        GitError: On a non-zero exit or timeout. The message carries git's
            stderr so network failures in it remain recognisable.
    """
    proc = await asyncio.create_subprocess_exec(
        "git",
        *args,
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise GitError(
            f"git {args[0]} timed out after {timeout:g}s", {"command": args[0]}, retryable=True
        ) from exc

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
        raise GitError(
            f"git {args[0]} failed: {detail}",
            {"command": args[0]},
            retryable=is_transient_message(detail),
        )
    return stdout.decode(errors="replace")


async def clone_repository(
    repo_url: str,
    dest: Path,
    ref: str,
    policy: Optional[RetryPolicy] = None,
) -> None:
    """Clone ``repo_url`` at ``ref`` into ``dest``.

    Branches and tags get a shallow single-branch clone. Commit SHAs cannot
    be fetched that way, so they get a full clone followed by a checkout.
    """

    async def attempt() -> None:
        if dest.exists():
            shutil.rmtree(dest)
        if is_commit_sha(ref):
            await run_git("clone", "--quiet", repo_url, str(dest))
        else:
            await run_git("clone", "--quiet", "--depth", "1", "--branch", ref, repo_url, str(dest))

    await with_retry(attempt, f"cloning {repo_url}", policy)

    if is_commit_sha(ref):
        await run_git("checkout", "--quiet", ref, cwd=dest)


async def http_get(client: httpx.AsyncClient, url: str, headers: Optional[dict[str, str]] = None) -> httpx.Response:
    """GET a URL and classify failures.

    Raises:
        NotFoundError: On 404.
        NetworkError: On any other error status (retryable only for
            429/502/503/504) or a transport failure (retryable).
    """
    try:
        response = await client.get(url, headers=headers)
    except httpx.TimeoutException as exc:
        raise NetworkError(f"Request timed out: {exc}", {"url": url}, retryable=True) from exc
    except httpx.TransportError as exc:
        raise NetworkError(f"Request failed: {exc}", {"url": url}, retryable=True) from exc

    status = response.status_code
    if status == 404:
        raise NotFoundError("Remote resource not found (HTTP 404)", {"url": url})
    if status >= 400:
        raise NetworkError(
            f"HTTP {status} {response.reason_phrase}",
            {"url": url},
            retryable=status in RETRYABLE_STATUSES,
            status_code=status,
        )
    return response
