"""Source fetchers — one per skill type, all sharing the same staging protocol.

Every fetch:
    1. resolves the ref (config > URL > default)
    2. retrieves content into a private temp directory
    3. checks every path stays inside the directory it belongs to
    4. clears the skill directory and copies the staged content in
    5. hashes the result and writes .sksync.json
    6. removes the temp directory, success or not

Nothing touches the skill directory until step 4, so a failed download
leaves the previous sync intact.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Protocol

import httpx

from .errors import (
    ConfigError,
    FileSystemError,
    GitError,
    InvalidRemoteError,
    NetworkError,
    NotFoundError,
    SyncError,
)
from .hashing import compute_content_hash
from .metadata import save_metadata
from .models import MARKDOWN_EXTENSIONS, SkillConfig, SkillType, SyncMetadata
from .paths import ensure_owned_path, ensure_within
from .retry import DEFAULT_TIMEOUT_S, RetryPolicy, with_retry_and_timeout
from .transport import clone_repository, http_get
from .urls import (
    ParsedGitUrl,
    build_gist_api_url,
    build_raw_url,
    build_repository_url,
    effective_ref,
    github_headers,
    parse_gist_url,
    parse_git_url,
)

logger = logging.getLogger("sksync.fetchers")

TEMP_DIR_PREFIX = "sksync-"


class Fetcher(Protocol):
    """Anything that can materialise a skill into ``skills_path / skill_name``."""

    async def fetch(self, skill_name: str, config: SkillConfig, skills_path: Path) -> None: ...


def clear_directory(directory: Path) -> None:
    """Delete everything inside ``directory`` but keep the directory itself."""
    for child in directory.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def install_staged(source: Path, skills_path: Path, skill_name: str) -> Path:
    """Replace a skill directory's contents with staged content.

    Args:
        source: Staged file or directory.
        skills_path: Root of the local skill store.
        skill_name: Sanitised skill name.

    Returns:
        Path: The skill content directory.

    Raises:
        PathTraversalError: If the skill directory is a symlink or lives
            outside the store.
    """
    skill_dir = ensure_owned_path(skills_path, Path(skills_path) / skill_name)
    if skill_dir == ensure_within(skills_path, Path(skills_path)):
        raise FileSystemError("Skill directory must not be the skills root", {"skill": skill_name})

    skill_dir.mkdir(parents=True, exist_ok=True)
    clear_directory(skill_dir)

    if source.is_dir():
        shutil.copytree(
            source,
            skill_dir,
            symlinks=True,
            dirs_exist_ok=True,
            ignore=shutil.ignore_patterns(".git"),
        )
    else:
        shutil.copy2(source, skill_dir / source.name)
    return skill_dir


def _remove_staging(staging: Path) -> None:
    try:
        shutil.rmtree(staging)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to clean up temporary directory %s: %s", staging, exc)


class BaseFetcher:
    """Staging, validation, install and metadata shared by every source type.

    Subclasses implement ``_stage`` and return the staged path to install.

    Args:
        policy: Retry policy for network operations.
        timeout: Per-attempt deadline in seconds for HTTP requests.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    error_class: type[SyncError] = GitError

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.transport = transport

    async def fetch(self, skill_name: str, config: SkillConfig, skills_path: Path) -> None:
        """Fetch one skill into ``skills_path / skill_name`` and record metadata.

        Raises:
            SyncError: Classified by source type, with skill, remote and ref
                in its context.
        """
        skills_path = Path(skills_path)
        ref = effective_ref(config)

        try:
            staging = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix=TEMP_DIR_PREFIX))
        except OSError as exc:
            raise FileSystemError(
                "Failed to create temporary directory", {"skill": skill_name}
            ) from exc

        try:
            source = await self._stage(skill_name, config, ref, staging)
            ensure_within(staging, source)
            skill_dir = await asyncio.to_thread(install_staged, source, skills_path, skill_name)
            content_hash = await asyncio.to_thread(compute_content_hash, skill_dir)
            await asyncio.to_thread(
                save_metadata,
                skill_dir,
                SyncMetadata(
                    remote=config.remote,
                    ref=ref,
                    type=config.type,
                    last_sync=datetime.now(timezone.utc),
                    content_hash=content_hash,
                ),
            )
            logger.debug("Synced %s from %s@%s (%s)", skill_name, config.remote, ref, content_hash[:12])
        except SyncError as exc:
            raise exc.with_context(skill=skill_name, remote=config.remote, ref=ref)
        except Exception as exc:
            raise self.error_class(
                f'Failed to fetch {config.type.value} for skill "{skill_name}": {exc}',
                {"skill": skill_name, "remote": config.remote, "ref": ref},
            ) from exc
        finally:
            await asyncio.to_thread(_remove_staging, staging)

    async def _stage(self, skill_name: str, config: SkillConfig, ref: str, staging: Path) -> Path:
        raise NotImplementedError

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport, timeout=self.timeout, follow_redirects=True
        )

    async def _download(self, client: httpx.AsyncClient, url: str, accept: str) -> httpx.Response:
        return await with_retry_and_timeout(
            lambda: http_get(client, url, github_headers(accept)),
            f"downloading {url}",
            self.policy,
            self.timeout,
        )


class _GitCloneFetcher(BaseFetcher):
    """Shared clone step for folder and whole-repository skills."""

    error_class = GitError

    async def _clone(self, parsed: ParsedGitUrl, ref: str, staging: Path) -> Path:
        dest = staging / "repo"
        await clone_repository(build_repository_url(parsed), dest, ref, self.policy)
        return dest


class GitFileFetcher(BaseFetcher):
    """A single file from a GitHub repository, via raw.githubusercontent.com."""

    error_class = NetworkError

    async def _stage(self, skill_name: str, config: SkillConfig, ref: str, staging: Path) -> Path:
        parsed = parse_git_url(config.remote, SkillType.GIT_FILE)
        if not parsed.path:
            raise InvalidRemoteError(
                f"GIT_FILE URL must include a file path: {config.remote}", {"remote": config.remote}
            )
        filename = PurePosixPath(parsed.path).name
        if not filename:
            raise InvalidRemoteError("GIT_FILE URL must point at a file", {"remote": config.remote})

        url = build_raw_url(parsed, ref)
        async with self._client() as client:
            response = await self._download(client, url, "application/vnd.github.v3.raw")

        target = ensure_within(staging, staging / filename)
        await asyncio.to_thread(target.write_bytes, response.content)
        return target


class GitFolderFetcher(_GitCloneFetcher):
    """One folder of a git repository."""

    async def _stage(self, skill_name: str, config: SkillConfig, ref: str, staging: Path) -> Path:
        parsed = parse_git_url(config.remote, SkillType.GIT_FOLDER)
        if not parsed.path:
            raise InvalidRemoteError(
                f"GIT_FOLDER URL must include a folder path: {config.remote}",
                {"remote": config.remote},
            )

        repo_dir = await self._clone(parsed, ref, staging)
        source = ensure_within(repo_dir, repo_dir / parsed.path)
        if not source.is_dir():
            raise NotFoundError(
                f"Folder not found in repository: {parsed.path}", {"path": parsed.path}
            )
        return source


class GitRepoFetcher(_GitCloneFetcher):
    """A whole git repository."""

    async def _stage(self, skill_name: str, config: SkillConfig, ref: str, staging: Path) -> Path:
        parsed = parse_git_url(config.remote, SkillType.GIT_REPO)
        return await self._clone(parsed, ref, staging)


class GistFetcher(BaseFetcher):
    """One file of a GitHub gist, via the gists API."""

    error_class = NetworkError

    async def _stage(self, skill_name: str, config: SkillConfig, ref: str, staging: Path) -> Path:
        gist_id, _ = parse_gist_url(config.remote)
        url = build_gist_api_url(gist_id, ref)

        async with self._client() as client:
            response = await self._download(client, url, "application/vnd.github.v3+json")
            try:
                data = response.json()
            except ValueError as exc:
                raise InvalidRemoteError("Gist API returned invalid JSON", {"url": url}) from exc

            name, entry = select_gist_file(data.get("files") or {}, config.filename)
            content = entry.get("content")
            if entry.get("truncated") or content is None:
                raw_url = entry.get("raw_url")
                if not raw_url:
                    raise InvalidRemoteError("Gist file has no content", {"filename": name})
                raw = await self._download(client, raw_url, "text/plain")
                content = raw.text

        safe_name = PurePosixPath(name).name
        if not safe_name or safe_name in (".", ".."):
            raise InvalidRemoteError("Gist file has an unusable name", {"filename": name})
        target = ensure_within(staging, staging / safe_name)
        await asyncio.to_thread(target.write_text, content, encoding="utf-8")
        return target


def select_gist_file(files: dict[str, Any], filename: Optional[str]) -> tuple[str, dict[str, Any]]:
    """Pick the gist file to sync.

    The configured filename wins; otherwise the first Markdown file by
    name; otherwise the gist's only file.

    Raises:
        NotFoundError: If the configured file is missing or the gist is empty.
        InvalidRemoteError: If the choice is ambiguous.
    """
    if not files:
        raise NotFoundError("Gist has no files")

    if filename:
        if filename not in files:
            raise NotFoundError(
                f"File '{filename}' not found in gist",
                {"filename": filename, "available": sorted(files)},
            )
        return filename, files[filename]

    markdown = sorted(n for n in files if n.lower().endswith(MARKDOWN_EXTENSIONS))
    if markdown:
        return markdown[0], files[markdown[0]]
    if len(files) == 1:
        name = next(iter(files))
        return name, files[name]
    raise InvalidRemoteError(
        "Gist has several files and none is Markdown; set 'filename'",
        {"available": sorted(files)},
    )


def build_fetchers(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    policy: Optional[RetryPolicy] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
) -> dict[SkillType, Fetcher]:
    """The fetcher for every skill type, built once and handed to the syncer."""
    kwargs: dict[str, Any] = {"policy": policy, "timeout": timeout, "transport": transport}
    return {
        SkillType.GIT_FILE: GitFileFetcher(**kwargs),
        SkillType.GIT_FOLDER: GitFolderFetcher(**kwargs),
        SkillType.GIT_REPO: GitRepoFetcher(**kwargs),
        SkillType.GIST: GistFetcher(**kwargs),
    }


def get_fetcher(fetchers: dict[SkillType, Fetcher], skill_type: SkillType) -> Fetcher:
    """Look up a fetcher, failing with a config error for unknown types."""
    try:
        return fetchers[skill_type]
    except KeyError:
        raise ConfigError(
            f"Unsupported skill type: {skill_type}",
            {"type": str(skill_type), "supported": [t.value for t in fetchers]},
        ) from None
