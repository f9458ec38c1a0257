"""Remote URL parsing and ref resolution.

Supported remotes:
    https://github.com/<owner>/<repo>[.git]
    https://github.com/<owner>/<repo>/blob/<ref>/<path>     (GIT_FILE)
    https://github.com/<owner>/<repo>/tree/<ref>/<path>     (GIT_FOLDER)
    git@github.com:<owner>/<repo>.git
    https://gist.github.com/[<user>/]<id>[/<revision>]       (GIST)

GitLab, Bitbucket and other hosts are accepted for cloning; raw file
downloads are GitHub-only.
"""

from __future__ import annotations

import os
import re
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

from pydantic import BaseModel

from .errors import ConfigError, InvalidRemoteError
from .models import SkillType

if TYPE_CHECKING:
    from .models import SkillConfig

DEFAULT_GIT_REF = "main"
DEFAULT_GIST_REF = "latest"

GITHUB_RAW_CONTENT_URL = "https://raw.githubusercontent.com"
GITHUB_API_URL = "https://api.github.com"
GITHUB_TOKEN_ENV_VAR = "GITHUB_TOKEN"
USER_AGENT = "sksync/0.1"

_COMMIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{7,64}$")
_GIST_RE = re.compile(r"^/(?:([\w-]+)/)?(\w+)(?:/([0-9a-fA-F]{7,64}))?/?$")
_SSH_RE = re.compile(r"^git@([\w.-]+):(.+)$")
_PLATFORMS = {
    "github.com": "github",
    "gitlab.com": "gitlab",
    "bitbucket.org": "bitbucket",
}


class ParsedGitUrl(BaseModel):
    """Components of a git remote URL."""

    host: str
    owner: str
    repo: str
    ref: Optional[str] = None
    path: Optional[str] = None
    platform: str = "generic"


def resolve_ref(config_ref: Optional[str], url_ref: Optional[str], default: str = DEFAULT_GIT_REF) -> str:
    """Pick the ref to sync: config value, then URL value, then default."""
    if config_ref:
        return config_ref
    if url_ref:
        return url_ref
    return default


def is_commit_sha(ref: str) -> bool:
    """True for short (7+) or full (40 / 64 char) hex commit ids."""
    return bool(_COMMIT_SHA_RE.match(ref))


def parse_git_url(url: str, skill_type: SkillType) -> ParsedGitUrl:
    """Parse a git remote into owner, repo and optional ref / path.

    Args:
        url: HTTPS or SSH remote URL.
        skill_type: GIT_FILE, GIT_FOLDER or GIT_REPO.

    Returns:
        ParsedGitUrl: The parsed components.

    Raises:
        ConfigError: If the URL cannot be parsed.
    """
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("Git URL must be a non-empty string", {"type": skill_type.value})

    raw = url.strip()
    ssh = _SSH_RE.match(raw)
    if ssh:
        raw = f"https://{ssh.group(1)}/{ssh.group(2)}"

    parsed = urlparse(raw)
    if parsed.scheme not in ("https", "http") or not parsed.netloc:
        raise ConfigError(
            "Git URL must be an https:// or git@ URL", {"url": url[:100], "type": skill_type.value}
        )

    host = parsed.netloc.lower()
    platform = _PLATFORMS.get(host, "generic")
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise ConfigError(
            "Git URL must contain owner and repo", {"url": url[:100], "type": skill_type.value}
        )

    owner = parts[0]
    repo = parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if any(p == ".." for p in parts):
        raise ConfigError("Git URL must not contain '..' segments", {"url": url[:100]})

    ref: Optional[str] = None
    path: Optional[str] = None
    rest = parts[2:]

    if platform == "github" and len(rest) > 2 and (
        (skill_type is SkillType.GIT_FILE and rest[0] == "blob")
        or (skill_type is SkillType.GIT_FOLDER and rest[0] == "tree")
    ):
        ref = rest[1]
        path = "/".join(rest[2:])
    elif rest and skill_type in (SkillType.GIT_FILE, SkillType.GIT_FOLDER):
        path = "/".join(rest)

    return ParsedGitUrl(host=host, owner=owner, repo=repo, ref=ref, path=path, platform=platform)


def parse_gist_url(url: str) -> tuple[str, Optional[str]]:
    """Extract the gist id and optional revision from a gist URL.

    Raises:
        ConfigError: If this is not a gist.github.com URL.
    """
    if not isinstance(url, str) or not url.strip():
        raise ConfigError("Invalid Gist URL: empty")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ("https", "http") or parsed.netloc.lower() != "gist.github.com":
        raise ConfigError("Invalid Gist URL: must be on gist.github.com", {"url": url[:100]})

    match = _GIST_RE.match(parsed.path)
    if not match:
        raise ConfigError("Could not extract Gist ID from URL", {"url": url[:100]})
    return match.group(2), match.group(3)


def build_repository_url(parsed: ParsedGitUrl) -> str:
    return f"https://{parsed.host}/{parsed.owner}/{parsed.repo}.git"


def build_raw_url(parsed: ParsedGitUrl, ref: str, path: Optional[str] = None) -> str:
    """Raw-content URL for a single file (GitHub only).

    Raises:
        InvalidRemoteError: For non-GitHub hosts.
    """
    if parsed.platform != "github":
        raise InvalidRemoteError(
            f"Raw file download is not supported for platform: {parsed.platform}",
            {"host": parsed.host},
        )
    file_path = path or parsed.path or ""
    return f"{GITHUB_RAW_CONTENT_URL}/{parsed.owner}/{parsed.repo}/{ref}/{file_path}"


def build_gist_api_url(gist_id: str, revision: Optional[str] = None) -> str:
    if revision and revision != DEFAULT_GIST_REF:
        return f"{GITHUB_API_URL}/gists/{gist_id}/{revision}"
    return f"{GITHUB_API_URL}/gists/{gist_id}"


def effective_ref(config: "SkillConfig") -> str:
    """The ref a sync of this skill resolves to (config > URL > default)."""
    if config.type is SkillType.GIST:
        _, revision = parse_gist_url(config.remote)
        return resolve_ref(config.ref, revision, DEFAULT_GIST_REF)
    parsed = parse_git_url(config.remote, config.type)
    return resolve_ref(config.ref, parsed.ref, DEFAULT_GIT_REF)


def github_headers(accept: str = "application/vnd.github.v3+json") -> dict[str, str]:
    """Request headers for GitHub, with a token when GITHUB_TOKEN is set."""
    headers = {"Accept": accept, "User-Agent": USER_AGENT}
    token = os.environ.get(GITHUB_TOKEN_ENV_VAR)
    if token:
        headers["Authorization"] = f"token {token}"
    return headers
