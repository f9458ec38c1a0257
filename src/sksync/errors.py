"""SKSync errors — one exception family with a kind and structured context.

Every failure the sync engine raises on purpose is a SyncError. The kind
says which bucket it falls in (config, filesystem, network, ...), the
context carries the details a human needs to diagnose it (skill, remote,
ref, path), and ``retryable`` tells the retry policy whether another
attempt could help.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    """Coarse error taxonomy used for reporting and retry decisions."""

    CONFIG = "config"
    FILE_SYSTEM = "file_system"
    NETWORK = "network"
    NOT_FOUND = "not_found"
    INVALID_REMOTE = "invalid_remote"
    GIT = "git"
    DEPENDENCY = "dependency"


class SyncError(Exception):
    """Base error for everything the sync engine raises deliberately.

    Args:
        message: Human-readable description.
        context: Structured details (skill, remote, ref, path, ...).
        retryable: Whether a retry could plausibly succeed.
    """

    kind: ErrorKind = ErrorKind.FILE_SYSTEM
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = dict(context or {})
        self.retryable = self.default_retryable if retryable is None else retryable

    def with_context(self, **context: Any) -> "SyncError":
        """Add context keys that are not already set and return self."""
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def detailed_message(self) -> str:
        """Message plus rendered context, e.g. ``failed (skill: x, ref: main)``."""
        if not self.context:
            return self.message
        parts = []
        for key, value in self.context.items():
            rendered = value if isinstance(value, str) else json.dumps(value, default=str)
            parts.append(f"{key}: {rendered}")
        return f"{self.message} ({', '.join(parts)})"

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for structured logging."""
        cause = self.__cause__
        return {
            "kind": self.kind.value,
            "message": self.message,
            "context": self.context,
            "retryable": self.retryable,
            "cause": f"{type(cause).__name__}: {cause}" if cause else None,
        }


class ConfigError(SyncError, ValueError):
    """Invalid skill name, type, URL or config file shape. Never retried."""

    kind = ErrorKind.CONFIG


class FileSystemError(SyncError):
    """Permission problems, missing paths, failed writes."""

    kind = ErrorKind.FILE_SYSTEM


class PathTraversalError(FileSystemError):
    """A resolved path escaped the directory it must stay inside."""


class NetworkError(SyncError):
    """HTTP or connection failure. Retryable unless told otherwise."""

    kind = ErrorKind.NETWORK
    default_retryable = True

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, context, retryable)
        self.status_code = status_code


class SyncTimeoutError(NetworkError):
    """An operation exceeded its deadline."""


class NotFoundError(SyncError):
    """The remote resource (file, folder, gist, repo) does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidRemoteError(SyncError):
    """The remote URL cannot be used for the configured skill type."""

    kind = ErrorKind.INVALID_REMOTE


class GitError(SyncError):
    """A git command failed."""

    kind = ErrorKind.GIT


class DependencyError(SyncError):
    """A required external program is not installed."""

    kind = ErrorKind.DEPENDENCY


def describe_error(exc: BaseException) -> str:
    """Single-line message for any exception, rich for SyncErrors."""
    if isinstance(exc, SyncError):
        return exc.detailed_message()
    return str(exc) or type(exc).__name__
