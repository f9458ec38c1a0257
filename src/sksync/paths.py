"""Path helpers: home expansion and containment checks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from .errors import ConfigError, PathTraversalError


def resolve_home_path(path: str | Path, home: Optional[Path] = None) -> Path:
    """Expand a leading ``~`` (against ``home`` when given) and normalise.

    Raises:
        ConfigError: For an empty path.
    """
    text = str(path) if path is not None else ""
    if not text.strip():
        raise ConfigError("File path must be a non-empty string", {"path": repr(path)})

    if text == "~" or text.startswith("~/"):
        base = Path(home) if home is not None else Path.home()
        text = str(base) + text[1:]
    return Path(os.path.normpath(os.path.abspath(text)))


def is_within(base: Path, target: Path) -> bool:
    """True when ``target`` is ``base`` or lies below it, after normalising ``..``."""
    resolved_base = os.path.normpath(os.path.abspath(base))
    resolved_target = os.path.normpath(os.path.abspath(target))
    return resolved_target == resolved_base or resolved_target.startswith(resolved_base + os.sep)


def ensure_within(base: Path, target: Path, message: Optional[str] = None) -> Path:
    """Return the normalised target, refusing anything outside ``base``.

    Raises:
        PathTraversalError: If ``target`` escapes ``base``.
    """
    if not is_within(base, target):
        raise PathTraversalError(
            message or "Invalid path: resolves outside allowed directory",
            {
                "base": os.path.normpath(os.path.abspath(base)),
                "target": os.path.normpath(os.path.abspath(target)),
            },
        )
    return Path(os.path.normpath(os.path.abspath(target)))


def ensure_owned_path(base: Path, target: Path) -> Path:
    """Like ``ensure_within``, for paths the sync engine writes into or clears.

    The target must not be a symlink, and its real location must stay inside
    the real ``base``, so a link planted in the store cannot redirect writes.

    Raises:
        PathTraversalError: If ``target`` is a symlink or resolves outside ``base``.
    """
    target = ensure_within(base, target)
    if target.is_symlink():
        raise PathTraversalError(
            "Refusing to write through a symlink", {"target": str(target)}
        )
    if not is_within(Path(base).resolve(), target.resolve()):
        raise PathTraversalError(
            "Invalid path: resolves outside allowed directory",
            {"base": str(Path(base).resolve()), "target": str(target.resolve())},
        )
    return target
