"""Content fingerprinting for skill directories.

The digest covers every regular file's relative path and bytes, so any
edit, addition, removal or rename changes it. Hidden directories
(``.git`` and friends) and the skill's own metadata record are left out.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from .errors import FileSystemError

METADATA_FILENAME = ".sksync.json"

_CHUNK_SIZE = 64 * 1024


def _collect_files(root: Path) -> list[str]:
    """Relative POSIX paths of all regular files under root, unsorted."""
    files: list[str] = []
    stack = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    if not entry.name.startswith("."):
                        stack.append(Path(entry.path))
                elif entry.is_file(follow_symlinks=False):
                    files.append(Path(entry.path).relative_to(root).as_posix())
    return files


def hash_file(path: Path) -> str:
    """SHA-256 hex digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def compute_content_hash(directory: Path) -> str:
    """Deterministic SHA-256 fingerprint of a directory's contents.

    Args:
        directory: The skill content directory.

    Returns:
        str: Hex digest over sorted (relative path, file digest) pairs.

    Raises:
        FileSystemError: If the tree or any file cannot be read.
    """
    root = Path(directory)
    try:
        files = sorted(_collect_files(root))
    except OSError as exc:
        raise FileSystemError(
            f"Failed to list files for hashing: {exc}", {"directory": str(root)}
        ) from exc

    digest = hashlib.sha256()
    for rel in files:
        if rel == METADATA_FILENAME:
            continue
        try:
            file_digest = hash_file(root / rel)
        except OSError as exc:
            raise FileSystemError(
                f"Failed to hash file: {exc}", {"directory": str(root), "path": rel}
            ) from exc
        digest.update(rel.encode("utf-8"))
        digest.update(file_digest.encode("ascii"))
    return digest.hexdigest()
