"""Per-skill sync metadata, stored beside the synced content.

Layout:
    ~/.agents/skills/
        my-skill/
            SKILL.md
            .sksync.json        # remote, ref, type, lastSync, contentHash

Anything unreadable or incomplete loads as None so the next sync
re-fetches instead of trusting a record it cannot verify.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .errors import FileSystemError
from .hashing import METADATA_FILENAME
from .models import SyncMetadata

logger = logging.getLogger("sksync.metadata")


def metadata_path(skill_dir: Path) -> Path:
    return Path(skill_dir) / METADATA_FILENAME


def metadata_exists(skill_dir: Path) -> bool:
    """Check whether a skill directory has a metadata file at all."""
    return metadata_path(skill_dir).is_file()


def load_metadata(skill_dir: Path) -> Optional[SyncMetadata]:
    """Load a skill's sync metadata.

    Args:
        skill_dir: The skill content directory.

    Returns:
        SyncMetadata, or None when missing, malformed or incomplete.
    """
    path = metadata_path(skill_dir)
    if not path.exists():
        return None

    try:
        return SyncMetadata.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as exc:
        logger.warning("Invalid metadata in %s, will re-sync: %s", path, exc.errors()[0]["msg"])
        return None
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Failed to read metadata %s, will re-sync: %s", path, exc)
        return None


def save_metadata(skill_dir: Path, metadata: SyncMetadata) -> None:
    """Atomically write a skill's sync metadata.

    The record goes to a temp file in the same directory and is renamed
    over the old one, so readers see either the old or the new record.

    Raises:
        FileSystemError: If the write fails.
    """
    skill_dir = Path(skill_dir)
    target = metadata_path(skill_dir)
    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".sksync-", suffix=".tmp", dir=skill_dir)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(metadata.to_json())
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, target)
        tmp_name = None
    except OSError as exc:
        raise FileSystemError(
            f"Failed to save metadata: {exc}", {"skill_dir": str(skill_dir)}
        ) from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.debug("Could not remove temp metadata file %s", tmp_name)
