"""Skip decisions — can this skill's fetch be avoided?

A skill is up to date when its directory exists, its metadata is valid,
the recorded remote / ref / type match the current config, and the
directory still hashes to the recorded content hash. A hash mismatch
means someone edited the synced files, so the caller has to ask before
overwriting them.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .errors import SyncError
from .hashing import compute_content_hash
from .metadata import load_metadata
from .models import SkillConfig, SkipDecision
from .urls import effective_ref

logger = logging.getLogger("sksync.skip")

REASON_NOT_SYNCED = "not synced yet"
REASON_NO_METADATA = "no valid sync metadata"
REASON_REMOTE_CHANGED = "remote changed"
REASON_REF_CHANGED = "ref changed"
REASON_TYPE_CHANGED = "type changed"
REASON_UP_TO_DATE = "up to date"
REASON_LOCAL_CHANGES = "local modifications detected"
REASON_HASH_FAILED = "could not verify local content"
REASON_NOT_OWNED = "skill directory is a symlink"


async def should_skip_sync(skill_name: str, config: SkillConfig, skills_path: Path) -> SkipDecision:
    """Decide whether ``skill_name`` needs a fetch.

    Args:
        skill_name: Sanitised skill name (its directory under ``skills_path``).
        config: Current configuration for the skill.
        skills_path: Root of the local skill store.

    Returns:
        SkipDecision: ``should_skip`` only when the content provably matches
        what the current config would fetch.
    """
    skill_dir = Path(skills_path) / skill_name
    if skill_dir.is_symlink():
        return SkipDecision(should_skip=False, reason=REASON_NOT_OWNED)
    if not skill_dir.is_dir():
        return SkipDecision(should_skip=False, reason=REASON_NOT_SYNCED)

    metadata = await asyncio.to_thread(load_metadata, skill_dir)
    if metadata is None:
        return SkipDecision(should_skip=False, reason=REASON_NO_METADATA)

    if metadata.remote != config.remote:
        return SkipDecision(should_skip=False, reason=REASON_REMOTE_CHANGED)
    if metadata.ref != effective_ref(config):
        return SkipDecision(should_skip=False, reason=REASON_REF_CHANGED)
    if metadata.type != config.type:
        return SkipDecision(should_skip=False, reason=REASON_TYPE_CHANGED)

    try:
        current_hash = await asyncio.to_thread(compute_content_hash, skill_dir)
    except SyncError as exc:
        logger.warning("Could not hash %s, will re-sync: %s", skill_dir, exc.detailed_message())
        return SkipDecision(should_skip=False, reason=REASON_HASH_FAILED)

    if current_hash == metadata.content_hash:
        return SkipDecision(should_skip=True, reason=REASON_UP_TO_DATE)

    return SkipDecision(should_skip=False, reason=REASON_LOCAL_CHANGES, needs_interaction=True)
