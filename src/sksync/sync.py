"""SKSync orchestrator — sync every configured skill, a few at a time.

Per skill:
    validate config -> skip decision (unless forced) -> confirm overwrite
    of local edits -> dry-run stop -> fetch -> agent fan-out -> FetchResult

One skill's failure never stops the others. Results come back in config
order no matter which skill finished first.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from .agents import AgentLinker
from .config import SyncConfig
from .errors import ConfigError, describe_error
from .fetchers import Fetcher, build_fetchers, get_fetcher
from .models import FetchResult, SkillConfig, SkillType, SyncSummary, sanitize_skill_name
from .paths import ensure_within
from .skip import should_skip_sync

logger = logging.getLogger("sksync.sync")

MAX_CONCURRENT_SYNCS = 5

ConfirmCallback = Callable[[str, str], Union[bool, Awaitable[bool]]]
ResultCallback = Callable[[FetchResult], None]


def _split_entry(entry: Any) -> tuple[Any, Any]:
    """(name, raw config) from a ``{name: {...}}`` entry, tuple or SkillConfig."""
    if isinstance(entry, SkillConfig):
        return entry.name, entry
    if isinstance(entry, tuple) and len(entry) == 2:
        return entry
    if isinstance(entry, dict) and len(entry) == 1:
        return next(iter(entry.items()))
    raise ConfigError("Skill entry must be a mapping with exactly one key", {"entry": repr(entry)[:100]})


def _duplicate_names(entries: list[Any]) -> dict[int, str]:
    """Positions of entries that repeat an earlier skill name.

    Names are compared case-insensitively, since two such names share a
    content directory on case-insensitive filesystems.
    """
    seen: set[str] = set()
    duplicates: dict[int, str] = {}
    for index, entry in enumerate(entries):
        try:
            name = sanitize_skill_name(_split_entry(entry)[0])
        except ConfigError:
            continue
        if name.casefold() in seen:
            duplicates[index] = name
        else:
            seen.add(name.casefold())
    return duplicates


def _duplicate_result(skill_name: str) -> FetchResult:
    error = ConfigError(f'Duplicate skill name "{skill_name}"', {"skill": skill_name})
    logger.error("Invalid skill %r: %s", skill_name, error.detailed_message())
    return FetchResult(skill_name=skill_name, success=False, error=error.detailed_message())


class SkillSyncer:
    """Runs the per-skill sync pipeline over a list of skills.

    Args:
        skills_path: Root of the local skill store.
        fetchers: Skill type -> fetcher (default: ``build_fetchers()``).
        linker: Agent fan-out manager (default: ``AgentLinker()``).
        confirm: Asked ``(skill_name, reason)`` before overwriting local
            edits; may be sync or async. Without one, local edits are kept.
        max_concurrency: Most skills in flight at once.
        on_result: Called with each FetchResult as soon as it is ready.
    """

    def __init__(
        self,
        skills_path: Path,
        fetchers: Optional[dict[SkillType, Fetcher]] = None,
        linker: Optional[AgentLinker] = None,
        confirm: Optional[ConfirmCallback] = None,
        max_concurrency: int = MAX_CONCURRENT_SYNCS,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self.skills_path = Path(skills_path)
        self.fetchers = fetchers if fetchers is not None else build_fetchers()
        self.linker = linker if linker is not None else AgentLinker()
        self.confirm = confirm
        self.max_concurrency = max(1, int(max_concurrency))
        self.on_result = on_result
        self._prompt_lock: Optional[asyncio.Lock] = None

    async def sync_all(
        self,
        entries: Iterable[Any],
        dry_run: bool = False,
        force: Optional[Iterable[str]] = None,
    ) -> list[FetchResult]:
        """Sync every entry with bounded concurrency.

        Args:
            entries: ``{name: config}`` mappings, ``(name, config)`` pairs or SkillConfigs.
            dry_run: Report what would happen without fetching or linking.
            force: Skill names to fetch even when up to date.

        Returns:
            list[FetchResult]: One per entry, in input order. An entry that
            repeats an earlier skill name fails without being fetched.
        """
        entries = list(entries)
        forced = frozenset(force or ())
        duplicates = _duplicate_names(entries)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        self._prompt_lock = asyncio.Lock()

        async def run(index: int, entry: Any) -> FetchResult:
            if index in duplicates:
                result = _duplicate_result(duplicates[index])
            else:
                async with semaphore:
                    result = await self.sync_one(entry, dry_run=dry_run, force=forced)
            if self.on_result is not None:
                self.on_result(result)
            return result

        return list(await asyncio.gather(*(run(i, e) for i, e in enumerate(entries))))

    async def sync_one(
        self,
        entry: Any,
        dry_run: bool = False,
        force: frozenset[str] = frozenset(),
    ) -> FetchResult:
        """Run the whole pipeline for one skill. Never raises."""
        raw_name: Any = "<invalid>"
        try:
            raw_name, raw = _split_entry(entry)
            skill_name = sanitize_skill_name(raw_name)
            config = SkillConfig.from_entry(skill_name, raw)
        except ConfigError as exc:
            message = describe_error(exc)
            logger.error("Invalid skill %r: %s", raw_name, message)
            return FetchResult(skill_name=str(raw_name), success=False, error=message)

        try:
            return await self._sync_config(config, dry_run, skill_name in force)
        except Exception as exc:
            message = describe_error(exc)
            logger.error("Failed to sync %s: %s", skill_name, message, exc_info=logger.isEnabledFor(logging.DEBUG))
            return FetchResult(skill_name=skill_name, success=False, error=message)

    async def _sync_config(self, config: SkillConfig, dry_run: bool, forced: bool) -> FetchResult:
        skill_name = config.name
        reason = "forced" if forced else None

        if not forced:
            decision = await should_skip_sync(skill_name, config, self.skills_path)
            if decision.should_skip:
                logger.info("Skipped %s: %s", skill_name, decision.reason)
                return FetchResult(
                    skill_name=skill_name, success=True, skipped=True, reason=decision.reason
                )
            reason = decision.reason

            if decision.needs_interaction and not dry_run:
                if not await self._confirm_overwrite(skill_name, decision.reason):
                    logger.info("Kept local changes in %s", skill_name)
                    return FetchResult(
                        skill_name=skill_name, success=True, skipped=True, reason=decision.reason
                    )

        if dry_run:
            return FetchResult(
                skill_name=skill_name,
                success=True,
                reason=f"would sync from {config.remote} ({config.type.value}): {reason}",
            )

        fetcher = get_fetcher(self.fetchers, config.type)
        await fetcher.fetch(skill_name, config, self.skills_path)
        linked = await self._fan_out(skill_name, config)
        logger.info("Synced %s (linked: %s)", skill_name, ", ".join(linked) or "none")
        return FetchResult(skill_name=skill_name, success=True, reason=reason, linked_agents=linked)

    async def _confirm_overwrite(self, skill_name: str, reason: str) -> bool:
        if self.confirm is None:
            return False
        lock = self._prompt_lock or asyncio.Lock()
        async with lock:
            if inspect.iscoroutinefunction(self.confirm):
                answer = await self.confirm(skill_name, reason)
            else:
                answer = await asyncio.to_thread(self.confirm, skill_name, reason)
                if inspect.isawaitable(answer):
                    answer = await answer
        return bool(answer)

    async def _fan_out(self, skill_name: str, config: SkillConfig) -> list[str]:
        content_dir = self.skills_path / skill_name
        try:
            return await asyncio.to_thread(self.linker.link, skill_name, content_dir, config.agents)
        except Exception as exc:
            logger.warning("Failed to create some symlinks for %s: %s", skill_name, describe_error(exc))
            return []


async def sync_skills(
    config: SyncConfig,
    dry_run: bool = False,
    force: Optional[Iterable[str]] = None,
    **kwargs: Any,
) -> list[FetchResult]:
    """Sync everything in a loaded config. Extra kwargs go to SkillSyncer."""
    kwargs.setdefault("max_concurrency", config.max_concurrency)
    syncer = SkillSyncer(config.resolved_skills_path, **kwargs)
    return await syncer.sync_all(config.skills, dry_run=dry_run, force=force)


def summarize(results: Iterable[FetchResult]) -> SyncSummary:
    """Count successful, skipped and failed skills."""
    summary = SyncSummary()
    for result in results:
        if not result.success:
            summary.failed += 1
        elif result.skipped:
            summary.skipped += 1
        else:
            summary.successful += 1
    return summary


def has_failures(results: Iterable[FetchResult]) -> bool:
    return any(not r.success for r in results)


def remove_skill(
    skill_name: str,
    skills_path: Path,
    linker: Optional[AgentLinker] = None,
    keep_files: bool = False,
) -> list[str]:
    """Unlink a skill from every agent and delete its content directory.

    Returns:
        list[str]: Agents whose symlink was removed.
    """
    skill_name = sanitize_skill_name(skill_name)
    linker = linker or AgentLinker()
    removed = linker.unlink(skill_name)

    if not keep_files:
        skill_dir = ensure_within(skills_path, Path(skills_path) / skill_name)
        if skill_dir.is_symlink():
            skill_dir.unlink()
        elif skill_dir.is_dir():
            shutil.rmtree(skill_dir)
    return removed
