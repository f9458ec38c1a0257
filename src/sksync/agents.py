"""Agent fan-out — symlink synced skills into each agent's skill directory.

Directory layout:
    ~/.agents/skills/
        my-skill/                       # content, owned by the sync engine
    ~/.claude/skills/
        my-skill -> ~/.agents/skills/my-skill
    ~/.codex/skills/
        my-skill -> ~/.agents/skills/my-skill
    ...

Each agent is linked independently: a failure for one agent is logged
and the others still get their link. Only symlinks are ever replaced or
removed; a real file or directory already sitting at the link path is
left alone.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .errors import ConfigError, FileSystemError, PathTraversalError, SyncError, describe_error
from .paths import is_within, resolve_home_path

logger = logging.getLogger("sksync.agents")

AGENT_PATHS: dict[str, str] = {
    "antigravity": "~/.gemini/antigravity/global_skills",
    "claude-code": "~/.claude/skills",
    "codex": "~/.codex/skills",
    "cursor": "~/.cursor/skills",
    "gemini-cli": "~/.gemini/skills",
    "github-copilot": "~/.copilot/skills",
}


def check_link_target(target: Path, allowed_roots: Iterable[Path]) -> None:
    """Refuse link paths that are not strictly inside a known agent directory.

    Raises:
        PathTraversalError: If ``target`` is outside every root.
    """
    roots = list(allowed_roots)
    for root in roots:
        if is_within(root, target) and Path(root) != Path(target):
            return
    raise PathTraversalError(
        "Target path is not within any valid agent directory",
        {"target": str(target), "allowed": [str(r) for r in roots]},
    )


class AgentLinker:
    """Creates and removes per-agent symlinks for skills.

    Args:
        agent_paths: Agent id -> home-relative skill directory
            (default: AGENT_PATHS).
        home: Directory ``~`` expands to (default: the user's home).
    """

    def __init__(
        self,
        agent_paths: Optional[Mapping[str, str]] = None,
        home: Optional[Path] = None,
    ) -> None:
        self.agent_paths = dict(AGENT_PATHS if agent_paths is None else agent_paths)
        self.home = home

    @property
    def agent_ids(self) -> list[str]:
        return list(self.agent_paths)

    def agent_path(self, agent: str) -> Path:
        """Resolved skill directory for an agent.

        Raises:
            ConfigError: For an unknown agent id.
        """
        if agent not in self.agent_paths:
            raise ConfigError(
                f"Invalid agent type: {agent}. Must be one of: {', '.join(self.agent_paths)}",
                {"agent": agent},
            )
        return resolve_home_path(self.agent_paths[agent], self.home)

    def validate_agents(self, agents: Iterable[str]) -> list[str]:
        """Return ``agents`` as a list, or raise ConfigError naming unknown ids."""
        agents = list(agents)
        unknown = [a for a in agents if a not in self.agent_paths]
        if unknown:
            raise ConfigError(
                f"Invalid agent type: {', '.join(unknown)}. "
                f"Must be one of: {', '.join(self.agent_paths)}",
                {"agents": unknown},
            )
        return agents

    def _targets(self, agents: Optional[Iterable[str]]) -> list[str]:
        selected = list(agents or [])
        return selected or self.agent_ids

    def _allowed_roots(self) -> list[Path]:
        return [resolve_home_path(p, self.home) for p in self.agent_paths.values()]

    def link_one(self, skill_name: str, content_dir: Path, agent: str) -> Optional[Path]:
        """Link one skill into one agent directory.

        Returns:
            The symlink path, or None when a real file or directory is in the way.

        Raises:
            SyncError / OSError: On any failure; callers decide how to report it.
        """
        source = Path(content_dir)
        if not source.exists():
            raise FileSystemError("Source path does not exist", {"source": str(source)})

        target = self.agent_path(agent) / skill_name
        check_link_target(target, self._allowed_roots())

        target.parent.mkdir(parents=True, exist_ok=True)

        if target.is_symlink():
            target.unlink()
        elif target.exists():
            logger.warning(
                "%s already exists and is not a symlink. Skipping symlink creation.", target
            )
            return None

        target.symlink_to(source, target_is_directory=source.is_dir())
        return target

    def link(
        self,
        skill_name: str,
        content_dir: Path,
        agents: Optional[Iterable[str]] = None,
    ) -> list[str]:
        """Link a skill into every selected agent (all when ``agents`` is empty).

        Returns:
            list[str]: Agents that now have a symlink to the skill.
        """
        linked: list[str] = []
        for agent in self._targets(agents):
            try:
                if self.link_one(skill_name, content_dir, agent) is not None:
                    linked.append(agent)
            except (SyncError, OSError) as exc:
                logger.error(
                    "Failed to create symlink for skill %s in agent %s: %s",
                    skill_name, agent, describe_error(exc),
                )
        return linked

    def unlink(self, skill_name: str, agents: Optional[Iterable[str]] = None) -> list[str]:
        """Remove a skill's symlinks. Missing links and non-symlinks are left alone.

        Returns:
            list[str]: Agents whose symlink was removed.
        """
        removed: list[str] = []
        for agent in self._targets(agents):
            try:
                target = self.agent_path(agent) / skill_name
                if target.is_symlink():
                    target.unlink()
                    removed.append(agent)
            except (SyncError, OSError) as exc:
                logger.warning(
                    "Failed to remove symlink for skill %s in agent %s: %s",
                    skill_name, agent, describe_error(exc),
                )
        return removed

    def linked_agents(self, skill_name: str) -> list[str]:
        """Agents that currently have a symlink for ``skill_name``."""
        return [
            agent
            for agent in self.agent_ids
            if (self.agent_path(agent) / skill_name).is_symlink()
        ]
