"""SKSync CLI — keep agent skills in sync from the terminal.

Commands:
    sync        Fetch every configured skill and link it into agents
    list        Show configured skills, linked agents and last sync
    add         Add a skill to the config
    remove      Remove a skill, its files and its agent symlinks
    agents      Show the agent skill directories SKSync links into
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .agents import AgentLinker
from .config import (
    add_skill_to_config,
    default_skills_path,
    load_config,
    read_raw_config,
    remove_skill_from_config,
    resolve_config_path,
)
from .errors import ConfigError, SyncError, describe_error
from .metadata import load_metadata
from .models import FetchResult, SkillConfig, SkillType, sanitize_skill_name
from .paths import resolve_home_path
from .sync import has_failures, remove_skill, summarize, sync_skills
from .transport import check_dependencies

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _fail(prefix: str, exc: BaseException) -> None:
    console.print(f"[red]{prefix}:[/red] {escape(describe_error(exc))}")
    sys.exit(1)


def _print_result(result: FetchResult) -> None:
    name = f"[cyan]{escape(result.skill_name)}[/cyan]"
    if not result.success:
        console.print(f"[red]✗[/red] {name} - [red]Failed[/red]: {escape(result.error or '')}")
    elif result.skipped:
        console.print(f"[yellow]⊘[/yellow] {name} - [yellow]Skipped[/yellow]: {escape(result.reason or '')}")
    elif result.reason and result.reason.startswith("would sync"):
        console.print(f"[blue]→[/blue] {name} - {escape(result.reason)}")
    else:
        agents = ", ".join(result.linked_agents) or "no agents"
        console.print(f"[green]✓[/green] {name} - [green]Synced successfully[/green] ({agents})")


def _confirm_overwrite(skill_name: str, reason: str) -> bool:
    return click.confirm(
        f"{skill_name}: {reason}. Overwrite local changes?", default=False, err=True
    )


@click.group()
@click.version_option(__version__, prog_name="sksync")
def main() -> None:
    """SKSync — Sovereign Skill Sync.

    Pull skills from git repositories and gists into one local store and
    link them into every agent's skill directory.
    """


@main.command()
@click.option("--config", "-c", "config_option", default=None, help="Path to config file.")
@click.option("--dry-run", "-d", is_flag=True, help="Show what would be synced without making changes.")
@click.option("--force", "-f", "force", multiple=True, help="Re-fetch this skill even if up to date (repeatable).")
@click.option("--yes", "-y", is_flag=True, help="Overwrite locally modified skills without asking.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def sync(config_option: str | None, dry_run: bool, force: tuple[str, ...], yes: bool, verbose: bool) -> None:
    """Sync all skills from the config file."""
    _setup_logging(verbose)
    console.print("[bold]SKSync[/bold]\n")

    config_path = resolve_config_path(config_option)
    try:
        config = load_config(config_path)
        if not dry_run:
            check_dependencies()
    except SyncError as exc:
        _fail("Error", exc)
        return

    console.print(f"[dim]Config loaded from: {config_path}[/dim]")
    console.print(f"[dim]Skills path: {config.resolved_skills_path}[/dim]")
    console.print(f"[dim]Skills to sync: {len(config.skills)}[/dim]\n")
    if dry_run:
        console.print("[yellow]DRY RUN MODE - No changes will be made[/yellow]\n")

    confirm = (lambda name, reason: True) if yes else _confirm_overwrite
    results = asyncio.run(
        sync_skills(config, dry_run=dry_run, force=force, confirm=confirm, on_result=_print_result)
    )

    summary = summarize(results)
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"[green]✓[/green] Successful: {summary.successful}")
    if summary.skipped:
        console.print(f"[yellow]⊘[/yellow] Skipped: {summary.skipped}")
    if summary.failed:
        console.print(f"[red]✗[/red] Failed: {summary.failed}")

    if has_failures(results):
        sys.exit(1)


@main.command("list")
@click.option("--config", "-c", "config_option", default=None, help="Path to config file.")
@click.option("--agent", default=None, help="Only show skills linked into this agent.")
@click.option("--verbose", "-v", is_flag=True, help="Show remote, ref and missing links.")
def list_skills(config_option: str | None, agent: str | None, verbose: bool) -> None:
    """Show configured skills."""
    config_path = resolve_config_path(config_option)
    if not config_path.exists():
        console.print("[yellow]No configuration file found.[/yellow]")
        console.print(f"[dim]Expected location: {config_path}[/dim]")
        console.print("[dim]Add your first skill with:[/dim] [cyan]sksync add NAME --type TYPE --remote URL[/cyan]")
        return

    linker = AgentLinker()
    try:
        config = load_config(config_path)
        if agent:
            linker.validate_agents([agent])
    except ConfigError as exc:
        _fail("Error", exc)
        return

    table = Table(title="Configured Skills")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Agents", style="green")
    table.add_column("Last Sync")
    if verbose:
        table.add_column("Remote")
        table.add_column("Ref", style="yellow")
        table.add_column("Missing Links", style="red")

    shown = 0
    for name, raw in config.entries():
        raw = raw if isinstance(raw, dict) else {}
        linked = linker.linked_agents(name) if _safe_name(name) else []
        if agent and agent not in linked:
            continue

        metadata = load_metadata(config.resolved_skills_path / name) if _safe_name(name) else None
        last_sync = metadata.last_sync.strftime("%Y-%m-%d %H:%M:%S") if metadata else "-"
        row = [name, str(raw.get("type", "?")), ", ".join(linked) or "[dim]none[/dim]", last_sync]
        if verbose:
            configured = raw.get("agents") or []
            missing = [a for a in configured if a not in linked]
            row += [str(raw.get("remote", "")), str(raw.get("ref") or "-"), ", ".join(missing) or "-"]
        table.add_row(*row)
        shown += 1

    if not shown:
        console.print(f"[dim]No skills found for agent '{agent}'.[/dim]" if agent else "[dim]No skills configured.[/dim]")
        return
    console.print(table)


def _safe_name(name: str) -> bool:
    try:
        sanitize_skill_name(name)
    except ConfigError:
        return False
    return True


@main.command()
@click.argument("name")
@click.option("--type", "skill_type", required=True, type=click.Choice([t.value for t in SkillType], case_sensitive=False), help="Source type.")
@click.option("--remote", required=True, help="Source URL.")
@click.option("--ref", default=None, help="Branch, tag, commit SHA or gist revision.")
@click.option("--filename", default=None, help="File to take from a multi-file gist.")
@click.option("--agent", "agents", multiple=True, help="Only link into this agent (repeatable).")
@click.option("--config", "-c", "config_option", default=None, help="Path to config file.")
@click.option("--force", is_flag=True, help="Replace an existing entry with the same name.")
def add(name: str, skill_type: str, remote: str, ref: str | None, filename: str | None,
        agents: tuple[str, ...], config_option: str | None, force: bool) -> None:
    """Add a skill to the config file."""
    config_path = resolve_config_path(config_option)
    try:
        if agents:
            AgentLinker().validate_agents(agents)
        skill = SkillConfig.from_entry(
            name,
            {"type": skill_type, "remote": remote, "ref": ref, "filename": filename, "agents": list(agents) or None},
        )
        add_skill_to_config(config_path, skill, overwrite=force)
    except ConfigError as exc:
        _fail("Add failed", exc)
        return

    console.print(f"\n[green]Added:[/green] {skill.name} ({skill.type.value})")
    console.print(f"  Remote: {skill.remote}")
    console.print(f"  Config: {config_path}")
    console.print("\nNext: [cyan]sksync sync[/cyan]")


@main.command()
@click.argument("name")
@click.option("--config", "-c", "config_option", default=None, help="Path to config file.")
@click.option("--keep-files", is_flag=True, help="Keep the synced content directory.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation.")
def remove(name: str, config_option: str | None, keep_files: bool, yes: bool) -> None:
    """Remove a skill: files, agent symlinks and config entry."""
    config_path = resolve_config_path(config_option)
    if not yes:
        if not click.confirm(f"Remove skill '{name}'?"):
            return

    try:
        raw = read_raw_config(config_path)
        skills_path = resolve_home_path(raw.get("skillsPath") or default_skills_path())
        unlinked = remove_skill(name, skills_path, keep_files=keep_files)
        found = remove_skill_from_config(config_path, name)
    except (SyncError, OSError) as exc:
        _fail("Remove failed", exc)
        return

    if not found:
        console.print(f"[yellow]Not in config:[/yellow] {name}")
    console.print(f"[green]Removed:[/green] {name}")
    console.print(f"  Unlinked from: {', '.join(unlinked) or 'no agents'}")


@main.command()
def agents() -> None:
    """Show the agent skill directories SKSync links into."""
    linker = AgentLinker()
    table = Table(title="Agents")
    table.add_column("Agent", style="cyan")
    table.add_column("Skills Directory")
    table.add_column("Exists", style="green")
    for agent_id in linker.agent_ids:
        path = linker.agent_path(agent_id)
        table.add_row(agent_id, str(path), "yes" if Path(path).is_dir() else "[dim]no[/dim]")
    console.print(table)


if __name__ == "__main__":
    main()
