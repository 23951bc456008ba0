"""skillsync CLI — install, toggle and update agent skills across tools."""

from __future__ import annotations

import functools
from dataclasses import dataclass

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from skillsync import __version__
from skillsync.config import Settings
from skillsync.errors import SkillSyncError
from skillsync.logging_config import setup_logging
from skillsync.targets import Scope, ToolTarget

console = Console()

TOOL_CHOICE = click.Choice([tool.value for tool in ToolTarget])

_STATUS_STYLE = {
    "installed": "[green]installed[/]",
    "skipped": "[yellow]skipped[/]",
    "failed": "[red]failed[/]",
    "removed": "[green]removed[/]",
    "not_found": "[dim]not found[/]",
    "moved": "[green]moved[/]",
    "unchanged": "[dim]unchanged[/]",
}


@dataclass
class AppContext:
    settings: Settings
    scope: Scope


def reports_errors(func):
    """Print a SkillSyncError in red and exit with status 1; bad input is a usage error."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SkillSyncError as e:
            console.print(f"[red]Error:[/] {escape(str(e))}")
            raise click.exceptions.Exit(1) from e
        except ValueError as e:
            raise click.UsageError(str(e)) from e

    return wrapper


def _status(value: str) -> str:
    return _STATUS_STYLE.get(value, value)


@click.group()
@click.version_option(version=__version__)
@click.option("--home", default=None, type=click.Path(file_okay=False), help="Home directory for the global scope")
@click.option("--workspace", "-w", default=None, type=click.Path(file_okay=False), help="Use this workspace instead of the global scope")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, home: str | None, workspace: str | None, verbose: bool):
    """skillsync — keep agent skills in sync across coding tools.

    Skills are installed from git repositories (or local directories) into
    the skill folders of Claude Code, Cursor, Codex, OpenCode, Antigravity
    and Droid, globally or per workspace.
    """
    setup_logging(verbose)
    try:
        settings = Settings.from_env(home)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    ctx.obj = AppContext(settings=settings, scope=settings.scope(workspace))


# ── Targets ──────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def targets(app: AppContext):
    """Show the skill roots of every tool in the current scope."""
    table = Table(title=f"Tool roots ({app.scope.label})")
    table.add_column("Tool", style="cyan")
    table.add_column("Active root")
    table.add_column("Inactive root", style="dim")

    for roots in app.scope.all_roots():
        table.add_row(roots.tool.value, str(roots.active), str(roots.inactive))

    console.print(table)


# ── List / show ──────────────────────────────────────────────────────


@main.command(name="list")
@click.option("--tool", "-t", default=None, type=TOOL_CHOICE, help="Only skills installed for this tool")
@click.pass_obj
@reports_errors
def list_skills(app: AppContext, tool: str | None):
    """List installed skills, reconciled with what is on disk."""
    from skillsync.registry.reconciler import list_installed

    skills = list_installed(app.scope)
    if tool:
        skills = [s for s in skills if tool in s.installed_by]

    if not skills:
        console.print("[yellow]No skills installed.[/]")
        return

    table = Table(title=f"Installed skills ({len(skills)}, {app.scope.label})")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Enabled", justify="center")
    table.add_column("Tools")
    table.add_column("Repository")

    for skill in skills:
        enabled = "[green]Y[/]" if skill.enabled else "[red]N[/]"
        name = skill.name if skill.tracked else f"{skill.name} [dim](untracked)[/]"
        table.add_row(
            name,
            skill.version or "-",
            enabled,
            ", ".join(skill.installed_by),
            skill.entry.repository or "",
        )

    console.print(table)
    _warn_orphans(app)


def _warn_orphans(app: AppContext) -> None:
    from skillsync.sync.updater import Updater

    orphans = Updater(app.scope, settings=app.settings).find_orphaned_backups()
    if orphans:
        names = ", ".join(sorted({o.name for o in orphans}))
        console.print(f"[yellow]Interrupted update backups found for {escape(names)}; run `skillsync recover`.[/]")


@main.command()
@click.argument("name")
@click.pass_obj
@reports_errors
def show(app: AppContext, name: str):
    """Show one installed skill: metadata, copies and files."""
    from skillsync.registry.reconciler import describe_skill

    detail = describe_skill(app.scope, name)
    skill = detail.skill
    metadata = skill.entry.metadata

    lines = [
        f"[bold]{escape(skill.name)}[/] {escape(skill.version or '')}",
        escape(skill.entry.description or ""),
        "",
        f"Enabled:    {'yes' if skill.enabled else 'no'}",
        f"Source:     {skill.entry.source}{'' if skill.tracked else ' (untracked)'}",
        f"Repository: {escape((metadata.repository if metadata else None) or '-')}",
    ]
    if metadata and metadata.commit_hash:
        lines.append(f"Commit:     {metadata.commit_hash}")
    if metadata and metadata.tags:
        lines.append(f"Tags:       {', '.join(metadata.tags)}")
    console.print(Panel("\n".join(lines), title="Skill"))

    for tool, path in skill.paths.items():
        console.print(f"  [cyan]{tool.value}[/] ({skill.locations[tool].value}) {path}")

    if detail.files:
        console.print(f"\n[bold]Files ({len(detail.files)}):[/]")
        for f in detail.files:
            console.print(f"  {escape(f)}")


# ── Install / remove ─────────────────────────────────────────────────


def _print_summary(summary) -> None:
    console.print(f"  [bold]{escape(summary.name)}[/]")
    for outcome in summary.outcomes:
        line = f"    {_status(outcome.status.value)} {outcome.tool.value}: {outcome.path}"
        if outcome.error:
            line += f" [red]{escape(outcome.error)}[/]"
        console.print(line)


@main.command()
@click.argument("source")
@click.option("--skill", "-s", "skills", multiple=True, help="Install only these skills (repeatable)")
@click.option("--tool", "-t", "tools", multiple=True, type=TOOL_CHOICE, help="Target tool (repeatable)")
@click.pass_obj
@reports_errors
def install(app: AppContext, source: str, skills: tuple, tools: tuple):
    """Install skills from a git repository or local directory.

    SOURCE is a git URL or a path. Skills already present for a tool are
    skipped, never overwritten.
    """
    from skillsync.sync.installer import Installer

    console.print(f"\n[bold blue]skillsync[/] — Installing from: {escape(source)}\n")

    installer = Installer(app.scope, settings=app.settings)
    report = installer.install_from_source(source, list(skills) or None, list(tools) or None)

    for summary in report.summaries:
        _print_summary(summary)
    for name, reason in report.failures.items():
        console.print(f"  [red]x[/] {escape(name)}: {escape(reason)}")
    if report.commit:
        console.print(f"\n[dim]commit {report.commit[:12]}[/]")


@main.command()
@click.argument("name")
@click.option("--tool", "-t", "tools", multiple=True, required=True, type=TOOL_CHOICE, help="Tool to add (repeatable)")
@click.pass_obj
@reports_errors
def apply(app: AppContext, name: str, tools: tuple):
    """Copy an installed skill to more tools."""
    from skillsync.sync.installer import Installer

    summary = Installer(app.scope, settings=app.settings).apply_to_tools(name, list(tools))
    _print_summary(summary)


@main.command()
@click.argument("name")
@click.pass_obj
@reports_errors
def uninstall(app: AppContext, name: str):
    """Remove a skill from every tool and forget it."""
    from skillsync.sync.installer import Installer

    summary = Installer(app.scope, settings=app.settings).uninstall(name)
    for outcome in summary.outcomes:
        if outcome.status.value != "not_found":
            console.print(f"  {_status(outcome.status.value)} {outcome.tool.value}: {outcome.path}")
    console.print(f"[green]Uninstalled {escape(name)}[/]")


@main.command()
@click.argument("name")
@click.option("--tool", "-t", "tools", multiple=True, required=True, type=TOOL_CHOICE, help="Tool to remove from (repeatable)")
@click.pass_obj
@reports_errors
def remove(app: AppContext, name: str, tools: tuple):
    """Remove a skill from some tools only."""
    from skillsync.sync.installer import Installer

    summary = Installer(app.scope, settings=app.settings).remove_from_tools(name, list(tools))
    for outcome in summary.outcomes:
        console.print(f"  {_status(outcome.status.value)} {outcome.tool.value}: {outcome.path}")
    if summary.registry_entry_deleted:
        console.print(f"[dim]{escape(name)} is no longer installed for any tool[/]")


# ── Enable / disable ─────────────────────────────────────────────────


def _toggle(app: AppContext, name: str, tools: tuple, enabled: bool) -> None:
    from skillsync.sync.toggle import set_enabled

    outcomes = set_enabled(app.scope, name, enabled, list(tools) or None)
    for outcome in outcomes:
        line = f"  {_status(outcome.status.value)} {outcome.tool.value}"
        if outcome.path:
            line += f": {outcome.path}"
        if outcome.error:
            line += f" [red]{escape(outcome.error)}[/]"
        console.print(line)


@main.command()
@click.argument("name")
@click.option("--tool", "-t", "tools", multiple=True, type=TOOL_CHOICE, help="Tool (repeatable, default: all)")
@click.pass_obj
@reports_errors
def enable(app: AppContext, name: str, tools: tuple):
    """Move a skill back into the active root."""
    _toggle(app, name, tools, enabled=True)


@main.command()
@click.argument("name")
@click.option("--tool", "-t", "tools", multiple=True, type=TOOL_CHOICE, help="Tool (repeatable, default: all)")
@click.pass_obj
@reports_errors
def disable(app: AppContext, name: str, tools: tuple):
    """Move a skill into the inactive root so the tool ignores it."""
    _toggle(app, name, tools, enabled=False)


# ── Updates ──────────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.option("--tool", "-t", default=None, type=TOOL_CHOICE, help="Check the copy of this tool")
@click.pass_obj
@reports_errors
def check(app: AppContext, name: str, tool: str | None):
    """Check whether a skill's repository has newer content."""
    from skillsync.sync.updater import Updater

    result = Updater(app.scope, settings=app.settings).check(name, tool)
    versions = f"{result.current_version or '?'} -> {result.latest_version or '?'}"
    if result.has_update:
        console.print(f"  [yellow]UPDATE[/] {escape(name)} ({versions}): {result.diff.summary()}")
        for path in result.diff.changed:
            console.print(f"    ~ {escape(path)}")
        for path in result.diff.new:
            console.print(f"    + {escape(path)}")
        for path in result.diff.removed:
            console.print(f"    - {escape(path)}")
    else:
        console.print(f"  [green]OK[/] {escape(name)} is up to date ({versions})")


@main.command()
@click.argument("name")
@click.option("--tool", "-t", default=None, type=TOOL_CHOICE, help="Update the copy of this tool")
@click.option("--all", "all_tools", is_flag=True, help="Update the copies of every tool")
@click.pass_obj
@reports_errors
def update(app: AppContext, name: str, tool: str | None, all_tools: bool):
    """Replace an installed skill with its repository's current content."""
    from skillsync.sync.updater import UpdateOutcome, Updater

    updater = Updater(app.scope, settings=app.settings)
    if all_tools:
        outcomes = updater.update_all(name)
    else:
        result = updater.update(name, tool)
        outcomes = [UpdateOutcome(result.tool, result=result)]

    for outcome in outcomes:
        result = outcome.result
        if result is None:
            console.print(f"  [red]x[/] {outcome.tool.value}: {escape(outcome.error)}")
            continue
        console.print(
            f"  [green]updated[/] {result.tool.value}: "
            f"{result.previous_version or '?'} -> {result.new_version or '?'} "
            f"({result.diff.summary()})"
        )


@main.command(name="set-repo")
@click.argument("name")
@click.argument("url")
@click.pass_obj
@reports_errors
def set_repo(app: AppContext, name: str, url: str):
    """Set the repository a skill is updated from."""
    from skillsync.sync.updater import Updater

    Updater(app.scope, settings=app.settings).set_repository(name, url)
    console.print(f"[green]{escape(name)}[/] now updates from {escape(url)}")


@main.command()
@click.option("--discard", is_flag=True, help="Delete the backups instead of restoring them")
@click.pass_obj
@reports_errors
def recover(app: AppContext, discard: bool):
    """Restore (or discard) backups left by an interrupted update."""
    from skillsync.sync.updater import Updater

    updater = Updater(app.scope, settings=app.settings)
    orphans = updater.find_orphaned_backups()
    if not orphans:
        console.print("[green]No leftover backups.[/]")
        return

    for orphan in orphans:
        if discard:
            updater.discard_backup(orphan)
            console.print(f"  [yellow]discarded[/] {orphan.backup_path}")
        else:
            path = updater.restore_backup(orphan)
            console.print(f"  [green]restored[/] {orphan.tool.value}: {path}")


# ── Create / scan ────────────────────────────────────────────────────


@main.command()
@click.argument("name")
@click.option("--description", "-d", default="", help="One-line description")
@click.option("--tool", "-t", "tools", multiple=True, type=TOOL_CHOICE, help="Target tool (repeatable)")
@click.pass_obj
@reports_errors
def create(app: AppContext, name: str, description: str, tools: tuple):
    """Scaffold a new local skill and install it."""
    from skillsync.skills.scaffold import create_skill

    summary = create_skill(app.scope, name, description, list(tools) or None, settings=app.settings)
    _print_summary(summary)


@main.command()
@click.argument("source")
@click.pass_obj
@reports_errors
def scan(app: AppContext, source: str):
    """List the skills a source offers and whether they are installed."""
    from skillsync.sync.catalog import scan_source

    items = scan_source(source, app.scope, settings=app.settings)

    table = Table(title=f"Skills in {source} ({len(items)})")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Installed", justify="center")
    table.add_column("Update", justify="center")
    table.add_column("Description")

    for item in items:
        installed = f"[green]{item.installed_version or 'Y'}[/]" if item.installed else "-"
        update_flag = "[yellow]Y[/]" if item.has_update else ""
        table.add_row(item.name, item.version or "-", installed, update_flag, item.description[:60])

    console.print(table)


if __name__ == "__main__":
    main()
