"""Main CLI interface for BRICK input channels."""

import asyncio
import signal
from pathlib import Path
from typing import Optional, Tuple

import aiohttp
import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from brick_channels import __version__
from brick_channels.agent_setup import (
    AGENTS,
    CURSOR,
    config_instructions,
    connection_config,
    cursor_config_path,
    rule_instruction,
    rule_instructions,
    write_cursor_config,
)
from brick_channels.core.context import build_context
from brick_channels.core.errors import BrickError
from brick_channels.core.filters import ChangeFilter, is_privacy_sensitive
from brick_channels.core.git_watcher import GitWatcher
from brick_channels.core.network import get_local_ip
from brick_channels.host import ChannelHost
from brick_channels.logging_config import configure_logging
from brick_channels.models import CommitEvent, FileChangeEvent, ProgressEvent, ServerUrls
from brick_channels.settings import BrickSettings, load_settings

console = Console()


def _settings(ctx: click.Context) -> BrickSettings:
    return ctx.obj["settings"]


@click.group()
@click.version_option(__version__)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to the console")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """BRICK input channels - agent progress, git commits and file pulses."""
    try:
        settings = load_settings(config_path)
    except BrickError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise click.Abort() from e

    configure_logging("DEBUG" if verbose else settings.log_level, settings.debug_log)
    ctx.obj = {"settings": settings}


# ── serve ──


def _print_event(event, show_context: bool) -> None:
    if isinstance(event, ProgressEvent):
        console.print(f"[cyan]agent[/cyan]  {event.summary}")
    elif isinstance(event, CommitEvent):
        console.print(
            f"[green]commit[/green] {event.commit.short_hash} "
            f"[dim]({event.branch})[/dim] {event.commit.message}"
        )
    elif isinstance(event, FileChangeEvent):
        console.print(f"[yellow]files[/yellow]  {event.summary} [dim]{event.folder_path}[/dim]")

    if show_context:
        source, context = build_context(event)
        console.print(Panel(context, title=source.value, expand=False))


async def _serve(
    host: ChannelHost,
    mcp: bool,
    port: Optional[int],
    repo: Optional[str],
    folders: Tuple[str, ...],
    show_context: bool,
) -> bool:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, stop.set)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform
        pass

    for subscribe in (host.on_mcp_progress, host.on_git_commit, host.on_watcher_change):
        subscribe(lambda event: _print_event(event, show_context))

    try:
        if mcp:
            result = await host.mcp_start(port)
            if result.success:
                console.print(f"[green]✅ MCP server listening on {result.http_url}[/green]")
                console.print(f"   SSE endpoint: {result.sse_url}")
            else:
                error = escape(str(result.error))
                console.print(f"[red]MCP server failed to start: {error}[/red]")

        if repo:
            result = await host.git_start_watching(repo)
            if result.success:
                console.print(
                    f"[green]✅ Watching commits in {result.repo_path} ({result.branch})[/green]"
                )
            else:
                console.print(f"[red]Cannot watch {repo}: {escape(str(result.error))}[/red]")

        for folder in folders:
            result = await host.watcher_watch(folder)
            if result.success:
                console.print(f"[green]✅ Watching files in {result.folder_path}[/green]")
            else:
                console.print(f"[red]Cannot watch {folder}: {escape(str(result.error))}[/red]")

        if not host.has_active_channel():
            console.print("[yellow]No channel is active[/yellow]")
            return False

        console.print("[dim]Press Ctrl+C to stop[/dim]")
        await stop.wait()
        return True
    finally:
        await host.shutdown()


@main.command()
@click.option("--mcp/--no-mcp", default=True, help="Run the MCP server")
@click.option("--port", type=int, help="MCP server port (default from settings)")
@click.option("--repo", type=click.Path(file_okay=False), help="Git repository to watch")
@click.option(
    "--watch", "folders", multiple=True, type=click.Path(file_okay=False), help="Folder to watch"
)
@click.option("--context", "show_context", is_flag=True, help="Print the context for each event")
@click.pass_context
def serve(
    ctx: click.Context,
    mcp: bool,
    port: Optional[int],
    repo: Optional[str],
    folders: Tuple[str, ...],
    show_context: bool,
):
    """Run the selected channels and print events until interrupted."""
    host = ChannelHost(_settings(ctx))
    try:
        active = asyncio.run(_serve(host, mcp, port, repo, folders, show_context))
    except KeyboardInterrupt:
        active = True
    if not active:
        raise click.Abort()
    console.print("[dim]Stopped[/dim]")


# ── status ──


async def _fetch_health(url: str, timeout: float) -> dict:
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.json()


@main.command()
@click.option("--port", type=int, help="MCP server port (default from settings)")
@click.option("--host", "hostname", default="127.0.0.1", help="MCP server host")
@click.option("--timeout", default=3.0, help="Seconds to wait for a response")
@click.pass_context
def status(ctx: click.Context, port: Optional[int], hostname: str, timeout: float):
    """Query a running MCP server's health endpoint."""
    port = _settings(ctx).mcp_port if port is None else port
    url = f"http://{hostname}:{port}/"
    try:
        health = asyncio.run(_fetch_health(url, timeout))
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        console.print(f"[red]No MCP server at {url}: {escape(str(e) or 'timed out')}[/red]")
        raise click.Abort() from e

    table = Table(title="BRICK MCP Server")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Name", str(health.get("name")))
    table.add_row("Version", str(health.get("version")))
    table.add_row("Status", str(health.get("status")))
    table.add_row("Active sessions", str(health.get("activeSessions")))
    table.add_row("Progress events", str(health.get("totalProgressEvents")))
    console.print(table)


# ── git ──


@main.command()
@click.argument("path", type=click.Path())
def validate(path: str):
    """Check that PATH is inside a git working tree."""
    try:
        info = asyncio.run(GitWatcher().validate_repo(path))
    except BrickError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise click.Abort() from e

    console.print(f"[bold]Repository:[/bold] {info.repo_root}")
    console.print(f"[bold]Branch:[/bold] {info.branch}")
    console.print(f"[bold]HEAD:[/bold] {info.head[:8] if info.head else '(no commits yet)'}")


async def _recent(path: str, limit: int):
    watcher = GitWatcher()
    info = await watcher.validate_repo(path)
    return await watcher.fetch_recent_commits(limit, repo_path=info.repo_root)


@main.command()
@click.argument("path", type=click.Path(), default=".")
@click.option("--limit", default=10, help="Number of commits to show")
def recent(path: str, limit: int):
    """Show the most recent commits of the repository at PATH."""
    try:
        commits = asyncio.run(_recent(path, limit))
    except BrickError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise click.Abort() from e

    if not commits:
        console.print("[yellow]No commits found[/yellow]")
        return

    table = Table(title="Recent Commits")
    table.add_column("Hash", style="cyan", no_wrap=True)
    table.add_column("Author", style="green")
    table.add_column("Date", style="magenta")
    table.add_column("Message")
    for commit in commits:
        table.add_row(commit.short_hash, commit.author, commit.date, commit.message)
    console.print(table)


# ── files ──


def _classify(change_filter: ChangeFilter, rel_path: str) -> str:
    if change_filter.should_ignore(rel_path):
        return "ignored"
    if not change_filter.has_watched_extension(rel_path):
        return "unwatched type"
    return "reported"


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--ignore", "patterns", multiple=True, help="Extra ignore pattern")
@click.pass_context
def classify(ctx: click.Context, paths: Tuple[str, ...], patterns: Tuple[str, ...]):
    """Show how the file watcher would treat each relative path."""
    change_filter = ChangeFilter([*_settings(ctx).ignore_patterns, *patterns])

    table = Table(title="File Change Filter")
    table.add_column("Path", style="cyan")
    table.add_column("Decision", style="green")
    table.add_column("Private", style="red")
    for rel_path in paths:
        table.add_row(
            rel_path,
            _classify(change_filter, rel_path),
            "yes" if is_privacy_sensitive(rel_path) else "",
        )
    console.print(table)


# ── agents ──


@main.command("setup-agent")
@click.option("--agent", type=click.Choice(AGENTS), default=CURSOR, help="Coding agent")
@click.option("--port", type=int, help="MCP server port (default from settings)")
@click.option("--ip", help="Address agents use to reach this machine")
@click.option("--write", is_flag=True, help="Write the Cursor mcp.json entry")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False),
    help="Write the project .cursor/mcp.json instead of the global one",
)
@click.pass_context
def setup_agent(
    ctx: click.Context,
    agent: str,
    port: Optional[int],
    ip: Optional[str],
    write: bool,
    project: Optional[str],
):
    """Print how to connect AGENT to the MCP server."""
    port = _settings(ctx).mcp_port if port is None else port
    urls = ServerUrls.build(ip or get_local_ip(), port)

    snippet = connection_config(agent, urls)
    console.print(f"[bold]{config_instructions(agent)}:[/bold]")
    if agent == CURSOR:
        console.print(Syntax(snippet, "json"))
    else:
        console.print(snippet, markup=False, highlight=False)

    console.print(f"\n[bold]{rule_instructions(agent)}:[/bold]")
    console.print(Panel(rule_instruction(agent), expand=False))

    if not write:
        return
    if agent != CURSOR:
        console.print("[yellow]--write only applies to Cursor[/yellow]")
        return
    config_file = cursor_config_path(Path(project) if project else None)
    try:
        written = write_cursor_config(config_file, urls)
    except (BrickError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise click.Abort() from e
    console.print(f"[green]✅ BRICK server added to {written}[/green]")


if __name__ == "__main__":
    main()
