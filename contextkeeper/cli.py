from __future__ import annotations

import typer
from rich import print

from . import __version__
from .commands.archive_cmds import (
    config_set_cmd,
    config_show_cmd,
    config_unset_cmd,
    hook_cmd,
    process_cmd,
    rebuild_index_cmd,
    stats_cmd,
)
from .commands.common import read_config_or_exit, write_config_or_exit
from .commands.retrieval_cmds import (
    fetch_cmd,
    load_cmd,
    patterns_cmd,
    search_cmd,
    show_cmd,
)
from .config import get_config_path, load_config

app = typer.Typer(help="contextkeeper: persistent context archive for AI coding sessions")
config_app = typer.Typer(help="Inspect and edit configuration")

app.add_typer(config_app, name="config")


@app.command()
def process(
    transcript: str,
    project: str = typer.Option(None, help="Project path (defaults to the transcript's cwd)"),
    session_id: str = typer.Option(None, help="Override the session id"),
    trigger: str = typer.Option("manual", help="Trigger recorded in the session metadata"),
    use_global: bool = typer.Option(False, "--global", help="Use the global archive root"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Extract and archive context from a transcript file."""
    process_cmd(
        load_config=load_config,
        transcript=transcript,
        project=project,
        session_id=session_id,
        trigger=trigger,
        use_global=use_global,
        json_output=json_output,
    )


@app.command()
def hook() -> None:
    """Handle a dispatch payload on stdin (prints a JSON result)."""
    hook_cmd(load_config=load_config)


@app.command()
def search(
    query: str,
    limit: int = typer.Option(None, help="Max results"),
    project: str = typer.Option(None, help="Project path (defaults to cwd)"),
    all_projects: bool = typer.Option(False, help="Search across all projects"),
    file_pattern: str = typer.Option(None, help="Only sessions touching matching files"),
    since: str = typer.Option(None, help="ISO date lower bound"),
    until: str = typer.Option(None, help="ISO date upper bound"),
    sort_by: str = typer.Option("relevance", help="relevance, date or frequency"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Search archived sessions by keyword."""
    search_cmd(
        load_config=load_config,
        query=query,
        limit=limit,
        project=project,
        all_projects=all_projects,
        file_pattern=file_pattern,
        since=since,
        until=until,
        sort_by=sort_by,
        json_output=json_output,
    )


@app.command()
def fetch(
    query: str = typer.Argument("", help="Optional query; empty ranks by stored relevance"),
    scope: str = typer.Option("project", help="session, project or global"),
    project: str = typer.Option(None, help="Project path (defaults to cwd)"),
    session_id: str = typer.Option(None, help="Session id for --scope session"),
    limit: int = typer.Option(None, help="Max results"),
    min_relevance: float = typer.Option(None, help="Relevance floor"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Fetch the most relevant archived contexts."""
    fetch_cmd(
        load_config=load_config,
        query=query,
        scope=scope,
        project=project,
        session_id=session_id,
        limit=limit,
        min_relevance=min_relevance,
        json_output=json_output,
    )


@app.command()
def show(
    session_id: str,
    project: str = typer.Option(None, help="Project path used to locate the archive"),
) -> None:
    """Print an archived session as JSON."""
    show_cmd(load_config=load_config, session_id=session_id, project=project)


@app.command()
def patterns(
    pattern_type: str = typer.Option(None, "--type", help="code, command or architecture"),
    min_frequency: int = typer.Option(None, help="Minimum merged frequency"),
    limit: int = typer.Option(None, help="Max patterns"),
    project: str = typer.Option(None, help="Project path (defaults to cwd)"),
    all_projects: bool = typer.Option(False, help="Merge patterns across all projects"),
    analyze: bool = typer.Option(False, help="Show insights and recommendations"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """List recurring patterns."""
    patterns_cmd(
        load_config=load_config,
        pattern_type=pattern_type,
        min_frequency=min_frequency,
        limit=limit,
        project=project,
        all_projects=all_projects,
        analyze=analyze,
        json_output=json_output,
    )


@app.command()
def load(
    project: str = typer.Option(None, help="Project path (defaults to cwd)"),
    strategy: str = typer.Option(None, help="recent, relevant, smart or custom"),
    max_size_kb: float = typer.Option(None, help="Bundle size limit in KB"),
    format_style: str = typer.Option(None, "--format", help="summary, detailed or minimal"),
    preview: bool = typer.Option(False, help="Show a framed preview with bundle stats"),
) -> None:
    """Print the auto-load context bundle."""
    load_cmd(
        load_config=load_config,
        project=project,
        strategy=strategy,
        max_size_kb=max_size_kb,
        format_style=format_style,
        preview=preview,
    )


@app.command()
def stats(
    project: str = typer.Option(None, help="Project path used to locate the archive"),
    use_global: bool = typer.Option(False, "--global", help="Use the global archive root"),
    json_output: bool = typer.Option(False, "--json", help="Print JSON"),
) -> None:
    """Show archive statistics."""
    stats_cmd(
        load_config=load_config, project=project, use_global=use_global, json_output=json_output
    )


@app.command("rebuild-index")
def rebuild_index(
    project: str = typer.Option(None, help="Project path (defaults to cwd)"),
    use_global: bool = typer.Option(False, "--global", help="Use the global archive root"),
) -> None:
    """Recompute a project's index from its session records."""
    rebuild_index_cmd(load_config=load_config, project=project, use_global=use_global)


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    config_show_cmd(load_config=load_config, get_config_path=get_config_path)


@config_app.command("set")
def config_set(key: str, value: str) -> None:
    """Set a config key (values are parsed as JSON when possible)."""
    config_set_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        load_config=load_config,
        key=key,
        value=value,
    )


@config_app.command("unset")
def config_unset(key: str) -> None:
    """Remove a config key from the config file."""
    config_unset_cmd(
        read_config_or_exit=read_config_or_exit,
        write_config_or_exit=write_config_or_exit,
        key=key,
    )


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
