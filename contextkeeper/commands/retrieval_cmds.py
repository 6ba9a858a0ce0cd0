from __future__ import annotations

from dataclasses import asdict, replace

import typer
from rich import print
from rich.markup import escape

from ..loader import ContextLoader
from ..models import ExtractedContext
from ..patterns import PatternAnalyzer
from ..retriever import ContextRetriever
from .common import (
    compact,
    emit_json,
    parse_date_option,
    resolve_project_for_cli,
    setup_logging,
    storage_root_for,
)


def _print_context(context: ExtractedContext, relevance: float) -> None:
    counts = context.counts()
    print(
        f"[bold]{escape(context.session_id)}[/bold] {context.timestamp[:19]} "
        f"[dim]({relevance:.2f})[/dim] {escape(context.project_path)}"
    )
    print(
        f"  {counts['problems']} problems, {counts['implementations']} implementations, "
        f"{counts['decisions']} decisions, {counts['patterns']} patterns"
    )


def search_cmd(
    *,
    load_config,
    query: str,
    limit: int | None,
    project: str | None,
    all_projects: bool,
    file_pattern: str | None,
    since: str | None,
    until: str | None,
    sort_by: str,
    json_output: bool,
) -> None:
    """Keyword search over archived sessions."""

    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project, all_projects=all_projects)
    retriever = ContextRetriever(storage_root_for(config, project_path), config)
    try:
        results = retriever.search(
            query,
            file_pattern=file_pattern,
            date_from=parse_date_option(since, name="--since"),
            date_to=parse_date_option(until, name="--until"),
            project_path=project_path,
            limit=limit,
            sort_by=sort_by,
        )
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    if json_output:
        emit_json(
            [
                {
                    "session_id": r.context.session_id,
                    "project_path": r.context.project_path,
                    "timestamp": r.context.timestamp,
                    "relevance": r.relevance,
                    "matches": [asdict(m) for m in r.matches],
                }
                for r in results
            ]
        )
        return
    if not results:
        print("[yellow]No matching sessions[/yellow]")
        return
    for result in results:
        _print_context(result.context, result.relevance)
        for match in result.matches[:3]:
            print(f"  - {match.field}: {escape(compact(match.text, 140))}")


def fetch_cmd(
    *,
    load_config,
    query: str,
    scope: str,
    project: str | None,
    session_id: str | None,
    limit: int | None,
    min_relevance: float | None,
    json_output: bool,
) -> None:
    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project, all_projects=scope == "global")
    retriever = ContextRetriever(storage_root_for(config, project_path), config)
    try:
        results = retriever.fetch(
            query,
            scope=scope,
            project_path=project_path,
            session_id=session_id,
            limit=limit,
            min_relevance=min_relevance,
        )
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    if json_output:
        emit_json([{**r.context.to_dict(), "relevance": r.relevance} for r in results])
        return
    if not results:
        print("[yellow]No contexts found[/yellow]")
        return
    for result in results:
        _print_context(result.context, result.relevance)
        for problem in result.context.problems[:3]:
            print(f"  - Q: {escape(compact(problem.question, 140))}")


def show_cmd(*, load_config, session_id: str, project: str | None) -> None:
    """Print one archived session as JSON."""

    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project)
    retriever = ContextRetriever(storage_root_for(config, project_path), config)
    context = retriever.get_by_session_id(session_id)
    if context is None:
        print(f"[red]Session {session_id} not found[/red]")
        raise typer.Exit(code=1)
    emit_json(context.to_dict())


def patterns_cmd(
    *,
    load_config,
    pattern_type: str | None,
    min_frequency: int | None,
    limit: int | None,
    project: str | None,
    all_projects: bool,
    analyze: bool,
    json_output: bool,
) -> None:
    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project, all_projects=all_projects)
    analyzer = PatternAnalyzer(storage_root_for(config, project_path), config)
    if analyze:
        if project_path is None:
            print("[red]--analyze needs a project[/red]")
            raise typer.Exit(code=2)
        report = analyzer.analyze_project(project_path)
        if json_output:
            emit_json(
                {
                    "patterns": [asdict(p) for p in report["patterns"]],
                    "insights": [asdict(i) for i in report["insights"]],
                    "recommendations": report["recommendations"],
                }
            )
            return
        for insight in report["insights"]:
            print(f"[bold]{escape(insight.title)}[/bold] [dim]({insight.severity})[/dim]")
            print(f"  {escape(insight.description)}")
        for recommendation in report["recommendations"]:
            print(f"- {escape(recommendation)}")
        if not report["insights"] and not report["recommendations"]:
            print("[yellow]Not enough history for insights yet[/yellow]")
        return
    try:
        patterns = analyzer.get_patterns(
            pattern_type=pattern_type,
            min_frequency=min_frequency,
            project_path=project_path,
            limit=limit,
        )
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    if json_output:
        emit_json([asdict(p) for p in patterns])
        return
    if not patterns:
        print("[yellow]No recurring patterns[/yellow]")
        return
    for pattern in patterns:
        last = pattern.last_seen[:10] or "undated"
        print(f"- {pattern.type}: {escape(pattern.value)} x{pattern.frequency} (last {last})")


def load_cmd(
    *,
    load_config,
    project: str | None,
    strategy: str | None,
    max_size_kb: float | None,
    format_style: str | None,
    preview: bool,
) -> None:
    """Print the auto-load bundle for a project."""

    config = load_config()
    setup_logging(config)
    if strategy:
        config = replace(config, autoload_strategy=strategy)
    if max_size_kb is not None:
        config = replace(config, autoload_max_size_kb=max_size_kb)
    if format_style:
        config = replace(config, autoload_format_style=format_style)
    project_path = resolve_project_for_cli(project)
    root = storage_root_for(config, project_path)
    loader = ContextLoader(root, config, project_path=project_path)
    try:
        if preview:
            typer.echo(loader.preview())
            return
        loaded = loader.load()
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    if loaded.content:
        typer.echo(loaded.content)
