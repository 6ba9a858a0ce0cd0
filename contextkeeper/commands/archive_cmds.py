from __future__ import annotations

import json
import sys
from typing import Any

import typer
from rich import print

from ..archiver import ContextArchiver
from ..config import CONFIG_ENV_OVERRIDES, config_to_dict, get_env_overrides
from ..outcome import Err
from ..pipeline import process_payload, process_transcript
from .common import (
    emit_json,
    format_bytes,
    resolve_project_for_cli,
    setup_logging,
    storage_root_for,
)


def process_cmd(
    *,
    load_config,
    transcript: str,
    project: str | None,
    session_id: str | None,
    trigger: str,
    use_global: bool,
    json_output: bool,
) -> None:
    """Archive one transcript file."""

    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project) if project else None
    root = storage_root_for(config, project_path, use_global=use_global)
    outcome = process_transcript(
        transcript,
        config=config,
        project_path=project_path,
        session_id=session_id,
        trigger=trigger,
        storage_root=root,
    )
    if isinstance(outcome, Err):
        if json_output:
            emit_json({"status": "error", "message": outcome.message})
        else:
            print(f"[red]Failed to archive context: {outcome.message}[/red]")
        raise typer.Exit(code=1)
    result = outcome.value
    if json_output:
        emit_json({"archive_location": str(result.record_path), "stats": result.stats})
        return
    stats = result.stats
    print(f"[green]Archived session {result.context.session_id}[/green]")
    print(f"- Record: {result.record_path}")
    print(
        f"- Problems: {stats['problems']}, implementations: {stats['implementations']}, "
        f"decisions: {stats['decisions']}, patterns: {stats['patterns']}"
    )
    print(f"- Relevance: {stats['relevance_score']:.2f}")


def hook_cmd(*, load_config) -> None:
    """Read a dispatch payload from stdin and print the JSON result."""

    raw = sys.stdin.read()
    try:
        payload: Any = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        emit_json({"status": "error", "message": f"Invalid payload: {exc}"})
        return
    if not isinstance(payload, dict):
        emit_json({"status": "error", "message": "Invalid payload: expected a JSON object"})
        return
    config = load_config()
    setup_logging(config)
    project_path = payload.get("project_path") or payload.get("cwd")
    root = storage_root_for(config, str(project_path) if project_path else None)
    emit_json(process_payload(payload, config=config, storage_root=root))


def stats_cmd(*, load_config, project: str | None, use_global: bool, json_output: bool) -> None:
    config = load_config()
    setup_logging(config)
    root = storage_root_for(config, resolve_project_for_cli(project), use_global=use_global)
    stats = ContextArchiver(root, config).get_stats()
    if json_output:
        emit_json(stats)
        return
    print("[bold]Archive[/bold]")
    print(f"- Root: {stats['root']}")
    print(f"- Projects: {stats['projects']}")
    print(f"- Sessions: {stats['sessions']}")
    print(f"- Size: {format_bytes(int(stats['bytes']))}")
    if stats["oldest"]:
        print(f"- Range: {stats['oldest']} .. {stats['newest']}")
    if stats["by_project"]:
        print("\n[bold]Projects[/bold]")
    for entry in stats["by_project"]:
        label = entry["project_path"] or entry["name"]
        print(f"- {label}: {entry['sessions']} sessions, {format_bytes(int(entry['bytes']))}")


def rebuild_index_cmd(*, load_config, project: str | None, use_global: bool) -> None:
    config = load_config()
    setup_logging(config)
    project_path = resolve_project_for_cli(project) or "unknown"
    root = storage_root_for(config, project_path, use_global=use_global)
    outcome = ContextArchiver(root, config).rebuild_index(project_path)
    if isinstance(outcome, Err):
        print(f"[red]{outcome.message}[/red]")
        raise typer.Exit(code=1)
    index = outcome.value
    print(f"[green]Rebuilt index for {index.project_path}[/green]")
    print(f"- Sessions: {index.total_sessions}")


def config_show_cmd(*, load_config, get_config_path) -> None:
    config = load_config()
    print(f"[bold]Config[/bold] {get_config_path()}")
    emit_json(config_to_dict(config))
    overrides = get_env_overrides()
    if overrides:
        print("\n[bold]Environment overrides[/bold]")
        for key, value in sorted(overrides.items()):
            print(f"- {CONFIG_ENV_OVERRIDES[key]}={value}")


def config_set_cmd(
    *, read_config_or_exit, write_config_or_exit, load_config, key: str, value: str
) -> None:
    known = config_to_dict(load_config())
    if key not in known:
        print(f"[red]Unknown config key: {key}[/red]")
        raise typer.Exit(code=1)
    data = read_config_or_exit()
    try:
        data[key] = json.loads(value)
    except json.JSONDecodeError:
        data[key] = value
    path = write_config_or_exit(data)
    print(f"[green]Set {key} in {path}[/green]")


def config_unset_cmd(*, read_config_or_exit, write_config_or_exit, key: str) -> None:
    data = read_config_or_exit()
    if key not in data:
        print(f"[yellow]{key} is not set[/yellow]")
        return
    data.pop(key)
    path = write_config_or_exit(data)
    print(f"[green]Removed {key} from {path}[/green]")
