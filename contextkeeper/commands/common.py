from __future__ import annotations

import datetime as dt
import json
import logging
import os
from pathlib import Path
from typing import Any

import typer
from rich import print

from ..config import ContextKeeperConfig, read_config_file, write_config_file
from ..fs_paths import resolve_storage_root
from ..ingest.transcript import parse_timestamp
from ..store.archive import normalize_project_path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: ContextKeeperConfig) -> None:
    level = getattr(logging, str(config.log_level).upper(), logging.WARNING)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_path:
        log_path = Path(config.log_path).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def write_config_or_exit(data: dict[str, Any]) -> Path:
    try:
        return write_config_file(data)
    except OSError as exc:
        print(f"[red]Failed to write config: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def resolve_project_for_cli(project: str | None, *, all_projects: bool = False) -> str | None:
    if all_projects:
        return None
    if project:
        return normalize_project_path(str(Path(project).expanduser().resolve()))
    return normalize_project_path(os.getcwd())


def storage_root_for(
    config: ContextKeeperConfig, project_path: str | None, *, use_global: bool = False
) -> Path:
    return resolve_storage_root(
        project_path, override=config.storage_root, force_global=use_global
    )


def parse_date_option(value: str | None, *, name: str) -> dt.datetime | None:
    if not value:
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        print(f"[red]Invalid {name}: {value!r} (expected ISO-8601 date)[/red]")
        raise typer.Exit(code=2)
    return parsed


def emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def compact(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: max(0, limit - 3)] + "..."


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
