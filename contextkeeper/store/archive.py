from __future__ import annotations

import datetime as dt
import logging
import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..fs_paths import project_dir_name
from ..ingest.transcript import parse_timestamp
from ..models import ExtractedContext
from .files import atomic_create_json, atomic_write_json, atomic_write_text, read_json
from .index import ProjectIndex, render_readme

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"
README_FILE = "README.md"
SESSIONS_DIR = "sessions"


def normalize_project_path(project_path: str) -> str:
    normalized = project_path.strip()
    if len(normalized) > 1:
        normalized = normalized.rstrip("/\\") or normalized[0]
    return normalized or "unknown"


def record_stem(session_id: str, timestamp: str | None) -> str:
    when = parse_timestamp(timestamp) or dt.datetime.now(dt.UTC)
    safe_session = re.sub(r"[^A-Za-z0-9_-]+", "-", session_id).strip("-")[:64] or "unknown"
    return f"{when.astimezone(dt.UTC).strftime('%Y-%m-%d_%H%M%S_%f')}_{safe_session}"


class ArchiveStore:
    """Filesystem layout of the archive under one storage root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.projects_dir = self.root / "archive" / "projects"

    def project_dir(self, project_path: str) -> Path:
        return self.projects_dir / project_dir_name(normalize_project_path(project_path))

    def sessions_dir(self, project_path: str) -> Path:
        return self.project_dir(project_path) / SESSIONS_DIR

    def index_path(self, project_path: str) -> Path:
        return self.project_dir(project_path) / INDEX_FILE

    def write_record(self, context: ExtractedContext, data: dict[str, Any]) -> Path:
        stem = record_stem(context.session_id, context.timestamp)
        return atomic_create_json(self.sessions_dir(context.project_path), stem, data)

    def read_index(self, project_dir: Path) -> ProjectIndex | None:
        """Return the stored index, None when absent; ValueError when damaged."""

        path = project_dir / INDEX_FILE
        if not path.exists():
            return None
        try:
            return ProjectIndex.from_dict(read_json(path))
        except (OSError, KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"unreadable index {path}: {exc}") from exc

    def write_index(self, project_dir: Path, index: ProjectIndex) -> Path:
        return atomic_write_json(project_dir / INDEX_FILE, index.to_dict())

    def write_readme(self, project_dir: Path, index: ProjectIndex) -> Path:
        return atomic_write_text(project_dir / README_FILE, render_readme(index))

    def project_dirs(self) -> list[Path]:
        if not self.projects_dir.is_dir():
            return []
        return sorted(p for p in self.projects_dir.iterdir() if p.is_dir())

    def record_paths(self, project_dir: Path) -> list[Path]:
        sessions = project_dir / SESSIONS_DIR
        if not sessions.is_dir():
            return []
        return sorted(
            p for p in sessions.glob("*.json") if p.is_file() and not p.name.startswith(".tmp-")
        )

    def load_record(self, path: Path) -> ExtractedContext | None:
        try:
            data = read_json(path)
        except (OSError, ValueError) as exc:
            logger.warning("skipping unreadable record %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("skipping record %s: not an object", path)
            return None
        return ExtractedContext.from_dict(data)

    def iter_records(
        self, project_path: str | None = None
    ) -> Iterator[tuple[Path, ExtractedContext]]:
        """Yield ``(path, record)`` pairs for one project, or the whole archive when None."""

        if project_path is None:
            dirs = self.project_dirs()
        else:
            project_dir = self.project_dir(project_path)
            dirs = [project_dir] if project_dir.is_dir() else []
        for project_dir in dirs:
            for path in self.record_paths(project_dir):
                record = self.load_record(path)
                if record is not None:
                    yield path, record
