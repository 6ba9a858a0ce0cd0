from __future__ import annotations

from .archive import ArchiveStore, normalize_project_path, record_stem
from .files import (
    atomic_create_json,
    atomic_write_json,
    atomic_write_text,
    cleanup_temp_files,
    read_json,
)
from .index import ProjectIndex, SessionSummary, apply_context, new_index, render_readme

__all__ = [
    "ArchiveStore",
    "ProjectIndex",
    "SessionSummary",
    "apply_context",
    "atomic_create_json",
    "atomic_write_json",
    "atomic_write_text",
    "cleanup_temp_files",
    "new_index",
    "normalize_project_path",
    "read_json",
    "record_stem",
    "render_readme",
]
