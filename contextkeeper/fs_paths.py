from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

CONTEXTKEEPER_DIR = ".contextkeeper"
GLOBAL_DIR = Path("~/.contextkeeper").expanduser()


def ensure_path(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def resolve_storage_root(
    project_path: str | None = None,
    *,
    override: str | None = None,
    force_global: bool = False,
) -> Path:
    """Pick the archive root for a project.

    Precedence: explicit override, ``CONTEXTKEEPER_HOME``, the nearest
    ``.contextkeeper`` directory above the project, then ``~/.contextkeeper``.
    """

    if override and override.strip():
        return Path(override.strip()).expanduser()
    if force_global:
        return GLOBAL_DIR
    env_home = os.getenv("CONTEXTKEEPER_HOME")
    if env_home and env_home.strip():
        return Path(env_home.strip()).expanduser().resolve()
    start = Path(project_path or os.getcwd()).expanduser()
    try:
        start = start.resolve()
    except OSError:
        return GLOBAL_DIR
    for directory in (start, *start.parents):
        candidate = directory / CONTEXTKEEPER_DIR
        if candidate.is_dir():
            return candidate
    return GLOBAL_DIR


def project_hash(project_path: str) -> str:
    return hashlib.md5(project_path.encode("utf-8")).hexdigest()[:8]


def project_name(project_path: str) -> str:
    normalized = project_path.replace("\\", "/").rstrip("/")
    base = normalized.split("/")[-1] if normalized else ""
    slug = re.sub(r"[^A-Za-z0-9._-]+", "-", base).strip("-.")
    return slug or "root"


def project_dir_name(project_path: str) -> str:
    return f"{project_name(project_path)}-{project_hash(project_path)}"
