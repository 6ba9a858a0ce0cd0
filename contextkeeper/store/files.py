from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _write_temp(directory: Path, payload: str, *, suffix: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=suffix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return Path(tmp_name)


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


def atomic_write_text(path: Path, content: str) -> Path:
    """Replace ``path`` in one step; readers see the old or the new file, never a mix."""

    tmp = _write_temp(path.parent, content, suffix=path.suffix)
    try:
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return path


def atomic_write_json(path: Path, data: Any) -> Path:
    return atomic_write_text(path, dump_json(data))


def atomic_create_json(directory: Path, stem: str, data: Any, *, max_attempts: int = 1000) -> Path:
    """Publish a new JSON file without ever replacing an existing one.

    Collisions get ``-2``, ``-3`` ... suffixes.
    """

    tmp = _write_temp(directory, dump_json(data), suffix=".json")
    try:
        for attempt in range(1, max_attempts + 1):
            name = f"{stem}.json" if attempt == 1 else f"{stem}-{attempt}.json"
            target = directory / name
            try:
                os.link(tmp, target)
            except FileExistsError:
                continue
            except OSError:
                # Filesystems without hard links: best-effort check then rename.
                if target.exists():
                    continue
                os.replace(tmp, target)
                return target
            return target
        raise FileExistsError(f"no free record name for {stem} in {directory}")
    finally:
        tmp.unlink(missing_ok=True)


def read_json(path: Path) -> Any:
    """Load JSON, raising ``OSError``/``ValueError`` for unreadable or malformed files."""

    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def cleanup_temp_files(directory: Path, *, older_than_s: float = 300.0) -> int:
    """Remove temp files left behind by interrupted writes."""

    removed = 0
    if not directory.is_dir():
        return removed
    cutoff = time.time() - older_than_s
    for tmp in directory.glob(".tmp-*"):
        try:
            if tmp.stat().st_mtime > cutoff:
                continue
            tmp.unlink()
            removed += 1
        except OSError:
            logger.warning("could not remove stale temp file %s", tmp)
    return removed
