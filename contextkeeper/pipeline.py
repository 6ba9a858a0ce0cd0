from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypedDict

from .archiver import ArchiveResult, ContextArchiver
from .config import ContextKeeperConfig
from .fs_paths import resolve_storage_root
from .outcome import Deadline, DeadlineExceeded, Err, Outcome

logger = logging.getLogger(__name__)

# Dispatch events that carry a finished (or compacting) transcript.
ARCHIVE_EVENTS = {
    "PreCompact": "precompact",
    "Stop": "stop",
    "SessionEnd": "session_end",
}


class HookPayload(TypedDict, total=False):
    hook_event_name: str
    transcript_path: str
    session_id: str
    cwd: str
    project_path: str
    trigger: str


class HookResult(TypedDict, total=False):
    status: str
    message: str
    archive_location: str
    stats: dict[str, Any]


def process_transcript(
    transcript_path: str | Path,
    *,
    config: ContextKeeperConfig,
    project_path: str | None = None,
    session_id: str | None = None,
    trigger: str | None = None,
    storage_root: Path | None = None,
    deadline: Deadline | None = None,
) -> Outcome[ArchiveResult]:
    """Parse, extract and archive one transcript under a time budget."""

    deadline = deadline or Deadline(config.hook_timeout_s)
    try:
        deadline.check("start")
        root = storage_root or resolve_storage_root(project_path, override=config.storage_root)
        archiver = ContextArchiver(root, config)
        return archiver.archive_from_transcript(
            transcript_path,
            project_path=project_path,
            session_id=session_id,
            trigger=trigger,
            deadline=deadline,
        )
    except DeadlineExceeded as exc:
        logger.warning("aborting %s: %s", transcript_path, exc)
        return Err(str(exc))


def process_payload(
    payload: dict[str, Any],
    *,
    config: ContextKeeperConfig,
    storage_root: Path | None = None,
    deadline: Deadline | None = None,
) -> HookResult:
    event = str(payload.get("hook_event_name") or "")
    if event and event not in ARCHIVE_EVENTS:
        return {"status": "skipped", "message": f"Skipped: unsupported event {event}"}
    transcript_path = payload.get("transcript_path")
    if not transcript_path:
        return {"status": "error", "message": "No transcript path provided in payload"}
    trigger = payload.get("trigger") or ARCHIVE_EVENTS.get(event) or "manual"
    project_path = payload.get("project_path") or payload.get("cwd")
    outcome = process_transcript(
        str(transcript_path),
        config=config,
        project_path=str(project_path) if project_path else None,
        session_id=payload.get("session_id") or None,
        trigger=str(trigger),
        storage_root=storage_root,
        deadline=deadline,
    )
    if isinstance(outcome, Err):
        return {"status": "error", "message": f"Failed to archive context: {outcome.message}"}
    result = outcome.value
    stats = result.stats
    return {
        "status": "success",
        "message": (
            f"Context preserved: {stats['problems']} problems, "
            f"{stats['implementations']} implementations, "
            f"{stats['decisions']} decisions"
        ),
        "archive_location": str(result.record_path),
        "stats": stats,
    }
