from __future__ import annotations

import datetime as dt
import json
import logging
from collections import Counter, deque
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from ..outcome import Err, Ok, Outcome
from .events import normalize_record
from .types import NormalizedEntry, ParsedTranscript, ParseStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 5000
DEFAULT_HEAD_RATIO = 0.2
DEFAULT_LARGE_BYTES = 10 * 1024 * 1024


def iter_entries(lines: Iterable[str], stats: ParseStats) -> Iterator[NormalizedEntry]:
    """Lazily normalize JSON lines, counting blank and malformed ones in ``stats``."""

    previous_timestamp = ""
    for line in lines:
        stats.lines += 1
        stripped = line.strip()
        if not stripped:
            continue
        try:
            raw = json.loads(stripped)
        except json.JSONDecodeError:
            stats.skipped += 1
            logger.debug("skipping malformed transcript line %s", stats.lines)
            continue
        if not isinstance(raw, dict):
            stats.skipped += 1
            logger.debug("skipping non-object transcript line %s", stats.lines)
            continue
        entry = normalize_record(raw, previous_timestamp=previous_timestamp)
        previous_timestamp = entry.timestamp
        stats.parsed += 1
        yield entry


def collect_entries(
    entries: Iterable[NormalizedEntry],
    stats: ParseStats,
    *,
    max_entries: int | None = None,
    head_ratio: float = DEFAULT_HEAD_RATIO,
) -> list[NormalizedEntry]:
    """Materialize entries, keeping the head and tail when over ``max_entries``.

    Memory stays bounded by ``max_entries`` because the tail is a ring buffer.
    """

    if max_entries is None:
        return list(entries)
    if max_entries <= 0:
        raise ValueError("max_entries must be positive")
    if not 0.0 <= head_ratio <= 1.0:
        raise ValueError("head_ratio must be between 0 and 1")
    head_size = int(max_entries * head_ratio)
    tail_size = max_entries - head_size
    head: list[NormalizedEntry] = []
    tail: deque[NormalizedEntry] = deque(maxlen=tail_size)
    seen = 0
    for entry in entries:
        seen += 1
        if len(head) < head_size:
            head.append(entry)
        elif tail_size:
            tail.append(entry)
    kept = len(head) + len(tail)
    if seen > kept:
        stats.dropped = seen - kept
        stats.truncated = True
    return head + list(tail)


def _log_summary(source: str, stats: ParseStats) -> None:
    logger.info(
        "parsed %s: %s entries, %s malformed lines skipped%s",
        source,
        stats.parsed,
        stats.skipped,
        f", {stats.dropped} dropped under memory pressure" if stats.truncated else "",
    )


def parse_transcript_content(
    content: str,
    *,
    max_entries: int | None = None,
    head_ratio: float = DEFAULT_HEAD_RATIO,
) -> ParsedTranscript:
    stats = ParseStats()
    entries = collect_entries(
        iter_entries(content.splitlines(), stats),
        stats,
        max_entries=max_entries,
        head_ratio=head_ratio,
    )
    _log_summary("<content>", stats)
    return ParsedTranscript(entries=entries, stats=stats)


def parse_transcript(
    path: str | Path,
    *,
    max_entries: int = DEFAULT_MAX_ENTRIES,
    head_ratio: float = DEFAULT_HEAD_RATIO,
    large_bytes: int = DEFAULT_LARGE_BYTES,
    memory_pressure: bool | None = None,
) -> Outcome[ParsedTranscript]:
    """Stream a JSONL transcript from disk.

    ``memory_pressure=None`` turns the head/tail policy on only when the file
    is larger than ``large_bytes``.
    """

    transcript_path = Path(path).expanduser()
    try:
        size = transcript_path.stat().st_size
    except FileNotFoundError:
        return Err(f"transcript not found: {transcript_path}")
    except OSError as exc:
        return Err(f"transcript unreadable: {transcript_path}", detail=str(exc))
    if not transcript_path.is_file():
        return Err(f"transcript is not a file: {transcript_path}")
    pressure = size > large_bytes if memory_pressure is None else memory_pressure
    stats = ParseStats()
    try:
        with transcript_path.open("r", encoding="utf-8", errors="replace") as handle:
            entries = collect_entries(
                iter_entries(handle, stats),
                stats,
                max_entries=max_entries if pressure else None,
                head_ratio=head_ratio,
            )
    except OSError as exc:
        return Err(f"transcript unreadable: {transcript_path}", detail=str(exc))
    _log_summary(str(transcript_path), stats)
    return Ok(ParsedTranscript(entries=entries, stats=stats))


def parse_timestamp(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def extract_session_metadata(entries: list[NormalizedEntry]) -> dict[str, Any]:
    if not entries:
        raise ValueError("no entries to extract metadata from")
    session_id = next((e.session_id for e in entries if e.session_id != "unknown"), "unknown")
    project_path = next((e.working_directory for e in entries if e.working_directory), None)
    stamps = [ts for ts in (parse_timestamp(e.timestamp) for e in entries) if ts is not None]
    start = min(stamps) if stamps else None
    end = max(stamps) if stamps else None
    duration_ms = int((end - start).total_seconds() * 1000) if start and end else 0
    tools: list[str] = []
    for entry in entries:
        if entry.tool_name and entry.tool_name not in tools:
            tools.append(entry.tool_name)
    return {
        "session_id": session_id,
        "project_path": project_path,
        "start_time": start.isoformat() if start else None,
        "end_time": end.isoformat() if end else None,
        "duration_ms": duration_ms,
        "entry_count": len(entries),
        "tools_used": tools,
    }


def summarize_entries(entries: list[NormalizedEntry]) -> dict[str, int]:
    counts = Counter(entry.type for entry in entries)
    return {
        "total": len(entries),
        "user": counts["user"],
        "assistant": counts["assistant"],
        "tool_use": sum(1 for e in entries if e.is_tool_use),
        "tool_result": sum(1 for e in entries if e.is_tool_result),
        "tool_errors": sum(1 for e in entries if e.tool_error),
        "unknown": counts["unknown"],
    }
