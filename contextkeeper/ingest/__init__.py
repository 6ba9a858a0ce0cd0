from __future__ import annotations

from .events import normalize_record
from .transcript import (
    collect_entries,
    extract_session_metadata,
    parse_timestamp,
    parse_transcript,
    parse_transcript_content,
    summarize_entries,
)
from .types import NormalizedEntry, ParsedTranscript, ParseStats, RawEntry

__all__ = [
    "NormalizedEntry",
    "ParseStats",
    "ParsedTranscript",
    "RawEntry",
    "collect_entries",
    "extract_session_metadata",
    "normalize_record",
    "parse_timestamp",
    "parse_transcript",
    "parse_transcript_content",
    "summarize_entries",
]
