from __future__ import annotations

import json

import pytest
from builders import assistant, tool_result, tool_use, user

from contextkeeper.ingest import (
    collect_entries,
    extract_session_metadata,
    parse_transcript,
    parse_transcript_content,
    summarize_entries,
)
from contextkeeper.ingest.events import normalize_record, stringify_output
from contextkeeper.ingest.types import NormalizedEntry, ParseStats
from contextkeeper.outcome import Err


def _lines(*records) -> str:
    return "\n".join(r if isinstance(r, str) else json.dumps(r) for r in records)


def test_malformed_lines_are_counted_and_skipped() -> None:
    content = _lines(user("first"), "{not json", "[1, 2]", "", assistant("second"))
    parsed = parse_transcript_content(content)
    assert [e.type for e in parsed.entries] == ["user", "assistant"]
    assert parsed.stats.skipped == 2
    assert parsed.stats.parsed == 2


def test_text_blocks_are_concatenated_and_nested_tool_use_promoted() -> None:
    raw = {
        "type": "assistant",
        "timestamp": "2026-10-01T10:00:00Z",
        "message": {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Editing now."},
                {"type": "text", "text": "Second part."},
                {"type": "tool_use", "name": "Edit", "input": {"file_path": "src/app.py"}},
            ],
        },
    }
    entry = normalize_record(raw)
    assert entry.type == "assistant"
    assert entry.text == "Editing now.\nSecond part."
    assert entry.tool_name == "Edit"
    assert entry.tool_input == {"file_path": "src/app.py"}


def test_top_level_tool_fields_are_accepted() -> None:
    camel = normalize_record(
        {"type": "assistant", "toolUse": {"name": "Bash", "input": {"command": "make test"}}}
    )
    snake = normalize_record(
        {"type": "tool_use", "tool_name": "Read", "tool_input": {"file_path": "a.py"}}
    )
    assert camel.type == "tool_use"
    assert camel.tool_name == "Bash"
    assert camel.tool_input == {"command": "make test"}
    assert snake.tool_name == "Read"
    assert snake.tool_input == {"file_path": "a.py"}


def test_tool_result_block_becomes_tool_result_entry() -> None:
    entry = normalize_record(tool_result("\x1b[31mboom\x1b[0m", is_error=True))
    assert entry.type == "tool_result"
    assert entry.tool_output == "boom"
    assert entry.tool_error is True


def test_tool_use_result_payload_is_flattened() -> None:
    entry = normalize_record(
        {
            "type": "user",
            "toolUseResult": {"stdout": "ok", "stderr": "warning: slow", "is_error": False},
        }
    )
    assert entry.tool_output == "ok\nwarning: slow"
    assert entry.tool_error is False


def test_stringify_output_handles_block_lists() -> None:
    blocks = [{"type": "text", "text": "one"}, {"type": "image"}, "two"]
    assert stringify_output(blocks) == 'one\n{"type": "image"}\ntwo'


def test_session_and_working_directory_variants() -> None:
    a = normalize_record(user("hi", sessionId="abc", cwd="/work/app"))
    b = normalize_record(user("hi", session_id="def"))
    assert (a.session_id, a.working_directory) == ("abc", "/work/app")
    assert b.session_id == "def"
    assert b.working_directory is None


def test_missing_timestamp_inherits_previous() -> None:
    content = _lines(
        user("first", ts="2026-10-01T10:00:00Z"), {"type": "assistant", "content": "x"}
    )
    parsed = parse_transcript_content(content)
    assert parsed.entries[1].timestamp == "2026-10-01T10:00:00Z"


def test_memory_pressure_keeps_head_and_tail() -> None:
    entries = [NormalizedEntry(type="user", timestamp="", text=str(i)) for i in range(100)]
    stats = ParseStats()
    kept = collect_entries(iter(entries), stats, max_entries=10, head_ratio=0.2)
    assert [e.text for e in kept] == ["0", "1", *[str(i) for i in range(92, 100)]]
    assert stats.dropped == 90
    assert stats.truncated is True


def test_collect_entries_rejects_bad_limits() -> None:
    with pytest.raises(ValueError):
        collect_entries([], ParseStats(), max_entries=0)
    with pytest.raises(ValueError):
        collect_entries([], ParseStats(), max_entries=10, head_ratio=1.5)


def test_parse_transcript_reports_missing_file(tmp_path) -> None:
    outcome = parse_transcript(tmp_path / "missing.jsonl")
    assert isinstance(outcome, Err)
    assert "not found" in outcome.message


def test_parse_transcript_applies_pressure_to_large_files(write_transcript) -> None:
    records = [user(f"message {i}") for i in range(50)]
    path = write_transcript(records)
    outcome = parse_transcript(path, max_entries=10, large_bytes=100)
    assert outcome.ok
    assert len(outcome.value.entries) == 10
    assert outcome.value.stats.truncated is True

    relaxed = parse_transcript(path, max_entries=10)
    assert len(relaxed.value.entries) == 50


def test_parse_is_restartable(write_transcript) -> None:
    path = write_transcript([user("How?"), assistant("Like this."), "garbage"])
    first = parse_transcript(path)
    second = parse_transcript(path)
    assert first.value.entries == second.value.entries


def test_session_metadata_and_summary() -> None:
    content = _lines(
        user("start", ts="2026-10-01T10:00:00Z", sessionId="s1", cwd="/work/app"),
        tool_use("Edit", {"file_path": "a.py"}, ts="2026-10-01T10:00:30Z"),
        tool_result("failed", ts="2026-10-01T10:01:00Z", is_error=True),
        assistant("done", ts="2026-10-01T10:02:00Z"),
    )
    entries = parse_transcript_content(content).entries
    meta = extract_session_metadata(entries)
    assert meta["session_id"] == "s1"
    assert meta["project_path"] == "/work/app"
    assert meta["duration_ms"] == 120_000
    assert meta["entry_count"] == 4
    assert meta["tools_used"] == ["Edit"]

    summary = summarize_entries(entries)
    assert summary["user"] == 1
    assert summary["tool_use"] == 1
    assert summary["tool_result"] == 1
    assert summary["tool_errors"] == 1


def test_session_metadata_requires_entries() -> None:
    with pytest.raises(ValueError):
        extract_session_metadata([])
