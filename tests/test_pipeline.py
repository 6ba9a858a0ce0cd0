from __future__ import annotations

import json
from pathlib import Path

from builders import assistant, user

from contextkeeper.config import ContextKeeperConfig
from contextkeeper.outcome import Deadline, Err
from contextkeeper.pipeline import process_payload, process_transcript


def _transcript(write_transcript) -> Path:
    return write_transcript(
        [
            user("How do I retry failed uploads?", sessionId="sess-1", cwd="/work/app"),
            assistant("Here's how:\n```\nfor _ in range(3): upload()\n```", sessionId="sess-1"),
        ]
    )


def test_supported_event_archives_transcript(write_transcript, tmp_path: Path) -> None:
    path = _transcript(write_transcript)
    result = process_payload(
        {"hook_event_name": "Stop", "transcript_path": str(path), "session_id": "sess-1"},
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
    )
    assert result["status"] == "success"
    assert result["message"] == (
        "Context preserved: 1 problems, 0 implementations, 0 decisions"
    )
    assert result["stats"]["problems"] == 1
    record = Path(result["archive_location"])
    assert record.exists()
    stored = json.loads(record.read_text())
    assert stored["metadata"]["trigger"] == "stop"
    assert stored["project_path"] == "/work/app"


def test_precompact_trigger_and_explicit_project(write_transcript, tmp_path: Path) -> None:
    path = _transcript(write_transcript)
    result = process_payload(
        {
            "hook_event_name": "PreCompact",
            "transcript_path": str(path),
            "project_path": "/elsewhere/proj",
        },
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
    )
    stored = json.loads(Path(result["archive_location"]).read_text())
    assert stored["metadata"]["trigger"] == "precompact"
    assert stored["project_path"] == "/elsewhere/proj"


def test_payload_without_event_defaults_to_manual(write_transcript, tmp_path: Path) -> None:
    path = _transcript(write_transcript)
    result = process_payload(
        {"transcript_path": str(path)},
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
    )
    stored = json.loads(Path(result["archive_location"]).read_text())
    assert stored["metadata"]["trigger"] == "manual"


def test_unsupported_event_is_skipped(tmp_path: Path) -> None:
    result = process_payload(
        {"hook_event_name": "UserPromptSubmit", "transcript_path": "x.jsonl"},
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
    )
    assert result["status"] == "skipped"
    assert not (tmp_path / "root").exists()


def test_missing_transcript_path_is_an_error(tmp_path: Path) -> None:
    result = process_payload(
        {"hook_event_name": "Stop"}, config=ContextKeeperConfig(), storage_root=tmp_path
    )
    assert result == {"status": "error", "message": "No transcript path provided in payload"}


def test_unreadable_transcript_reports_failure(tmp_path: Path) -> None:
    result = process_payload(
        {"hook_event_name": "SessionEnd", "transcript_path": str(tmp_path / "gone.jsonl")},
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
    )
    assert result["status"] == "error"
    assert result["message"].startswith("Failed to archive context: transcript not found")
    assert not (tmp_path / "root" / "archive").exists()


def test_expired_deadline_aborts_without_record(write_transcript, tmp_path: Path) -> None:
    path = _transcript(write_transcript)
    outcome = process_transcript(
        path,
        config=ContextKeeperConfig(),
        storage_root=tmp_path / "root",
        deadline=Deadline(0),
    )
    assert isinstance(outcome, Err)
    assert not (tmp_path / "root" / "archive").exists()


def test_storage_root_comes_from_resolver(write_transcript, tmp_path: Path) -> None:
    path = _transcript(write_transcript)
    outcome = process_transcript(path, config=ContextKeeperConfig(), project_path="/work/app")
    assert outcome.ok
    assert outcome.value.record_path.is_relative_to((tmp_path / "home").resolve())
