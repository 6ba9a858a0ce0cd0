from __future__ import annotations

import json
from pathlib import Path

import pytest
from builders import assistant, user
from typer.testing import CliRunner

from contextkeeper import __version__
from contextkeeper.cli import app

runner = CliRunner()


@pytest.fixture
def archived(write_transcript) -> Path:
    path = write_transcript(
        [
            user("How do I retry failed uploads?", sessionId="sess-1", cwd="/work/app"),
            assistant("Here's how:\n```\nfor _ in range(3): upload()\n```", sessionId="sess-1"),
        ]
    )
    result = runner.invoke(app, ["process", str(path), "--project", "/work/app", "--json"])
    assert result.exit_code == 0, result.output
    return Path(json.loads(result.stdout)["archive_location"])


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("process", "hook", "search", "fetch", "patterns", "load", "rebuild-index"):
        assert name in result.stdout


def test_config_help_lists_subcommands() -> None:
    result = runner.invoke(app, ["config", "--help"])
    assert result.exit_code == 0
    assert "show" in result.stdout
    assert "unset" in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_process_writes_record_under_home(archived: Path, tmp_path: Path) -> None:
    assert archived.exists()
    assert archived.is_relative_to((tmp_path / "home").resolve())
    stored = json.loads(archived.read_text())
    assert stored["session_id"] == "sess-1"
    assert stored["metadata"]["trigger"] == "manual"


def test_process_missing_transcript_exits_nonzero(tmp_path: Path) -> None:
    result = runner.invoke(app, ["process", str(tmp_path / "gone.jsonl"), "--json"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["status"] == "error"


def test_search_finds_archived_session(archived: Path) -> None:
    result = runner.invoke(app, ["search", "retry uploads", "--project", "/work/app", "--json"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [row["session_id"] for row in rows] == ["sess-1"]
    assert rows[0]["matches"][0]["field"] == "problem"


def test_search_rejects_unknown_sort_key(archived: Path) -> None:
    result = runner.invoke(app, ["search", "retry", "--project", "/work/app", "--sort-by", "size"])
    assert result.exit_code == 2


def test_search_rejects_bad_date(archived: Path) -> None:
    result = runner.invoke(app, ["search", "retry", "--since", "last tuesday"])
    assert result.exit_code == 2


def test_fetch_without_query_uses_stored_relevance(archived: Path) -> None:
    result = runner.invoke(app, ["fetch", "--project", "/work/app", "--json"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [row["session_id"] for row in rows] == ["sess-1"]


def test_show_prints_record_and_reports_missing(archived: Path) -> None:
    result = runner.invoke(app, ["show", "sess-1", "--project", "/work/app"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["problems"][0]["question"].startswith("How do I retry")

    missing = runner.invoke(app, ["show", "nope", "--project", "/work/app"])
    assert missing.exit_code == 1


def test_stats_json(archived: Path) -> None:
    result = runner.invoke(app, ["stats", "--project", "/work/app", "--json"])
    assert result.exit_code == 0
    stats = json.loads(result.stdout)
    assert stats["projects"] == 1
    assert stats["sessions"] == 1


def test_rebuild_index_reports_session_count(archived: Path) -> None:
    result = runner.invoke(app, ["rebuild-index", "--project", "/work/app"])
    assert result.exit_code == 0
    assert "Sessions: 1" in result.stdout


def test_load_prints_bundle(archived: Path) -> None:
    result = runner.invoke(app, ["load", "--project", "/work/app", "--strategy", "relevant"])
    assert result.exit_code == 0
    assert "# Project Context: app" in result.stdout
    assert "retry failed uploads" in result.stdout


def test_load_rejects_unknown_strategy(archived: Path) -> None:
    result = runner.invoke(app, ["load", "--project", "/work/app", "--strategy", "random"])
    assert result.exit_code == 2


def test_patterns_json_is_empty_for_single_session(archived: Path) -> None:
    result = runner.invoke(app, ["patterns", "--project", "/work/app", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == []


def test_hook_archives_supported_event(write_transcript) -> None:
    path = write_transcript(
        [
            user("Why does the build fail?", sessionId="hook-1", cwd="/work/app"),
            assistant("Here's how:\n```\nmake clean\n```", sessionId="hook-1"),
        ]
    )
    payload = {"hook_event_name": "PreCompact", "transcript_path": str(path)}
    result = runner.invoke(app, ["hook"], input=json.dumps(payload))
    assert result.exit_code == 0
    body = json.loads(result.stdout)
    assert body["status"] == "success"
    assert body["message"].startswith("Context preserved: 1 problems")


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("{not json", "Invalid payload"),
        ("[1, 2]", "Invalid payload: expected a JSON object"),
        ("{}", "No transcript path provided in payload"),
    ],
)
def test_hook_reports_bad_payloads_without_failing(raw: str, message: str) -> None:
    result = runner.invoke(app, ["hook"], input=raw)
    assert result.exit_code == 0
    body = json.loads(result.stdout)
    assert body["status"] == "error"
    assert body["message"].startswith(message)


def test_hook_skips_other_events() -> None:
    payload = {"hook_event_name": "Notification", "transcript_path": "x.jsonl"}
    result = runner.invoke(app, ["hook"], input=json.dumps(payload))
    assert json.loads(result.stdout)["status"] == "skipped"


def test_config_set_and_unset_round_trip(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    result = runner.invoke(app, ["config", "set", "search_limit", "5"])
    assert result.exit_code == 0
    assert json.loads(config_path.read_text()) == {"search_limit": 5}

    result = runner.invoke(app, ["config", "set", "log_level", "INFO"])
    assert json.loads(config_path.read_text())["log_level"] == "INFO"

    result = runner.invoke(app, ["config", "unset", "search_limit"])
    assert result.exit_code == 0
    assert json.loads(config_path.read_text()) == {"log_level": "INFO"}


def test_config_set_rejects_unknown_key(tmp_path: Path) -> None:
    result = runner.invoke(app, ["config", "set", "no_such_key", "1"])
    assert result.exit_code == 1
    assert not (tmp_path / "config.json").exists()
