from __future__ import annotations

import datetime as dt
import json

import pytest
from builders import assistant, tool_result, tool_use, user

from contextkeeper.config import ExtractionSettings
from contextkeeper.extractor import (
    ContextExtractor,
    ProblemTracker,
    TrackerState,
    normalize_command,
)
from contextkeeper.ingest import parse_transcript_content
from contextkeeper.models import Problem, Solution

NOW = dt.datetime(2026, 10, 2, tzinfo=dt.UTC)


def _entries(*records):
    return parse_transcript_content("\n".join(json.dumps(r) for r in records)).entries


def _extract(*records, settings: ExtractionSettings | None = None):
    return ContextExtractor(settings).extract(_entries(*records), "/work/app", now=NOW)


def test_question_with_code_answer_yields_linked_problem() -> None:
    context = _extract(
        user("How do I parse JSON in Python?"),
        assistant("Here's how:\n```python\nimport json\ndata = json.loads(raw)\n```"),
    )
    assert len(context.problems) == 1
    problem = context.problems[0]
    assert problem.relevance == 1.0
    assert problem.solution is not None
    assert "json.loads" in problem.solution.approach
    assert problem.solution.successful is True
    assert "question" in problem.tags
    assert "python" in problem.tags


@pytest.mark.parametrize(
    "text",
    ["ok?", "?", "hmm... is that right?", "deploy it? or not"],
)
def test_any_user_question_mark_yields_problem(text: str) -> None:
    strict = ExtractionSettings(relevance_threshold=1.0)
    context = _extract(user(text), settings=strict)
    assert [p.question for p in context.problems] == [text]


def test_new_problem_closes_previous_unresolved() -> None:
    context = _extract(
        user("Why does the import fail?", ts="2026-10-01T10:00:00Z"),
        user("How do I add retries?", ts="2026-10-01T10:01:00Z"),
        assistant("I'll add a retry loop around the call.", ts="2026-10-01T10:02:00Z"),
    )
    assert len(context.problems) == 2
    assert context.problems[0].solution is None
    assert context.problems[1].solution is not None


def test_implementation_takes_preceding_assistant_text() -> None:
    context = _extract(
        user("Please add a config loader"),
        assistant("I'll create the config loader module."),
        tool_use("Write", {"file_path": "src/config.py", "content": "x = 1"}),
    )
    assert len(context.implementations) == 1
    impl = context.implementations[0]
    assert impl.tool == "Write"
    assert impl.file == "src/config.py"
    assert impl.description == "I'll create the config loader module."
    assert context.metadata.files_modified == ["src/config.py"]
    assert context.metadata.tool_counts == {"Write": 1}


def test_user_turn_resets_implementation_description() -> None:
    context = _extract(
        assistant("I'll look at it."),
        user("never mind, just edit it"),
        tool_use("Edit", {"file_path": "a.py"}),
    )
    assert context.implementations[0].description == "Edit a.py"


def test_tool_error_marks_linked_solution_failed() -> None:
    context = _extract(
        user("Can you fix the failing import?"),
        assistant("I'll change the import path."),
        tool_use("Edit", {"file_path": "src/app.py"}),
        tool_result("ImportError: nope", is_error=True),
    )
    solution = context.problems[0].solution
    assert solution is not None
    assert solution.successful is False
    assert solution.files == ["src/app.py"]


def test_decision_with_rationale_and_impact() -> None:
    context = _extract(
        assistant("We should store sessions in SQLite because the schema stays simple."),
    )
    assert len(context.decisions) == 1
    decision = context.decisions[0]
    assert decision.decision.startswith("We should store sessions in SQLite")
    assert decision.rationale == "the schema stays simple"
    assert decision.impact == "high"
    assert "sqlite" in decision.tags


def test_entries_below_threshold_are_dropped() -> None:
    strict = ExtractionSettings(relevance_threshold=0.99)
    context = _extract(
        assistant("We should store sessions in SQLite because the schema stays simple."),
        settings=strict,
    )
    assert context.decisions == []


def test_command_patterns_are_normalized_and_counted() -> None:
    context = _extract(
        tool_use("Bash", {"command": "pytest tests/test_a.py"}),
        tool_use("Bash", {"command": "pytest tests/test_b.py"}),
        tool_use("Bash", {"command": "ls"}),
        tool_use("Bash", {"command": "ls"}),
    )
    commands = {p.value: p for p in context.patterns if p.type == "command"}
    assert list(commands) == ["pytest <path>"]
    assert commands["pytest <path>"].frequency == 2
    assert commands["pytest <path>"].examples == [
        "pytest tests/test_a.py",
        "pytest tests/test_b.py",
    ]


def test_normalize_command() -> None:
    assert normalize_command("  ") is None
    assert normalize_command("cd src") is None
    assert normalize_command("sleep 30") == "sleep <number>"


def test_lists_are_capped_keeping_most_recent() -> None:
    records = [user(f"question {i}?", ts=f"2026-10-01T10:0{i}:00Z") for i in range(5)]
    context = _extract(*records, settings=ExtractionSettings(max_context_items=2))
    assert [p.question for p in context.problems] == ["question 3?", "question 4?"]


def test_text_fields_are_truncated() -> None:
    context = _extract(
        user("why " * 200 + "?"), settings=ExtractionSettings(question_max_chars=50)
    )
    assert len(context.problems[0].question) <= 50


def test_context_relevance_never_exceeds_one() -> None:
    records = []
    for i in range(300):
        records.append(user(f"What about case {i}?"))
        records.append(tool_use("Write", {"file_path": f"f{i}.py", "content": "y" * 2000}))
    context = _extract(*records)
    assert 0.0 < context.metadata.relevance_score <= 1.0
    assert len(context.implementations) == 50


def test_empty_entries_produce_empty_context() -> None:
    context = ContextExtractor().extract([], "/work/app", session_id="s1", now=NOW)
    assert context.counts() == {
        "problems": 0,
        "implementations": 0,
        "decisions": 0,
        "patterns": 0,
    }
    assert context.metadata.relevance_score == 0.0
    assert context.session_id == "s1"


def test_tracker_states() -> None:
    tracker = ProblemTracker()
    assert tracker.link(Solution(approach="nothing open")) is False
    tracker.open(Problem(id="p1", question="a?", timestamp="", relevance=1.0))
    assert tracker.state is TrackerState.PROBLEM_OPEN
    assert tracker.link(Solution(approach="done")) is True
    assert tracker.state is TrackerState.IDLE
    assert tracker.problems[0].solution == Solution(approach="done")
