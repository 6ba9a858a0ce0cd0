from __future__ import annotations

import datetime as dt

import pytest

from contextkeeper.ingest.types import NormalizedEntry
from contextkeeper.scorer import (
    RelevanceScorer,
    ScoringWeights,
    aggregate_score,
    combine_scores,
    score,
    score_entry,
    temporal_decay,
    tool_complexity,
)

SAMPLES = [
    ("user", "How do I fix the login redirect?", None),
    ("user", "please add caching to the client", None),
    ("user", "ok", None),
    ("assistant", "I'll update the handler because the cache is stale.\n```py\nx = 1\n```", None),
    ("assistant", "Sure.", None),
    ("tool_use", "", "Write"),
    ("tool_use", "", "Read"),
    ("tool_use", "", "LS"),
    ("tool_result", "Traceback: error", None),
    ("unknown", "", None),
]


def test_user_question_is_always_maximal() -> None:
    assert score("user", "what now?") == 1.0
    assert score("user", "?") == 1.0


def test_user_request_vocabulary_scores_high() -> None:
    assert score("user", "please add caching to the client") == 0.9
    assert score("user", "the build is broken") == 0.9


def test_scores_are_deterministic_and_bounded() -> None:
    for entry_type, text, tool in SAMPLES:
        first = score(entry_type, text, tool)
        assert 0.0 <= first <= 1.0
        assert score(entry_type, text, tool) == first


def test_write_tools_outweigh_navigation_tools() -> None:
    assert score("tool_use", "", "Edit") > score("tool_use", "", "Read")
    assert score("tool_use", "", "Read") > score("tool_use", "", "LS")


def test_administrative_actions_have_fixed_scores() -> None:
    scorer = RelevanceScorer()
    todo = scorer.score("tool_use", "", "TodoWrite", {"todos": []})
    status = scorer.score("tool_use", "", "Bash", {"command": "git status"})
    commit = scorer.score("tool_use", "", "Bash", {"command": "git commit -m 'wip'"})
    assert todo == 0.5
    assert status == 0.4
    assert commit > status


def test_assistant_code_and_explanation_add_up() -> None:
    plain = score("assistant", "Sure.")
    explained = score("assistant", "This fails because the cache is stale.")
    with_code = score("assistant", "Try this:\n```\nclear_cache()\n```")
    assert plain == 0.0
    assert explained > plain
    assert with_code >= 0.8


def test_tool_error_raises_result_relevance() -> None:
    entry = NormalizedEntry(type="tool_result", timestamp="", tool_output="boom", tool_error=True)
    assert score_entry(entry) == pytest.approx(0.7)


def test_custom_weights_change_contributions() -> None:
    scorer = RelevanceScorer(ScoringWeights(code_changes=0.1, tool_complexity=0.0))
    assert scorer.score("tool_use", "", "Edit") == pytest.approx(0.1)


def test_tool_complexity_special_cases() -> None:
    assert tool_complexity("Write", {"content": "x" * 2000}) == 0.9
    assert tool_complexity("MultiEdit", {"edits": [{}, {}, {}]}) == pytest.approx(0.8)
    assert tool_complexity("Bash", {"command": "git log"}) == 0.5
    assert tool_complexity("Mystery") == 0.3


def test_aggregate_score_is_capped_mean() -> None:
    assert aggregate_score([]) == 0.0
    assert aggregate_score([1.0] * 5000) == 1.0
    assert aggregate_score([0.5, 1.0]) == pytest.approx(0.75)


def test_combine_scores_with_weights() -> None:
    assert combine_scores([1.0, 0.0], [3.0, 1.0]) == pytest.approx(0.75)
    assert combine_scores([1.0, 0.0], [0.0, 0.0]) == 0.0
    assert combine_scores([0.2, 0.4]) == pytest.approx(0.3)


def test_temporal_decay_halves_every_half_life() -> None:
    now = dt.datetime(2026, 10, 1, tzinfo=dt.UTC)
    sixty_days_ago = (now - dt.timedelta(days=60)).isoformat()
    assert temporal_decay(sixty_days_ago, now) == pytest.approx(0.5)
    assert temporal_decay(now.isoformat(), now) == pytest.approx(1.0)
    assert temporal_decay(sixty_days_ago, now, half_life_days=30) == pytest.approx(0.25)
    assert temporal_decay(None, now) == 0.5
    assert temporal_decay((now + dt.timedelta(days=5)).isoformat(), now) == 1.0


def test_temporal_decay_rejects_non_positive_half_life() -> None:
    with pytest.raises(ValueError):
        temporal_decay("2026-10-01T00:00:00Z", half_life_days=0)
