from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from . import catalog
from .ingest.transcript import parse_timestamp
from .ingest.types import NormalizedEntry

DEFAULT_HALF_LIFE_DAYS = 60.0

ENGAGEMENT_TERMS = (
    "function",
    "class",
    "method",
    "variable",
    "api",
    "database",
    "server",
    "client",
    "component",
    "module",
)

REQUEST_INDICATORS = catalog.PROBLEM_INDICATORS["task"] + catalog.USER_REQUEST_INDICATORS
PROBLEM_VOCABULARY = catalog.PROBLEM_INDICATORS["error"]


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    code_changes: float = 0.8
    error_resolution: float = 0.7
    decisions: float = 0.6
    problem_solution: float = 0.6
    tool_complexity: float = 0.4
    user_engagement: float = 0.3


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _command(tool_input: dict[str, Any] | None) -> str:
    if not tool_input:
        return ""
    command = tool_input.get("command")
    return command if isinstance(command, str) else ""


def tool_complexity(tool_name: str, tool_input: dict[str, Any] | None = None) -> float:
    tool_input = tool_input or {}
    if tool_name == "Write":
        content = tool_input.get("content")
        if isinstance(content, str) and len(content) > catalog.LARGE_WRITE_CHARS:
            return catalog.LARGE_WRITE_WEIGHT
    if tool_name == "MultiEdit":
        edits = tool_input.get("edits")
        if isinstance(edits, list) and edits:
            return min(0.5 + len(edits) * 0.1, 1.0)
    if tool_name == "Bash" and "git" in _command(tool_input):
        return 0.5
    return catalog.TOOL_WEIGHTS.get(tool_name, catalog.DEFAULT_TOOL_WEIGHT)


def administrative_score(tool_name: str | None, tool_input: dict[str, Any] | None) -> float | None:
    """Fixed scores for bookkeeping actions, or None for content-bearing ones."""

    if tool_name in catalog.ADMIN_TOOLS:
        return catalog.ADMIN_SCORES["todo"]
    if tool_name in catalog.EXECUTION_TOOLS:
        command = _command(tool_input)
        if catalog.GIT_STATE_CHANGE_RE.match(command):
            return catalog.ADMIN_SCORES["git"] + catalog.STATE_CHANGE_BOOST
        if catalog.GIT_INSPECT_RE.match(command):
            return catalog.ADMIN_SCORES["git"]
    return None


def user_engagement(text: str) -> float:
    if "?" in text:
        return 1.0
    engagement = 0.2
    if len(text) > 200:
        engagement += 0.3
    if len(text) > 500:
        engagement += 0.2
    lowered = text.lower()
    hits = sum(1 for term in ENGAGEMENT_TERMS if term in lowered)
    engagement += min(hits * 0.1, 0.3)
    return clamp(engagement)


class RelevanceScorer:
    def __init__(self, weights: ScoringWeights | None = None) -> None:
        self.weights = weights or ScoringWeights()

    def score(
        self,
        entry_type: str,
        text: str,
        tool_name: str | None = None,
        tool_input: dict[str, Any] | None = None,
        *,
        tool_error: bool = False,
    ) -> float:
        lowered = text.lower()
        if entry_type == "user" and text:
            if "?" in text:
                return 1.0
            if catalog.matches_any(lowered, REQUEST_INDICATORS) or catalog.matches_any(
                lowered, PROBLEM_VOCABULARY
            ):
                return 0.9

        admin = administrative_score(tool_name, tool_input)
        if admin is not None:
            return clamp(admin)

        w = self.weights
        total = 0.0
        if tool_name in catalog.WRITE_TOOLS:
            total += w.code_changes
        elif entry_type == "assistant" and catalog.CODE_BLOCK_RE.search(text):
            total += w.code_changes
        if tool_error:
            total += w.error_resolution
        if entry_type == "assistant":
            if catalog.matches_any(lowered, catalog.EXPLANATION_INDICATORS) or catalog.matches_any(
                lowered, catalog.DECISION_KEYWORDS
            ):
                total += w.decisions
            if catalog.matches_any(lowered, catalog.SOLUTION_INDICATORS) or catalog.matches_any(
                lowered, catalog.ACTION_VERBS
            ):
                total += w.problem_solution
        if tool_name:
            total += tool_complexity(tool_name, tool_input) * w.tool_complexity
        if entry_type == "user" and text:
            total += user_engagement(text) * w.user_engagement
        return clamp(total)

    def score_entry(self, entry: NormalizedEntry) -> float:
        return self.score(
            entry.type,
            entry.text,
            entry.tool_name,
            entry.tool_input,
            tool_error=entry.tool_error,
        )


_DEFAULT_SCORER = RelevanceScorer()


def score(entry_type: str, text: str, tool_name: str | None = None) -> float:
    return _DEFAULT_SCORER.score(entry_type, text, tool_name)


def score_entry(entry: NormalizedEntry) -> float:
    return _DEFAULT_SCORER.score_entry(entry)


def aggregate_score(scores: Sequence[float]) -> float:
    """Mean of the retained item scores, capped at 1.0."""

    if not scores:
        return 0.0
    return clamp(sum(scores) / len(scores))


def combine_scores(scores: Sequence[float], weights: Sequence[float] | None = None) -> float:
    if not scores:
        return 0.0
    if weights is not None and len(weights) == len(scores):
        total_weight = sum(weights)
        if total_weight <= 0:
            return 0.0
        return clamp(sum(s * w for s, w in zip(scores, weights, strict=True)) / total_weight)
    return aggregate_score(scores)


def temporal_decay(
    timestamp: str | dt.datetime | None,
    now: dt.datetime | None = None,
    half_life_days: float = DEFAULT_HALF_LIFE_DAYS,
) -> float:
    """Halve the weight every ``half_life_days``; undated items count as one half-life old."""

    if half_life_days <= 0:
        raise ValueError("half_life_days must be positive")
    when = timestamp if isinstance(timestamp, dt.datetime) else parse_timestamp(timestamp)
    if when is None:
        return 0.5
    if when.tzinfo is None:
        when = when.replace(tzinfo=dt.UTC)
    reference = now or dt.datetime.now(dt.UTC)
    age_days = max(0.0, (reference - when).total_seconds() / 86400)
    return 0.5 ** (age_days / half_life_days)
