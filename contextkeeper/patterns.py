from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .config import ContextKeeperConfig
from .ingest.transcript import parse_timestamp
from .models import PATTERN_TYPES, ExtractedContext, Pattern
from .store.archive import ArchiveStore

logger = logging.getLogger(__name__)

MERGED_EXAMPLES_LIMIT = 10
TREND_STABLE_SLOPE = 0.1


@dataclass(frozen=True, slots=True)
class PatternInsight:
    type: str
    title: str
    description: str
    severity: str
    patterns: list[Pattern] = field(default_factory=list)
    data: list[Any] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True, slots=True)
class PatternOccurrence:
    timestamp: str
    frequency: int
    session_id: str


def merge_patterns(patterns: list[Pattern]) -> list[Pattern]:
    """Fold patterns sharing ``(type, value)``: sum frequency, widen the seen range."""

    merged: dict[tuple[str, str], Pattern] = {}
    for pattern in patterns:
        key = (pattern.type, pattern.value)
        existing = merged.get(key)
        if existing is None:
            merged_id = hashlib.sha1(f"{pattern.type}:{pattern.value}".encode()).hexdigest()[:16]
            merged[key] = replace(
                pattern, id=merged_id, examples=pattern.examples[:MERGED_EXAMPLES_LIMIT]
            )
            continue
        examples = list(existing.examples)
        for example in pattern.examples:
            if example not in examples:
                examples.append(example)
        merged[key] = replace(
            existing,
            frequency=existing.frequency + pattern.frequency,
            first_seen=_earliest(existing.first_seen, pattern.first_seen),
            last_seen=_latest(existing.last_seen, pattern.last_seen),
            examples=examples[:MERGED_EXAMPLES_LIMIT],
        )
    return list(merged.values())


def _sort_key(value: str) -> float:
    parsed = parse_timestamp(value)
    return parsed.timestamp() if parsed else float("-inf")


def _earliest(a: str, b: str) -> str:
    if not a:
        return b
    if not b:
        return a
    return a if _sort_key(a) <= _sort_key(b) else b


def _latest(a: str, b: str) -> str:
    if not a:
        return b
    if not b:
        return a
    return a if _sort_key(a) >= _sort_key(b) else b


def calculate_trend(values: list[float]) -> str:
    """Least-squares slope over the series index: increasing, stable or decreasing."""

    n = len(values)
    if n < 2:
        return "stable"
    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * v for i, v in enumerate(values))
    sum_x2 = sum(i * i for i in range(n))
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)
    if abs(slope) < TREND_STABLE_SLOPE:
        return "stable"
    return "increasing" if slope > 0 else "decreasing"


def pattern_similarity(a: Pattern, b: Pattern) -> float:
    if a.type != b.type:
        return 0.0
    left, right = a.value.lower(), b.value.lower()
    if left == right:
        return 1.0
    if left in right or right in left:
        return 0.8
    words_a = set(re.split(r"\W+", left)) - {""}
    words_b = set(re.split(r"\W+", right)) - {""}
    union = words_a | words_b
    return len(words_a & words_b) / len(union) if union else 0.0


class PatternAnalyzer:
    def __init__(self, root: Path, config: ContextKeeperConfig | None = None) -> None:
        self.config = config or ContextKeeperConfig()
        self.store = ArchiveStore(root)

    def _contexts(self, project_path: str | None) -> list[ExtractedContext]:
        return [record for _, record in self.store.iter_records(project_path)]

    def get_patterns(
        self,
        *,
        pattern_type: str | None = None,
        min_frequency: int | None = None,
        project_path: str | None = None,
        limit: int | None = None,
    ) -> list[Pattern]:
        if pattern_type is not None and pattern_type not in PATTERN_TYPES:
            raise ValueError(f"pattern_type must be one of {', '.join(PATTERN_TYPES)}")
        floor = self.config.min_pattern_frequency if min_frequency is None else min_frequency
        collected = [
            pattern
            for context in self._contexts(project_path)
            for pattern in context.patterns
            if pattern_type is None or pattern.type == pattern_type
        ]
        merged = [p for p in merge_patterns(collected) if p.frequency >= floor]
        logger.debug("merged %s pattern records into %s", len(collected), len(merged))
        merged.sort(key=lambda p: (-p.frequency, -_sort_key(p.last_seen), p.type, p.value))
        return merged if limit is None else merged[: max(0, limit)]

    def find_similar_patterns(self, pattern: Pattern, *, threshold: float = 0.7) -> list[Pattern]:
        candidates = self.get_patterns(pattern_type=pattern.type, min_frequency=1)
        return [
            p
            for p in candidates
            if p.value != pattern.value and pattern_similarity(pattern, p) > threshold
        ]

    def pattern_evolution(self, value: str, pattern_type: str) -> dict[str, Any]:
        occurrences: list[PatternOccurrence] = []
        for context in self._contexts(None):
            for pattern in context.patterns:
                if pattern.type == pattern_type and pattern.value == value:
                    occurrences.append(
                        PatternOccurrence(context.timestamp, pattern.frequency, context.session_id)
                    )
                    break
        occurrences.sort(key=lambda o: (_sort_key(o.timestamp), o.session_id))
        return {
            "occurrences": occurrences,
            "trend": calculate_trend([float(o.frequency) for o in occurrences]),
        }

    def analyze_project(self, project_path: str) -> dict[str, Any]:
        contexts = self._contexts(project_path)
        patterns = self.get_patterns(project_path=project_path)
        insights = self._insights(patterns, contexts)
        return {
            "patterns": patterns,
            "insights": insights,
            "recommendations": self._recommendations(patterns, insights),
        }

    def _insights(
        self, patterns: list[Pattern], contexts: list[ExtractedContext]
    ) -> list[PatternInsight]:
        insights: list[PatternInsight] = []

        error_questions: Counter[str] = Counter()
        for context in contexts:
            for problem in context.problems:
                if "error" in problem.tags:
                    error_questions[problem.question[:80]] += 1
        recurring = error_questions.most_common(3)
        if error_questions:
            insights.append(
                PatternInsight(
                    type="error-pattern",
                    title="Recurring Errors",
                    description=f"Found {sum(error_questions.values())} error reports",
                    severity="medium",
                    data=recurring,
                    total=sum(error_questions.values()),
                )
            )

        files: Counter[str] = Counter()
        for context in contexts:
            files.update(context.metadata.files_modified)
        hotspots = sorted(files.items(), key=lambda item: (-item[1], item[0]))[:5]
        if hotspots:
            insights.append(
                PatternInsight(
                    type="hotspot",
                    title="Frequently Modified Files",
                    description="These files are modified most often and may need refactoring",
                    severity="low",
                    data=hotspots,
                )
            )

        commands = [p for p in patterns if p.type == "command"]
        if len(commands) > 3:
            insights.append(
                PatternInsight(
                    type="workflow",
                    title="Common Workflows",
                    description=f"Identified {len(commands)} recurring command patterns",
                    severity="info",
                    patterns=commands[:5],
                )
            )
        return insights

    def _recommendations(
        self, patterns: list[Pattern], insights: list[PatternInsight]
    ) -> list[str]:
        recommendations: list[str] = []
        errors = next((i for i in insights if i.type == "error-pattern"), None)
        if errors is not None and errors.total > 5:
            recommendations.append(
                "Consider better error handling strategies: multiple recurring errors detected"
            )
        frequent = [p for p in patterns if p.type == "command" and p.frequency > 5]
        if frequent:
            names = ", ".join(p.value for p in frequent[:3])
            recommendations.append(f"Automate frequent commands: {names}")
        if any(p.type == "code" and p.frequency > 10 for p in patterns):
            recommendations.append("Extract common code patterns into reusable functions")
        hotspot = next((i for i in insights if i.type == "hotspot"), None)
        if hotspot is not None and hotspot.data:
            top_file, count = hotspot.data[0]
            if count > 10:
                recommendations.append(f"Consider refactoring {top_file}: modified {count} times")
        return recommendations
