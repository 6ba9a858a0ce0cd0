from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from .catalog import EXTRACTION_VERSION

Impact = Literal["low", "medium", "high"]
PatternType = Literal["code", "command", "architecture"]
IMPACT_LEVELS = ("low", "medium", "high")
PATTERN_TYPES = ("code", "command", "architecture")


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


@dataclass(frozen=True, slots=True)
class Solution:
    approach: str
    files: list[str] = field(default_factory=list)
    successful: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Solution:
        return cls(
            approach=str(data.get("approach") or ""),
            files=_str_list(data.get("files")),
            successful=bool(data.get("successful", True)),
        )


@dataclass(frozen=True, slots=True)
class Problem:
    id: str
    question: str
    timestamp: str
    relevance: float
    solution: Solution | None = None
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Problem:
        solution = data.get("solution")
        return cls(
            id=str(data.get("id") or ""),
            question=str(data.get("question") or ""),
            timestamp=str(data.get("timestamp") or ""),
            relevance=_float(data.get("relevance")),
            solution=Solution.from_dict(solution) if isinstance(solution, dict) else None,
            tags=_str_list(data.get("tags")),
        )


@dataclass(frozen=True, slots=True)
class Implementation:
    id: str
    tool: str
    file: str
    description: str
    timestamp: str
    relevance: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Implementation:
        return cls(
            id=str(data.get("id") or ""),
            tool=str(data.get("tool") or ""),
            file=str(data.get("file") or ""),
            description=str(data.get("description") or ""),
            timestamp=str(data.get("timestamp") or ""),
            relevance=_float(data.get("relevance")),
        )


@dataclass(frozen=True, slots=True)
class Decision:
    id: str
    decision: str
    context: str
    rationale: str
    impact: str
    timestamp: str
    relevance: float = 0.0
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Decision:
        impact = str(data.get("impact") or "low")
        return cls(
            id=str(data.get("id") or ""),
            decision=str(data.get("decision") or ""),
            context=str(data.get("context") or ""),
            rationale=str(data.get("rationale") or ""),
            impact=impact if impact in IMPACT_LEVELS else "low",
            timestamp=str(data.get("timestamp") or ""),
            relevance=_float(data.get("relevance")),
            tags=_str_list(data.get("tags")),
        )


@dataclass(frozen=True, slots=True)
class Pattern:
    id: str
    type: str
    value: str
    frequency: int
    first_seen: str
    last_seen: str
    examples: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pattern:
        return cls(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or "command"),
            value=str(data.get("value") or ""),
            frequency=_int(data.get("frequency"), 1),
            first_seen=str(data.get("first_seen") or ""),
            last_seen=str(data.get("last_seen") or ""),
            examples=_str_list(data.get("examples")),
        )


@dataclass(frozen=True, slots=True)
class ContextMetadata:
    entry_count: int = 0
    duration_ms: int = 0
    tools_used: list[str] = field(default_factory=list)
    tool_counts: dict[str, int] = field(default_factory=dict)
    files_modified: list[str] = field(default_factory=list)
    relevance_score: float = 0.0
    extraction_version: str = EXTRACTION_VERSION
    trigger: str | None = None
    malformed_lines: int = 0
    truncated: bool = False
    security_filtered: bool = False
    redacted_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContextMetadata:
        counts = data.get("tool_counts")
        return cls(
            entry_count=_int(data.get("entry_count")),
            duration_ms=_int(data.get("duration_ms")),
            tools_used=_str_list(data.get("tools_used")),
            tool_counts={str(k): _int(v) for k, v in counts.items()}
            if isinstance(counts, dict)
            else {},
            files_modified=_str_list(data.get("files_modified")),
            relevance_score=_float(data.get("relevance_score")),
            extraction_version=str(data.get("extraction_version") or "unknown"),
            trigger=data.get("trigger"),
            malformed_lines=_int(data.get("malformed_lines")),
            truncated=bool(data.get("truncated", False)),
            security_filtered=bool(data.get("security_filtered", False)),
            redacted_count=_int(data.get("redacted_count")),
        )


@dataclass(frozen=True, slots=True)
class ExtractedContext:
    session_id: str
    project_path: str
    timestamp: str
    problems: list[Problem] = field(default_factory=list)
    implementations: list[Implementation] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    patterns: list[Pattern] = field(default_factory=list)
    metadata: ContextMetadata = field(default_factory=ContextMetadata)

    def counts(self) -> dict[str, int]:
        return {
            "problems": len(self.problems),
            "implementations": len(self.implementations),
            "decisions": len(self.decisions),
            "patterns": len(self.patterns),
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractedContext:
        def items(key: str) -> list[dict[str, Any]]:
            value = data.get(key)
            if not isinstance(value, list):
                return []
            return [item for item in value if isinstance(item, dict)]

        metadata = data.get("metadata")
        return cls(
            session_id=str(data.get("session_id") or "unknown"),
            project_path=str(data.get("project_path") or ""),
            timestamp=str(data.get("timestamp") or ""),
            problems=[Problem.from_dict(item) for item in items("problems")],
            implementations=[Implementation.from_dict(item) for item in items("implementations")],
            decisions=[Decision.from_dict(item) for item in items("decisions")],
            patterns=[Pattern.from_dict(item) for item in items("patterns")],
            metadata=ContextMetadata.from_dict(metadata)
            if isinstance(metadata, dict)
            else ContextMetadata(),
        )
