from __future__ import annotations

import datetime as dt
import enum
import hashlib
import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from pathlib import PurePath
from typing import Any

from . import catalog
from .config import ExtractionSettings
from .ingest.transcript import extract_session_metadata
from .ingest.types import NormalizedEntry
from .models import (
    ContextMetadata,
    Decision,
    ExtractedContext,
    Implementation,
    Pattern,
    Problem,
    Solution,
)
from .scorer import RelevanceScorer, aggregate_score

logger = logging.getLogger(__name__)

FILE_INPUT_KEYS = ("file_path", "notebook_path", "path", "filePath")


def item_id(session_id: str, kind: str, seq: int) -> str:
    return hashlib.sha1(f"{session_id}:{kind}:{seq}".encode()).hexdigest()[:16]


def truncate(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)].rstrip() + "..."


def tool_file(tool_input: dict[str, Any] | None) -> str | None:
    if not tool_input:
        return None
    for key in FILE_INPUT_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_command(command: str) -> str | None:
    """Collapse paths and numbers so repeated invocations share one key.

    Returns None for empty or trivial navigational commands.
    """

    stripped = command.strip()
    if not stripped:
        return None
    head = stripped.split()[0]
    if head in catalog.TRIVIAL_COMMANDS:
        return None
    normalized = catalog.PATH_TOKEN_RE.sub("<path>", stripped)
    normalized = catalog.NUMBER_TOKEN_RE.sub("<number>", normalized)
    normalized = " ".join(normalized.split())
    return normalized[: catalog.COMMAND_PATTERN_MAX_CHARS]


def detect_impact(text: str) -> str:
    lowered = text.lower()
    if catalog.matches_any(lowered, catalog.IMPACT_TERMS["high"]):
        return "high"
    if catalog.matches_any(lowered, catalog.IMPACT_TERMS["medium"]):
        return "medium"
    return "low"


def detect_tags(text: str) -> list[str]:
    lowered = text.lower()
    return [tag for tag in catalog.TECH_TAGS if catalog.matches_any(lowered, (tag,))]


def is_problem_text(text: str) -> bool:
    if "?" in text:
        return True
    return bool(catalog.matched_categories(text, catalog.PROBLEM_INDICATORS))


def is_solution_text(text: str) -> bool:
    lowered = text.lower()
    if catalog.CODE_BLOCK_RE.search(text):
        return True
    return catalog.matches_any(lowered, catalog.ACTION_VERBS) or catalog.matches_any(
        lowered, catalog.SOLUTION_INDICATORS
    )


class TrackerState(enum.Enum):
    IDLE = "idle"
    PROBLEM_OPEN = "problem_open"


class ProblemTracker:
    """Single-slot problem/solution linker.

    At most one problem is open. A newly detected problem closes the open one
    unresolved; a solution closes and links the open one.
    """

    def __init__(self) -> None:
        self.state = TrackerState.IDLE
        self.problems: list[Problem] = []
        self._open_index: int | None = None
        self._last_linked_index: int | None = None

    def open(self, problem: Problem) -> None:
        if self.state is TrackerState.PROBLEM_OPEN:
            logger.debug("closing unresolved problem %s", self.problems[self._open_index or 0].id)
        self.problems.append(problem)
        self._open_index = len(self.problems) - 1
        self._last_linked_index = None
        self.state = TrackerState.PROBLEM_OPEN

    def link(self, solution: Solution) -> bool:
        if self.state is not TrackerState.PROBLEM_OPEN or self._open_index is None:
            return False
        index = self._open_index
        self.problems[index] = replace(self.problems[index], solution=solution)
        self._last_linked_index = index
        self._open_index = None
        self.state = TrackerState.IDLE
        return True

    def attach_file(self, path: str) -> None:
        index = self._last_linked_index
        if index is None:
            return
        problem = self.problems[index]
        if problem.solution is None or path in problem.solution.files:
            return
        files = [*problem.solution.files, path]
        self.problems[index] = replace(problem, solution=replace(problem.solution, files=files))

    def mark_failed(self) -> None:
        index = self._last_linked_index
        if index is None:
            return
        problem = self.problems[index]
        if problem.solution is not None and problem.solution.successful:
            self.problems[index] = replace(
                problem, solution=replace(problem.solution, successful=False)
            )


@dataclass(slots=True)
class _PatternDraft:
    type: str
    value: str
    frequency: int
    first_seen: str
    last_seen: str
    examples: list[str] = field(default_factory=list)


class PatternCounter:
    def __init__(self, *, examples_limit: int) -> None:
        self.examples_limit = examples_limit
        self._drafts: dict[tuple[str, str], _PatternDraft] = {}

    def observe(self, pattern_type: str, value: str, timestamp: str, example: str) -> None:
        key = (pattern_type, value)
        draft = self._drafts.get(key)
        if draft is None:
            draft = _PatternDraft(pattern_type, value, 0, timestamp, timestamp)
            self._drafts[key] = draft
        draft.frequency += 1
        if timestamp:
            draft.first_seen = draft.first_seen or timestamp
            draft.last_seen = timestamp
        example = example.strip()
        if example and example not in draft.examples and len(draft.examples) < self.examples_limit:
            draft.examples.append(example)

    def patterns(self, session_id: str, *, min_frequency: int) -> list[Pattern]:
        results = []
        for draft in self._drafts.values():
            if draft.frequency < min_frequency:
                continue
            results.append(
                Pattern(
                    id=item_id(session_id, f"pattern:{draft.type}:{draft.value}", 0),
                    type=draft.type,
                    value=draft.value,
                    frequency=draft.frequency,
                    first_seen=draft.first_seen,
                    last_seen=draft.last_seen,
                    examples=list(draft.examples),
                )
            )
        return results


class ContextExtractor:
    def __init__(
        self,
        settings: ExtractionSettings | None = None,
        scorer: RelevanceScorer | None = None,
    ) -> None:
        self.settings = settings or ExtractionSettings()
        self.scorer = scorer or RelevanceScorer()

    def extract(
        self,
        entries: Iterable[NormalizedEntry],
        project_path: str | None = None,
        *,
        session_id: str | None = None,
        malformed_lines: int = 0,
        truncated: bool = False,
        now: dt.datetime | None = None,
    ) -> ExtractedContext:
        entries = list(entries)
        settings = self.settings
        created = (now or dt.datetime.now(dt.UTC)).isoformat()
        session_meta = extract_session_metadata(entries) if entries else {}
        session = session_id or session_meta.get("session_id") or "unknown"
        project = project_path or session_meta.get("project_path") or "unknown"

        tracker = ProblemTracker()
        pattern_counter = PatternCounter(examples_limit=settings.pattern_examples_limit)
        implementations: list[Implementation] = []
        decisions: list[Decision] = []
        seen_decisions: set[str] = set()
        tool_counts: Counter[str] = Counter()
        files_modified: list[str] = []
        last_assistant_text = ""
        seq = 0

        for entry in entries:
            seq += 1
            stamp = entry.timestamp or created
            relevance = self.scorer.score_entry(entry)
            retained = relevance >= settings.relevance_threshold

            if entry.type == "user" and entry.text:
                last_assistant_text = ""
            if entry.tool_error:
                tracker.mark_failed()

            if entry.type == "assistant" and entry.text:
                last_assistant_text = entry.text
                self._observe_architecture(pattern_counter, entry.text, stamp)
                if retained:
                    if is_solution_text(entry.text):
                        tracker.link(
                            Solution(approach=truncate(entry.text, settings.solution_max_chars))
                        )
                    for decision in self._decisions(entry.text, session, seq, stamp, relevance):
                        key = decision.decision.lower()
                        if key not in seen_decisions:
                            seen_decisions.add(key)
                            decisions.append(decision)

            if entry.type == "user" and entry.text and retained and is_problem_text(entry.text):
                categories = catalog.matched_categories(entry.text, catalog.PROBLEM_INDICATORS)
                tracker.open(
                    Problem(
                        id=item_id(session, "problem", seq),
                        question=truncate(entry.text, settings.question_max_chars),
                        timestamp=stamp,
                        relevance=relevance,
                        tags=categories + detect_tags(entry.text),
                    )
                )

            if entry.tool_name:
                tool_counts[entry.tool_name] += 1
                implementation = self._observe_tool(
                    entry,
                    pattern_counter,
                    tracker,
                    files_modified,
                    description=last_assistant_text,
                    session=session,
                    seq=seq,
                    stamp=stamp,
                    relevance=relevance,
                    retained=retained,
                )
                if implementation is not None:
                    implementations.append(implementation)

        limit = settings.max_context_items
        problems = tracker.problems[-limit:] if limit > 0 else []
        implementations = implementations[-limit:] if limit > 0 else []
        decisions = decisions[-limit:] if limit > 0 else []
        patterns = pattern_counter.patterns(session, min_frequency=settings.min_pattern_frequency)
        patterns = patterns[-limit:] if limit > 0 else []

        retained_scores = (
            [p.relevance for p in problems]
            + [i.relevance for i in implementations]
            + [d.relevance for d in decisions]
        )
        metadata = ContextMetadata(
            entry_count=len(entries),
            duration_ms=int(session_meta.get("duration_ms") or 0),
            tools_used=list(tool_counts),
            tool_counts=dict(tool_counts),
            files_modified=files_modified,
            relevance_score=aggregate_score(retained_scores),
            malformed_lines=malformed_lines,
            truncated=truncated,
        )
        return ExtractedContext(
            session_id=session,
            project_path=project,
            timestamp=created,
            problems=problems,
            implementations=implementations,
            decisions=decisions,
            patterns=patterns,
            metadata=metadata,
        )

    def _observe_tool(
        self,
        entry: NormalizedEntry,
        pattern_counter: PatternCounter,
        tracker: ProblemTracker,
        files_modified: list[str],
        *,
        description: str,
        session: str,
        seq: int,
        stamp: str,
        relevance: float,
        retained: bool,
    ) -> Implementation | None:
        tool = entry.tool_name or "unknown"
        tool_input = entry.tool_input or {}
        settings = self.settings

        if tool in catalog.EXECUTION_TOOLS:
            command = tool_input.get("command")
            if isinstance(command, str):
                normalized = normalize_command(command)
                if normalized:
                    pattern_counter.observe("command", normalized, stamp, command[:200])
                if retained:
                    tracker.link(
                        Solution(approach=truncate(f"Ran: {command}", settings.solution_max_chars))
                    )
            return None

        if tool not in catalog.WRITE_TOOLS:
            return None
        path = tool_file(tool_input) or "unknown"
        pattern_counter.observe("code", f"{tool}:{path}", stamp, PurePath(path).name)
        if path not in files_modified:
            files_modified.append(path)
        if not retained:
            return None
        text = truncate(description, settings.implementation_max_chars) if description else ""
        if not text:
            text = f"{tool} {path}"
        if not tracker.link(
            Solution(
                approach=truncate(description or text, settings.solution_max_chars),
                files=[path],
            )
        ):
            tracker.attach_file(path)
        return Implementation(
            id=item_id(session, "implementation", seq),
            tool=tool,
            file=path,
            description=text,
            timestamp=stamp,
            relevance=relevance,
        )

    def _observe_architecture(self, pattern_counter: PatternCounter, text: str, stamp: str) -> None:
        lowered = text.lower()
        for term in catalog.ARCHITECTURE_TERMS:
            if catalog.matches_any(lowered, (term,)):
                pattern_counter.observe("architecture", term, stamp, truncate(text, 200))

    def _decisions(
        self,
        text: str,
        session: str,
        seq: int,
        stamp: str,
        relevance: float,
    ) -> list[Decision]:
        settings = self.settings
        radius = catalog.DECISION_CONTEXT_RADIUS
        found: list[Decision] = []
        for template in catalog.DECISION_TEMPLATES:
            for match in template.finditer(text):
                start, end = match.span()
                context = text[max(0, start - radius) : end + radius].strip()
                rationale_match = catalog.RATIONALE_PATTERN.search(text, start)
                rationale = ""
                if rationale_match and rationale_match.start() - end <= radius:
                    rationale = truncate(rationale_match.group(1), settings.decision_max_chars)
                found.append(
                    Decision(
                        id=item_id(session, f"decision:{len(found)}", seq),
                        decision=truncate(match.group(0), settings.decision_max_chars),
                        context=truncate(context, settings.decision_max_chars),
                        rationale=rationale,
                        impact=detect_impact(context),
                        timestamp=stamp,
                        relevance=relevance,
                        tags=detect_tags(context),
                    )
                )
        return found
