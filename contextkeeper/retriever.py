from __future__ import annotations

import datetime as dt
import fnmatch
import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .config import ContextKeeperConfig
from .ingest.transcript import parse_timestamp
from .models import ExtractedContext
from .scorer import temporal_decay
from .store.archive import ArchiveStore
from .store.index import ProjectIndex

logger = logging.getLogger(__name__)

SORT_KEYS = ("relevance", "date", "frequency")
SCOPES = ("session", "project", "global")

STOP_WORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "been",
        "but",
        "by",
        "can",
        "could",
        "did",
        "do",
        "does",
        "for",
        "from",
        "had",
        "has",
        "have",
        "i",
        "in",
        "is",
        "it",
        "may",
        "might",
        "must",
        "of",
        "on",
        "or",
        "our",
        "ours",
        "ourselves",
        "should",
        "that",
        "the",
        "this",
        "to",
        "was",
        "we",
        "were",
        "what",
        "will",
        "with",
        "would",
        "you",
        "your",
        "yours",
        "yourself",
    }
)

# Hand-picked expansions beyond plain suffix variants.
SYNONYMS: dict[str, tuple[str, ...]] = {
    "implement": ("implementation", "implemented", "implementing"),
    "solution": ("solutions", "solve", "solved", "solving"),
    "fetch": ("fetching", "fetched", "retrieve", "retrieval"),
    "recent": ("recently", "latest", "last"),
    "tool": ("tools", "tool_use"),
}

FIELD_WEIGHTS = {
    "problem": 0.8,
    "solution": 0.7,
    "decision": 0.7,
    "implementation": 0.6,
    "pattern": 0.5,
}

TOKEN_RE = re.compile(r"[a-z0-9_]+")
SUFFIXES = ("ing", "ed", "es", "s")


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens with stop words and single characters removed."""

    return [t for t in TOKEN_RE.findall(text.lower()) if len(t) > 1 and t not in STOP_WORDS]


def word_variants(token: str) -> tuple[str, ...]:
    stem = token
    for suffix in SUFFIXES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            stem = token[: -len(suffix)]
            break
    candidates = [token, stem, stem + "s", stem + "es", stem + "ed", stem + "ing"]
    candidates += SYNONYMS.get(stem, ())
    variants: list[str] = []
    for candidate in candidates:
        if candidate not in variants and candidate not in STOP_WORDS:
            variants.append(candidate)
    return tuple(variants)


@dataclass(frozen=True, slots=True)
class QueryTerms:
    groups: tuple[tuple[str, ...], ...]

    @classmethod
    def parse(cls, query: str) -> QueryTerms:
        seen: list[str] = []
        for token in tokenize(query):
            if token not in seen:
                seen.append(token)
        return cls(groups=tuple(word_variants(token) for token in seen))

    @property
    def tokens(self) -> list[str]:
        return [group[0] for group in self.groups]

    def match_score(self, text: str) -> float:
        """Fraction of query words (any variant) present in ``text``."""

        if not self.groups or not text:
            return 0.0
        words = set(TOKEN_RE.findall(text.lower()))
        matched = sum(1 for group in self.groups if any(v in words for v in group))
        return matched / len(self.groups)


@dataclass(frozen=True, slots=True)
class SearchMatch:
    field: str
    text: str
    score: float


@dataclass(frozen=True, slots=True)
class SearchResult:
    context: ExtractedContext
    relevance: float
    matches: list[SearchMatch] = field(default_factory=list)


def snippet(text: str, terms: QueryTerms, radius: int = 50) -> str:
    lowered = text.lower()
    for group in terms.groups:
        for variant in group:
            pos = lowered.find(variant)
            if pos == -1:
                continue
            start = max(0, pos - radius)
            end = min(len(text), pos + len(variant) + radius)
            prefix = "..." if start > 0 else ""
            suffix = "..." if end < len(text) else ""
            return f"{prefix}{text[start:end]}{suffix}"
    return text[: radius * 2]


def find_matches(context: ExtractedContext, terms: QueryTerms) -> list[SearchMatch]:
    candidates: list[tuple[str, str]] = []
    for problem in context.problems:
        candidates.append(("problem", problem.question))
        if problem.solution is not None:
            candidates.append(("solution", problem.solution.approach))
    for impl in context.implementations:
        candidates.append(("implementation", f"{impl.description} {impl.file}"))
    for decision in context.decisions:
        candidates.append(("decision", f"{decision.decision} {decision.context}"))
    for pattern in context.patterns:
        candidates.append(("pattern", " ".join([pattern.value, *pattern.examples])))

    matches = []
    for field_name, text in candidates:
        score = terms.match_score(text)
        if score > 0:
            weighted = FIELD_WEIGHTS[field_name] * score
            matches.append(SearchMatch(field_name, snippet(text, terms), weighted))
    return matches


def combine_matches(matches: list[SearchMatch]) -> float:
    if not matches:
        return 0.0
    average = sum(m.score for m in matches) / len(matches)
    return min(average + min(len(matches) * 0.1, 0.3), 1.0)


def _epoch(timestamp: str) -> float:
    parsed = parse_timestamp(timestamp)
    return parsed.timestamp() if parsed else 0.0


def file_matches(path: str, pattern: str) -> bool:
    path_l = path.lower()
    pattern_l = pattern.lower()
    if not any(ch in pattern_l for ch in "*?["):
        return pattern_l in path_l
    return fnmatch.fnmatch(path_l, pattern_l) or fnmatch.fnmatch(
        os.path.basename(path_l), pattern_l
    )


class ContextRetriever:
    def __init__(self, root: Path, config: ContextKeeperConfig | None = None) -> None:
        self.config = config or ContextKeeperConfig()
        self.store = ArchiveStore(root)

    def _records(self, project_path: str | None) -> Iterable[ExtractedContext]:
        for _, record in self.store.iter_records(project_path):
            yield record

    def _relevance(
        self, context: ExtractedContext, terms: QueryTerms, now: dt.datetime | None
    ) -> tuple[float, list[SearchMatch]]:
        matches = find_matches(context, terms)
        if not matches:
            return 0.0, []
        decay = temporal_decay(context.timestamp, now, self.config.decay_half_life_days)
        return combine_matches(matches) * decay, matches

    def search(
        self,
        query: str,
        *,
        file_pattern: str | None = None,
        date_from: dt.datetime | None = None,
        date_to: dt.datetime | None = None,
        project_path: str | None = None,
        limit: int | None = None,
        sort_by: str = "relevance",
        now: dt.datetime | None = None,
    ) -> list[SearchResult]:
        if sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {', '.join(SORT_KEYS)}")
        terms = QueryTerms.parse(query)
        if not terms.groups:
            return []
        limit = self.config.search_limit if limit is None else limit
        results: list[SearchResult] = []
        for context in self._records(project_path):
            when = parse_timestamp(context.timestamp)
            if date_from is not None and (when is None or when < _aware(date_from)):
                continue
            if date_to is not None and (when is None or when > _aware(date_to)):
                continue
            if file_pattern and not any(
                file_matches(path, file_pattern) for path in context.metadata.files_modified
            ):
                continue
            relevance, matches = self._relevance(context, terms, now)
            if matches:
                results.append(SearchResult(context=context, relevance=relevance, matches=matches))

        if sort_by == "date":
            results.sort(
                key=lambda r: (-_epoch(r.context.timestamp), -r.relevance, r.context.session_id)
            )
        elif sort_by == "frequency":
            results.sort(
                key=lambda r: (
                    -len(r.matches),
                    -r.relevance,
                    -_epoch(r.context.timestamp),
                    r.context.session_id,
                )
            )
        else:
            results.sort(
                key=lambda r: (-r.relevance, -_epoch(r.context.timestamp), r.context.session_id)
            )
        return results[: max(0, limit)]

    def fetch(
        self,
        query: str = "",
        *,
        scope: str = "project",
        project_path: str | None = None,
        session_id: str | None = None,
        limit: int | None = None,
        min_relevance: float | None = None,
        now: dt.datetime | None = None,
    ) -> list[SearchResult]:
        """Ranked contexts paired with their ranking score; records are returned as stored."""

        if scope not in SCOPES:
            raise ValueError(f"scope must be one of {', '.join(SCOPES)}")
        limit = self.config.fetch_limit if limit is None else limit
        floor = self.config.fetch_min_relevance if min_relevance is None else min_relevance
        if scope == "global":
            source = self._records(None)
        elif scope == "project":
            source = self._records(project_path or os.getcwd())
        else:
            if not session_id:
                return []
            source = (c for c in self._records(project_path) if c.session_id == session_id)

        terms = QueryTerms.parse(query) if query.strip() else None
        ranked: list[SearchResult] = []
        for context in source:
            if terms is None or not terms.groups:
                relevance, matches = context.metadata.relevance_score, []
            else:
                relevance, matches = self._relevance(context, terms, now)
                if not matches:
                    continue
            if relevance >= floor:
                ranked.append(SearchResult(context=context, relevance=relevance, matches=matches))
        ranked.sort(
            key=lambda r: (-r.relevance, -_epoch(r.context.timestamp), r.context.session_id)
        )
        return ranked[: max(0, limit)]

    def get_by_session_id(self, session_id: str) -> ExtractedContext | None:
        found = [c for c in self._records(None) if c.session_id == session_id]
        if not found:
            return None
        return max(found, key=lambda c: _epoch(c.timestamp))

    def get_recent_contexts(
        self, limit: int = 10, project_path: str | None = None
    ) -> list[ExtractedContext]:
        contexts = sorted(
            self._records(project_path),
            key=lambda c: (-_epoch(c.timestamp), c.session_id),
        )
        return contexts[: max(0, limit)]

    def get_project_index(self, project_path: str) -> ProjectIndex | None:
        try:
            return self.store.read_index(self.store.project_dir(project_path))
        except ValueError as exc:
            logger.warning("%s", exc)
            return None


def _aware(value: dt.datetime) -> dt.datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=dt.UTC)
