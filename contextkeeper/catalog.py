"""Versioned keyword and regex tables used by the scorer and extractor.

Bump ``EXTRACTION_VERSION`` whenever a table changes in a way that alters
what gets extracted, so archived records can be told apart.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Final

EXTRACTION_VERSION: Final = "0.7.0"

# Problem indicator phrase-classes.
PROBLEM_INDICATORS: Final[dict[str, tuple[str, ...]]] = {
    "question": (
        "how do",
        "how can",
        "how to",
        "what is",
        "what's",
        "why does",
        "why is",
        "can you",
        "could you",
        "is there",
        "where is",
        "which",
    ),
    "error": (
        "error",
        "failed",
        "failing",
        "fails",
        "exception",
        "issue",
        "problem",
        "bug",
        "broken",
        "crash",
        "doesn't work",
        "not working",
        "traceback",
    ),
    "task": (
        "implement",
        "create",
        "build",
        "add",
        "refactor",
        "optimize",
        "migrate",
        "update",
        "fix",
    ),
    "architecture": (
        "design pattern",
        "architecture",
        "structure",
        "best practice",
        "approach",
    ),
}

# User phrasing that always marks a request worth keeping.
USER_REQUEST_INDICATORS: Final[tuple[str, ...]] = (
    "please",
    "can you",
    "could you",
    "i need",
    "i want",
    "help me",
)

SOLUTION_INDICATORS: Final[tuple[str, ...]] = (
    "solution",
    "fixed",
    "resolved",
    "the fix",
    "works now",
    "should work",
    "this will",
    "try this",
    "here's how",
    "you can",
)

ACTION_VERBS: Final[tuple[str, ...]] = (
    "i'll",
    "i will",
    "let me",
    "i've",
    "i have",
    "updated",
    "added",
    "created",
    "changed",
    "modified",
    "implemented",
    "removed",
    "renamed",
    "replaced",
)

EXPLANATION_INDICATORS: Final[tuple[str, ...]] = (
    "because",
    "reason",
    "since",
    "therefore",
    "this means",
    "the cause",
    "due to",
)

DECISION_KEYWORDS: Final[tuple[str, ...]] = (
    "decided",
    "decision",
    "should",
    "recommend",
    "better to",
    "approach",
    "instead of",
    "trade-off",
    "tradeoff",
)

DECISION_TEMPLATES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bwe should\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bbetter to\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bi recommend\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bthe approach is to\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:i|we)(?: have)? decided to\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bgoing with\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bchoosing\s+([^.!?\n]+)", re.IGNORECASE),
)
DECISION_CONTEXT_RADIUS: Final = 100

RATIONALE_PATTERN: Final = re.compile(
    r"\b(?:because|since|due to|as it|so that|in order to)\s+([^.!?\n]+)", re.IGNORECASE
)

IMPACT_TERMS: Final[dict[str, tuple[str, ...]]] = {
    "high": ("architecture", "database", "api", "security", "framework", "schema", "migration"),
    "medium": ("refactor", "optimize", "structure", "design", "performance", "dependency"),
}

ARCHITECTURE_TERMS: Final[tuple[str, ...]] = (
    "mvc",
    "microservice",
    "monolith",
    "event-driven",
    "repository pattern",
    "dependency injection",
    "singleton",
    "factory",
    "observer",
    "middleware",
    "rest api",
    "graphql",
    "message queue",
    "pub/sub",
)

TECH_TAGS: Final[tuple[str, ...]] = (
    "python",
    "typescript",
    "javascript",
    "react",
    "node",
    "docker",
    "kubernetes",
    "sql",
    "postgres",
    "sqlite",
    "redis",
    "git",
    "api",
    "test",
    "auth",
    "css",
    "html",
    "json",
    "yaml",
)

CODE_BLOCK_RE: Final = re.compile(r"```")

# Tool classes.
WRITE_TOOLS: Final = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
EXECUTION_TOOLS: Final = frozenset({"Bash"})
ADMIN_TOOLS: Final = frozenset({"TodoWrite"})

TOOL_WEIGHTS: Final[dict[str, float]] = {
    "MultiEdit": 0.8,
    "Write": 0.7,
    "NotebookEdit": 0.7,
    "Edit": 0.6,
    "TodoWrite": 0.5,
    "Bash": 0.4,
    "Task": 0.4,
    "WebFetch": 0.3,
    "WebSearch": 0.3,
    "Grep": 0.3,
    "Glob": 0.2,
    "Read": 0.2,
    "LS": 0.1,
}
DEFAULT_TOOL_WEIGHT: Final = 0.3
LARGE_WRITE_CHARS: Final = 1000
LARGE_WRITE_WEIGHT: Final = 0.9

ADMIN_SCORES: Final[dict[str, float]] = {
    "todo": 0.5,
    "git": 0.4,
}
STATE_CHANGE_BOOST: Final = 0.15

GIT_INSPECT_RE: Final = re.compile(r"^\s*git\s+(?:status|diff|log|show|branch)\b")
GIT_STATE_CHANGE_RE: Final = re.compile(
    r"^\s*git\s+(?:commit|push|merge|rebase|tag|cherry-pick|revert|reset)\b"
)

TRIVIAL_COMMANDS: Final = frozenset({"ls", "pwd", "cd", "echo", "cat", "clear", "which", "whoami"})
COMMAND_PATTERN_MAX_CHARS: Final = 50
PATH_TOKEN_RE: Final = re.compile(r"(?:\.{0,2}/)?(?:[\w.-]+/)+[\w.-]+")
NUMBER_TOKEN_RE: Final = re.compile(r"\b\d+\b")


@lru_cache(maxsize=512)
def _phrase_re(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w]){re.escape(phrase)}(?![\w])")


def matches_any(text: str, phrases: tuple[str, ...]) -> bool:
    """Whole-word match of any phrase against already-lowercased text."""

    return any(_phrase_re(phrase).search(text) for phrase in phrases)


def matched_categories(text: str, table: dict[str, tuple[str, ...]]) -> list[str]:
    lowered = text.lower()
    return [name for name, phrases in table.items() if matches_any(lowered, phrases)]
