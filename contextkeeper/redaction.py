from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# Label-preserving patterns: group 1 is kept, the secret after the separator is replaced.
LABELED_PATTERNS = [
    re.compile(r"\b(api[_-]?key|apikey|api[_-]?secret)(\s*[:=]\s*)['\"]?[A-Za-z0-9_\-]{20,}['\"]?", re.IGNORECASE),
    re.compile(r"\b(bearer|authorization)(\s*[:=]\s*)['\"]?(?:Bearer\s+)?[A-Za-z0-9_\-.]{20,}['\"]?", re.IGNORECASE),
    re.compile(r"\b(aws[_-]?access[_-]?key[_-]?id|aws[_-]?secret[_-]?access[_-]?key)(\s*[:=]\s*)['\"]?[A-Za-z0-9/+]{16,}['\"]?", re.IGNORECASE),
    re.compile(r"\b(password|passwd|pwd)(\s*[:=]\s*)['\"]?[^\s'\"]{4,}['\"]?", re.IGNORECASE),
    re.compile(r"\b(secret|client_secret)(\s*[:=]\s*)['\"]?[A-Za-z0-9_\-]{16,}['\"]?", re.IGNORECASE),
    re.compile(r"\b((?:export\s+)?[A-Z][A-Z0-9_]*_(?:KEY|TOKEN))(\s*=\s*)['\"]?[^\s'\"]+['\"]?"),
]

REDACTION_PATTERNS = [
    re.compile(r"\bsk-ant-[A-Za-z0-9_\-]{20,}"),
    re.compile(r"\bsk-[A-Za-z0-9]{10,}", re.IGNORECASE),
    re.compile(r"xox[baprs]-[A-Za-z0-9-]{10,}", re.IGNORECASE),
    re.compile(r"gh[pousr]_[A-Za-z0-9]{36,}"),
    re.compile(r"\beyJ[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+\.[A-Za-z0-9_\-]+"),
    re.compile(
        r"-----BEGIN\s+(?:RSA\s+|EC\s+|OPENSSH\s+)?PRIVATE KEY-----[\s\S]+?-----END\s+(?:RSA\s+|EC\s+|OPENSSH\s+)?PRIVATE KEY-----"
    ),
    re.compile(r"\b(?:mongodb|postgresql|postgres|mysql|redis)://[^:\s]+:[^@\s]+@\S+", re.IGNORECASE),
    re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    re.compile(r"\b\d{4}[\s-]\d{4}[\s-]\d{4}[\s-]\d{4}\b"),
]

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
IPV4_RE = re.compile(r"\b(\d{1,3})\.(\d{1,3})\.\d{1,3}\.\d{1,3}\b")

ANSI_ESCAPE_RE = re.compile(
    r"""
    \x1B
    (?:
        [@-Z\\-_]
      | \[ [0-?]* [ -/]* [@-~]
      | \] [^\x1B]* (?:\x1B\\\\|\x07)
      | P  [0-?]* [ -/]* [\x20-\x7E]* (?:\x1B\\\\|\x07)
    )
    """,
    re.VERBOSE,
)

# Structural record fields that never carry free text.
STRUCTURAL_KEYS = frozenset(
    {
        "id",
        "session_id",
        "project_path",
        "timestamp",
        "first_seen",
        "last_seen",
        "extraction_version",
        "trigger",
        "type",
        "impact",
    }
)


def redact_with_count(text: str) -> tuple[str, int]:
    redacted = text
    count = 0
    for pattern in LABELED_PATTERNS:
        redacted, hits = pattern.subn(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", redacted)
        count += hits
    for pattern in REDACTION_PATTERNS:
        redacted, hits = pattern.subn(REDACTED, redacted)
        count += hits
    redacted, hits = EMAIL_RE.subn(lambda m: f"***@{m.group(1)}", redacted)
    count += hits
    redacted, hits = IPV4_RE.subn(lambda m: f"{m.group(1)}.{m.group(2)}.***.***", redacted)
    count += hits
    return redacted, count


def redact(text: str) -> str:
    return redact_with_count(text)[0]


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def redact_object(value: Any, *, skip_keys: frozenset[str] = STRUCTURAL_KEYS) -> tuple[Any, int]:
    """Redact every string inside a JSON-like structure; returns (copy, hits)."""

    if isinstance(value, str):
        return redact_with_count(value)
    if isinstance(value, list):
        total = 0
        items = []
        for item in value:
            cleaned, hits = redact_object(item, skip_keys=skip_keys)
            items.append(cleaned)
            total += hits
        return items, total
    if isinstance(value, dict):
        total = 0
        result: dict[Any, Any] = {}
        for key, item in value.items():
            if key in skip_keys:
                result[key] = item
                continue
            cleaned, hits = redact_object(item, skip_keys=skip_keys)
            result[key] = cleaned
            total += hits
        return result, total
    return value, 0
