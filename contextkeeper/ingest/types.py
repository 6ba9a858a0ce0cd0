from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypedDict

EntryType = Literal["user", "assistant", "tool_use", "tool_result", "unknown"]
ENTRY_TYPES: tuple[str, ...] = ("user", "assistant", "tool_use", "tool_result", "unknown")


class ContentBlock(TypedDict, total=False):
    type: str
    text: str
    id: str
    name: str
    input: dict[str, Any]
    tool_use_id: str
    content: Any
    is_error: bool


class RawMessage(TypedDict, total=False):
    role: str
    content: str | list[ContentBlock]


class RawEntry(TypedDict, total=False):
    type: str
    timestamp: str
    sessionId: str
    session_id: str
    cwd: str
    message: RawMessage
    content: str | list[ContentBlock]
    toolUse: dict[str, Any]
    tool_use: dict[str, Any]
    toolResult: dict[str, Any]
    tool_result: dict[str, Any]
    toolUseResult: Any


@dataclass(frozen=True, slots=True)
class NormalizedEntry:
    type: str
    timestamp: str
    text: str = ""
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_output: str | None = None
    tool_error: bool = False
    session_id: str = "unknown"
    working_directory: str | None = None

    @property
    def is_tool_use(self) -> bool:
        return self.tool_name is not None

    @property
    def is_tool_result(self) -> bool:
        return self.tool_output is not None


@dataclass(slots=True)
class ParseStats:
    lines: int = 0
    parsed: int = 0
    skipped: int = 0
    dropped: int = 0
    truncated: bool = False


@dataclass(frozen=True, slots=True)
class ParsedTranscript:
    entries: list[NormalizedEntry] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)
