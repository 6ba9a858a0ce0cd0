from __future__ import annotations

import json
from typing import Any

from ..redaction import strip_ansi
from .types import NormalizedEntry

KNOWN_TYPES = {"user", "assistant", "tool_use", "tool_result"}
TOOL_USE_KEYS = ("toolUse", "tool_use")
TOOL_RESULT_KEYS = ("toolResult", "tool_result")


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def stringify_output(value: Any) -> str:
    """Flatten a tool result payload (string, block list, or object) to text."""

    if value is None:
        return ""
    if isinstance(value, str):
        return strip_ansi(value)
    if isinstance(value, list):
        parts = []
        for item in value:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text") or ""))
            else:
                parts.append(stringify_output(item))
        return "\n".join(part for part in parts if part)
    if isinstance(value, dict):
        for key in ("content", "output", "stdout", "result", "text"):
            if key in value and value[key] not in (None, ""):
                text = stringify_output(value[key])
                stderr = value.get("stderr") if key == "stdout" else None
                if isinstance(stderr, str) and stderr.strip():
                    text = f"{text}\n{strip_ansi(stderr)}" if text else strip_ansi(stderr)
                return text
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def _result_is_error(value: Any) -> bool:
    if not isinstance(value, dict):
        return False
    if value.get("is_error") or value.get("isError"):
        return True
    error = value.get("error")
    return bool(error) and not isinstance(error, bool | int)


def _tool_input(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def normalize_record(raw: dict[str, Any], *, previous_timestamp: str = "") -> NormalizedEntry:
    """Turn one raw transcript record into the canonical entry shape.

    Both encodings of tool activity are accepted: content blocks nested in
    ``message.content`` and top-level ``toolUse``/``toolResult`` fields.
    """

    raw_type = str(raw.get("type") or "").lower()
    message = raw.get("message")
    content: Any = None
    if isinstance(message, dict):
        content = message.get("content")
        if not raw_type:
            raw_type = str(message.get("role") or "").lower()
    if content is None:
        content = raw.get("content")

    texts: list[str] = []
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    tool_output: str | None = None
    tool_error = False
    has_tool_result_block = False

    if isinstance(content, str):
        texts.append(content)
    elif isinstance(content, list):
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text = block.get("text")
                if isinstance(text, str) and text:
                    texts.append(text)
            elif block_type == "tool_use" and tool_name is None:
                tool_name = str(block.get("name") or "unknown")
                tool_input = _tool_input(block.get("input"))
            elif block_type == "tool_result":
                has_tool_result_block = True
                output = stringify_output(block.get("content"))
                tool_output = output if tool_output is None else f"{tool_output}\n{output}"
                tool_error = tool_error or bool(block.get("is_error"))

    top_use = _first(raw, *TOOL_USE_KEYS)
    if tool_name is None and isinstance(top_use, dict):
        tool_name = str(top_use.get("name") or "unknown")
        tool_input = _tool_input(top_use.get("input"))
    if tool_name is None:
        name = _first(raw, "toolName", "tool_name")
        if name:
            tool_name = str(name)
            tool_input = _tool_input(_first(raw, "toolInput", "tool_input"))

    top_result = _first(raw, *TOOL_RESULT_KEYS)
    if top_result is None:
        top_result = raw.get("toolUseResult")
    if tool_output is None and top_result is not None:
        tool_output = stringify_output(top_result)
        tool_error = _result_is_error(top_result)

    text = "\n".join(texts).strip()
    if raw_type == "assistant" and tool_name is not None and not text:
        entry_type = "tool_use"
    elif raw_type == "user" and has_tool_result_block and not text:
        entry_type = "tool_result"
    elif raw_type in KNOWN_TYPES:
        entry_type = raw_type
    else:
        entry_type = "unknown"

    timestamp = raw.get("timestamp")
    cwd = _first(raw, "cwd", "workingDirectory", "working_directory")
    return NormalizedEntry(
        type=entry_type,
        timestamp=str(timestamp) if timestamp else previous_timestamp,
        text=text,
        tool_name=tool_name,
        tool_input=tool_input,
        tool_output=tool_output,
        tool_error=tool_error,
        session_id=str(_first(raw, "sessionId", "session_id") or "unknown"),
        working_directory=str(cwd) if cwd else None,
    )
