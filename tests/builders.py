from __future__ import annotations

from typing import Any

from contextkeeper.models import (
    ContextMetadata,
    ExtractedContext,
    Implementation,
    Pattern,
    Problem,
    Solution,
)


def user(text: str, ts: str = "2026-10-01T10:00:00Z", **extra: Any) -> dict[str, Any]:
    return {"type": "user", "timestamp": ts, "message": {"role": "user", "content": text}, **extra}


def assistant(text: str, ts: str = "2026-10-01T10:00:05Z", **extra: Any) -> dict[str, Any]:
    return {
        "type": "assistant",
        "timestamp": ts,
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        **extra,
    }


def tool_use(
    name: str, tool_input: dict[str, Any], ts: str = "2026-10-01T10:00:10Z", **extra: Any
) -> dict[str, Any]:
    return {
        "type": "assistant",
        "timestamp": ts,
        "message": {
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "toolu_1", "name": name, "input": tool_input}],
        },
        **extra,
    }


def tool_result(
    output: str, ts: str = "2026-10-01T10:00:12Z", *, is_error: bool = False
) -> dict[str, Any]:
    return {
        "type": "user",
        "timestamp": ts,
        "message": {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": "toolu_1",
                    "content": output,
                    "is_error": is_error,
                }
            ],
        },
    }


def make_context(
    session_id: str,
    project_path: str = "/work/app",
    *,
    timestamp: str = "2026-10-01T12:00:00+00:00",
    problems: int = 2,
    questions: list[str] | None = None,
    files: list[str] | None = None,
    patterns: list[tuple[str, str, int]] | None = None,
    relevance: float = 0.8,
) -> ExtractedContext:
    questions = questions or [f"problem {i} in {session_id}?" for i in range(problems)]
    files = files or []
    return ExtractedContext(
        session_id=session_id,
        project_path=project_path,
        timestamp=timestamp,
        problems=[
            Problem(
                id=f"{session_id}-p{i}",
                question=question,
                timestamp=timestamp,
                relevance=relevance,
                solution=Solution(approach=f"answer {i}"),
            )
            for i, question in enumerate(questions)
        ],
        implementations=[
            Implementation(
                id=f"{session_id}-i{i}",
                tool="Edit",
                file=path,
                description=f"edited {path}",
                timestamp=timestamp,
                relevance=relevance,
            )
            for i, path in enumerate(files)
        ],
        patterns=[
            Pattern(
                id=f"{session_id}-{kind}-{value}",
                type=kind,
                value=value,
                frequency=frequency,
                first_seen=timestamp,
                last_seen=timestamp,
                examples=[value],
            )
            for kind, value, frequency in patterns or []
        ],
        metadata=ContextMetadata(
            entry_count=10,
            tools_used=["Edit"] if files else [],
            tool_counts={"Edit": len(files)} if files else {},
            files_modified=list(files),
            relevance_score=relevance,
        ),
    )
