from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field
from typing import Any

from ..fs_paths import project_hash, project_name
from ..models import ExtractedContext

DEFAULT_SESSION_LIMIT = 100
DEFAULT_TOP_TOOLS = 5


@dataclass(slots=True)
class SessionSummary:
    session_id: str
    timestamp: str
    file: str
    stats: dict[str, int]
    relevance_score: float
    trigger: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSummary:
        stats = data.get("stats")
        return cls(
            session_id=str(data.get("session_id") or "unknown"),
            timestamp=str(data.get("timestamp") or ""),
            file=str(data.get("file") or ""),
            stats={str(k): int(v) for k, v in stats.items()} if isinstance(stats, dict) else {},
            relevance_score=float(data.get("relevance_score") or 0.0),
            trigger=data.get("trigger"),
        )


@dataclass(slots=True)
class ProjectIndex:
    project_path: str
    project_hash: str
    project_name: str
    created: str
    last_updated: str
    total_sessions: int = 0
    total_problems: int = 0
    total_implementations: int = 0
    total_decisions: int = 0
    total_patterns: int = 0
    tool_usage: dict[str, int] = field(default_factory=dict)
    top_tools: list[str] = field(default_factory=list)
    average_relevance: float = 0.0
    sessions: list[SessionSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectIndex:
        """Strict load: raises ``KeyError``/``TypeError``/``ValueError`` on a damaged index."""

        if not isinstance(data, dict):
            raise TypeError("index must be an object")
        sessions = data.get("sessions") or []
        usage = data.get("tool_usage") or {}
        return cls(
            project_path=str(data["project_path"]),
            project_hash=str(data.get("project_hash") or project_hash(str(data["project_path"]))),
            project_name=str(data.get("project_name") or project_name(str(data["project_path"]))),
            created=str(data.get("created") or ""),
            last_updated=str(data.get("last_updated") or ""),
            total_sessions=int(data.get("total_sessions", 0)),
            total_problems=int(data.get("total_problems", 0)),
            total_implementations=int(data.get("total_implementations", 0)),
            total_decisions=int(data.get("total_decisions", 0)),
            total_patterns=int(data.get("total_patterns", 0)),
            tool_usage={str(k): int(v) for k, v in usage.items()},
            top_tools=[str(t) for t in data.get("top_tools") or []],
            average_relevance=float(data.get("average_relevance", 0.0)),
            sessions=[SessionSummary.from_dict(s) for s in sessions if isinstance(s, dict)],
        )


def new_index(project_path: str, *, now: dt.datetime | None = None) -> ProjectIndex:
    stamp = (now or dt.datetime.now(dt.UTC)).isoformat()
    return ProjectIndex(
        project_path=project_path,
        project_hash=project_hash(project_path),
        project_name=project_name(project_path),
        created=stamp,
        last_updated=stamp,
    )


def apply_context(
    index: ProjectIndex,
    context: ExtractedContext,
    record_file: str,
    *,
    session_limit: int = DEFAULT_SESSION_LIMIT,
    top_tools: int = DEFAULT_TOP_TOOLS,
    now: dt.datetime | None = None,
) -> ProjectIndex:
    """Fold one archived session into the aggregate (mutates and returns ``index``)."""

    counts = context.counts()
    index.total_sessions += 1
    index.total_problems += counts["problems"]
    index.total_implementations += counts["implementations"]
    index.total_decisions += counts["decisions"]
    index.total_patterns += counts["patterns"]
    for tool, count in context.metadata.tool_counts.items():
        index.tool_usage[tool] = index.tool_usage.get(tool, 0) + count
    ranked = sorted(index.tool_usage.items(), key=lambda item: (-item[1], item[0]))
    index.top_tools = [tool for tool, _ in ranked[:top_tools]]
    score = context.metadata.relevance_score
    n = index.total_sessions
    index.average_relevance = (index.average_relevance * (n - 1) + score) / n
    index.sessions.append(
        SessionSummary(
            session_id=context.session_id,
            timestamp=context.timestamp,
            file=record_file,
            stats=counts,
            relevance_score=score,
            trigger=context.metadata.trigger,
        )
    )
    if session_limit > 0 and len(index.sessions) > session_limit:
        index.sessions = index.sessions[-session_limit:]
    index.last_updated = (now or dt.datetime.now(dt.UTC)).isoformat()
    return index


def render_readme(index: ProjectIndex) -> str:
    """Markdown summary, regenerated in full from the index every time."""

    lines = [
        f"# Context archive: {index.project_name}",
        "",
        f"- Project path: `{index.project_path}`",
        f"- Created: {index.created}",
        f"- Last updated: {index.last_updated}",
        "",
        "## Totals",
        "",
        "| Category | Count |",
        "|---|---|",
        f"| Sessions | {index.total_sessions} |",
        f"| Problems | {index.total_problems} |",
        f"| Implementations | {index.total_implementations} |",
        f"| Decisions | {index.total_decisions} |",
        f"| Patterns | {index.total_patterns} |",
        "",
        f"Average relevance: {index.average_relevance:.2f}",
        "",
    ]
    if index.top_tools:
        lines += ["## Top tools", ""]
        for tool in index.top_tools:
            lines.append(f"- {tool}: {index.tool_usage.get(tool, 0)}")
        lines.append("")
    if index.sessions:
        lines += ["## Recent sessions", "", "| Session | Archived | Problems | Relevance | File |"]
        lines.append("|---|---|---|---|---|")
        for summary in reversed(index.sessions[-10:]):
            lines.append(
                f"| {summary.session_id} | {summary.timestamp} | "
                f"{summary.stats.get('problems', 0)} | {summary.relevance_score:.2f} | "
                f"{summary.file} |"
            )
        lines.append("")
    return "\n".join(lines)
