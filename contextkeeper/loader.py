from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from pathlib import Path

from .config import AUTOLOAD_STRATEGIES, INCLUDE_TYPES, AutoLoadSettings, ContextKeeperConfig
from .fs_paths import project_name
from .ingest.transcript import parse_timestamp
from .models import Decision, Implementation, Pattern, Problem
from .patterns import PatternAnalyzer
from .redaction import redact
from .store.archive import ArchiveStore, normalize_project_path

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n*[Context truncated to fit size limit]*"

SECTION_TITLES = {
    "problems": "Problems & Solutions",
    "implementations": "Implementations",
    "decisions": "Decisions",
    "patterns": "Recurring Patterns",
}


@dataclass(frozen=True, slots=True)
class ContextItem:
    kind: str
    key: str
    session_id: str
    timestamp: str
    relevance: float
    text: str
    payload: Problem | Implementation | Decision | Pattern

    @property
    def epoch(self) -> float:
        parsed = parse_timestamp(self.timestamp)
        return parsed.timestamp() if parsed else 0.0


@dataclass(frozen=True, slots=True)
class LoadedContext:
    content: str
    size_bytes: int
    item_count: int
    strategy: str
    truncated: bool = False

    @property
    def size_kb(self) -> float:
        return self.size_bytes / 1024


def _clip(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: max(0, limit - 3)] + "..."


def _newest(item: ContextItem) -> tuple[float, str]:
    return (-item.epoch, item.key)


def select_recent(
    items: list[ContextItem], settings: AutoLoadSettings, now: dt.datetime
) -> list[ContextItem]:
    cutoff = (now - dt.timedelta(days=settings.time_window_days)).timestamp()
    windowed = [item for item in items if item.epoch >= cutoff]
    return sorted(windowed, key=_newest)[: settings.item_count]


def select_relevant(items: list[ContextItem], settings: AutoLoadSettings) -> list[ContextItem]:
    kept = [item for item in items if item.relevance >= settings.min_relevance]
    kept.sort(key=lambda item: (-item.relevance, *_newest(item)))
    return kept[: settings.item_count]


def select_smart(
    items: list[ContextItem], settings: AutoLoadSettings, now: dt.datetime
) -> list[ContextItem]:
    recent = select_recent(items, settings, now)
    relevant = select_relevant(items, settings)
    chosen: list[ContextItem] = []
    seen: set[str] = set()
    for index in range(max(len(recent), len(relevant))):
        for source in (recent, relevant):
            if index < len(source) and source[index].key not in seen:
                seen.add(source[index].key)
                chosen.append(source[index])
    return chosen[: settings.item_count]


def select_custom(
    items: list[ContextItem], settings: AutoLoadSettings, now: dt.datetime
) -> list[ContextItem]:
    cutoff = (now - dt.timedelta(days=settings.time_window_days)).timestamp()
    keywords = [k.lower() for k in settings.priority_keywords if k.strip()]

    def hits(item: ContextItem) -> int:
        lowered = item.text.lower()
        return sum(1 for keyword in keywords if keyword in lowered)

    windowed = [item for item in items if item.epoch >= cutoff]
    windowed.sort(key=lambda item: (-hits(item), *_newest(item)))
    return windowed[: settings.item_count]


def format_item(item: ContextItem, style: str) -> str:
    payload = item.payload
    if style == "minimal":
        if isinstance(payload, Problem):
            return f"- {_clip(payload.question, 120)}"
        if isinstance(payload, Implementation):
            return f"- {payload.tool} {payload.file}"
        if isinstance(payload, Decision):
            return f"- {_clip(payload.decision, 120)}"
        return f"- {payload.value} (x{payload.frequency})"

    detailed = style == "detailed"
    lines: list[str] = []
    if isinstance(payload, Problem):
        lines.append(f"- Q: {_clip(payload.question, 800 if detailed else 300)}")
        if payload.solution is not None:
            status = "" if payload.solution.successful else " (unsuccessful)"
            approach = _clip(payload.solution.approach, 1000 if detailed else 300)
            lines.append(f"  A: {approach}{status}")
            if detailed and payload.solution.files:
                lines.append(f"  Files: {', '.join(payload.solution.files)}")
    elif isinstance(payload, Implementation):
        description = _clip(payload.description, 500 if detailed else 200)
        lines.append(f"- {payload.tool} `{payload.file}`: {description}")
    elif isinstance(payload, Decision):
        lines.append(f"- {_clip(payload.decision, 300)} [{payload.impact}]")
        if detailed and payload.rationale:
            lines.append(f"  Rationale: {_clip(payload.rationale, 300)}")
    else:
        lines.append(f"- `{payload.value}` ({payload.type}, seen {payload.frequency}x)")
        if detailed and payload.examples:
            lines.append(f"  e.g. {_clip(payload.examples[0], 200)}")
    if detailed:
        lines.append(f"  ({item.timestamp[:10] or 'undated'}, relevance {item.relevance:.2f})")
    return "\n".join(lines)


def _cut_utf8(text: str, max_bytes: int) -> str:
    return text.encode("utf-8")[: max(0, max_bytes)].decode("utf-8", errors="ignore")


class ContextLoader:
    """Composes the size-bounded auto-load bundle for a project."""

    def __init__(
        self,
        root: Path,
        config: ContextKeeperConfig | None = None,
        *,
        project_path: str | None = None,
    ) -> None:
        self.config = config or ContextKeeperConfig()
        self.settings = self.config.autoload_settings()
        self.root = Path(root)
        self.project_path = normalize_project_path(project_path) if project_path else None

    def candidates(self) -> list[ContextItem]:
        include = set(self.settings.include_types)
        store = ArchiveStore(self.root)
        items: list[ContextItem] = []
        for _, record in store.iter_records(self.project_path):
            session = record.session_id
            if "problems" in include:
                for problem in record.problems:
                    solution = problem.solution.approach if problem.solution else ""
                    items.append(
                        ContextItem(
                            kind="problems",
                            key=f"{session}:{problem.id}",
                            session_id=session,
                            timestamp=problem.timestamp,
                            relevance=problem.relevance,
                            text=f"{problem.question} {solution}",
                            payload=problem,
                        )
                    )
            if "implementations" in include:
                for impl in record.implementations:
                    items.append(
                        ContextItem(
                            kind="implementations",
                            key=f"{session}:{impl.id}",
                            session_id=session,
                            timestamp=impl.timestamp,
                            relevance=impl.relevance,
                            text=f"{impl.description} {impl.file}",
                            payload=impl,
                        )
                    )
            if "decisions" in include:
                for decision in record.decisions:
                    items.append(
                        ContextItem(
                            kind="decisions",
                            key=f"{session}:{decision.id}",
                            session_id=session,
                            timestamp=decision.timestamp,
                            relevance=decision.relevance,
                            text=f"{decision.decision} {decision.context}",
                            payload=decision,
                        )
                    )
        if "patterns" in include:
            analyzer = PatternAnalyzer(self.root, self.config)
            for pattern in analyzer.get_patterns(project_path=self.project_path):
                items.append(
                    ContextItem(
                        kind="patterns",
                        key=f"pattern:{pattern.id}",
                        session_id="",
                        timestamp=pattern.last_seen,
                        relevance=min(1.0, 0.5 + 0.1 * pattern.frequency),
                        text=" ".join([pattern.value, *pattern.examples]),
                        payload=pattern,
                    )
                )
        return items

    def select(self, items: list[ContextItem], now: dt.datetime) -> list[ContextItem]:
        strategy = self.settings.strategy
        if strategy == "recent":
            return select_recent(items, self.settings, now)
        if strategy == "relevant":
            return select_relevant(items, self.settings)
        if strategy == "smart":
            return select_smart(items, self.settings, now)
        if strategy == "custom":
            return select_custom(items, self.settings, now)
        raise ValueError(f"strategy must be one of {', '.join(AUTOLOAD_STRATEGIES)}")

    def _header(self, now: dt.datetime) -> str:
        name = project_name(self.project_path) if self.project_path else "all projects"
        return (
            f"# Project Context: {name}\n"
            f"*Auto-loaded ({self.settings.strategy}) on {now.strftime('%Y-%m-%d %H:%M UTC')}*\n"
        )

    def _sections(self, groups: dict[str, list[str]]) -> str:
        body = ""
        for kind in INCLUDE_TYPES:
            blocks = groups.get(kind)
            if blocks:
                body += f"\n## {SECTION_TITLES.get(kind, kind.title())}\n\n" + "".join(blocks)
        return body

    def compose(self, selected: list[ContextItem], now: dt.datetime) -> LoadedContext:
        """Admit items in selection order until the next one would overflow the byte budget.

        Admitted items are rendered under fixed-order section headers.
        """

        settings = self.settings
        max_bytes = settings.max_bytes
        filtered = self.config.security_filter_enabled

        header = self._header(now)
        if len(header.encode("utf-8")) > max_bytes:
            content = _cut_utf8(header, max_bytes) + TRUNCATION_MARKER
            size = len(content.encode("utf-8"))
            return LoadedContext(content, size, 0, settings.strategy, truncated=True)

        content = header
        groups: dict[str, list[str]] = {}
        count = 0
        truncated = False
        for item in selected:
            block = format_item(item, settings.format_style) + "\n"
            if filtered:
                block = redact(block)
            groups.setdefault(item.kind, []).append(block)
            candidate = header + self._sections(groups)
            if len(candidate.encode("utf-8")) > max_bytes:
                groups[item.kind].pop()
                truncated = True
                break
            content = candidate
            count += 1
        if truncated:
            content += TRUNCATION_MARKER
        size = len(content.encode("utf-8"))
        return LoadedContext(content, size, count, settings.strategy, truncated)

    def load(self, now: dt.datetime | None = None) -> LoadedContext:
        if not self.settings.enabled:
            return LoadedContext("", 0, 0, "disabled")
        now = now or dt.datetime.now(dt.UTC)
        selected = self.select(self.candidates(), now)
        loaded = self.compose(selected, now)
        logger.info(
            "auto-load bundle: %s items, %s bytes (%s)",
            loaded.item_count,
            loaded.size_bytes,
            loaded.strategy,
        )
        return loaded

    def preview(self, now: dt.datetime | None = None) -> str:
        now = now or dt.datetime.now(dt.UTC)
        loaded = self.load(now)
        rule = "=" * 60
        return "\n".join(
            [
                rule,
                "AUTO-LOAD CONTEXT PREVIEW",
                rule,
                f"Strategy: {loaded.strategy}",
                f"Size: {loaded.size_kb:.2f} KB",
                f"Items: {loaded.item_count}",
                f"Generated: {now.isoformat()}",
                "-" * 60,
                "",
                loaded.content,
                "",
                rule,
            ]
        )
