from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from .config import ContextKeeperConfig
from .extractor import ContextExtractor
from .ingest.transcript import parse_timestamp, parse_transcript
from .models import ExtractedContext
from .outcome import Deadline, DeadlineExceeded, Err, Ok, Outcome
from .redaction import redact_object
from .store.archive import SESSIONS_DIR, ArchiveStore, normalize_project_path
from .store.files import cleanup_temp_files
from .store.index import ProjectIndex, apply_context, new_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    record_path: Path
    project_dir: Path
    context: ExtractedContext
    index: ProjectIndex

    @property
    def stats(self) -> dict[str, Any]:
        return {**self.context.counts(), "relevance_score": self.context.metadata.relevance_score}


class ContextArchiver:
    def __init__(self, root: Path, config: ContextKeeperConfig | None = None) -> None:
        self.config = config or ContextKeeperConfig()
        self.store = ArchiveStore(root)
        self.extractor = ContextExtractor(self.config.extraction_settings())

    def prepare(self, context: ExtractedContext) -> ExtractedContext:
        """Normalize the project path and apply the redaction filter when enabled."""

        context = replace(context, project_path=normalize_project_path(context.project_path))
        if not self.config.security_filter_enabled:
            return context
        data, hits = redact_object(context.to_dict())
        cleaned = ExtractedContext.from_dict(data)
        metadata = replace(cleaned.metadata, security_filtered=True, redacted_count=hits)
        if hits:
            logger.debug("redacted %s sensitive values from session %s", hits, context.session_id)
        return replace(cleaned, metadata=metadata)

    def archive(
        self,
        context: ExtractedContext,
        *,
        deadline: Deadline | None = None,
    ) -> Outcome[ArchiveResult]:
        context = self.prepare(context)
        try:
            if deadline is not None:
                deadline.check("archive")
        except DeadlineExceeded as exc:
            return Err(str(exc))

        project_dir = self.store.project_dir(context.project_path)
        try:
            record_path = self.store.write_record(context, context.to_dict())
        except OSError as exc:
            logger.exception("failed to write record for session %s", context.session_id)
            return Err(f"failed to write record: {exc}")

        relative = str(record_path.relative_to(project_dir))
        try:
            index = self.store.read_index(project_dir)
        except ValueError as exc:
            logger.warning("%s; rebuilding from records", exc)
            rebuilt = self.rebuild_index(context.project_path)
            if not rebuilt.ok:
                return Err(rebuilt.message, detail=str(record_path))
            return Ok(ArchiveResult(record_path, project_dir, context, rebuilt.value))

        if index is None:
            index = new_index(context.project_path)
        apply_context(
            index,
            context,
            relative,
            session_limit=self.config.index_session_limit,
            top_tools=self.config.index_top_tools,
        )
        try:
            self.store.write_index(project_dir, index)
            self.store.write_readme(project_dir, index)
        except OSError as exc:
            logger.exception("failed to update index in %s", project_dir)
            return Err(f"failed to update index: {exc}", detail=str(record_path))
        logger.info("archived session %s to %s", context.session_id, record_path)
        return Ok(ArchiveResult(record_path, project_dir, context, index))

    def archive_from_transcript(
        self,
        transcript_path: str | Path,
        *,
        project_path: str | None = None,
        session_id: str | None = None,
        trigger: str | None = None,
        deadline: Deadline | None = None,
    ) -> Outcome[ArchiveResult]:
        cfg = self.config
        parsed = parse_transcript(
            transcript_path,
            max_entries=cfg.memory_pressure_max_entries,
            head_ratio=cfg.memory_pressure_head_ratio,
            large_bytes=cfg.large_transcript_bytes,
        )
        if not parsed.ok:
            return parsed
        transcript = parsed.value
        if not transcript.entries:
            return Err("No entries found in transcript", detail=str(transcript_path))
        try:
            if deadline is not None:
                deadline.check("extract")
            context = self.extractor.extract(
                transcript.entries,
                project_path,
                session_id=session_id,
                malformed_lines=transcript.stats.skipped,
                truncated=transcript.stats.truncated,
            )
        except DeadlineExceeded as exc:
            return Err(str(exc))
        if trigger:
            context = replace(context, metadata=replace(context.metadata, trigger=trigger))
        return self.archive(context, deadline=deadline)

    def rebuild_index(self, project_path: str) -> Outcome[ProjectIndex]:
        """Recompute a project's index from its record files."""

        project_path = normalize_project_path(project_path)
        project_dir = self.store.project_dir(project_path)
        stale = cleanup_temp_files(project_dir) + cleanup_temp_files(project_dir / SESSIONS_DIR)
        if stale:
            logger.info("removed %s stale temp files from %s", stale, project_dir)
        records = list(self.store.iter_records(project_path))
        index = new_index(project_path)
        if records:
            first = parse_timestamp(records[0][1].timestamp)
            if first is not None:
                index.created = first.isoformat()
        for path, record in records:
            apply_context(
                index,
                record,
                str(path.relative_to(project_dir)),
                session_limit=self.config.index_session_limit,
                top_tools=self.config.index_top_tools,
            )
        try:
            self.store.write_index(project_dir, index)
            self.store.write_readme(project_dir, index)
        except OSError as exc:
            logger.exception("failed to rebuild index in %s", project_dir)
            return Err(f"failed to rebuild index: {exc}")
        return Ok(index)

    def get_stats(self) -> dict[str, Any]:
        projects: list[dict[str, Any]] = []
        total_sessions = 0
        total_bytes = 0
        stamps: list[dt.datetime] = []
        for project_dir in self.store.project_dirs():
            paths = self.store.record_paths(project_dir)
            size = 0
            for path in paths:
                try:
                    size += path.stat().st_size
                except OSError:
                    continue
                record = self.store.load_record(path)
                when = parse_timestamp(record.timestamp) if record else None
                if when is not None:
                    stamps.append(when)
            try:
                index = self.store.read_index(project_dir)
            except ValueError as exc:
                logger.warning("%s", exc)
                index = None
            total_sessions += len(paths)
            total_bytes += size
            projects.append(
                {
                    "name": project_dir.name,
                    "project_path": index.project_path if index else None,
                    "sessions": len(paths),
                    "bytes": size,
                    "last_updated": index.last_updated if index else None,
                }
            )
        return {
            "root": str(self.store.root),
            "projects": len(projects),
            "sessions": total_sessions,
            "bytes": total_bytes,
            "oldest": min(stamps).isoformat() if stamps else None,
            "newest": max(stamps).isoformat() if stamps else None,
            "by_project": projects,
        }
