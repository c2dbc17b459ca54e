"""Semantic file index: per-project summaries + embeddings.

Indexing summarizes each source file with the provider, embeds the
summary (not the raw source) and upserts a FileIndex row. A file whose
stored last_modified is not older than its current mtime is skipped, so
re-running an index over an unchanged project does no provider calls.

Search embeds the query with the same provider and ranks every indexed
file by cosine similarity.
"""

import logging
import os
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import numpy as np

from ..ast_parser.registry import LanguageRegistry, get_registry
from ..ast_parser.utils import filter_by_language, walk_source_files
from ..db import DatabaseManager
from ..db.models import FileIndex
from .index_cache import ProjectCache
from .similarity import cosine_similarities

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    file_path: str
    summary: str
    language: str
    similarity: float
    file_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "summary": self.summary,
            "language": self.language,
            "similarity": self.similarity,
            "fileSize": self.file_size,
        }


@dataclass
class IndexSnapshot:
    """In-memory copy of a project's index rows, as held by the cache."""

    file_paths: List[str] = field(default_factory=list)
    summaries: List[str] = field(default_factory=list)
    languages: List[str] = field(default_factory=list)
    file_sizes: List[int] = field(default_factory=list)
    embeddings: List[List[float]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.file_paths)


class SemanticIndex:
    """Maintains and queries the FileIndex table for each project."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        provider,
        registry: Optional[LanguageRegistry] = None,
        cache: Optional[ProjectCache] = None,
    ):
        self._db = db_manager
        self._provider = provider
        self._registry = registry or get_registry()
        self._cache = cache or ProjectCache()

    @property
    def cache(self) -> ProjectCache:
        return self._cache

    # ── Indexing ────────────────────────────────────────────────────────

    async def index_project(
        self,
        project_id: str,
        project_root: str,
        languages: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Summarize + embed every changed source file of the project.

        Returns:
            {"indexedFiles", "skippedFiles", "errors", "duration"} (duration in ms)
        """
        started = time.time()
        indexed = skipped = errors = 0
        known = self._load_mtimes(project_id)

        try:
            for abs_path, rel_path, language in filter_by_language(
                walk_source_files(project_root), languages, self._registry
            ):
                try:
                    stat = os.stat(abs_path)
                    if rel_path in known and known[rel_path] >= stat.st_mtime:
                        skipped += 1
                        continue

                    with open(abs_path, "r", encoding="utf-8", errors="replace") as f:
                        content = f.read()

                    summary = await self._provider.summarize(rel_path, content, language)
                    embedding = await self._provider.embed(summary)
                    self._upsert(
                        project_id, rel_path, summary, embedding,
                        language, stat.st_size, stat.st_mtime,
                    )
                    indexed += 1
                    logger.debug(f"Indexed {rel_path} ({language})")
                except Exception as e:
                    errors += 1
                    logger.warning(f"Failed to index {rel_path}: {e}")
        finally:
            self._cache.invalidate(project_id)

        duration_ms = int((time.time() - started) * 1000)
        logger.info(
            f"Indexed project {project_id}: {indexed} indexed, "
            f"{skipped} skipped, {errors} errors in {duration_ms}ms"
        )
        return {
            "indexedFiles": indexed,
            "skippedFiles": skipped,
            "errors": errors,
            "duration": duration_ms,
        }

    def _load_mtimes(self, project_id: str) -> Dict[str, float]:
        with self._db.get_session() as session:
            rows = session.query(FileIndex.file_path, FileIndex.last_modified).filter(
                FileIndex.project_id == UUID(project_id)
            ).all()
            return {row.file_path: row.last_modified for row in rows}

    def _upsert(
        self,
        project_id: str,
        file_path: str,
        summary: str,
        embedding: List[float],
        language: str,
        file_size: int,
        last_modified: float,
    ) -> None:
        with self._db.get_session() as session:
            entry = session.query(FileIndex).filter(
                FileIndex.project_id == UUID(project_id),
                FileIndex.file_path == file_path,
            ).first()
            if entry is None:
                entry = FileIndex(project_id=UUID(project_id), file_path=file_path)
                session.add(entry)
            entry.summary = summary
            entry.embedding = embedding
            entry.language = language
            entry.file_size = file_size
            entry.last_modified = last_modified

    # ── Retrieval ───────────────────────────────────────────────────────

    def _load_snapshot(self, project_id: str) -> IndexSnapshot:
        snapshot = IndexSnapshot()
        with self._db.get_session() as session:
            rows = session.query(FileIndex).filter(
                FileIndex.project_id == UUID(project_id)
            ).order_by(FileIndex.file_path).all()
            for row in rows:
                snapshot.file_paths.append(row.file_path)
                snapshot.summaries.append(row.summary)
                snapshot.languages.append(row.language)
                snapshot.file_sizes.append(row.file_size or 0)
                snapshot.embeddings.append(list(row.embedding or []))
        return snapshot

    async def search(self, project_id: str, query: str, limit: int = 10) -> List[SearchResult]:
        """Top ``limit`` indexed files by cosine similarity to ``query``.

        An empty index returns [] without calling the provider.
        """
        snapshot = self._cache.get_or_load(project_id, self._load_snapshot)
        if not len(snapshot):
            logger.info(f"Semantic index for project {project_id} is empty")
            return []

        query_vector = await self._provider.embed(query)
        dim = len(query_vector)
        rows = [i for i, vec in enumerate(snapshot.embeddings) if len(vec) == dim]
        if len(rows) < len(snapshot):
            logger.warning(
                f"{len(snapshot) - len(rows)} index entries have a different "
                f"embedding size than the query ({dim}); re-index the project"
            )
        if not rows:
            return []

        matrix = np.asarray([snapshot.embeddings[i] for i in rows], dtype=np.float64)
        scores = cosine_similarities(query_vector, matrix)

        # Stable sort: ties keep file-path order
        order = sorted(range(len(rows)), key=lambda k: -scores[k])[:max(limit, 0)]
        return [
            SearchResult(
                file_path=snapshot.file_paths[rows[k]],
                summary=snapshot.summaries[rows[k]],
                language=snapshot.languages[rows[k]],
                similarity=float(scores[k]),
                file_size=snapshot.file_sizes[rows[k]],
            )
            for k in order
        ]

    # ── Status / maintenance ────────────────────────────────────────────

    def get_status(self, project_id: str) -> Dict[str, Any]:
        """{"totalFiles", "lastIndexed" (ISO or None), "languages": {tag: count}}"""
        with self._db.get_session() as session:
            rows = session.query(FileIndex.language, FileIndex.last_modified).filter(
                FileIndex.project_id == UUID(project_id)
            ).all()

        counts = Counter(row.language for row in rows)
        last = max((row.last_modified for row in rows), default=None)
        return {
            "totalFiles": len(rows),
            "lastIndexed": (
                datetime.fromtimestamp(last, tz=timezone.utc).isoformat() if last is not None else None
            ),
            "languages": dict(counts),
        }

    def clear(self, project_id: str) -> int:
        """Delete every index entry of the project; returns the number removed."""
        with self._db.get_session() as session:
            removed = session.query(FileIndex).filter(
                FileIndex.project_id == UUID(project_id)
            ).delete(synchronize_session=False)
        self._cache.invalidate(project_id)
        logger.info(f"Cleared {removed} index entries for project {project_id}")
        return removed
