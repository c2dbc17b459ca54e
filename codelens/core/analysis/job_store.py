"""Persistence for analysis jobs and their dependent rows.

Every state change is a single guarded UPDATE, so a job that already
reached a terminal status (or was deleted by a newer run) is never
written again: the update simply matches zero rows and the caller is
told so through the boolean return value.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func

from ..ast_parser.models import Symbol
from ..db import DatabaseManager
from ..db.models import AnalysisReport, CodeExplanation, Vulnerability
from ..errors import NotFoundError
from .models import (
    ACTIVE_STATUSES,
    AnalysisOptions,
    AnalysisStatus,
    AnalysisType,
    Progress,
    VulnerabilityFinding,
)

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


def _as_uuid(value) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStore:
    """CRUD over AnalysisReport, CodeExplanation and Vulnerability."""

    def __init__(self, db_manager: DatabaseManager):
        self._db = db_manager

    # ── Jobs ────────────────────────────────────────────────────────────

    def create_report(
        self,
        project_id: str,
        analysis_type: AnalysisType,
        options: AnalysisOptions,
        query: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._db.get_session() as session:
            report = AnalysisReport(
                project_id=UUID(str(project_id)),
                type=analysis_type.value,
                status=AnalysisStatus.PENDING.value,
                query=query,
                file_path=options.file_path,
                languages=list(options.languages),
                options=options.to_dict(),
                progress=Progress(current_step="Initializing analysis").to_dict(),
            )
            session.add(report)
            session.flush()
            logger.info(f"Created {analysis_type.value} report {report.id} for project {project_id}")
            return self._report_to_dict(report)

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        rid = _as_uuid(report_id)
        if rid is None:
            return None
        with self._db.get_session() as session:
            report = session.get(AnalysisReport, rid)
            return self._report_to_dict(report) if report else None

    def require_report(self, report_id: str) -> Dict[str, Any]:
        report = self.get_report(report_id)
        if report is None:
            raise NotFoundError(f"Analysis {report_id} not found")
        return report

    def get_status(self, report_id: str) -> Optional[AnalysisStatus]:
        """Current status, or None when the report no longer exists."""
        rid = _as_uuid(report_id)
        if rid is None:
            return None
        with self._db.get_session() as session:
            value = session.query(AnalysisReport.status).filter(AnalysisReport.id == rid).scalar()
        return AnalysisStatus(value) if value else None

    def _update_where(self, report_id: str, statuses: Sequence[str], values: Dict[str, Any]) -> bool:
        values = dict(values, updated_at=datetime.utcnow())
        with self._db.get_session() as session:
            updated = session.query(AnalysisReport).filter(
                AnalysisReport.id == UUID(str(report_id)),
                AnalysisReport.status.in_(list(statuses)),
            ).update(values, synchronize_session=False)
        return updated > 0

    def mark_processing(self, report_id: str, progress: Progress) -> bool:
        return self._update_where(
            report_id,
            [AnalysisStatus.PENDING.value],
            {"status": AnalysisStatus.PROCESSING.value, "progress": progress.to_dict()},
        )

    def update_progress(self, report_id: str, progress: Progress) -> bool:
        return self._update_where(
            report_id, [AnalysisStatus.PROCESSING.value], {"progress": progress.to_dict()}
        )

    def update_result(self, report_id: str, result: Dict[str, Any]) -> bool:
        """Store a partial result while the job is still running."""
        return self._update_where(report_id, [AnalysisStatus.PROCESSING.value], {"result": result})

    def mark_completed(self, report_id: str, result: Dict[str, Any], progress: Progress) -> bool:
        return self._update_where(
            report_id,
            [AnalysisStatus.PROCESSING.value],
            {
                "status": AnalysisStatus.COMPLETED.value,
                "result": result,
                "progress": progress.to_dict(),
            },
        )

    def mark_failed(self, report_id: str, error: str) -> bool:
        return self._update_where(
            report_id, _ACTIVE, {"status": AnalysisStatus.FAILED.value, "error": error}
        )

    def mark_cancelled(self, report_id: str) -> bool:
        return self._update_where(
            report_id, _ACTIVE, {"status": AnalysisStatus.CANCELLED.value}
        )

    def find_report_ids(self, project_id: str, analysis_type: AnalysisType) -> List[str]:
        with self._db.get_session() as session:
            rows = session.query(AnalysisReport.id).filter(
                AnalysisReport.project_id == UUID(str(project_id)),
                AnalysisReport.type == analysis_type.value,
            ).all()
        return [str(row.id) for row in rows]

    def delete_reports(self, report_ids: Iterable[str]) -> int:
        """Bulk delete reports with their vulnerabilities and explanations."""
        ids = [UUID(str(r)) for r in report_ids]
        if not ids:
            return 0
        with self._db.get_session() as session:
            session.query(Vulnerability).filter(
                Vulnerability.report_id.in_(ids)
            ).delete(synchronize_session=False)
            session.query(CodeExplanation).filter(
                CodeExplanation.report_id.in_(ids)
            ).delete(synchronize_session=False)
            removed = session.query(AnalysisReport).filter(
                AnalysisReport.id.in_(ids)
            ).delete(synchronize_session=False)
        logger.info(f"Deleted {removed} prior report(s)")
        return removed

    def find_first_completed(
        self, project_id: str, types: Sequence[AnalysisType]
    ) -> Optional[Dict[str, Any]]:
        """Most recent COMPLETED report of any of ``types``."""
        with self._db.get_session() as session:
            report = session.query(AnalysisReport).filter(
                AnalysisReport.project_id == UUID(str(project_id)),
                AnalysisReport.type.in_([t.value for t in types]),
                AnalysisReport.status == AnalysisStatus.COMPLETED.value,
            ).order_by(AnalysisReport.updated_at.desc()).first()
            return self._report_to_dict(report) if report else None

    # ── History ─────────────────────────────────────────────────────────

    def list_reports(
        self,
        project_id: str,
        analysis_type: Optional[AnalysisType] = None,
        status: Optional[AnalysisStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Dict[str, Any]], int]:
        with self._db.get_session() as session:
            query = session.query(AnalysisReport).filter(
                AnalysisReport.project_id == UUID(str(project_id))
            )
            if analysis_type is not None:
                query = query.filter(AnalysisReport.type == analysis_type.value)
            if status is not None:
                query = query.filter(AnalysisReport.status == status.value)
            total = query.count()
            reports = query.order_by(
                AnalysisReport.created_at.desc()
            ).offset(offset).limit(limit).all()
            return [self._report_to_dict(r, include_result=False) for r in reports], total

    def history_stats(self, project_id: str) -> Dict[str, Any]:
        with self._db.get_session() as session:
            rows = session.query(
                AnalysisReport.status, func.count(AnalysisReport.id)
            ).filter(
                AnalysisReport.project_id == UUID(str(project_id))
            ).group_by(AnalysisReport.status).all()
            completed = session.query(
                AnalysisReport.created_at, AnalysisReport.updated_at
            ).filter(
                AnalysisReport.project_id == UUID(str(project_id)),
                AnalysisReport.status == AnalysisStatus.COMPLETED.value,
            ).all()

        counts = {status: count for status, count in rows}
        durations = [
            (row.updated_at - row.created_at).total_seconds()
            for row in completed
            if row.updated_at and row.created_at
        ]
        return {
            "totalAnalyses": sum(counts.values()),
            "completedAnalyses": counts.get(AnalysisStatus.COMPLETED.value, 0),
            "failedAnalyses": counts.get(AnalysisStatus.FAILED.value, 0),
            "averageDuration": round(sum(durations) / len(durations), 2) if durations else 0,
        }

    # ── Dependent rows ──────────────────────────────────────────────────

    def add_explanations(self, report_id: str, file_path: str, symbols: List[Symbol], explanations) -> int:
        """Persist one batch of explanations (``explanations`` pairs with ``symbols``)."""
        rid = UUID(str(report_id))
        with self._db.get_session() as session:
            for symbol, explanation in zip(symbols, explanations):
                session.add(CodeExplanation(
                    report_id=rid,
                    file_path=file_path,
                    symbol_name=symbol.name,
                    symbol_type=symbol.kind,
                    line_start=symbol.line_start,
                    line_end=symbol.line_end,
                    summary=explanation.summary,
                    detailed=explanation.detailed,
                    complexity=explanation.complexity,
                ))
        return min(len(symbols), len(explanations))

    def add_vulnerabilities(self, report_id: str, findings: List[VulnerabilityFinding]) -> int:
        rid = UUID(str(report_id))
        with self._db.get_session() as session:
            for finding in findings:
                session.add(Vulnerability(
                    report_id=rid,
                    severity=finding.severity.value,
                    type=finding.type,
                    title=finding.title,
                    description=finding.description,
                    file_path=finding.file_path,
                    symbol_name=finding.symbol_name,
                    line_start=finding.line_start,
                    line_end=finding.line_end,
                    code_snippet=finding.code_snippet,
                    recommendation=finding.recommendation,
                    cwe=finding.cwe,
                ))
        return len(findings)

    def list_explanations(
        self,
        report_id: str,
        file_path: Optional[str] = None,
        symbol_type: Optional[str] = None,
        symbol_name: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        with self._db.get_session() as session:
            query = session.query(CodeExplanation).filter(
                CodeExplanation.report_id == UUID(str(report_id))
            )
            if file_path:
                query = query.filter(CodeExplanation.file_path.contains(file_path))
            if symbol_type:
                query = query.filter(CodeExplanation.symbol_type == symbol_type)
            if symbol_name:
                query = query.filter(CodeExplanation.symbol_name.contains(symbol_name))
            rows = query.order_by(CodeExplanation.file_path, CodeExplanation.line_start).all()
            return [
                {
                    "id": str(row.id),
                    "filePath": row.file_path,
                    "symbolName": row.symbol_name,
                    "symbolType": row.symbol_type,
                    "lineStart": row.line_start,
                    "lineEnd": row.line_end,
                    "summary": row.summary,
                    "detailed": row.detailed,
                    "complexity": row.complexity,
                }
                for row in rows
            ]

    def list_vulnerabilities(self, report_id: str, severity: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._db.get_session() as session:
            query = session.query(Vulnerability).filter(
                Vulnerability.report_id == UUID(str(report_id))
            )
            if severity:
                query = query.filter(Vulnerability.severity == severity.upper())
            rows = query.order_by(Vulnerability.file_path, Vulnerability.line_start).all()
            return [
                {
                    "id": str(row.id),
                    "severity": row.severity,
                    "type": row.type,
                    "title": row.title,
                    "description": row.description,
                    "filePath": row.file_path,
                    "symbolName": row.symbol_name,
                    "lineStart": row.line_start,
                    "lineEnd": row.line_end,
                    "codeSnippet": row.code_snippet,
                    "recommendation": row.recommendation,
                    "cwe": row.cwe,
                }
                for row in rows
            ]

    @staticmethod
    def _report_to_dict(report: AnalysisReport, include_result: bool = True) -> Dict[str, Any]:
        data = {
            "id": str(report.id),
            "projectId": str(report.project_id),
            "type": report.type,
            "status": report.status,
            "query": report.query,
            "filePath": report.file_path,
            "languages": report.languages or [],
            "options": report.options or {},
            "progress": report.progress or Progress().to_dict(),
            "error": report.error,
            "createdAt": _iso(report.created_at),
            "updatedAt": _iso(report.updated_at),
        }
        if include_result:
            data["result"] = report.result
        return data
