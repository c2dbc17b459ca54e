"""Tests for JobStore: guarded state transitions and dependent rows.

Tests cover:
- Report creation defaults
- Transitions only from the allowed source statuses
- Terminal reports are never written again
- Bulk deletion with explanations and vulnerabilities
- Explanation / vulnerability filters
- History listing and statistics
"""

from datetime import datetime, timedelta
from uuid import UUID, uuid4

import pytest

from codelens.core.analysis import (
    AnalysisOptions,
    AnalysisStatus,
    AnalysisType,
    JobStore,
    Progress,
    Severity,
    VulnerabilityFinding,
)
from codelens.core.ast_parser.models import Symbol
from codelens.core.db.models import AnalysisReport
from codelens.core.errors import NotFoundError
from codelens.core.provider import SymbolExplanation


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def store(db_manager):
    return JobStore(db_manager)


def _create(store, project, analysis_type=AnalysisType.EXPLANATION, query=None):
    options = AnalysisOptions(languages=["python"], max_symbols=10, batch_size=2)
    return store.create_report(project["project_id"], analysis_type, options, query)


def _symbol(name, kind="function", line_start=1):
    return Symbol(name, kind, line_start, line_start + 1, f"def {name}():\n    pass", "python")


def _finding(severity=Severity.HIGH, file_path="a.py", line=1, symbol_name=None):
    return VulnerabilityFinding(
        type="code-injection",
        severity=severity,
        title="Use of eval()",
        description="eval() executes arbitrary code built from a string.",
        file_path=file_path,
        line_start=line,
        line_end=line,
        code_snippet="eval(x)",
        recommendation="Parse the input explicitly.",
        cwe="CWE-95",
        symbol_name=symbol_name,
    )


def _set_timestamps(db_manager, report_id, created, updated):
    with db_manager.get_session() as session:
        report = session.get(AnalysisReport, UUID(report_id))
        report.created_at = created
        report.updated_at = updated


# ── Tests: Creation ──────────────────────────────────────────────────────


class TestCreateReport:
    def test_defaults(self, store, project):
        report = _create(store, project, query="how does auth work?")

        assert report["status"] == "PENDING"
        assert report["type"] == "EXPLANATION"
        assert report["query"] == "how does auth work?"
        assert report["languages"] == ["python"]
        assert report["options"] == {
            "languages": ["python"],
            "maxSymbols": 10,
            "batchSize": 2,
            "filePath": None,
        }
        assert report["progress"] == {
            "currentStep": "Initializing analysis",
            "percentage": 0,
            "processedFiles": 0,
            "totalFiles": 0,
        }
        assert report["result"] is None

    def test_lookup(self, store, project):
        report = _create(store, project)
        assert store.get_report(report["id"])["id"] == report["id"]
        assert store.get_status(report["id"]) == AnalysisStatus.PENDING

    def test_unknown_ids(self, store):
        assert store.get_report(str(uuid4())) is None
        assert store.get_report("not-a-uuid") is None
        assert store.get_status("not-a-uuid") is None
        with pytest.raises(NotFoundError):
            store.require_report(str(uuid4()))


# ── Tests: Transitions ───────────────────────────────────────────────────


class TestTransitions:
    def test_happy_path(self, store, project):
        rid = _create(store, project)["id"]

        assert store.mark_processing(rid, Progress("Starting analysis"))
        assert store.update_progress(rid, Progress("Working", 40, 2, 5))
        assert store.mark_completed(rid, {"ok": True}, Progress("Analysis completed", 100, 5, 5))

        report = store.get_report(rid)
        assert report["status"] == "COMPLETED"
        assert report["result"] == {"ok": True}
        assert report["progress"]["percentage"] == 100

    def test_processing_only_from_pending(self, store, project):
        rid = _create(store, project)["id"]
        assert store.mark_processing(rid, Progress())
        assert not store.mark_processing(rid, Progress())

    def test_progress_requires_processing(self, store, project):
        rid = _create(store, project)["id"]
        assert not store.update_progress(rid, Progress("Too early", 10))
        assert not store.update_result(rid, {"partial": True})

    def test_cancel_pending(self, store, project):
        rid = _create(store, project)["id"]
        assert store.mark_cancelled(rid)
        assert store.get_status(rid) == AnalysisStatus.CANCELLED

    @pytest.mark.parametrize("finish", ["completed", "failed", "cancelled"])
    def test_terminal_reports_are_immutable(self, store, project, finish):
        rid = _create(store, project)["id"]
        store.mark_processing(rid, Progress())
        if finish == "completed":
            store.mark_completed(rid, {"done": 1}, Progress("Analysis completed", 100))
        elif finish == "failed":
            store.mark_failed(rid, "boom")
        else:
            store.mark_cancelled(rid)
        before = store.get_report(rid)

        assert not store.mark_processing(rid, Progress())
        assert not store.update_progress(rid, Progress("late", 50))
        assert not store.update_result(rid, {"late": True})
        assert not store.mark_completed(rid, {"late": True}, Progress())
        assert not store.mark_failed(rid, "late")
        assert not store.mark_cancelled(rid)

        after = store.get_report(rid)
        assert after["status"] == before["status"]
        assert after["result"] == before["result"]
        assert after["error"] == before["error"]

    def test_failure_records_error(self, store, project):
        rid = _create(store, project)["id"]
        store.mark_processing(rid, Progress())
        assert store.mark_failed(rid, "provider exploded")
        assert store.get_report(rid)["error"] == "provider exploded"


# ── Tests: Dependent rows ────────────────────────────────────────────────


class TestDependentRows:
    def test_explanations_round_trip_with_filters(self, store, project):
        rid = _create(store, project)["id"]
        store.add_explanations(
            rid,
            "src/auth.py",
            [_symbol("login", line_start=10), _symbol("Session", kind="class", line_start=1)],
            [SymbolExplanation("Logs in", "Checks credentials", 3), SymbolExplanation("Session", "Holds state")],
        )
        store.add_explanations(rid, "src/util.py", [_symbol("slug")], [SymbolExplanation("Slug", "Makes slugs", 1)])

        everything = store.list_explanations(rid)
        assert [(e["filePath"], e["symbolName"]) for e in everything] == [
            ("src/auth.py", "Session"),
            ("src/auth.py", "login"),
            ("src/util.py", "slug"),
        ]
        assert everything[1]["complexity"] == 3
        assert everything[1]["symbolType"] == "function"

        assert len(store.list_explanations(rid, file_path="auth")) == 2
        assert [e["symbolName"] for e in store.list_explanations(rid, symbol_type="class")] == ["Session"]
        assert [e["symbolName"] for e in store.list_explanations(rid, symbol_name="log")] == ["login"]

    def test_vulnerabilities_severity_filter(self, store, project):
        rid = _create(store, project, AnalysisType.VULNERABILITY)["id"]
        store.add_vulnerabilities(rid, [_finding(Severity.HIGH), _finding(Severity.MEDIUM, line=5)])

        assert len(store.list_vulnerabilities(rid)) == 2
        medium = store.list_vulnerabilities(rid, severity="medium")
        assert len(medium) == 1
        assert medium[0]["lineStart"] == 5
        assert medium[0]["cwe"] == "CWE-95"

    def test_vulnerabilities_keep_enclosing_symbol(self, store, project):
        rid = _create(store, project, AnalysisType.VULNERABILITY)["id"]
        store.add_vulnerabilities(rid, [_finding(line=3, symbol_name="run_query"), _finding(line=9)])

        rows = store.list_vulnerabilities(rid)
        assert [(r["lineStart"], r["symbolName"]) for r in rows] == [(3, "run_query"), (9, None)]

    def test_delete_reports_removes_dependent_rows(self, store, project):
        old = _create(store, project)["id"]
        keep = _create(store, project, AnalysisType.VULNERABILITY)["id"]
        store.add_explanations(old, "a.py", [_symbol("f")], [SymbolExplanation("s", "d")])
        store.add_vulnerabilities(keep, [_finding()])

        assert store.find_report_ids(project["project_id"], AnalysisType.EXPLANATION) == [old]
        assert store.delete_reports([old]) == 1

        assert store.get_report(old) is None
        assert store.list_explanations(old) == []
        assert store.get_report(keep) is not None
        assert len(store.list_vulnerabilities(keep)) == 1

    def test_delete_nothing(self, store):
        assert store.delete_reports([]) == 0


# ── Tests: History ───────────────────────────────────────────────────────


class TestHistory:
    def test_listing_is_paginated_and_omits_results(self, store, project):
        ids = [_create(store, project, t)["id"] for t in AnalysisType]

        reports, total = store.list_reports(project["project_id"], limit=2, offset=0)
        assert total == 4
        assert len(reports) == 2
        assert all("result" not in r for r in reports)

        reports, total = store.list_reports(project["project_id"], analysis_type=AnalysisType.FULL)
        assert total == 1
        assert reports[0]["id"] == ids[-1]

    def test_stats(self, store, db_manager, project):
        base = datetime(2026, 1, 1, 12, 0, 0)
        for seconds in (10, 20):
            rid = _create(store, project)["id"]
            store.mark_processing(rid, Progress())
            store.mark_completed(rid, {}, Progress("Analysis completed", 100))
            _set_timestamps(db_manager, rid, base, base + timedelta(seconds=seconds))
        failed = _create(store, project)["id"]
        store.mark_failed(failed, "boom")
        _create(store, project)

        stats = store.history_stats(project["project_id"])

        assert stats == {
            "totalAnalyses": 4,
            "completedAnalyses": 2,
            "failedAnalyses": 1,
            "averageDuration": 15.0,
        }

    def test_first_completed_is_the_newest(self, store, db_manager, project):
        base = datetime(2026, 1, 1)
        older = _create(store, project, AnalysisType.RECOMMENDATION)["id"]
        newer = _create(store, project, AnalysisType.FULL)["id"]
        for rid, offset in ((older, 1), (newer, 2)):
            store.mark_processing(rid, Progress())
            store.mark_completed(rid, {}, Progress("Analysis completed", 100))
            _set_timestamps(db_manager, rid, base, base + timedelta(hours=offset))

        found = store.find_first_completed(
            project["project_id"], [AnalysisType.RECOMMENDATION, AnalysisType.FULL]
        )
        assert found["id"] == newer
        assert store.find_first_completed(project["project_id"], [AnalysisType.EXPLANATION]) is None


class TestDatabaseManagerFactory:
    def test_single_manager_per_process(self, monkeypatch):
        from codelens.core.db import db as db_module

        monkeypatch.setattr(db_module, "_db_manager", None)
        first = db_module.get_database_manager("sqlite://", echo=False)
        second = db_module.get_database_manager("postgresql://ignored/db")

        assert first is second
        assert first.database_url == "sqlite://"
        assert first.ping()
        first.close()
