"""Integration tests for AnalysisEngine.

Runs real jobs end to end against an in-memory database, real project
directories and a deterministic fake provider.

Tests cover:
- Request validation before any job is created
- Full-scan fallback and targeted (search + dependency) explanation
- Cooperative cancellation and terminal-state immutability
- Prior-run replacement, progress monotonicity, failure capture
- Recommendation / vulnerability / full analysis results
- History, status estimates, ad-hoc explanations and index facade
"""

import asyncio
from uuid import uuid4

import pytest

from conftest import FakeProvider, run, write_files

from codelens.core.analysis import AnalysisEngine, AnalysisOptions, AnalysisType
from codelens.core.errors import NotFoundError, ProviderError, ValidationError
from codelens.core.semantic_index import SearchResult
from codelens.setting import AnalysisSettings


# ── Fixtures ──────────────────────────────────────────────────────────────


TS_PROJECT = {
    "src/auth.ts": (
        "import { sign } from './tokens';\n"
        "\n"
        "export function login(user) {\n"
        "  return sign(user);\n"
        "}\n"
    ),
    "src/tokens.ts": "export function sign(u) {\n  return u;\n}\n",
    "src/user.ts": "export function getUser(id) {\n  return id;\n}\n",
    "src/payment.ts": "export function pay(amount) {\n  return amount;\n}\n",
    "src/report.ts": "export function render(r) {\n  return r;\n}\n",
}

RISKY_PY = (
    "import pickle\n"
    "\n"
    "def load(blob):\n"
    "    return pickle.loads(blob)\n"
    "\n"
    "def wide(a, b, c, d, e, f):\n"
    "    return eval(a)\n"
)


class StubIndex:
    """Semantic index double returning fixed hits."""

    def __init__(self, hits=(), error=None):
        self.hits = list(hits)
        self.error = error
        self.queries = []

    async def search(self, project_id, query, limit=10):
        self.queries.append((query, limit))
        if self.error is not None:
            raise self.error
        return [SearchResult(path, f"summary of {path}", "typescript", 0.9, 10) for path in self.hits]


class ExplodingProvider(FakeProvider):
    async def explain_symbols(self, symbols):
        raise RuntimeError("explainer crashed")


def _engine(db_manager, project_manager, provider, semantic_index=None, **settings):
    return AnalysisEngine(
        db_manager,
        provider,
        project_manager=project_manager,
        semantic_index=semantic_index,
        settings=AnalysisSettings(**settings),
    )


def _run_job(engine, user_id, project_id, analysis_type, query=None, options=None):
    async def scenario():
        report = await engine.start_analysis(user_id, project_id, analysis_type, query, options)
        await engine.wait_for_tasks()
        return engine.get_status(report["id"])

    return run(scenario())


@pytest.fixture
def engine(db_manager, project_manager, provider):
    return _engine(db_manager, project_manager, provider)


# ── Tests: Validation ────────────────────────────────────────────────────


class TestStartValidation:
    def test_unknown_type(self, engine, user_id, project):
        with pytest.raises(ValidationError):
            run(engine.start_analysis(user_id, project["project_id"], "LINT"))
        assert engine.store.list_reports(project["project_id"])[1] == 0

    def test_other_users_project_is_not_found(self, engine, project):
        with pytest.raises(NotFoundError):
            run(engine.start_analysis(str(uuid4()), project["project_id"], "EXPLANATION"))

    def test_unknown_project(self, engine, user_id):
        with pytest.raises(NotFoundError):
            run(engine.start_analysis(user_id, str(uuid4()), "EXPLANATION"))

    @pytest.mark.parametrize("options", [
        {"languages": ["cobol"]},
        {"maxSymbols": 0},
        {"batchSize": "5"},
        {"colour": "blue"},
        {"filePath": "../etc/passwd"},
        {"filePath": "src/missing.ts"},
    ])
    def test_bad_options(self, engine, user_id, project, project_dir, options):
        write_files(project_dir, TS_PROJECT)
        with pytest.raises(ValidationError):
            run(engine.start_analysis(user_id, project["project_id"], "EXPLANATION", options=options))

    def test_blank_query(self, engine, user_id, project):
        with pytest.raises(ValidationError):
            run(engine.start_analysis(user_id, project["project_id"], "EXPLANATION", query="   "))

    def test_type_is_case_insensitive(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        status = _run_job(engine, user_id, project["project_id"], "explanation")
        assert status["type"] == "EXPLANATION"


# ── Tests: Explanation ───────────────────────────────────────────────────


class TestExplanationAnalysis:
    def test_query_without_index_falls_back_to_full_scan(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION", query="how does login work?")

        assert status["status"] == "COMPLETED"
        assert status["progress"]["percentage"] == 100
        assert status["progress"]["currentStep"] == "Analysis completed"
        result = status["result"]
        assert result["filesAnalyzed"] == 5
        assert result["totalSymbols"] == 5
        assert result["explainedSymbols"] == 5
        assert result["languages"] == ["typescript"]
        assert result["targetedAnalysis"] is True
        assert result["query"] == "how does login work?"
        assert result["explanation"] == "Cohesive answer"
        # Empty index: no query embedding was requested
        assert provider.embed_calls == []

    def test_search_hits_plus_dependencies(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        provider = FakeProvider()
        index = StubIndex(hits=["src/auth.ts", "src/user.ts"])
        engine = _engine(db_manager, project_manager, provider, semantic_index=index, search_top_k=10)

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION", query="login")

        result = status["result"]
        assert result["filesAnalyzed"] == 3
        assert result["targetedAnalysis"] is True
        assert index.queries == [("login", 10)]
        assert provider.synthesize_calls[0]["files"] == ["src/auth.ts", "src/user.ts", "src/tokens.ts"]
        files = {e["filePath"] for e in engine.get_explanations(status["id"])}
        assert files == {"src/auth.ts", "src/user.ts", "src/tokens.ts"}

    def test_hits_for_deleted_files_fall_back(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        engine = _engine(db_manager, project_manager, FakeProvider(), semantic_index=StubIndex(hits=["gone.ts"]))

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION", query="login")

        assert status["result"]["filesAnalyzed"] == 5

    def test_search_failure_falls_back(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        index = StubIndex(error=ProviderError("embedding down"))
        engine = _engine(db_manager, project_manager, FakeProvider(), semantic_index=index)

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION", query="login")

        assert status["status"] == "COMPLETED"
        assert status["result"]["filesAnalyzed"] == 5

    def test_file_path_option_targets_file_and_dependencies(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)

        status = _run_job(
            engine, user_id, project["project_id"], "EXPLANATION", options={"filePath": "src/auth.ts"}
        )

        result = status["result"]
        assert result["filesAnalyzed"] == 2
        assert result["targetedAnalysis"] is False
        assert "explanation" not in result
        assert status["filePath"] == "src/auth.ts"
        assert provider.synthesize_calls == []

    def test_no_query_means_no_synthesis(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)

        result = _run_job(engine, user_id, project["project_id"], "EXPLANATION")["result"]

        assert result["targetedAnalysis"] is False
        assert "query" not in result
        assert "explanation" not in result
        assert provider.synthesize_calls == []

    def test_synthesis_failure_still_completes(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        engine = _engine(db_manager, project_manager, FakeProvider(fail_synthesis=True))

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION", query="login")

        assert status["status"] == "COMPLETED"
        assert "explanation" not in status["result"]
        assert status["result"]["explainedSymbols"] == 5

    def test_failed_batch_does_not_fail_the_job(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        engine = _engine(db_manager, project_manager, FakeProvider(fail_explain_batches={1}))

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION")

        assert status["status"] == "COMPLETED"
        assert status["result"]["explainedSymbols"] == 4

    def test_language_filter(self, engine, user_id, project, project_dir):
        write_files(project_dir, {**TS_PROJECT, "tool.py": "def main():\n    pass\n"})

        result = _run_job(
            engine, user_id, project["project_id"], "EXPLANATION", options={"languages": ["python"]}
        )["result"]

        assert result["filesAnalyzed"] == 1
        assert result["languages"] == ["python"]

    def test_explanation_filters(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        rid = _run_job(engine, user_id, project["project_id"], "EXPLANATION")["id"]

        assert len(engine.get_explanations(rid, file_path="auth", user_id=user_id)) == 1
        assert [e["symbolName"] for e in engine.get_explanations(rid, symbol_name="sign")] == ["sign"]
        with pytest.raises(NotFoundError):
            engine.get_explanations(rid, user_id=str(uuid4()))


# ── Tests: Cancellation ──────────────────────────────────────────────────


class TestCancellation:
    def test_cancel_mid_run(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, {f"f{i:02d}.py": f"def fn{i}():\n    return {i}\n" for i in range(10)})

        async def scenario():
            report = await engine.start_analysis(user_id, project["project_id"], "EXPLANATION")
            provider.on_explain = lambda n: engine.cancel(report["id"], user_id) if n == 3 else None
            await engine.wait_for_tasks()
            return report["id"]

        rid = run(scenario())
        status = engine.get_status(rid)

        assert status["status"] == "CANCELLED"
        assert status["result"] is None
        assert status["estimatedTimeRemaining"] is None
        assert status["progress"]["processedFiles"] == 2
        assert len(provider.explain_calls) == 3
        assert [e["filePath"] for e in engine.get_explanations(rid)] == ["f00.py", "f01.py"]

    def test_cancel_before_start(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)

        async def scenario():
            report = await engine.start_analysis(user_id, project["project_id"], "EXPLANATION")
            response = engine.cancel(report["id"])
            await engine.wait_for_tasks()
            return report["id"], response

        rid, response = run(scenario())

        assert response == {"id": rid, "status": "CANCELLED", "cancelled": True}
        assert engine.get_status(rid)["status"] == "CANCELLED"
        assert provider.explain_calls == []

    def test_cancel_completed_job_is_a_no_op(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        rid = _run_job(engine, user_id, project["project_id"], "RECOMMENDATION")["id"]

        response = engine.cancel(rid, user_id)

        assert response == {"id": rid, "status": "COMPLETED", "cancelled": False}
        assert engine.get_status(rid)["status"] == "COMPLETED"

    def test_cancel_unknown_report(self, engine):
        with pytest.raises(NotFoundError):
            engine.cancel(str(uuid4()))


# ── Tests: Lifecycle ─────────────────────────────────────────────────────


class TestLifecycle:
    def test_rerun_replaces_prior_report_of_same_type(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        pid = project["project_id"]

        first = _run_job(engine, user_id, pid, "EXPLANATION")["id"]
        vuln = _run_job(engine, user_id, pid, "VULNERABILITY")["id"]
        second = _run_job(engine, user_id, pid, "EXPLANATION")["id"]

        assert engine.store.get_report(first) is None
        assert engine.store.list_explanations(first) == []
        assert len(engine.get_explanations(second)) == 5
        assert engine.store.get_report(vuln) is not None
        history = engine.get_history(user_id, pid)
        assert history["total"] == 2

    def test_concurrent_starts_of_same_type_leave_one_report(self, engine, user_id, project, project_dir):
        write_files(project_dir, {"risky.py": RISKY_PY})
        pid = project["project_id"]

        async def scenario():
            reports = await asyncio.gather(
                engine.start_analysis(user_id, pid, "VULNERABILITY"),
                engine.start_analysis(user_id, pid, "VULNERABILITY"),
            )
            await engine.wait_for_tasks()
            return reports

        first, second = run(scenario())

        assert engine.store.list_reports(pid)[1] == 1
        assert engine.store.get_report(first["id"]) is None
        assert engine.store.list_vulnerabilities(first["id"]) == []
        assert engine.get_status(second["id"])["status"] == "COMPLETED"
        assert len(engine.get_vulnerabilities(second["id"])) == 2

    def test_runtime_stats_count_provider_calls(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        assert engine.get_runtime_stats()["llm"]["calls"] == 0

        _run_job(engine, user_id, project["project_id"], "EXPLANATION")

        stats = engine.get_runtime_stats()
        assert stats["activeJobs"] == 0
        assert stats["llm"]["byPurpose"]["explain_symbols"]["calls"] == len(provider.explain_calls) > 0

    def test_progress_never_decreases(self, engine, user_id, project, project_dir):
        write_files(project_dir, {**TS_PROJECT, "risky.py": RISKY_PY})
        seen = []
        original = engine.store.update_progress

        def recording(report_id, progress):
            seen.append(progress.percentage)
            return original(report_id, progress)

        engine.store.update_progress = recording
        status = _run_job(engine, user_id, project["project_id"], "FULL")

        assert status["status"] == "COMPLETED"
        assert seen == sorted(seen)
        assert seen[0] == 10
        assert 40 in seen and 70 in seen and 90 in seen
        assert status["progress"]["percentage"] == 100

    def test_unexpected_error_marks_failed(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        engine = _engine(db_manager, project_manager, ExplodingProvider())

        status = _run_job(engine, user_id, project["project_id"], "EXPLANATION")

        assert status["status"] == "FAILED"
        assert status["error"] == "explainer crashed"
        assert status["estimatedTimeRemaining"] is None

    def test_perform_analysis_of_deleted_report_is_quiet(self, engine, project):
        report = engine.store.create_report(project["project_id"], AnalysisType.EXPLANATION, AnalysisOptions())
        engine.store.delete_reports([report["id"]])

        run(engine.perform_analysis(report["id"]))

        assert engine.store.get_report(report["id"]) is None

    def test_perform_analysis_resolves_project_root(self, engine, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        report = engine.store.create_report(project["project_id"], AnalysisType.RECOMMENDATION, AnalysisOptions())

        run(engine.perform_analysis(report["id"]))

        assert engine.store.get_report(report["id"])["status"] == "COMPLETED"

    def test_estimated_time_remaining(self, engine, user_id, project):
        report = engine.store.create_report(project["project_id"], AnalysisType.EXPLANATION, AnalysisOptions())
        assert engine.get_status(report["id"], user_id)["estimatedTimeRemaining"] == 300

        full = engine.store.create_report(project["project_id"], AnalysisType.FULL, AnalysisOptions())
        assert engine.get_status(full["id"])["estimatedTimeRemaining"] == 600


# ── Tests: Other analysis types ──────────────────────────────────────────


class TestOtherAnalysisTypes:
    def test_recommendations(self, engine, user_id, project, project_dir):
        write_files(project_dir, {"risky.py": RISKY_PY})

        status = _run_job(engine, user_id, project["project_id"], "RECOMMENDATION")

        assert status["status"] == "COMPLETED"
        result = status["result"]
        assert result["totalRecommendations"] == 1
        assert result["recommendations"][0]["rule"] == "too-many-parameters"

        latest = engine.get_recommendations(user_id, project["project_id"])
        assert latest["reportId"] == status["id"]
        assert latest["totalRecommendations"] == 1
        assert latest["byPriority"] == {"HIGH": 0, "MEDIUM": 1, "LOW": 0}

    def test_recommendations_without_report(self, engine, user_id, project):
        latest = engine.get_recommendations(user_id, project["project_id"])
        assert latest["reportId"] is None
        assert latest["recommendations"] == []

    def test_vulnerabilities(self, engine, user_id, project, project_dir):
        write_files(project_dir, {"risky.py": RISKY_PY})

        status = _run_job(engine, user_id, project["project_id"], "VULNERABILITY")

        assert status["result"]["vulnerabilitiesFound"] == 2
        assert status["result"]["bySeverity"]["HIGH"] == 2
        rows = engine.get_vulnerabilities(status["id"], user_id=user_id)
        assert [(r["type"], r["lineStart"], r["symbolName"]) for r in rows] == [
            ("insecure-deserialization", 4, "load"),
            ("code-injection", 7, "wide"),
        ]
        assert engine.get_vulnerabilities(status["id"], severity="LOW") == []

    def test_full_analysis_shape(self, engine, user_id, project, project_dir):
        write_files(project_dir, {"risky.py": RISKY_PY})

        status = _run_job(engine, user_id, project["project_id"], "FULL")

        result = status["result"]
        assert set(result) == {"vulnerabilities", "explanations", "recommendations", "summary"}
        summary = result["summary"]
        assert summary["vulnerabilitiesFound"] == 2
        assert summary["explanationsGenerated"] == 2
        assert summary["recommendationsCount"] == 1
        assert summary["analysisDate"]
        assert len(engine.get_vulnerabilities(status["id"])) == 2
        assert engine.get_recommendations(user_id, project["project_id"])["reportId"] == status["id"]


# ── Tests: History ───────────────────────────────────────────────────────


class TestHistory:
    def test_history_and_stats(self, engine, user_id, project, project_dir):
        write_files(project_dir, {"risky.py": RISKY_PY})
        pid = project["project_id"]
        _run_job(engine, user_id, pid, "RECOMMENDATION")
        _run_job(engine, user_id, pid, "VULNERABILITY")

        history = engine.get_history(user_id, pid)
        assert history["total"] == 2
        assert all("result" not in r for r in history["reports"])
        assert history["stats"]["totalAnalyses"] == 2
        assert history["stats"]["completedAnalyses"] == 2
        assert history["stats"]["failedAnalyses"] == 0

        filtered = engine.get_history(user_id, pid, analysis_type="vulnerability", status="completed")
        assert filtered["total"] == 1
        assert filtered["reports"][0]["type"] == "VULNERABILITY"

    def test_bad_filters(self, engine, user_id, project):
        with pytest.raises(ValidationError):
            engine.get_history(user_id, project["project_id"], status="DONE")
        with pytest.raises(ValidationError):
            engine.get_history(user_id, project["project_id"], limit=0)


# ── Tests: Ad-hoc explanations ───────────────────────────────────────────


class TestAdHocExplanations:
    def test_explain_file(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)

        result = run(engine.explain_file(user_id, project["project_id"], "src/auth.ts"))

        assert result["filePath"] == "src/auth.ts"
        assert result["language"] == "typescript"
        assert [s["name"] for s in result["symbols"]] == ["login"]
        assert result["symbols"][0]["summary"] == "login summary"
        assert engine.store.list_reports(project["project_id"])[1] == 0

    @pytest.mark.parametrize("path,error", [
        ("src/nope.ts", NotFoundError),
        ("../outside.ts", ValidationError),
        ("/etc/passwd", ValidationError),
    ])
    def test_explain_file_errors(self, engine, user_id, project, project_dir, path, error):
        write_files(project_dir, TS_PROJECT)
        with pytest.raises(error):
            run(engine.explain_file(user_id, project["project_id"], path))

    def test_explain_symbol_with_related_files(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        provider = FakeProvider()
        index = StubIndex(hits=["src/auth.ts", "src/tokens.ts"])
        engine = _engine(db_manager, project_manager, provider, semantic_index=index)

        result = run(engine.explain_symbol(user_id, project["project_id"], "src/auth.ts", "login"))

        assert result["explanation"] == "Cohesive answer"
        assert result["symbol"]["name"] == "login"
        assert result["relatedFiles"] == ["src/tokens.ts"]
        assert result["question"] == "What does function login in src/auth.ts do?"
        call = provider.synthesize_calls[0]
        assert call["target_symbol_name"] == "login"
        assert call["files"] == ["src/auth.ts", "src/tokens.ts"]

    def test_explain_unknown_symbol(self, engine, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        with pytest.raises(NotFoundError):
            run(engine.explain_symbol(user_id, project["project_id"], "src/auth.ts", "logout"))

    def test_explain_symbol_synthesis_error_propagates(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        engine = _engine(db_manager, project_manager, FakeProvider(fail_synthesis=True))
        with pytest.raises(ProviderError):
            run(engine.explain_symbol(user_id, project["project_id"], "src/auth.ts", "login", "why?"))


# ── Tests: Index facade ──────────────────────────────────────────────────


class TestIndexFacade:
    def test_index_search_status_clear(self, engine, provider, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        pid = project["project_id"]

        stats = run(engine.index_project(user_id, pid))
        assert stats["indexedFiles"] == 5

        results = run(engine.search_relevant_files(user_id, pid, "payment", limit=1))
        assert [r["filePath"] for r in results] == ["src/payment.ts"]

        assert engine.get_index_status(user_id, pid)["totalFiles"] == 5
        assert engine.clear_index(user_id, pid) == {"deleted": 5}

    def test_index_validation(self, engine, user_id, project):
        with pytest.raises(ValidationError):
            run(engine.index_project(user_id, project["project_id"], ["cobol"]))
        with pytest.raises(ValidationError):
            run(engine.search_relevant_files(user_id, project["project_id"], "  "))
        with pytest.raises(NotFoundError):
            engine.get_index_status(str(uuid4()), project["project_id"])

    def test_targeted_run_after_real_indexing(self, db_manager, project_manager, user_id, project, project_dir):
        write_files(project_dir, TS_PROJECT)
        provider = FakeProvider()
        engine = _engine(db_manager, project_manager, provider, search_top_k=1)
        pid = project["project_id"]
        run(engine.index_project(user_id, pid))

        status = _run_job(engine, user_id, pid, "EXPLANATION", query="auth")

        # Top hit auth.ts plus its import tokens.ts
        assert status["result"]["filesAnalyzed"] == 2
        assert provider.synthesize_calls[0]["files"] == ["src/auth.ts", "src/tokens.ts"]
