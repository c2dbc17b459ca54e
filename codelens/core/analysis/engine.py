"""Analysis Engine: orchestrator for project analysis jobs.

Provides the public API consumed by API routes. Each started job runs as
a detached asyncio task on the caller's loop; the engine keeps a strong
reference to every task until it finishes.

Job lifecycle:
    PENDING -> PROCESSING -> COMPLETED | FAILED | CANCELLED

Cancellation is cooperative: the running job re-reads its status at
checkpoints (before each explanation batch, between phases) and unwinds
quietly once it sees CANCELLED or finds its report deleted.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from ...setting import AnalysisSettings
from ..ast_parser import parse_file
from ..ast_parser.models import ParsedFile
from ..ast_parser.registry import LanguageRegistry, get_registry
from ..ast_parser.utils import filter_by_language, walk_source_files
from ..db import DatabaseManager
from ..dependencies import DependencyResolver
from ..errors import AnalysisCancelled, NotFoundError, ProviderError, ValidationError
from ..project import ProjectManager
from ..semantic_index import SemanticIndex
from .explainer import CancellationToken, SymbolExplainer, build_synthesis_files
from .job_store import JobStore
from .models import (
    ESTIMATED_BASE_SECONDS,
    AnalysisOptions,
    AnalysisStatus,
    AnalysisType,
    Progress,
)
from .recommendations import generate_recommendations, summarize_recommendations
from .vulnerabilities import scan_files, summarize_vulnerabilities

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Writes job progress, never letting the percentage go backwards."""

    def __init__(self, store: JobStore, report_id: str):
        self._store = store
        self._report_id = report_id
        self.progress = Progress(current_step="Starting analysis")

    @property
    def percentage(self) -> int:
        return self.progress.percentage

    def update(
        self,
        step: str,
        percentage: Optional[float] = None,
        processed_files: Optional[int] = None,
        total_files: Optional[int] = None,
    ) -> Progress:
        current = self.progress
        pct = current.percentage if percentage is None else int(round(percentage))
        self.progress = Progress(
            current_step=step,
            percentage=min(100, max(current.percentage, pct)),
            processed_files=current.processed_files if processed_files is None else processed_files,
            total_files=current.total_files if total_files is None else total_files,
        )
        self._store.update_progress(self._report_id, self.progress)
        return self.progress

    def final(self, step: str) -> Progress:
        self.progress = Progress(
            current_step=step,
            percentage=100,
            processed_files=self.progress.processed_files,
            total_files=self.progress.total_files,
        )
        return self.progress


@dataclass
class AnalysisRun:
    """Everything one running job needs."""

    report_id: str
    project_id: str
    project_root: str
    analysis_type: AnalysisType
    options: AnalysisOptions
    token: CancellationToken
    tracker: ProgressTracker
    query: Optional[str] = None
    partial: Dict[str, Any] = field(default_factory=dict)


class AnalysisEngine:
    """Orchestrate analysis jobs for projects.

    Public API:
        start_analysis(user_id, project_id, analysis_type, query, options) -> report dict
        perform_analysis(report_id) -> None
        get_status(report_id) -> report dict with estimatedTimeRemaining
        cancel(report_id) -> {"id", "status", "cancelled"}
        get_history(user_id, project_id, ...) -> {"reports", "total", "stats"}
        index_project / search_relevant_files / get_index_status / clear_index
        get_explanations / get_vulnerabilities / get_recommendations
        explain_file / explain_symbol
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        provider,
        project_manager: Optional[ProjectManager] = None,
        semantic_index: Optional[SemanticIndex] = None,
        resolver: Optional[DependencyResolver] = None,
        settings: Optional[AnalysisSettings] = None,
        registry: Optional[LanguageRegistry] = None,
    ):
        self._db = db_manager
        self._provider = provider
        self._settings = settings or AnalysisSettings()
        self._registry = registry or get_registry()
        self._projects = project_manager or ProjectManager(db_manager)
        self._index = semantic_index or SemanticIndex(db_manager, provider, self._registry)
        self._resolver = resolver or DependencyResolver(self._registry)
        self._store = JobStore(db_manager)

        self._tasks: Set[asyncio.Task] = set()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def semantic_index(self) -> SemanticIndex:
        return self._index

    def _default_options(self) -> AnalysisOptions:
        return AnalysisOptions(
            languages=list(self._settings.languages),
            max_symbols=self._settings.max_symbols,
            batch_size=self._settings.batch_size,
        )

    # ── Job lifecycle ───────────────────────────────────────────────────

    async def start_analysis(
        self,
        user_id: str,
        project_id: str,
        analysis_type: Any,
        query: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Create a PENDING job and schedule it; returns immediately.

        Prior jobs of the same type for the project are discarded together
        with their explanation and vulnerability rows.

        Raises:
            NotFoundError: Unknown project, or owned by another user
            ValidationError: Bad type, options or query
        """
        project_root = self._projects.get_project_root(user_id, project_id)
        atype = AnalysisType.parse(analysis_type)
        if query is not None:
            if not isinstance(query, str) or not query.strip():
                raise ValidationError("query must be a non-empty string")
            query = query.strip()
        opts = AnalysisOptions.from_dict(options, self._registry.tags(), self._default_options())
        if opts.file_path and not os.path.isfile(os.path.join(project_root, opts.file_path)):
            raise ValidationError(f"File {opts.file_path} does not exist in project")

        # No await from here to create_report: on one event loop, two starts
        # for the same (project, type) cannot interleave the cleanup and insert.
        prior = self._store.find_report_ids(project_id, atype)
        if prior:
            logger.info(f"Discarding {len(prior)} prior {atype.value} report(s) for project {project_id}")
            self._store.delete_reports(prior)
        report = self._store.create_report(project_id, atype, opts, query)

        task = asyncio.create_task(
            self.perform_analysis(report["id"], project_root),
            name=f"analysis-{report['id']}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Scheduled {atype.value} analysis {report['id']} for project {project_id}")
        return report

    async def wait_for_tasks(self) -> None:
        """Wait until every scheduled job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def perform_analysis(self, report_id: str, project_root: Optional[str] = None) -> None:
        """Run one job to a terminal state. Never raises."""
        token = CancellationToken(self._store, report_id)
        tracker = ProgressTracker(self._store, report_id)
        try:
            token.check()
            report = self._store.require_report(report_id)
            if project_root is None:
                project = self._projects.get_project(report["projectId"])
                if project is None:
                    raise NotFoundError(f"Project {report['projectId']} not found")
                project_root = project["root_path"]

            if not self._store.mark_processing(report_id, tracker.progress):
                token.check()
                logger.warning(f"Analysis {report_id} is {report['status']}, not starting it")
                return

            opts = report["options"] or {}
            run = AnalysisRun(
                report_id=report_id,
                project_id=report["projectId"],
                project_root=project_root,
                analysis_type=AnalysisType(report["type"]),
                options=AnalysisOptions(
                    languages=report["languages"],
                    max_symbols=opts.get("maxSymbols", self._settings.max_symbols),
                    batch_size=opts.get("batchSize", self._settings.batch_size),
                    file_path=report["filePath"],
                ),
                token=token,
                tracker=tracker,
                query=report["query"],
            )

            handlers = {
                AnalysisType.EXPLANATION: self._run_explanation_analysis,
                AnalysisType.RECOMMENDATION: self._run_recommendation_analysis,
                AnalysisType.VULNERABILITY: self._run_vulnerability_analysis,
                AnalysisType.FULL: self._run_full_analysis,
            }
            result = await handlers[run.analysis_type](run)

            token.check()
            if not self._store.mark_completed(report_id, result, tracker.final("Analysis completed")):
                token.check()
                logger.warning(f"Analysis {report_id} left PROCESSING before it could complete")
                return
            logger.info(f"Analysis {report_id} completed")

        except AnalysisCancelled:
            logger.info(f"Analysis {report_id} cancelled")
        except Exception as e:
            logger.error(f"Analysis {report_id} failed: {e}", exc_info=True)
            try:
                self._store.mark_failed(report_id, str(e))
            except Exception as store_error:
                logger.error(f"Could not mark analysis {report_id} as failed: {store_error}")

    def cancel(self, report_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Request cancellation; the running task stops at its next checkpoint."""
        report = self._get_owned_report(report_id, user_id)
        cancelled = self._store.mark_cancelled(report_id)
        current = self._store.get_status(report_id)
        status = current.value if current else report["status"]
        if cancelled:
            logger.info(f"Cancellation requested for analysis {report_id}")
        else:
            logger.info(f"Analysis {report_id} already {report['status']}, nothing to cancel")
        return {"id": report["id"], "status": status, "cancelled": cancelled}

    def get_status(self, report_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        report = self._get_owned_report(report_id, user_id)
        status = AnalysisStatus(report["status"])
        if status.is_terminal:
            remaining = None
        else:
            base = ESTIMATED_BASE_SECONDS[AnalysisType(report["type"])]
            pct = (report["progress"] or {}).get("percentage", 0)
            remaining = int(round(base * (100 - pct) / 100))
        report["estimatedTimeRemaining"] = remaining
        return report

    def get_history(
        self,
        user_id: str,
        project_id: str,
        analysis_type: Optional[Any] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        self._projects.get_project_root(user_id, project_id)
        atype = AnalysisType.parse(analysis_type) if analysis_type else None
        try:
            astatus = AnalysisStatus(status.upper()) if status else None
        except ValueError as e:
            raise ValidationError(f"Unknown status '{status}'") from e
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        reports, total = self._store.list_reports(project_id, atype, astatus, limit, offset)
        return {
            "reports": reports,
            "total": total,
            "stats": self._store.history_stats(project_id),
        }

    def get_runtime_stats(self) -> Dict[str, Any]:
        """In-flight job count and LLM usage since startup."""
        return {
            "activeJobs": sum(1 for task in self._tasks if not task.done()),
            "llm": self._provider.usage(),
        }

    def _get_owned_report(self, report_id: str, user_id: Optional[str]) -> Dict[str, Any]:
        report = self._store.require_report(report_id)
        if user_id is not None:
            # Raises NotFoundError for another user's project
            self._projects.get_project_root(user_id, report["projectId"])
        return report

    # ── Analysis types ──────────────────────────────────────────────────

    def _select_files(self, run: AnalysisRun) -> List[Tuple[str, str]]:
        """(rel_path, language) of every file in scope for a full scan."""
        if run.options.file_path:
            language = self._registry.detect(run.options.file_path) or "unknown"
            return [(run.options.file_path, language)]
        return [
            (rel_path, language)
            for _, rel_path, language in filter_by_language(
                walk_source_files(run.project_root), run.options.languages, self._registry
            )
        ]

    def _parse_all(self, run: AnalysisRun) -> List[ParsedFile]:
        parsed_files = []
        for rel_path, language in self._select_files(run):
            parsed = parse_file(run.project_root, rel_path, language, self._registry)
            if not parsed.errors:
                parsed_files.append(parsed)
        return parsed_files

    async def _targeted_files(self, run: AnalysisRun) -> Optional[List[Tuple[str, str]]]:
        """Search hits plus their local dependencies, or None to fall back."""
        if run.options.file_path:
            seeds = [run.options.file_path]
        else:
            try:
                hits = await self._index.search(
                    run.project_id, run.query, limit=self._settings.search_top_k
                )
            except ProviderError as e:
                logger.warning(f"Semantic search failed for analysis {run.report_id}, using full scan: {e}")
                return None
            seeds = [
                hit.file_path for hit in hits
                if os.path.isfile(os.path.join(run.project_root, hit.file_path))
            ]
            if not seeds:
                logger.info(f"No indexed files match the query for analysis {run.report_id}, using full scan")
                return None
            logger.info(f"Semantic search found {len(seeds)} relevant files for analysis {run.report_id}")

        paths = self._resolver.expand(run.project_root, seeds, self._settings.dependency_depth)
        allowed = set(run.options.languages) if run.options.languages else None
        selected = []
        for path in paths:
            language = self._registry.detect(path)
            if language is None or (allowed is not None and language not in allowed and path not in seeds):
                continue
            selected.append((path, language))
        dependency_count = sum(1 for path, _ in selected if path not in seeds)
        logger.info(
            f"Targeted analysis {run.report_id}: {len(seeds)} relevant + "
            f"{dependency_count} dependency files"
        )
        return selected

    async def _explain(self, run: AnalysisRun, span: Tuple[int, int] = (0, 100)) -> Dict[str, Any]:
        """Explanation pipeline; progress is mapped onto ``span``."""
        files = None
        if run.query or run.options.file_path:
            files = await self._targeted_files(run)
        if files is None:
            files = self._select_files(run)

        explainer = SymbolExplainer(
            self._provider,
            self._store,
            batch_size=run.options.batch_size,
            max_symbols=run.options.max_symbols,
        )
        low, high = span
        total = len(files)
        analyzed: List[ParsedFile] = []
        total_symbols = explained = 0

        for index, (rel_path, language) in enumerate(files):
            run.token.check()
            parsed = parse_file(run.project_root, rel_path, language, self._registry)
            if not parsed.errors:
                analyzed.append(parsed)
                total_symbols += len(parsed.symbols)
                explained += await explainer.explain_file(run.report_id, parsed, run.token)

            processed = index + 1
            run.tracker.update(
                f"Explaining {rel_path}",
                low + (high - low) * processed / total,
                processed_files=processed,
                total_files=total,
            )

        result: Dict[str, Any] = {
            "filesAnalyzed": len(analyzed),
            "totalSymbols": total_symbols,
            "explainedSymbols": explained,
            "languages": sorted({p.language for p in analyzed}),
            "targetedAnalysis": bool(run.query),
        }
        if run.query:
            result["query"] = run.query
            explanation = await self._synthesize(run, analyzed)
            if explanation:
                result["explanation"] = explanation

        logger.info(
            f"Explanation for {run.report_id}: {len(analyzed)} files, "
            f"{explained}/{total_symbols} symbols explained"
        )
        return result

    async def _synthesize(self, run: AnalysisRun, analyzed: List[ParsedFile]) -> Optional[str]:
        if not analyzed:
            return None
        run.token.check()
        run.tracker.update("Synthesizing explanation")
        files = build_synthesis_files(
            analyzed,
            self._settings.synthesis_min_chars,
            self._settings.synthesis_max_chars,
            self._settings.synthesis_total_chars,
        )
        try:
            explanation = await self._provider.synthesize(
                run.query, files, target_file_path=run.options.file_path
            )
        except ProviderError as e:
            logger.warning(f"Synthesis failed for analysis {run.report_id}: {e}")
            return None
        run.token.check()
        return explanation

    async def _run_explanation_analysis(self, run: AnalysisRun) -> Dict[str, Any]:
        run.tracker.update("Analyzing code structure", 10)
        return await self._explain(run)

    async def _run_recommendation_analysis(self, run: AnalysisRun) -> Dict[str, Any]:
        run.tracker.update("Analyzing code quality", 10)
        parsed_files = self._parse_all(run)
        run.token.check()
        run.tracker.update("Generating recommendations", 50, processed_files=len(parsed_files), total_files=len(parsed_files))
        return summarize_recommendations(generate_recommendations(parsed_files))

    async def _scan_vulnerabilities(self, run: AnalysisRun) -> Dict[str, Any]:
        parsed_files = self._parse_all(run)
        findings = scan_files(parsed_files)
        run.token.check()
        self._store.add_vulnerabilities(run.report_id, findings)
        return summarize_vulnerabilities(findings)

    async def _run_vulnerability_analysis(self, run: AnalysisRun) -> Dict[str, Any]:
        run.tracker.update("Scanning for vulnerabilities", 10)
        return await self._scan_vulnerabilities(run)

    async def _run_full_analysis(self, run: AnalysisRun) -> Dict[str, Any]:
        run.tracker.update("Scanning for vulnerabilities", 10)
        run.partial["vulnerabilities"] = await self._scan_vulnerabilities(run)
        self._store.update_result(run.report_id, dict(run.partial))

        run.token.check()
        run.tracker.update("Generating explanations", 40)
        run.partial["explanations"] = await self._explain(run, span=(40, 70))
        self._store.update_result(run.report_id, dict(run.partial))

        run.token.check()
        run.tracker.update("Generating recommendations", 70)
        run.partial["recommendations"] = summarize_recommendations(
            generate_recommendations(self._parse_all(run))
        )
        self._store.update_result(run.report_id, dict(run.partial))

        run.token.check()
        run.tracker.update("Summarizing results", 90)
        return {
            **run.partial,
            "summary": {
                "vulnerabilitiesFound": run.partial["vulnerabilities"]["vulnerabilitiesFound"],
                "explanationsGenerated": run.partial["explanations"]["explainedSymbols"],
                "recommendationsCount": run.partial["recommendations"]["totalRecommendations"],
                "analysisDate": datetime.now(timezone.utc).isoformat(),
            },
        }

    # ── Semantic index ──────────────────────────────────────────────────

    async def index_project(
        self, user_id: str, project_id: str, languages: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        project_root = self._projects.get_project_root(user_id, project_id)
        if languages:
            unknown = [l for l in languages if l not in self._registry.tags()]
            if unknown:
                raise ValidationError(f"Unsupported languages: {', '.join(unknown)}")
        return await self._index.index_project(
            str(project_id), project_root, languages or list(self._settings.languages)
        )

    async def search_relevant_files(
        self, user_id: str, project_id: str, query: str, limit: int = 10
    ) -> List[Dict[str, Any]]:
        self._projects.get_project_root(user_id, project_id)
        if not query or not query.strip():
            raise ValidationError("query must be a non-empty string")
        results = await self._index.search(str(project_id), query.strip(), limit)
        return [r.to_dict() for r in results]

    def get_index_status(self, user_id: str, project_id: str) -> Dict[str, Any]:
        self._projects.get_project_root(user_id, project_id)
        return self._index.get_status(str(project_id))

    def clear_index(self, user_id: str, project_id: str) -> Dict[str, Any]:
        self._projects.get_project_root(user_id, project_id)
        return {"deleted": self._index.clear(str(project_id))}

    # ── Stored results ──────────────────────────────────────────────────

    def get_explanations(
        self,
        report_id: str,
        file_path: Optional[str] = None,
        symbol_type: Optional[str] = None,
        symbol_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self._get_owned_report(report_id, user_id)
        return self._store.list_explanations(report_id, file_path, symbol_type, symbol_name)

    def get_vulnerabilities(
        self,
        report_id: str,
        severity: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self._get_owned_report(report_id, user_id)
        return self._store.list_vulnerabilities(report_id, severity)

    def get_recommendations(self, user_id: str, project_id: str) -> Dict[str, Any]:
        """Recommendations of the latest completed RECOMMENDATION or FULL job."""
        self._projects.get_project_root(user_id, project_id)
        report = self._store.find_first_completed(
            project_id, [AnalysisType.RECOMMENDATION, AnalysisType.FULL]
        )
        if report is None:
            return {"reportId": None, **summarize_recommendations([])}

        result = report["result"] or {}
        if report["type"] == AnalysisType.FULL.value:
            result = result.get("recommendations") or {}
        return {
            "reportId": report["id"],
            "recommendations": result.get("recommendations", []),
            "totalRecommendations": result.get("totalRecommendations", 0),
            "byPriority": result.get("byPriority", {}),
        }

    # ── Ad-hoc explanations ─────────────────────────────────────────────

    def _parse_project_file(self, user_id: str, project_id: str, file_path: str) -> ParsedFile:
        project_root = self._projects.get_project_root(user_id, project_id)
        if os.path.isabs(file_path) or ".." in file_path.replace("\\", "/").split("/"):
            raise ValidationError("file_path must be relative to the project root")
        if not os.path.isfile(os.path.join(project_root, file_path)):
            raise NotFoundError(f"File {file_path} not found")
        parsed = parse_file(project_root, file_path, registry=self._registry)
        if parsed.errors:
            raise NotFoundError(f"File {file_path} could not be read")
        return parsed

    async def explain_file(self, user_id: str, project_id: str, file_path: str) -> Dict[str, Any]:
        """Explain every symbol of one file without creating a job."""
        parsed = self._parse_project_file(user_id, project_id, file_path)
        explainer = SymbolExplainer(
            self._provider,
            self._store,
            batch_size=self._settings.batch_size,
            max_symbols=self._settings.max_symbols,
        )
        return {
            "filePath": parsed.file_path,
            "language": parsed.language,
            "symbols": await explainer.explain_unpersisted(parsed),
        }

    async def explain_symbol(
        self,
        user_id: str,
        project_id: str,
        file_path: str,
        symbol_name: str,
        question: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Cohesive explanation of one symbol, using related files as context."""
        parsed = self._parse_project_file(user_id, project_id, file_path)
        symbol = next((s for s in parsed.symbols if s.name == symbol_name), None)
        if symbol is None:
            raise NotFoundError(f"Symbol {symbol_name} not found in {file_path}")

        question = (question or "").strip() or f"What does {symbol.kind} {symbol.name} in {file_path} do?"
        try:
            hits = await self._index.search(
                str(project_id), question, limit=self._settings.related_files_for_symbol
            )
        except ProviderError as e:
            logger.warning(f"Related file search failed for {symbol_name}: {e}")
            hits = []

        project_root = self._projects.get_project_root(user_id, project_id)
        context = [parsed]
        for hit in hits:
            if hit.file_path == parsed.file_path:
                continue
            related = parse_file(project_root, hit.file_path, registry=self._registry)
            if not related.errors:
                context.append(related)

        files = build_synthesis_files(
            context,
            self._settings.synthesis_min_chars,
            self._settings.synthesis_max_chars,
            self._settings.synthesis_total_chars,
        )
        explanation = await self._provider.synthesize(
            question, files, target_file_path=file_path, target_symbol_name=symbol_name
        )
        return {
            "filePath": file_path,
            "symbol": symbol.to_dict(),
            "question": question,
            "explanation": explanation,
            "relatedFiles": [p.file_path for p in context[1:]],
        }
