"""
Analysis engine

Exports:
- AnalysisEngine: job lifecycle, semantic index facade, stored results
- JobStore: persistence for reports, explanations and vulnerabilities
- SymbolExplainer / CancellationToken: batched explanation with checkpoints
- AnalysisType / AnalysisStatus / AnalysisOptions / Progress: transport types
"""

from .engine import AnalysisEngine, AnalysisRun, ProgressTracker
from .explainer import CancellationToken, SymbolExplainer, build_synthesis_files, synthesis_budget
from .job_store import JobStore
from .models import (
    ACTIVE_STATUSES,
    ESTIMATED_BASE_SECONDS,
    TERMINAL_STATUSES,
    AnalysisOptions,
    AnalysisStatus,
    AnalysisType,
    Priority,
    Progress,
    Recommendation,
    RecommendationCategory,
    Severity,
    VulnerabilityFinding,
)

__all__ = [
    "AnalysisEngine",
    "AnalysisRun",
    "ProgressTracker",
    "CancellationToken",
    "SymbolExplainer",
    "build_synthesis_files",
    "synthesis_budget",
    "JobStore",
    "ACTIVE_STATUSES",
    "ESTIMATED_BASE_SECONDS",
    "TERMINAL_STATUSES",
    "AnalysisOptions",
    "AnalysisStatus",
    "AnalysisType",
    "Priority",
    "Progress",
    "Recommendation",
    "RecommendationCategory",
    "Severity",
    "VulnerabilityFinding",
]
