"""Data contracts for the analysis engine.

Kept as dataclasses (not ORM models) for transport between layers.
DTOs serialize with camelCase keys, matching the persisted JSON payloads.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import ValidationError


class AnalysisType(Enum):
    VULNERABILITY = "VULNERABILITY"
    EXPLANATION = "EXPLANATION"
    RECOMMENDATION = "RECOMMENDATION"
    FULL = "FULL"

    @classmethod
    def parse(cls, value: Any) -> "AnalysisType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as e:
            allowed = ", ".join(t.value for t in cls)
            raise ValidationError(f"Unknown analysis type '{value}' (expected one of {allowed})") from e


class AnalysisStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    AnalysisStatus.COMPLETED,
    AnalysisStatus.FAILED,
    AnalysisStatus.CANCELLED,
})
ACTIVE_STATUSES = frozenset({AnalysisStatus.PENDING, AnalysisStatus.PROCESSING})


class Priority(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Severity(Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class RecommendationCategory(Enum):
    PERFORMANCE = "PERFORMANCE"
    MAINTAINABILITY = "MAINTAINABILITY"
    SECURITY = "SECURITY"
    BEST_PRACTICES = "BEST_PRACTICES"


# Base duration estimates (seconds) for a full run of each type
ESTIMATED_BASE_SECONDS = {
    AnalysisType.VULNERABILITY: 120,
    AnalysisType.EXPLANATION: 300,
    AnalysisType.RECOMMENDATION: 60,
    AnalysisType.FULL: 600,
}


@dataclass
class AnalysisOptions:
    """Validated per-request options."""

    languages: List[str] = field(default_factory=list)
    max_symbols: int = 50
    batch_size: int = 5
    file_path: Optional[str] = None  # Restrict analysis to one file

    @classmethod
    def from_dict(
        cls,
        raw: Optional[Dict[str, Any]],
        known_languages: List[str],
        defaults: "AnalysisOptions",
    ) -> "AnalysisOptions":
        raw = dict(raw or {})
        unknown = set(raw) - {"languages", "maxSymbols", "max_symbols", "batchSize", "batch_size", "filePath", "file_path"}
        if unknown:
            raise ValidationError(f"Unknown analysis options: {', '.join(sorted(unknown))}")

        languages = raw.get("languages", defaults.languages)
        if not isinstance(languages, list) or not all(isinstance(l, str) for l in languages):
            raise ValidationError("languages must be a list of strings")
        bad = [l for l in languages if l not in known_languages]
        if bad:
            raise ValidationError(f"Unsupported languages: {', '.join(bad)}")

        max_symbols = raw.get("maxSymbols", raw.get("max_symbols", defaults.max_symbols))
        batch_size = raw.get("batchSize", raw.get("batch_size", defaults.batch_size))
        for name, value in (("maxSymbols", max_symbols), ("batchSize", batch_size)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationError(f"{name} must be a positive integer")

        file_path = raw.get("filePath", raw.get("file_path"))
        if file_path is not None:
            if not isinstance(file_path, str) or not file_path.strip():
                raise ValidationError("filePath must be a non-empty string")
            if file_path.startswith("/") or ".." in file_path.replace("\\", "/").split("/"):
                raise ValidationError("filePath must be relative to the project root")

        return cls(
            languages=list(languages),
            max_symbols=max_symbols,
            batch_size=batch_size,
            file_path=file_path,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "languages": self.languages,
            "maxSymbols": self.max_symbols,
            "batchSize": self.batch_size,
            "filePath": self.file_path,
        }


@dataclass
class Progress:
    current_step: str = ""
    percentage: int = 0
    processed_files: int = 0
    total_files: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStep": self.current_step,
            "percentage": self.percentage,
            "processedFiles": self.processed_files,
            "totalFiles": self.total_files,
        }


@dataclass
class Recommendation:
    """One quality finding emitted by a recommendation check."""

    id: str
    category: RecommendationCategory
    priority: Priority
    title: str
    description: str
    file_path: str
    suggestion: str
    impact: str
    line_start: Optional[int] = None
    line_end: Optional[int] = None
    code_snippet: Optional[str] = None
    rule: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule": self.rule,
            "category": self.category.value,
            "priority": self.priority.value,
            "title": self.title,
            "description": self.description,
            "filePath": self.file_path,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "codeSnippet": self.code_snippet,
            "suggestion": self.suggestion,
            "impact": self.impact,
        }


@dataclass
class VulnerabilityFinding:
    """One pattern-matched security finding."""

    type: str
    severity: Severity
    title: str
    description: str
    file_path: str
    line_start: int
    line_end: int
    code_snippet: str
    recommendation: str
    cwe: Optional[str] = None
    symbol_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "filePath": self.file_path,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "codeSnippet": self.code_snippet,
            "recommendation": self.recommendation,
            "cwe": self.cwe,
            "symbolName": self.symbol_name,
        }
