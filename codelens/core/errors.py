"""Exception hierarchy for CodeLens.

NotFoundError and ValidationError are raised before any job is created.
ProviderError wraps failures of the embedding/LLM provider and is
recovered at the smallest enclosing scope (file, batch, synthesis).
AnalysisCancelled unwinds a running job that was marked CANCELLED.
"""

from typing import Optional


class CodeLensError(Exception):
    """Base class for all CodeLens errors."""


class NotFoundError(CodeLensError):
    """Project, job or file does not exist or is not owned by the caller."""


class ValidationError(CodeLensError):
    """Malformed analysis request."""


class ProviderError(CodeLensError):
    """Embedding or LLM provider call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"[{self.status}] {self.message}"
        return self.message


class AnalysisCancelled(CodeLensError):
    """Raised at a checkpoint when the job has been cancelled externally."""

    def __init__(self, report_id: str):
        super().__init__(f"Analysis {report_id} was cancelled")
        self.report_id = report_id
