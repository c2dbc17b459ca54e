from .analysis import (
    AnalysisRequest,
    ExplainFileRequest,
    ExplainSymbolRequest,
    IndexRequest,
    ProjectCreate,
    SearchRequest,
)

__all__ = [
    "AnalysisRequest",
    "ExplainFileRequest",
    "ExplainSymbolRequest",
    "IndexRequest",
    "ProjectCreate",
    "SearchRequest",
]
