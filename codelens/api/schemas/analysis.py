"""Analysis and index request schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    """Register an extracted project directory."""
    name: str = Field(..., description="Project name", min_length=1)
    root_path: str = Field(..., alias="rootPath", description="Directory the project was extracted to")

    model_config = {"populate_by_name": True}


class AnalysisRequest(BaseModel):
    """Start an analysis job."""
    type: str = Field(..., description="VULNERABILITY | EXPLANATION | RECOMMENDATION | FULL")
    query: Optional[str] = Field(None, description="Free-text question for targeted explanation")
    options: Optional[Dict[str, Any]] = Field(
        None, description="languages, maxSymbols, batchSize, filePath"
    )


class IndexRequest(BaseModel):
    languages: Optional[List[str]] = Field(None, description="Restrict indexing to these languages")


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(10, ge=1, le=100)


class ExplainFileRequest(BaseModel):
    file_path: str = Field(..., alias="filePath", min_length=1)

    model_config = {"populate_by_name": True}


class ExplainSymbolRequest(BaseModel):
    file_path: str = Field(..., alias="filePath", min_length=1)
    symbol_name: str = Field(..., alias="symbolName", min_length=1)
    question: Optional[str] = None

    model_config = {"populate_by_name": True}
