"""Analysis API routes.

Job lifecycle (start, status, cancel, history) plus read access to the
explanations, vulnerabilities and recommendations a job produced.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_analysis_engine, get_current_user
from ..schemas import AnalysisRequest, ExplainFileRequest, ExplainSymbolRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])


@router.post("/projects/{project_id}/analysis", status_code=202)
async def start_analysis(
    project_id: str,
    body: AnalysisRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return await engine.start_analysis(
        user["user_id"], project_id, body.type, query=body.query, options=body.options
    )


@router.get("/projects/{project_id}/analysis/history")
async def get_history(
    project_id: str,
    type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.get_history(user["user_id"], project_id, type, status, limit, offset)


@router.get("/projects/{project_id}/recommendations")
async def get_recommendations(
    project_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.get_recommendations(user["user_id"], project_id)


@router.post("/projects/{project_id}/explain/file")
async def explain_file(
    project_id: str,
    body: ExplainFileRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return await engine.explain_file(user["user_id"], project_id, body.file_path)


@router.post("/projects/{project_id}/explain/symbol")
async def explain_symbol(
    project_id: str,
    body: ExplainSymbolRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return await engine.explain_symbol(
        user["user_id"], project_id, body.file_path, body.symbol_name, body.question
    )


@router.get("/analysis/{report_id}")
async def get_status(
    report_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.get_status(report_id, user_id=user["user_id"])


@router.post("/analysis/{report_id}/cancel")
async def cancel_analysis(
    report_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.cancel(report_id, user_id=user["user_id"])


@router.get("/analysis/{report_id}/explanations")
async def get_explanations(
    report_id: str,
    file_path: Optional[str] = Query(None, alias="filePath"),
    symbol_type: Optional[str] = Query(None, alias="symbolType"),
    symbol_name: Optional[str] = Query(None, alias="symbolName"),
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    explanations = engine.get_explanations(
        report_id, file_path, symbol_type, symbol_name, user_id=user["user_id"]
    )
    return {"explanations": explanations, "count": len(explanations)}


@router.get("/analysis/{report_id}/vulnerabilities")
async def get_vulnerabilities(
    report_id: str,
    severity: Optional[str] = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    vulnerabilities = engine.get_vulnerabilities(report_id, severity, user_id=user["user_id"])
    return {"vulnerabilities": vulnerabilities, "count": len(vulnerabilities)}
