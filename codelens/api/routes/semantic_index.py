"""Semantic index API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import get_analysis_engine, get_current_user
from ..schemas import IndexRequest, SearchRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/index", tags=["semantic-index"])


@router.post("")
async def index_project(
    project_id: str,
    body: Optional[IndexRequest] = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return await engine.index_project(user["user_id"], project_id, body.languages if body else None)


@router.post("/search")
async def search(
    project_id: str,
    body: SearchRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    results = await engine.search_relevant_files(user["user_id"], project_id, body.query, body.limit)
    return {"results": results, "count": len(results)}


@router.get("/status")
async def index_status(
    project_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.get_index_status(user["user_id"], project_id)


@router.delete("")
async def clear_index(
    project_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return engine.clear_index(user["user_id"], project_id)
