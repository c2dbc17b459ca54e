"""FastAPI dependencies for CodeLens.

Provides shared dependencies (caller identity, database, services) via
FastAPI's Depends() injection system.
"""

import logging
from uuid import UUID

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


async def get_db_manager(request: Request):
    """Get DatabaseManager from app state."""
    return request.app.state.db_manager


async def get_project_manager(request: Request):
    """Get ProjectManager from app state."""
    return request.app.state.project_manager


async def get_analysis_engine(request: Request):
    """Get AnalysisEngine from app state."""
    engine = request.app.state.analysis_engine
    if engine is None:
        raise HTTPException(status_code=503, detail="Analysis engine not available")
    return engine


async def get_current_user(x_user_id: str = Header(default="")) -> dict:
    """Caller identity from the X-User-Id header.

    Authentication happens upstream; this only checks the id is present
    and well formed. Raises 401 otherwise.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid user id")
    return {"user_id": x_user_id}
