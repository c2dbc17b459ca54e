"""Project registry API routes (FastAPI).

Projects are already extracted on disk; this only records where.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_current_user, get_project_manager
from ..schemas import ProjectCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("", status_code=201)
async def create_project(
    body: ProjectCreate,
    user: dict = Depends(get_current_user),
    pm=Depends(get_project_manager),
):
    return pm.create_project(user["user_id"], body.name, body.root_path)


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user: dict = Depends(get_current_user),
    pm=Depends(get_project_manager),
):
    project = pm.get_project(project_id)
    if not project or project["user_id"] != user["user_id"]:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    user: dict = Depends(get_current_user),
    pm=Depends(get_project_manager),
):
    if not pm.delete_project(user["user_id"], project_id):
        raise HTTPException(status_code=404, detail="Project not found")
