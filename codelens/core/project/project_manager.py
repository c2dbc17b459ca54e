"""Project registry for CodeLens.

Records where each user's extracted project lives on disk and answers
ownership checks for the analysis engine.
"""

import logging
import os
from typing import Dict, Optional
from uuid import UUID, uuid4

from ..db import DatabaseManager
from ..db.models import Project
from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _as_uuid(value: str, what: str) -> UUID:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError as e:
        raise NotFoundError(f"{what} {value} not found") from e


class ProjectManager:
    """Manages project records with database persistence."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        logger.info("ProjectManager initialized")

    def create_project(self, user_id: str, name: str, root_path: str) -> Dict:
        """Register an extracted project directory for a user."""
        if not name or not name.strip():
            raise ValidationError("Project name must not be empty")
        if not os.path.isdir(root_path):
            raise ValidationError(f"Project root {root_path} is not a directory")

        with self.db.get_session() as session:
            project = Project(
                project_id=uuid4(),
                user_id=_as_uuid(user_id, "User"),
                name=name.strip(),
                root_path=os.path.abspath(root_path),
            )
            session.add(project)
            session.flush()
            logger.info(f"Created project: {project.project_id} ({name})")
            return self._project_to_dict(project)

    def get_project(self, project_id: str) -> Optional[Dict]:
        """Retrieve project details by ID (None if missing)."""
        try:
            pid = _as_uuid(project_id, "Project")
        except NotFoundError:
            return None
        with self.db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            return self._project_to_dict(project) if project else None

    def get_project_root(self, user_id: str, project_id: str) -> str:
        """Root directory of a project owned by user_id.

        Raises:
            NotFoundError: Project does not exist or belongs to another user
        """
        pid = _as_uuid(project_id, "Project")
        uid = _as_uuid(user_id, "User")
        with self.db.get_session() as session:
            project = session.query(Project).filter(
                Project.project_id == pid,
                Project.user_id == uid,
            ).first()
            if project is None:
                raise NotFoundError(f"Project {project_id} not found")
            return project.root_path

    def delete_project(self, user_id: str, project_id: str) -> bool:
        """Delete a project with its reports and index entries."""
        pid = _as_uuid(project_id, "Project")
        uid = _as_uuid(user_id, "User")
        with self.db.get_session() as session:
            project = session.query(Project).filter(
                Project.project_id == pid,
                Project.user_id == uid,
            ).first()
            if project is None:
                return False
            session.delete(project)
        logger.info(f"Deleted project {project_id}")
        return True

    @staticmethod
    def _project_to_dict(project: Project) -> Dict:
        return {
            "project_id": str(project.project_id),
            "user_id": str(project.user_id),
            "name": project.name,
            "root_path": project.root_path,
            "created_at": project.created_at.isoformat() if project.created_at else None,
        }
