"""
Project registry

Exports:
- ProjectManager: project records and ownership checks (get_project_root)
"""

from .project_manager import ProjectManager

__all__ = [
    "ProjectManager",
]
