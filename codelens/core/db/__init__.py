"""
Database module for CodeLens.

Exports:
- DatabaseManager: Database connection and session management
- get_database_manager: Factory function for DatabaseManager
- wait_for_db: Database availability checker with retry logic
- Models: Project, AnalysisReport, CodeExplanation, Vulnerability, FileIndex
- Base: SQLAlchemy declarative base
"""

from .db import DatabaseManager, get_database_manager, wait_for_db
from .models import (
    Base,
    Project,
    AnalysisReport,
    CodeExplanation,
    Vulnerability,
    FileIndex,
)

__all__ = [
    # Database management
    "DatabaseManager",
    "get_database_manager",
    "wait_for_db",

    # ORM models
    "Base",
    "Project",
    "AnalysisReport",
    "CodeExplanation",
    "Vulnerability",
    "FileIndex",
]
