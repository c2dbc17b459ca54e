"""
SQLAlchemy ORM Models for CodeLens

- Project: an extracted codebase on disk owned by a user
- AnalysisReport: one analysis job (type, status, progress, result)
- CodeExplanation: per-symbol explanation rows attached to a report
- Vulnerability: pattern-matched findings attached to a report
- FileIndex: per-file summary + embedding for semantic retrieval
"""

from sqlalchemy import (
    Column, String, Integer, Float, Text, TIMESTAMP, ForeignKey, BigInteger,
    Index, TypeDecorator, UniqueConstraint, JSON,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID, JSONB
import uuid
from datetime import datetime

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")


# UUID type that works with both PostgreSQL and SQLite
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == 'postgresql':
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None or dialect.name == 'postgresql':
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


# =============================================================================
# Projects
# =============================================================================

class Project(Base):
    """An uploaded codebase, already extracted under root_path."""
    __tablename__ = "projects"
    __table_args__ = (
        Index('idx_user_projects', 'user_id', 'created_at'),
    )

    project_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), nullable=False)
    name = Column(String(255), nullable=False)
    root_path = Column(String(2048), nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    # Relationships
    reports = relationship("AnalysisReport", back_populates="project", cascade="all, delete-orphan")
    file_index = relationship("FileIndex", back_populates="project", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Project(project_id={self.project_id}, name='{self.name}')>"


# =============================================================================
# Analysis Jobs
# =============================================================================

class AnalysisReport(Base):
    """One analysis run for a project.

    status moves PENDING -> PROCESSING -> COMPLETED | FAILED | CANCELLED.
    progress is {currentStep, percentage, processedFiles, totalFiles}.
    """
    __tablename__ = "analysis_reports"
    __table_args__ = (
        Index('idx_reports_project_type', 'project_id', 'type'),
        Index('idx_reports_project_status', 'project_id', 'status'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)       # VULNERABILITY|EXPLANATION|RECOMMENDATION|FULL
    status = Column(String(20), default='PENDING', nullable=False)
    query = Column(Text, nullable=True)
    file_path = Column(String(1024), nullable=True)
    languages = Column(JSONType, default=list)
    options = Column(JSONType, default=dict)
    result = Column(JSONType, nullable=True)
    progress = Column(JSONType, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="reports")
    explanations = relationship("CodeExplanation", back_populates="report", cascade="all, delete-orphan")
    vulnerabilities = relationship("Vulnerability", back_populates="report", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<AnalysisReport(id={self.id}, type='{self.type}', status='{self.status}')>"


class CodeExplanation(Base):
    """LLM explanation of a single extracted symbol."""
    __tablename__ = "code_explanations"
    __table_args__ = (
        Index('idx_explanations_report', 'report_id'),
        Index('idx_explanations_file', 'report_id', 'file_path'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(), ForeignKey("analysis_reports.id", ondelete="CASCADE"), nullable=False)
    file_path = Column(String(1024), nullable=False)
    symbol_name = Column(String(255), nullable=False)
    symbol_type = Column(String(20), nullable=False)    # function|method|class|interface|type|variable
    line_start = Column(Integer, nullable=False)
    line_end = Column(Integer, nullable=False)
    summary = Column(Text, nullable=False)
    detailed = Column(Text, nullable=False)
    complexity = Column(Integer, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    report = relationship("AnalysisReport", back_populates="explanations")

    def __repr__(self):
        return f"<CodeExplanation(file='{self.file_path}', symbol='{self.symbol_name}')>"


class Vulnerability(Base):
    """Pattern-matched security finding."""
    __tablename__ = "vulnerabilities"
    __table_args__ = (
        Index('idx_vulnerabilities_report', 'report_id'),
        Index('idx_vulnerabilities_severity', 'report_id', 'severity'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    report_id = Column(UUID(), ForeignKey("analysis_reports.id", ondelete="CASCADE"), nullable=False)
    severity = Column(String(20), nullable=False)       # CRITICAL|HIGH|MEDIUM|LOW|INFO
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    file_path = Column(String(1024), nullable=False)
    symbol_name = Column(String(255), nullable=True)   # innermost enclosing symbol
    line_start = Column(Integer, nullable=True)
    line_end = Column(Integer, nullable=True)
    code_snippet = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    cwe = Column(String(20), nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    report = relationship("AnalysisReport", back_populates="vulnerabilities")

    def __repr__(self):
        return f"<Vulnerability(type='{self.type}', severity='{self.severity}', file='{self.file_path}')>"


# =============================================================================
# Semantic Index
# =============================================================================

class FileIndex(Base):
    """Summary + embedding of one project file.

    last_modified is the source file mtime at index time; a file whose
    current mtime is not newer is skipped on re-index.
    """
    __tablename__ = "file_index"
    __table_args__ = (
        UniqueConstraint('project_id', 'file_path', name='uq_file_index_project_path'),
        Index('idx_file_index_project', 'project_id'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    file_path = Column(String(1024), nullable=False)
    summary = Column(Text, nullable=False)
    embedding = Column(JSONType, nullable=False)        # list[float]
    language = Column(String(50), nullable=False)
    file_size = Column(BigInteger, default=0)
    last_modified = Column(Float, nullable=False)       # POSIX mtime
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="file_index")

    def __repr__(self):
        return f"<FileIndex(project={self.project_id}, path='{self.file_path}')>"
