"""Database connection and session management."""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

import backoff
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out transactional sessions.

    Usage:
        db = DatabaseManager("postgresql://...")
        db.init_db()
        with db.get_session() as session:
            session.add(obj)
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        engine_kwargs = {"echo": echo, "future": True}

        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url or database_url == "sqlite://":
                # One shared connection, otherwise every session sees an empty DB
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_size"] = 10
            engine_kwargs["max_overflow"] = 20

        self.engine = create_engine(database_url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine, expire_on_commit=False, future=True
        )
        logger.info(f"DatabaseManager initialized ({self.engine.dialect.name})")

    def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema initialized")

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Session scope: commit on success, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")


_db_manager: Optional[DatabaseManager] = None


def get_database_manager(
    database_url: Optional[str] = None, echo: Optional[bool] = None
) -> DatabaseManager:
    """Return the process-wide DatabaseManager, creating it on first use.

    Missing arguments fall back to the ``database`` settings section.
    Arguments are ignored once the manager exists.
    """
    global _db_manager
    if _db_manager is None:
        if database_url is None or echo is None:
            from ...setting import get_settings
            database = get_settings().database
            database_url = database_url or database.url
            echo = database.echo if echo is None else echo
        _db_manager = DatabaseManager(database_url, echo=echo)
    return _db_manager


def wait_for_db(db_manager: DatabaseManager, max_time: int = 60) -> bool:
    """Block until the database accepts connections (exponential backoff)."""

    @backoff.on_exception(
        backoff.expo,
        OperationalError,
        max_time=max_time,
        on_backoff=lambda details: logger.warning(
            f"Database not ready (attempt {details['tries']}), "
            f"retrying in {details['wait']:.1f}s"
        ),
    )
    def _ping():
        return db_manager.ping()

    _ping()
    logger.info("Database is available")
    return True
