import argparse
import logging
import sys

from .core.db.db import get_database_manager, wait_for_db
from .core.project.project_manager import ProjectManager


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def main():
    """Main entry point for CodeLens."""
    from .setting import get_settings
    settings = get_settings()

    parser = argparse.ArgumentParser(description="CodeLens - AI-assisted code analysis")
    parser.add_argument(
        "--port",
        type=int,
        default=9005,
        help="Port for the API server"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info(f"Starting CodeLens - database: {settings.database.url.split('@')[-1]}")

    # Database
    db_manager = get_database_manager(settings.database.url, echo=settings.database.echo)
    wait_for_db(db_manager)
    db_manager.init_db()
    project_manager = ProjectManager(db_manager)

    # LLM + embeddings (installed as llama_index Settings)
    from .core.model import LocalModel
    LocalModel.configure(settings.llm)

    # Analysis core
    from .core.analysis import AnalysisEngine
    from .core.provider import AnalysisProvider
    from .core.semantic_index import ProjectCache, SemanticIndex

    provider = AnalysisProvider(summary_max_chars=settings.analysis.summary_max_chars)
    semantic_index = SemanticIndex(
        db_manager, provider, cache=ProjectCache(ttl=settings.index.cache_ttl)
    )
    engine = AnalysisEngine(
        db_manager,
        provider,
        project_manager=project_manager,
        semantic_index=semantic_index,
        settings=settings.analysis,
    )

    # Build FastAPI app
    from .api.app import create_app
    app = create_app(db_manager=db_manager, engine=engine, project_manager=project_manager)

    # Launch with uvicorn
    import uvicorn

    logger.info(f"Starting FastAPI server on http://0.0.0.0:{args.port}")
    print(f"\n  CodeLens is running at: http://localhost:{args.port}")
    print(f"  API docs at: http://localhost:{args.port}/docs\n")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
