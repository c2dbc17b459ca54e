"""FastAPI application factory for CodeLens.

Creates and configures the FastAPI app with CORS, error mapping
and all route modules registered.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.errors import NotFoundError, ProviderError, ValidationError

logger = logging.getLogger(__name__)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ProviderError)
    async def provider_handler(request: Request, exc: ProviderError):
        logger.warning(f"Provider error on {request.url.path}: {exc}")
        return JSONResponse(status_code=502, content={"detail": str(exc)})


def create_app(db_manager, engine, project_manager) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_manager: DatabaseManager instance
        engine: AnalysisEngine instance
        project_manager: ProjectManager instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="CodeLens API",
        description="AI-assisted code analysis: explanations, recommendations, vulnerabilities",
        version="0.1.0",
    )

    # CORS for React dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store shared dependencies on app state
    app.state.db_manager = db_manager
    app.state.analysis_engine = engine
    app.state.project_manager = project_manager

    _register_error_handlers(app)

    # Register routers
    from .routes.projects import router as projects_router
    from .routes.analysis import router as analysis_router
    from .routes.semantic_index import router as index_router

    app.include_router(projects_router, prefix="/api")
    app.include_router(analysis_router, prefix="/api")
    app.include_router(index_router, prefix="/api")

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "ok",
            "service": "codelens",
            "database": db_manager.ping(),
            "engine": engine.get_runtime_stats(),
        }

    logger.info("FastAPI app created with all routes registered")
    return app
