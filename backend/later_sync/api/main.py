"""
Later Sync - FastAPI Application
================================

Main application factory with routers, lifespan and error handlers.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text

from later_sync.api import content, spaces
from later_sync.core.config import settings
from later_sync.core.database import AsyncSessionLocal, close_db, engine, init_db
from later_sync.core.errors import AppError, ErrorCode, classify, log_error
from later_sync.core.logging import configure_logging
from later_sync.core.repositories import SqlStore
from later_sync.core.schemas import ErrorResponse, HealthResponse
from later_sync.core.sync import Organizer

configure_logging()

logger = structlog.get_logger()


# ==========================================================================
# Error mapping
# ==========================================================================

def status_for(error: AppError) -> int:
    """HTTP status for a classified error."""
    code = error.code
    if code.is_validation:
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if code.is_not_found:
        return status.HTTP_404_NOT_FOUND
    if code is ErrorCode.CONFLICT:
        return status.HTTP_409_CONFLICT
    if code is ErrorCode.OPERATION_NOT_ALLOWED:
        return status.HTTP_400_BAD_REQUEST
    if error.is_retryable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# ==========================================================================
# Lifespan
# ==========================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Startup:
    - Create tables
    - Build the organizer over the SQL store and load spaces

    Shutdown:
    - Close database connections
    """
    logger.info("starting_later_sync", version=settings.APP_VERSION)

    await init_db()
    logger.info("database_initialized")

    organizer = Organizer.from_store(SqlStore(AsyncSessionLocal))
    await organizer.load()
    app.state.organizer = organizer
    logger.info("organizer_loaded", **organizer.snapshot()["counts"])

    yield

    logger.info("shutting_down_later_sync")
    await close_db()
    logger.info("database_connections_closed")


# ==========================================================================
# App Factory
# ==========================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Offline-first sync engine for spaces, todo lists, lists and notes",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ==========================================================================
    # Middleware
    # ==========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==========================================================================
    # Exception Handlers
    # ==========================================================================

    def error_response(exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=status_for(exc),
            content=ErrorResponse(
                error=exc.message,
                detail=exc.technical_details if settings.is_development else None,
                code=exc.code.value,
                user_message=exc.user_message,
                retryable=exc.is_retryable,
                context=exc.context,
            ).model_dump(),
        )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Render classified errors with their user message."""
        return error_response(exc)

    @app.exception_handler(PydanticValidationError)
    async def model_validation_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
        """Domain models rejected by pydantic inside a route."""
        error = classify(exc)
        log_error(error, context="api", path=request.url.path)
        return error_response(error)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.is_development:
            detail = str(exc)
        else:
            detail = "An unexpected error occurred"

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="Internal Server Error",
                detail=detail,
                code="INTERNAL_ERROR",
            ).model_dump(),
        )

    # ==========================================================================
    # Routers
    # ==========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Check application and database health."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            database = "connected"
        except Exception as exc:
            logger.warning("health_database_unreachable", error=str(exc))
            database = "unreachable"

        return HealthResponse(
            status="healthy" if database == "connected" else "degraded",
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            database=database,
        )

    app.include_router(spaces.router, prefix=settings.API_V1_PREFIX)
    app.include_router(content.router, prefix=settings.API_V1_PREFIX)
    app.include_router(content.todo_lists_router, prefix=settings.API_V1_PREFIX)
    app.include_router(content.lists_router, prefix=settings.API_V1_PREFIX)
    app.include_router(content.notes_router, prefix=settings.API_V1_PREFIX)

    # ==========================================================================
    # Root Endpoint
    # ==========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> dict:
        """Root endpoint with API info."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs" if settings.is_development else "Disabled in production",
            "health": "/health",
            "api": settings.API_V1_PREFIX,
        }

    return app


# ==========================================================================
# Application Instance
# ==========================================================================

app = create_app()


# ==========================================================================
# Development Server
# ==========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "later_sync.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="info",
    )
