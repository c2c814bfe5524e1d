"""
FastAPI Application Entry Point for Onboardflow

Wires the onboarding workflow API together:
- MongoDB connection and index setup on startup
- CORS, request logging with correlation ids and global error handlers
- Routers for cases, stages, tasks, guides and hints, notifications,
  audit logs, templates, workflow types, analytics and plain resources
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onboardflow.app.api.middleware.error_handler import setup_error_handlers
from onboardflow.app.api.middleware.logging import LoggingMiddleware
from onboardflow.app.api.routes import (
    analytics,
    audit_logs,
    cases,
    guides,
    notifications,
    resources,
    stages,
    tasks,
    templates,
    workflow_types
)
from onboardflow.app.core.database import close_databases, get_database_manager, init_databases
from onboardflow.app.repositories.mongodb.entity_store import EntityStore
from onboardflow.app.utils.logging import get_logger, initialize_logging_from_settings
from onboardflow.config.settings import Settings, get_settings

initialize_logging_from_settings()
logger = get_logger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to MongoDB and ensure indexes; disconnect on shutdown."""
    settings = get_settings()
    logger.info(
        "=== Onboardflow API Starting Up ===",
        environment=settings.environment,
        debug_mode=settings.debug
    )

    try:
        await init_databases()
        await EntityStore().ensure_indexes()
        logger.info("=== Onboardflow API Started Successfully ===")
        yield
    except Exception as e:
        logger.error("Failed to start application", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("=== Onboardflow API Shutting Down ===")
        await close_databases()
        logger.info("=== Onboardflow API Shutdown Complete ===")


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"]
    )
    app.add_middleware(LoggingMiddleware)


def configure_routes(app: FastAPI) -> None:
    """Register the system endpoints and every API router."""

    @app.get("/health", tags=["system"], include_in_schema=False)
    async def health_check():
        database = await get_database_manager().health_check()
        healthy = database.get("status") == "healthy"
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "services": {"database": database},
            }
        )

    @app.get("/", tags=["system"], include_in_schema=False)
    async def root():
        settings = get_settings()
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs_url": "/docs",
            "health_url": "/health"
        }

    for router in (
        cases.router,
        stages.router,
        tasks.router,
        guides.router,
        notifications.router,
        audit_logs.router,
        templates.router,
        workflow_types.router,
        analytics.router,
        resources.clients_router,
        resources.documents_router,
        resources.users_router,
    ):
        app.include_router(router, prefix=API_PREFIX)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use; the cached singleton when omitted

    Returns:
        Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Onboarding case workflow tracking with contextual guide hints",
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )

    configure_middleware(app, settings)
    configure_routes(app)
    setup_error_handlers(app)

    logger.info("Application configured", routes=len(app.routes))
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("onboardflow.main:app", host="0.0.0.0", port=8000, reload=get_settings().debug)
