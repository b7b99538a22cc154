from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from query_manager.config.logging import get_logger, setup_logging
from query_manager.config.settings import Settings, settings
from query_manager.infra.database import Database
from query_manager.v1.core.exceptions import (
    QueryManagerException,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    query_manager_exception_handler,
)
from query_manager.v1.core.registries import job_registry
from query_manager.v1.healthz import router as health_router
from query_manager.v1.infra.jobs.controller import WorkerController
from query_manager.v1.infra.jobs.dispatcher import JobDispatcher
from query_manager.v1.infra.jobs.registry_init import (
    register_job_handlers_from_settings,
)
from query_manager.v1.infra.jobs.routes import router as jobs_router
from query_manager.v1.infra.jobs.store import JobStore
from query_manager.v1.queries.routes import router as queries_router
from query_manager.v1.reports.routes import router as reports_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the in-process job worker and release resources on shutdown."""

    controller = WorkerController(
        app.state.settings,
        JobStore(app.state.database.SessionLocal),
        app.state.job_dispatcher,
    )
    app.state.job_controller = controller
    await controller.start()

    try:
        yield
    finally:
        if controller.is_running:
            await controller.stop()
        await app.state.database.close()
        logger.info("Application shutdown complete")


def create_app(
    app_settings: Settings | None = None,
    database: Database | None = None,
    dispatcher: JobDispatcher | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app_settings = app_settings or settings

    # Initialize structured logging
    setup_logging(app_settings)

    # Handlers come from the configured collaborators unless a dispatcher is given
    if dispatcher is None:
        register_job_handlers_from_settings(app_settings)
        dispatcher = JobDispatcher(job_registry)

    # Create FastAPI app with API versioning from day 1
    app = FastAPI(
        title=app_settings.app_name,
        description="Stored queries and reports with deferred background execution",
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if app_settings.debug else None,
        docs_url="/v1/docs" if app_settings.debug else None,
        redoc_url="/v1/redoc" if app_settings.debug else None,
    )

    app.state.settings = app_settings
    app.state.database = database or Database(app_settings)
    app.state.job_dispatcher = dispatcher

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if app_settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(QueryManagerException, query_manager_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(queries_router, prefix="/v1")
    app.include_router(reports_router, prefix="/v1")

    # Freeze the job registry in non-development environments
    if app_settings.environment != "development":
        job_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "query_manager.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
