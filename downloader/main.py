from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from downloader.config.logging import get_logger, setup_logging
from downloader.config.settings import Settings, settings as default_settings
from downloader.infra.database import Database
from downloader.v1.core.exceptions import (
    DownloaderException,
    RequestContextMiddleware,
    downloader_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from downloader.v1.core.registries import item_checker_registry
from downloader.v1.healthz import router as health_router
from downloader.v1.jobs.registry_init import build_item_checker
from downloader.v1.jobs.routes import router as download_router
from downloader.v1.jobs.service import DownloadJobService
from downloader.v1.jobs.store import JobStore
from downloader.v1.jobs.worker import WorkerPool

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the job store and run the worker pool for the app's lifetime."""
    settings: Settings = app.state.settings

    database = Database(settings)
    await database.create_tables()

    store = JobStore(database.SessionLocal, max_attempts=settings.job_max_attempts)
    checker = build_item_checker(settings)

    app.state.database = database
    app.state.job_store = store
    app.state.item_checker = checker
    app.state.job_service = DownloadJobService(store, checker, settings)
    app.state.worker_pool = None

    if settings.run_workers:
        pool = WorkerPool(store, checker, settings)
        await pool.start()
        app.state.worker_pool = pool

    logger.info(
        "Application started",
        environment=settings.environment,
        item_checker=settings.item_checker.value,
        run_workers=settings.run_workers,
    )

    try:
        yield
    finally:
        if app.state.worker_pool is not None:
            await app.state.worker_pool.stop()
        await database.close()
        logger.info("Application stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    # Create FastAPI app with API versioning from day 1
    app = FastAPI(
        title=settings.app_name,
        description="Asynchronous batch download jobs with polling status",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(DownloaderException, downloader_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(download_router, prefix="/v1")

    # Freeze registries in non-development environments to prevent runtime modifications
    if settings.environment != "development":
        item_checker_registry.freeze()

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "downloader.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        workers=1 if default_settings.debug else default_settings.workers,
    )
