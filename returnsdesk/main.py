from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from returnsdesk.config import Settings, settings as default_settings
from returnsdesk.api.v1.router import api_router
from returnsdesk.jobs.scheduler import create_scheduler, start_scheduler, shutdown_scheduler
from returnsdesk.services.returns_manager import ReturnsManager, build_returns_manager


logger = logging.getLogger(__name__)


def configure_logging(config: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    manager: Optional[ReturnsManager] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    A manager passed in is used as-is (tests inject one wired to fakes);
    otherwise one is assembled from settings at startup.
    """
    config = config or default_settings
    configure_logging(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Build the returns manager (unless injected) and restore its snapshot
        - Start background maintenance jobs

        Shutdown:
        - Stop the scheduler
        - Cancel pending debounce timers and page loads
        """
        logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")

        returns_manager = manager or build_returns_manager(config)
        app.state.returns_manager = returns_manager
        await returns_manager.start()

        job_scheduler = None
        if config.SCHEDULER_ENABLED:
            job_scheduler = create_scheduler()
            start_scheduler(job_scheduler, returns_manager, config)
        app.state.scheduler = job_scheduler

        yield

        if job_scheduler is not None:
            shutdown_scheduler(job_scheduler)
        await returns_manager.close()
        app.state.returns_manager = None
        logger.info("Shutting down...")

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        description="Aggregated, cached view over marketplace returns with local review statuses.",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Unhandled errors become a JSON body; tracebacks only in debug mode."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        error_detail = {
            "error": str(exc),
            "type": type(exc).__name__,
            "path": str(request.url.path),
            "method": request.method,
        }
        if config.DEBUG:
            error_detail["traceback"] = traceback.format_exc()
        return JSONResponse(status_code=500, content=error_detail)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint with manager state."""
        health_status = {
            "status": "healthy",
            "app": config.APP_NAME,
            "version": config.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "manager": "unknown",
                "cache": None,
            },
        }

        returns_manager = getattr(request.app.state, "returns_manager", None)
        if returns_manager is None:
            health_status["status"] = "unhealthy"
            health_status["checks"]["manager"] = "not started"
            return JSONResponse(status_code=503, content=health_status)

        view = returns_manager.view()
        health_status["checks"]["manager"] = view.status.value
        health_status["checks"]["cache"] = returns_manager.orchestrator.cache.stats()
        if view.error:
            health_status["status"] = "degraded"
            health_status["checks"]["last_error"] = view.error
        return health_status

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "name": config.APP_NAME,
            "version": config.APP_VERSION,
            "docs": "/docs",
        }

    return app


app = create_app()
