"""FastAPI application exposing intake, triggers and health.

Routes:
    POST /notifications                   queue a notification (201)
    GET  /notifications/{queue_id}        queue row with its attempts
    POST /triggers/process-queue          run one pending sweep
    POST /triggers/schedule-satisfaction  run survey discovery
    GET  /health                          database, channel and scheduler status
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import civic_notify
from civic_notify.container import ServiceContainer
from civic_notify.logging import get_logger
from civic_notify.persistence import PersistenceError
from civic_notify.scheduler import SchedulerService

from .routes import router

logger = get_logger(__name__, component="api")


def create_app(
    container: ServiceContainer, scheduler: Optional[SchedulerService] = None
) -> FastAPI:
    """Build the HTTP application around an existing service container.

    Args:
        container: Service objects shared with the scheduler
        scheduler: Started on application startup and stopped on shutdown
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            scheduler.start()
        logger.info(
            "HTTP service started",
            extra={
                "event": "api.started",
                "scheduler_enabled": scheduler is not None,
                "channels": container.available_channels(),
            },
        )

        yield

        if scheduler is not None and scheduler.is_running():
            scheduler.shutdown(wait=False)
        logger.info("HTTP service stopped", extra={"event": "api.stopped"})

    app = FastAPI(
        title="CivicAid Notification Service",
        version=civic_notify.__version__,
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.scheduler = scheduler

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(
            f"Database error handling {request.method} {request.url.path}: {exc}",
            extra={"event": "api.persistence_error", "error_type": type(exc).__name__},
        )
        return JSONResponse(status_code=503, content={"detail": "Database unavailable"})

    app.include_router(router)
    return app


__all__ = ["create_app"]
