"""Main FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.exception_handlers import setup_exception_handlers
from api.middleware.logging import RequestLoggingMiddleware
from api.middleware.request_id import RequestIDMiddleware
from api.middleware.security import SecurityHeadersMiddleware
from api.routes.health import router as health_router
from api.v1 import router as v1_router
from api.v1.dependencies import (
    get_delivery_channels,
    get_dispatch_worker,
    get_event_publisher,
    get_notification_service,
)
from core.config import settings
from core.logging import setup_logging
from core.rate_limit import limiter, rate_limit_exceeded_handler
from infrastructure.delivery.http import HttpDeliveryChannel
from infrastructure.messaging.dispatch_worker import PeriodicJob

logger = structlog.get_logger()

# Initialize structured logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the dispatch worker and periodic jobs; drain them on shutdown.

    The outbox relay republishes events no consumer acknowledged in time,
    including those left behind by a previous process. The cleanup job
    enforces notification retention.
    """
    worker = get_dispatch_worker()
    publisher = get_event_publisher()
    notification_service = get_notification_service()

    jobs = [
        PeriodicJob(
            "outbox_relay",
            settings.outbox_relay_interval_seconds,
            lambda: publisher.relay_pending(settings.outbox_relay_batch_size),
        ),
        PeriodicJob(
            "notification_cleanup",
            settings.notification_cleanup_interval_seconds,
            notification_service.cleanup_expired,
        ),
    ]

    await worker.start()
    for job in jobs:
        job.start()
    logger.info("application_started", environment=settings.app_env)

    yield

    for job in jobs:
        await job.stop()
    await worker.stop()
    for channel in get_delivery_channels():
        if isinstance(channel, HttpDeliveryChannel):
            await channel.aclose()
    logger.info("application_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        title=settings.app_name,
        description=(
            "## Project & Task Tracker\n\n"
            "Projects with role-based membership, tasks with a status workflow, "
            "and notifications delivered in-app, by email and by push.\n\n"
            "### Authentication\n"
            "All endpoints (except `/health`) require a valid JWT token "
            "in the Authorization header:\n"
            "```\nAuthorization: Bearer <your_token>\n```\n\n"
            "### Concurrency\n"
            "`GET /tasks/{id}` returns the task version as an `ETag`; send it back "
            "in `If-Match` on `PATCH` to fail with 409 instead of overwriting a "
            "newer change.\n\n"
            "### Rate Limits\n"
            "- GET endpoints: 60 requests/minute\n"
            "- POST/PATCH/PUT/DELETE: 20 requests/minute"
        ),
        version="1.0.0",
        debug=settings.debug,
        openapi_tags=[
            {"name": "health", "description": "Health check endpoints"},
            {"name": "projects", "description": "Projects and membership"},
            {"name": "tasks", "description": "Tasks, assignment and comments"},
            {"name": "notifications", "description": "In-app feed and delivery preferences"},
        ],
    )

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # LIFO order: the last middleware added is the outermost
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "X-Request-ID"],
    )

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(v1_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
    )
