"""Health check endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.v1.dependencies import get_event_channel, get_session_factory
from core.clock import utcnow
from core.config import settings
from infrastructure.messaging.in_memory_channel import InMemoryEventChannel

router = APIRouter(tags=["health"])

API_VERSION = "1.0.0"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    environment: str
    database: str | None = None
    event_channel: str | None = None
    pending_events: int | None = None


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health_check() -> HealthResponse:
    """Answers without touching dependencies."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        timestamp=utcnow().isoformat(),
        environment=settings.app_env,
    )


@router.get("/health/detailed", response_model=HealthResponse, summary="Readiness probe")
async def detailed_health_check(
    channel: InMemoryEventChannel = Depends(get_event_channel),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> HealthResponse:
    """Checks the database and reports the event channel's backlog."""
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        db_status = f"unhealthy: {exc}"

    channel_status = "running" if channel.is_running else "stopped"
    healthy = db_status == "healthy" and channel.is_running

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=API_VERSION,
        timestamp=utcnow().isoformat(),
        environment=settings.app_env,
        database=db_status,
        event_channel=channel_status,
        pending_events=channel.pending(),
    )
