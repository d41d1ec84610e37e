"""API v1 router configuration."""

from fastapi import APIRouter

from api.v1.routes.notifications import preferences_router
from api.v1.routes.notifications import router as notifications_router
from api.v1.routes.projects import router as projects_router
from api.v1.routes.tasks import project_tasks_router
from api.v1.routes.tasks import router as tasks_router
from api.v1.schemas.common import ErrorResponse

router = APIRouter(
    responses={
        401: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    }
)
router.include_router(projects_router)
router.include_router(project_tasks_router)
router.include_router(tasks_router)
router.include_router(notifications_router)
router.include_router(preferences_router)
