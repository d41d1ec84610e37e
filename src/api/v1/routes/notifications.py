"""Notification and notification preference API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status

from api.dependencies.auth import CurrentUser
from api.v1.dependencies import get_notification_service
from api.v1.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    PreferenceDetailResponse,
    PreferenceResponse,
    PreferenceUpdate,
    UnreadCountResponse,
)
from core.rate_limit import READ_LIMIT, WRITE_LIMIT, limiter
from domain.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])

preferences_router = APIRouter(prefix="/notification-preferences", tags=["notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List my notifications",
    responses={200: {"description": "Page of the in-app feed, newest first"}},
)
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def list_notifications(
    request: Request,
    user: CurrentUser,
    is_read: bool | None = Query(None, description="Filter by read status"),
    cursor: UUID | None = Query(None, description="Id of the last item of the previous page"),
    limit: int = Query(20, ge=1, le=100, description="Page size"),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    notifications, unread_count = await service.get_notifications(
        user_id=user.id,
        is_read=is_read,
        limit=limit,
        cursor=cursor,
    )
    next_cursor = str(notifications[-1].id) if len(notifications) == limit else None
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(n) for n in notifications],
        meta={"unread_count": unread_count, "next_cursor": next_cursor},
    )


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread count")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def get_unread_count(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    return UnreadCountResponse(count=await service.get_unread_count(user.id))


@router.patch(
    "/{notification_id}/read",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark as read",
    responses={404: {"description": "Not found or not yours"}},
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def mark_read(
    request: Request,
    notification_id: UUID,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> Response:
    await service.mark_read(notification_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch(
    "/{notification_id}/unread",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark as unread",
    responses={404: {"description": "Not found or not yours"}},
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def mark_unread(
    request: Request,
    notification_id: UUID,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> Response:
    await service.mark_unread(notification_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/read-all", response_model=MarkAllReadResponse, summary="Mark all as read")
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def mark_all_read(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(count=await service.mark_all_read(user.id))


@preferences_router.get("", response_model=PreferenceDetailResponse, summary="My preferences")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def get_preferences(
    request: Request,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> PreferenceDetailResponse:
    """Every channel is enabled until the user says otherwise."""
    pref = await service.get_preferences(user.id)
    return PreferenceDetailResponse(data=PreferenceResponse.from_entity(pref))


@preferences_router.put(
    "",
    response_model=PreferenceDetailResponse,
    summary="Update my preferences",
    responses={400: {"description": "Unknown notification kind or channel"}},
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def update_preferences(
    request: Request,
    body: PreferenceUpdate,
    user: CurrentUser,
    service: NotificationService = Depends(get_notification_service),
) -> PreferenceDetailResponse:
    """Set global channel switches and merge per-kind overrides."""
    pref = await service.update_preferences(
        user.id,
        email_enabled=body.email_enabled,
        push_enabled=body.push_enabled,
        in_app_enabled=body.in_app_enabled,
        overrides=body.overrides,
    )
    return PreferenceDetailResponse(data=PreferenceResponse.from_entity(pref))
