"""Notification service layer: the recipient-facing feed and preferences."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from uuid import UUID

import structlog

from core.clock import utcnow
from core.deadline import deadline
from core.exceptions import NotificationNotFoundError, ValidationError
from domain.entities.notification import (
    Channel,
    Notification,
    NotificationKind,
    NotificationPreference,
)
from domain.repositories.unit_of_work import IUnitOfWork

logger = structlog.get_logger()

MAX_PAGE_SIZE = 100


class NotificationService:
    """Service layer for reading and managing a user's notifications.

    Every store round trip runs under ``operation_timeout`` (or a per-call
    ``timeout``); expiry raises OperationTimeoutError.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        operation_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._timeout = operation_timeout

    # --- Read methods ---

    async def get_notifications(
        self,
        user_id: UUID,
        is_read: bool | None = None,
        limit: int = 20,
        cursor: UUID | None = None,
        timeout: float | None = None,
    ) -> tuple[list[Notification], int]:
        """Get paginated notification feed.

        Returns:
            Tuple of (notification_list, unread_count).
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        async with self._deadline("get_notifications", timeout), self._uow_factory() as uow:
            notifications = await uow.notifications.get_user_notifications(
                user_id=user_id,
                is_read=is_read,
                limit=limit,
                cursor=cursor,
            )
            unread_count = await uow.notifications.get_unread_count(user_id)
            return notifications, unread_count

    async def get_unread_count(self, user_id: UUID, timeout: float | None = None) -> int:
        """Get the count of unread notifications."""
        async with self._deadline("get_unread_count", timeout), self._uow_factory() as uow:
            return await uow.notifications.get_unread_count(user_id)

    async def mark_read(
        self, notification_id: UUID, user_id: UUID, timeout: float | None = None
    ) -> None:
        """Mark a notification as read. Only its recipient may do this."""
        async with self._deadline("mark_read", timeout):
            await self._set_read(notification_id, user_id, True)

    async def mark_unread(
        self, notification_id: UUID, user_id: UUID, timeout: float | None = None
    ) -> None:
        """Mark a notification as unread. Only its recipient may do this."""
        async with self._deadline("mark_unread", timeout):
            await self._set_read(notification_id, user_id, False)

    async def mark_all_read(self, user_id: UUID, timeout: float | None = None) -> int:
        """Mark all notifications as read. Returns count of marked."""
        async with self._deadline("mark_all_read", timeout), self._uow_factory() as uow:
            count = await uow.notifications.mark_all_read(user_id)
            await uow.commit()
            return count

    async def _set_read(self, notification_id: UUID, user_id: UUID, is_read: bool) -> None:
        async with self._uow_factory() as uow:
            success = await uow.notifications.set_read(notification_id, user_id, is_read)
            if not success:
                # Someone else's notification looks the same as a missing one
                raise NotificationNotFoundError(str(notification_id))
            await uow.commit()

    # --- Preference methods ---

    async def get_preferences(
        self, user_id: UUID, timeout: float | None = None
    ) -> NotificationPreference:
        """Get a user's preferences, falling back to everything enabled."""
        async with self._deadline("get_preferences", timeout), self._uow_factory() as uow:
            stored = await uow.notifications.get_preference(user_id)
            return stored or NotificationPreference(user_id=user_id)

    async def update_preferences(
        self,
        user_id: UUID,
        email_enabled: bool | None = None,
        push_enabled: bool | None = None,
        in_app_enabled: bool | None = None,
        overrides: dict[str, dict[str, bool]] | None = None,
        timeout: float | None = None,
    ) -> NotificationPreference:
        """Upsert global switches and merge per-kind overrides.

        An override entry of ``{}`` for a kind clears that kind's overrides.
        """
        if overrides:
            self._validate_overrides(overrides)

        async with self._deadline("update_preferences", timeout), self._uow_factory() as uow:
            pref = await uow.notifications.get_preference(user_id) or NotificationPreference(
                user_id=user_id
            )
            if email_enabled is not None:
                pref.email_enabled = email_enabled
            if push_enabled is not None:
                pref.push_enabled = push_enabled
            if in_app_enabled is not None:
                pref.in_app_enabled = in_app_enabled

            for kind, channels in (overrides or {}).items():
                if channels:
                    pref.overrides[kind] = {**pref.overrides.get(kind, {}), **channels}
                else:
                    pref.overrides.pop(kind, None)

            pref.updated_at = utcnow()
            result = await uow.notifications.upsert_preference(pref)
            await uow.commit()
            return result

    def _deadline(
        self, operation: str, timeout: float | None
    ) -> AbstractAsyncContextManager[None]:
        return deadline(timeout if timeout is not None else self._timeout, operation)

    @staticmethod
    def _validate_overrides(overrides: dict[str, dict[str, bool]]) -> None:
        kinds = {k.value for k in NotificationKind}
        channels = {c.value for c in Channel}
        for kind, switches in overrides.items():
            if kind not in kinds:
                raise ValidationError(
                    f"Unknown notification kind: {kind}",
                    details={"kind": kind, "allowed": sorted(kinds)},
                )
            unknown = sorted(set(switches or {}) - channels)
            if unknown:
                raise ValidationError(
                    f"Unknown channels: {', '.join(unknown)}",
                    details={"channels": unknown, "allowed": sorted(channels)},
                )

    # --- Cleanup ---

    async def cleanup_expired(self, batch_size: int = 10000, timeout: float | None = None) -> int:
        """Delete expired notifications. Called by the retention loop."""
        async with self._deadline("cleanup_expired", timeout), self._uow_factory() as uow:
            count = await uow.notifications.delete_expired(utcnow(), batch_size=batch_size)
            await uow.commit()
        if count:
            logger.info("notifications_expired_deleted", count=count)
        return count
