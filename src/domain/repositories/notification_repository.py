"""Notification repository protocols."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from domain.entities.notification import DeliveryRecord, Notification, NotificationPreference


class INotificationRepository(Protocol):
    """Repository interface for in-app notifications and preferences."""

    # --- Notifications ---

    async def create(self, notification: Notification) -> Notification:
        """Create a notification row (unique on delivery_id)."""
        ...

    async def get(self, notification_id: UUID) -> Notification | None:
        """Get a notification by ID."""
        ...

    async def get_by_delivery_id(self, delivery_id: str) -> Notification | None:
        """Get the notification written for a delivery id, if any."""
        ...

    async def get_user_notifications(
        self,
        user_id: UUID,
        is_read: bool | None = None,
        limit: int = 20,
        cursor: UUID | None = None,
    ) -> list[Notification]:
        """Get a page of a user's notifications, newest first."""
        ...

    async def get_unread_count(self, user_id: UUID) -> int:
        """Count a user's unread notifications."""
        ...

    async def set_read(self, notification_id: UUID, user_id: UUID, is_read: bool) -> bool:
        """Set the read flag on a notification owned by ``user_id``."""
        ...

    async def mark_all_read(self, user_id: UUID) -> int:
        """Mark all of a user's notifications read. Returns count updated."""
        ...

    async def delete_expired(self, now: datetime, batch_size: int = 10000) -> int:
        """Delete notifications past their expiry. Returns count deleted."""
        ...

    # --- Preferences ---

    async def get_preference(self, user_id: UUID) -> NotificationPreference | None:
        """Get a user's preference row, if stored."""
        ...

    async def get_preferences_for_users(
        self, user_ids: list[UUID]
    ) -> dict[UUID, NotificationPreference]:
        """Get stored preferences for many users in one query."""
        ...

    async def upsert_preference(self, pref: NotificationPreference) -> NotificationPreference:
        """Insert or replace a user's preference row."""
        ...


class IDeliveryRepository(Protocol):
    """Ledger of external deliveries, keyed by delivery id."""

    async def get(self, delivery_id: str) -> DeliveryRecord | None:
        """Get the ledger entry for a delivery id."""
        ...

    async def save(self, record: DeliveryRecord) -> DeliveryRecord:
        """Insert or update a ledger entry."""
        ...
