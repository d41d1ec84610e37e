"""SQLAlchemy implementation of Notification and Delivery repositories."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from domain.entities.notification import (
    DeliveryRecord,
    DeliveryStatus,
    Notification,
    NotificationPreference,
)
from infrastructure.database.models import (
    DeliveryModel,
    NotificationModel,
    NotificationPreferenceModel,
)


class SQLAlchemyNotificationRepository:
    """SQLAlchemy implementation of INotificationRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Notifications ---

    async def create(self, notification: Notification) -> Notification:
        """Create a notification row. Fails on a repeated delivery id."""
        model = self._to_model(notification)
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def get(self, notification_id: UUID) -> Notification | None:
        """Get a notification by ID."""
        stmt = select(NotificationModel).where(NotificationModel.id == notification_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_delivery_id(self, delivery_id: str) -> Notification | None:
        """Get the notification written for a delivery id, if any."""
        stmt = select(NotificationModel).where(NotificationModel.delivery_id == delivery_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_user_notifications(
        self,
        user_id: UUID,
        is_read: bool | None = None,
        limit: int = 20,
        cursor: UUID | None = None,
    ) -> list[Notification]:
        """Get paginated notification feed for a user, newest first.

        ``cursor`` is the id of the last notification of the previous page.
        """
        stmt = select(NotificationModel).where(NotificationModel.recipient_id == user_id)

        if is_read is not None:
            stmt = stmt.where(NotificationModel.is_read == is_read)

        if cursor is not None:
            anchor = await self._session.get(NotificationModel, cursor)
            if anchor is None or anchor.recipient_id != user_id:
                return []
            stmt = stmt.where(
                or_(
                    NotificationModel.created_at < anchor.created_at,
                    and_(
                        NotificationModel.created_at == anchor.created_at,
                        NotificationModel.id < anchor.id,
                    ),
                )
            )

        stmt = stmt.order_by(
            NotificationModel.created_at.desc(), NotificationModel.id.desc()
        ).limit(limit)

        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars()]

    async def get_unread_count(self, user_id: UUID) -> int:
        """Get the count of unread notifications for a user."""
        stmt = select(func.count(NotificationModel.id)).where(
            NotificationModel.recipient_id == user_id,
            NotificationModel.is_read.is_(False),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def set_read(self, notification_id: UUID, user_id: UUID, is_read: bool) -> bool:
        """Set the read flag on a notification owned by ``user_id``."""
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == user_id,
            )
            .values(is_read=is_read, read_at=utcnow() if is_read else None)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined, no-any-return]

    async def mark_all_read(self, user_id: UUID) -> int:
        """Mark all notifications as read for a user. Returns count updated."""
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.recipient_id == user_id,
                NotificationModel.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    async def delete_expired(self, now: datetime, batch_size: int = 10000) -> int:
        """Delete up to ``batch_size`` expired notifications. Returns count deleted."""
        expired_ids = (
            select(NotificationModel.id)
            .where(
                NotificationModel.expires_at.is_not(None),
                NotificationModel.expires_at < now,
            )
            .limit(batch_size)
        )
        stmt = (
            delete(NotificationModel)
            .where(NotificationModel.id.in_(expired_ids))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    # --- Preferences ---

    async def get_preference(self, user_id: UUID) -> NotificationPreference | None:
        """Get a user's stored preference row."""
        stmt = select(NotificationPreferenceModel).where(
            NotificationPreferenceModel.user_id == user_id
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._pref_to_entity(model) if model else None

    async def get_preferences_for_users(
        self, user_ids: list[UUID]
    ) -> dict[UUID, NotificationPreference]:
        """Get stored preferences for many users in one query."""
        if not user_ids:
            return {}
        stmt = select(NotificationPreferenceModel).where(
            NotificationPreferenceModel.user_id.in_(user_ids)
        )
        result = await self._session.execute(stmt)
        return {model.user_id: self._pref_to_entity(model) for model in result.scalars()}

    async def upsert_preference(self, pref: NotificationPreference) -> NotificationPreference:
        """Insert or replace a user's preference row."""
        stmt = select(NotificationPreferenceModel).where(
            NotificationPreferenceModel.user_id == pref.user_id
        )
        result = await self._session.execute(stmt)
        existing = result.scalar_one_or_none()

        if existing:
            existing.email_enabled = pref.email_enabled
            existing.push_enabled = pref.push_enabled
            existing.in_app_enabled = pref.in_app_enabled
            existing.overrides = {k: dict(v) for k, v in pref.overrides.items()}
            existing.updated_at = pref.updated_at
            await self._session.flush()
            return self._pref_to_entity(existing)

        model = NotificationPreferenceModel(
            user_id=pref.user_id,
            email_enabled=pref.email_enabled,
            push_enabled=pref.push_enabled,
            in_app_enabled=pref.in_app_enabled,
            overrides={k: dict(v) for k, v in pref.overrides.items()},
            updated_at=pref.updated_at,
        )
        self._session.add(model)
        await self._session.flush()
        return self._pref_to_entity(model)

    # --- Conversion methods ---

    def _to_entity(self, model: NotificationModel) -> Notification:
        """Convert NotificationModel to domain entity."""
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            kind=model.kind,
            title=model.title,
            body=model.body,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            project_id=model.project_id,
            event_id=model.event_id,
            delivery_id=model.delivery_id,
            is_read=model.is_read,
            read_at=model.read_at,
            created_at=model.created_at,
            expires_at=model.expires_at,
        )

    def _to_model(self, entity: Notification) -> NotificationModel:
        """Convert Notification entity to ORM model."""
        return NotificationModel(
            id=entity.id,
            recipient_id=entity.recipient_id,
            kind=entity.kind,
            title=entity.title,
            body=entity.body,
            entity_type=entity.entity_type,
            entity_id=entity.entity_id,
            project_id=entity.project_id,
            event_id=entity.event_id,
            delivery_id=entity.delivery_id,
            is_read=entity.is_read,
            read_at=entity.read_at,
            created_at=entity.created_at,
            expires_at=entity.expires_at,
        )

    def _pref_to_entity(self, model: NotificationPreferenceModel) -> NotificationPreference:
        """Convert NotificationPreferenceModel to domain entity."""
        return NotificationPreference(
            user_id=model.user_id,
            email_enabled=model.email_enabled,
            push_enabled=model.push_enabled,
            in_app_enabled=model.in_app_enabled,
            overrides={k: dict(v) for k, v in (model.overrides or {}).items()},
            updated_at=model.updated_at,
        )


class SQLAlchemyDeliveryRepository:
    """SQLAlchemy implementation of IDeliveryRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, delivery_id: str) -> DeliveryRecord | None:
        """Get the ledger entry for a delivery id."""
        stmt = select(DeliveryModel).where(DeliveryModel.delivery_id == delivery_id)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, record: DeliveryRecord) -> DeliveryRecord:
        """Insert or update a ledger entry."""
        model = await self._session.get(DeliveryModel, record.delivery_id)
        if model is None:
            model = DeliveryModel(delivery_id=record.delivery_id)
            self._session.add(model)

        model.event_id = record.event_id
        model.recipient_id = record.recipient_id
        model.channel = record.channel
        model.status = record.status.value
        model.attempts = record.attempts
        model.last_error = record.last_error
        model.updated_at = record.updated_at

        await self._session.flush()
        return self._to_entity(model)

    def _to_entity(self, model: DeliveryModel) -> DeliveryRecord:
        """Convert DeliveryModel to domain entity."""
        return DeliveryRecord(
            delivery_id=model.delivery_id,
            event_id=model.event_id,
            recipient_id=model.recipient_id,
            channel=model.channel,
            status=DeliveryStatus(model.status),
            attempts=model.attempts,
            last_error=model.last_error,
            updated_at=model.updated_at,
        )
