"""In-app channel: a notification row in the recipient's inbox."""

from collections.abc import Callable
from datetime import timedelta
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError

from core.clock import utcnow
from core.deadline import deadline
from domain.entities.notification import (
    Channel,
    DeliveryOutcome,
    Notification,
    NotificationContent,
)
from domain.repositories.unit_of_work import IUnitOfWork

logger = structlog.get_logger()


class InAppChannel:
    """Writes the notification row; the unique delivery id is the ledger.

    The write is bounded by ``store_timeout``; expiry raises
    OperationTimeoutError and the dispatcher treats it as transient.
    """

    name = Channel.IN_APP

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        retention_days: int = 90,
        store_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._retention = timedelta(days=retention_days)
        self._store_timeout = store_timeout

    async def deliver(
        self, delivery_id: str, recipient_id: UUID, content: NotificationContent
    ) -> DeliveryOutcome:
        now = utcnow()
        try:
            async with (
                deadline(self._store_timeout, "in_app_delivery"),
                self._uow_factory() as uow,
            ):
                if await uow.notifications.get_by_delivery_id(delivery_id):
                    return DeliveryOutcome.DUPLICATE

                await uow.notifications.create(
                    Notification(
                        recipient_id=recipient_id,
                        kind=content.kind.value,
                        title=content.title,
                        body=content.body,
                        entity_type=content.entity_type,
                        entity_id=content.entity_id,
                        event_id=content.event_id,
                        delivery_id=delivery_id,
                        project_id=content.project_id,
                        created_at=now,
                        expires_at=now + self._retention,
                    )
                )
                await uow.commit()
        except IntegrityError:
            # Lost a race with a concurrent redelivery of the same event
            logger.debug("in_app_delivery_duplicate", delivery_id=delivery_id)
            return DeliveryOutcome.DUPLICATE

        return DeliveryOutcome.DELIVERED
