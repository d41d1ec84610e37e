"""Delivery channel protocol."""

from typing import Protocol
from uuid import UUID

from domain.entities.notification import Channel, DeliveryOutcome, NotificationContent


class IDeliveryChannel(Protocol):
    """Sends one notification to one recipient over one medium.

    Implementations must be idempotent on ``delivery_id``: a repeated call
    with an id that was already delivered returns DUPLICATE and has no
    further observable effect. Failures raise TransientError (retry may
    succeed) or PermanentError (give up).
    """

    name: Channel

    async def deliver(
        self, delivery_id: str, recipient_id: UUID, content: NotificationContent
    ) -> DeliveryOutcome:
        """Deliver ``content`` to ``recipient_id``."""
        ...
