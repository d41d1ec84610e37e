"""Outbox repository protocol."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from domain.entities.event import DomainEvent


class IOutboxRepository(Protocol):
    """Transactional outbox for domain events."""

    async def add(self, events: list[DomainEvent]) -> None:
        """Stage events in the caller's transaction."""
        ...

    async def get_unpublished(
        self,
        older_than: datetime | None = None,
        limit: int = 100,
        entity_ids: list[UUID] | None = None,
    ) -> list[DomainEvent]:
        """Get staged events not yet published, in outbox order.

        Optionally restricted to rows staged before ``older_than`` and to the
        given entities.
        """
        ...

    async def mark_published(self, event_ids: list[UUID], published_at: datetime) -> None:
        """Mark events as published."""
        ...
