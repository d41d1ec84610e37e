"""SQLAlchemy implementation of the outbox repository."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.entities.event import DomainEvent
from infrastructure.database.models import OutboxEventModel


class SQLAlchemyOutboxRepository:
    """SQLAlchemy implementation of IOutboxRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, events: list[DomainEvent]) -> None:
        """Stage events in the current transaction."""
        self._session.add_all(
            [
                OutboxEventModel(
                    event_id=event.event_id,
                    kind=str(event.kind),
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    project_id=event.project_id,
                    actor_id=event.actor_id,
                    payload=event.payload,
                    occurred_at=event.occurred_at,
                    sequence=position,
                )
                for position, event in enumerate(events)
            ]
        )
        await self._session.flush()

    async def get_unpublished(
        self,
        older_than: datetime | None = None,
        limit: int = 100,
        entity_ids: list[UUID] | None = None,
    ) -> list[DomainEvent]:
        """Get unpublished events, oldest first; ``sequence`` orders one batch."""
        stmt = select(OutboxEventModel).where(OutboxEventModel.published_at.is_(None))
        if older_than is not None:
            stmt = stmt.where(OutboxEventModel.occurred_at < older_than)
        if entity_ids is not None:
            stmt = stmt.where(OutboxEventModel.entity_id.in_(entity_ids))
        stmt = (
            stmt.order_by(OutboxEventModel.occurred_at, OutboxEventModel.sequence)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars()]

    async def mark_published(self, event_ids: list[UUID], published_at: datetime) -> None:
        """Mark events as published."""
        if not event_ids:
            return
        stmt = (
            update(OutboxEventModel)
            .where(OutboxEventModel.event_id.in_(event_ids))
            .values(published_at=published_at)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    def _to_entity(self, model: OutboxEventModel) -> DomainEvent:
        """Convert ORM model to domain event."""
        return DomainEvent(
            event_id=model.event_id,
            kind=model.kind,
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            project_id=model.project_id,
            actor_id=model.actor_id,
            payload=dict(model.payload or {}),
            occurred_at=model.occurred_at,
        )
