"""Event publisher backed by a transactional outbox."""

import asyncio
from collections.abc import Callable
from datetime import timedelta
from uuid import UUID

import structlog

from core.clock import utcnow
from domain.channels.event_channel import IEventChannel
from domain.entities.event import DomainEvent
from domain.repositories.unit_of_work import IUnitOfWork

logger = structlog.get_logger()


class EventPublisher:
    """Stages events with the mutation that caused them, publishes after commit.

    A mutation and its outbox rows commit together, so a failed operation
    emits nothing. A row stays unpublished until its consumer acknowledges
    it; anything queued but never handled (a drain timeout, a dead letter, a
    crash) is picked up again by ``relay_pending``. Consumers must tolerate
    the occasional duplicate this produces.

    Publishing always goes through the outbox in its stored order, under one
    lock per publisher, so two writers to the same entity cannot hand their
    events to the channel in the opposite order of their commits.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        channel: IEventChannel,
        topic: str,
        relay_grace_seconds: float = 60,
        flush_batch_size: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._channel = channel
        self._topic = topic
        self._relay_grace = timedelta(seconds=relay_grace_seconds)
        self._flush_batch_size = flush_batch_size
        self._lock = asyncio.Lock()
        # Handed to the channel, not yet acknowledged or released
        self._in_flight: set[UUID] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def stage(self, uow: IUnitOfWork, events: list[DomainEvent]) -> None:
        """Write events to the outbox inside the caller's transaction."""
        if events:
            await uow.outbox.add(events)

    async def flush(self, events: list[DomainEvent]) -> None:
        """Publish the committed outbox rows of the entities behind ``events``.

        Never raises: the mutation has already committed. Rows of the same
        entities committed by other writers go out too, oldest first, so the
        channel sees each entity's events in commit order.
        """
        if not events:
            return
        entity_ids = list(dict.fromkeys(e.entity_id for e in events))
        async with self._lock:
            try:
                async with self._uow_factory() as uow:
                    pending = await uow.outbox.get_unpublished(
                        entity_ids=entity_ids, limit=self._flush_batch_size
                    )
            except Exception:
                # Rows stay unpublished and are resent by the relay
                logger.warning(
                    "outbox_read_failed",
                    event_ids=[str(e.event_id) for e in events],
                    exc_info=True,
                )
                return
            await self._publish(pending)

    async def relay_pending(self, batch_size: int = 100) -> int:
        """Republish outbox rows left unpublished past the grace period.

        Rows still in flight in this process are skipped. Returns the number
        of events published.
        """
        async with self._lock:
            async with self._uow_factory() as uow:
                pending = await uow.outbox.get_unpublished(
                    older_than=utcnow() - self._relay_grace, limit=batch_size
                )
            if not pending:
                return 0
            published = await self._publish(pending)

        logger.info("outbox_relayed", pending=len(pending), published=len(published))
        return len(published)

    async def acknowledge(self, event: DomainEvent) -> None:
        """Mark an event published once its consumer has handled it.

        A failure propagates, so the channel redelivers and the handler runs
        again; handlers are idempotent.
        """
        async with self._uow_factory() as uow:
            await uow.outbox.mark_published([event.event_id], published_at=utcnow())
            await uow.commit()
        self._in_flight.discard(event.event_id)

    async def release(self, event: DomainEvent) -> None:
        """Give up on an in-flight event; its row stays pending for the relay."""
        self._in_flight.discard(event.event_id)
        logger.warning(
            "outbox_event_released",
            event_id=str(event.event_id),
            kind=event.kind,
            entity_id=str(event.entity_id),
        )

    async def _publish(self, events: list[DomainEvent]) -> list[DomainEvent]:
        """Publish in order, skipping in-flight rows.

        Stops at the first failure so later events of the same entity cannot
        overtake it.
        """
        published: list[DomainEvent] = []
        for event in events:
            if event.event_id in self._in_flight:
                continue
            self._in_flight.add(event.event_id)
            try:
                await self._channel.publish(self._topic, event)
            except Exception:
                self._in_flight.discard(event.event_id)
                logger.warning(
                    "outbox_publish_failed",
                    event_id=str(event.event_id),
                    kind=event.kind,
                    entity_id=str(event.entity_id),
                    exc_info=True,
                )
                break
            published.append(event)
        return published
