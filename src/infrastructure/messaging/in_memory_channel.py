"""In-process, partitioned publish/subscribe channel on asyncio queues."""

import asyncio
import zlib
from dataclasses import dataclass, field
from typing import Any

import structlog

from domain.channels.event_channel import EventHandler
from domain.entities.event import DomainEvent

logger = structlog.get_logger()


class ChannelClosedError(RuntimeError):
    """Raised when publishing to a channel that is draining or drained."""


@dataclass
class _Subscription:
    topic: str
    handler: EventHandler
    queues: list[asyncio.Queue[dict[str, Any]]]
    on_dead_letter: EventHandler | None = None
    consumers: list[asyncio.Task[None]] = field(default_factory=list)


class InMemoryEventChannel:
    """At-least-once channel with per-key ordering.

    Every subscription owns ``partitions`` queues, each drained by a single
    consumer task. An event is routed by a stable hash of its partition key
    (the entity id), so events of one entity are handled in publish order
    while different entities proceed in parallel. Events cross the channel
    in their dict form, the same shape the outbox stores.

    A failing handler gets the same event again, with exponential backoff,
    up to ``max_redeliveries`` times; after that the event is logged as
    dead-lettered, handed to the subscription's ``on_dead_letter`` hook if
    any, and the partition moves on. Events still queued when ``drain`` times
    out are dropped; the outbox keeps their rows for the next process.
    """

    def __init__(
        self,
        partitions: int = 8,
        max_redeliveries: int = 5,
        redelivery_backoff_seconds: float = 0.5,
    ) -> None:
        if partitions < 1:
            raise ValueError("partitions must be >= 1")
        self._partitions = partitions
        self._max_redeliveries = max_redeliveries
        self._backoff = redelivery_backoff_seconds
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._started = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._closed

    def pending(self) -> int:
        """Number of events queued but not yet handled."""
        return sum(
            q.qsize() for subs in self._subscriptions.values() for s in subs for q in s.queues
        )

    def partition_for(self, key: str) -> int:
        return zlib.crc32(key.encode()) % self._partitions

    def subscribe(
        self, topic: str, handler: EventHandler, on_dead_letter: EventHandler | None = None
    ) -> None:
        """Register a handler; it starts consuming once the channel is started."""
        subscription = _Subscription(
            topic=topic,
            handler=handler,
            queues=[asyncio.Queue() for _ in range(self._partitions)],
            on_dead_letter=on_dead_letter,
        )
        self._subscriptions.setdefault(topic, []).append(subscription)
        if self._started and not self._closed:
            self._spawn_consumers(subscription)

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                self._spawn_consumers(subscription)
        logger.info(
            "event_channel_started",
            topics=sorted(self._subscriptions),
            partitions=self._partitions,
        )

    async def publish(self, topic: str, event: DomainEvent) -> None:
        if self._closed:
            raise ChannelClosedError(f"Event channel is closed; cannot publish to {topic}")

        message = event.to_dict()
        partition = self.partition_for(event.partition_key)
        for subscription in self._subscriptions.get(topic, []):
            subscription.queues[partition].put_nowait(message)

    async def join(self) -> None:
        """Wait until every event published so far has been handled."""
        queues = [q for subs in self._subscriptions.values() for s in subs for q in s.queues]
        await asyncio.gather(*(q.join() for q in queues))

    async def drain(self, timeout: float) -> None:
        """Refuse new events, wait up to ``timeout`` for queues to empty, then stop."""
        self._closed = True
        subscriptions = [s for subs in self._subscriptions.values() for s in subs]

        if self._started:
            try:
                await asyncio.wait_for(self.join(), timeout=timeout)
            except TimeoutError:
                logger.warning("event_channel_drain_timeout", pending=self.pending())

        consumers = [task for s in subscriptions for task in s.consumers]
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
        logger.info("event_channel_drained", pending=self.pending())

    def _spawn_consumers(self, subscription: _Subscription) -> None:
        subscription.consumers = [
            asyncio.create_task(
                self._consume(subscription, queue),
                name=f"event-consumer:{subscription.topic}:{index}",
            )
            for index, queue in enumerate(subscription.queues)
        ]

    async def _consume(
        self, subscription: _Subscription, queue: asyncio.Queue[dict[str, Any]]
    ) -> None:
        while True:
            message = await queue.get()
            try:
                await self._deliver(subscription, message)
            finally:
                queue.task_done()

    async def _deliver(self, subscription: _Subscription, message: dict[str, Any]) -> None:
        attempts = self._max_redeliveries + 1
        for attempt in range(1, attempts + 1):
            try:
                await subscription.handler(DomainEvent.from_dict(message))
                return
            except Exception:
                if attempt == attempts:
                    logger.error(
                        "event_dead_lettered",
                        topic=subscription.topic,
                        event_id=message.get("event_id"),
                        kind=message.get("kind"),
                        attempts=attempt,
                        exc_info=True,
                    )
                    await self._dead_letter(subscription, message)
                    return
                logger.warning(
                    "event_handler_failed",
                    topic=subscription.topic,
                    event_id=message.get("event_id"),
                    kind=message.get("kind"),
                    attempt=attempt,
                    exc_info=True,
                )
                await asyncio.sleep(self._backoff * 2 ** (attempt - 1))

    async def _dead_letter(self, subscription: _Subscription, message: dict[str, Any]) -> None:
        if subscription.on_dead_letter is None:
            return
        try:
            await subscription.on_dead_letter(DomainEvent.from_dict(message))
        except Exception:
            logger.exception(
                "event_dead_letter_hook_failed",
                topic=subscription.topic,
                event_id=message.get("event_id"),
            )
