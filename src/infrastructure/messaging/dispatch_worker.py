"""Background workers tied to the application lifespan."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from domain.entities.event import DomainEvent
from domain.services.event_publisher import EventPublisher
from domain.services.notification_dispatcher import NotificationDispatcher
from infrastructure.messaging.in_memory_channel import InMemoryEventChannel

logger = structlog.get_logger()


class DispatchWorker:
    """Runs the notification dispatcher as a consumer of the event channel.

    With a publisher attached, an event is acknowledged to the outbox only
    after the dispatcher handled it, and a dead-lettered one is released
    back to the relay.
    """

    def __init__(
        self,
        channel: InMemoryEventChannel,
        dispatcher: NotificationDispatcher,
        topic: str,
        drain_timeout: float = 15.0,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._channel = channel
        self._dispatcher = dispatcher
        self._publisher = publisher
        self._topic = topic
        self._drain_timeout = drain_timeout
        self._subscribed = False

    async def start(self) -> None:
        if not self._subscribed:
            self._channel.subscribe(
                self._topic,
                self._handle,
                on_dead_letter=self._publisher.release if self._publisher else None,
            )
            self._subscribed = True
        await self._channel.start()

    async def stop(self) -> None:
        """Let in-flight dispatches finish (bounded by the drain timeout)."""
        await self._channel.drain(self._drain_timeout)

    async def _handle(self, event: DomainEvent) -> None:
        await self._dispatcher.handle(event)
        if self._publisher:
            await self._publisher.acknowledge(event)


class PeriodicJob:
    """Runs ``job`` every ``interval`` seconds until stopped.

    A failing run is logged and the loop keeps going.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[object]],
    ) -> None:
        self._name = name
        self._interval = interval
        self._job = job
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"periodic:{self._name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                result = await self._job()
                logger.debug("periodic_job_completed", job=self._name, result=result)
            except Exception:
                logger.exception("periodic_job_failed", job=self._name)
