"""Unit tests for the lifespan background workers."""

import asyncio
from uuid import uuid4

import pytest

from domain.entities.event import DomainEvent, EventKind
from infrastructure.messaging.dispatch_worker import DispatchWorker, PeriodicJob
from infrastructure.messaging.in_memory_channel import InMemoryEventChannel

TOPIC = "domain-events"


class RecordingDispatcher:
    def __init__(self) -> None:
        self.handled: list[DomainEvent] = []

    async def handle(self, event: DomainEvent) -> None:
        self.handled.append(event)


class RecordingOutbox:
    """Stands in for EventPublisher on the consuming side."""

    def __init__(self) -> None:
        self.acknowledged: list[DomainEvent] = []
        self.released: list[DomainEvent] = []

    async def acknowledge(self, event: DomainEvent) -> None:
        self.acknowledged.append(event)

    async def release(self, event: DomainEvent) -> None:
        self.released.append(event)


class FailingDispatcher:
    async def handle(self, event: DomainEvent) -> None:
        raise RuntimeError("store down")


def make_event() -> DomainEvent:
    return DomainEvent(
        kind=EventKind.TASK_UPDATED, entity_type="task", entity_id=uuid4(), actor_id=uuid4()
    )


class TestDispatchWorker:
    @pytest.mark.asyncio
    async def test_routes_topic_to_dispatcher(self):
        channel = InMemoryEventChannel(partitions=2)
        dispatcher = RecordingDispatcher()
        worker = DispatchWorker(channel, dispatcher, topic=TOPIC, drain_timeout=1)

        await worker.start()
        event = DomainEvent(
            kind=EventKind.TASK_CREATED, entity_type="task", entity_id=uuid4(), actor_id=uuid4()
        )
        await channel.publish(TOPIC, event)
        await worker.stop()

        assert [e.event_id for e in dispatcher.handled] == [event.event_id]
        assert not channel.is_running

    @pytest.mark.asyncio
    async def test_start_twice_subscribes_once(self):
        channel = InMemoryEventChannel(partitions=1)
        dispatcher = RecordingDispatcher()
        worker = DispatchWorker(channel, dispatcher, topic=TOPIC, drain_timeout=1)

        await worker.start()
        await worker.start()
        await channel.publish(
            TOPIC,
            DomainEvent(
                kind=EventKind.TASK_DELETED, entity_type="task", entity_id=uuid4(), actor_id=uuid4()
            ),
        )
        await worker.stop()

        assert len(dispatcher.handled) == 1

    @pytest.mark.asyncio
    async def test_acknowledges_after_dispatch(self):
        channel = InMemoryEventChannel(partitions=1)
        dispatcher = RecordingDispatcher()
        outbox = RecordingOutbox()
        worker = DispatchWorker(
            channel, dispatcher, topic=TOPIC, drain_timeout=1, publisher=outbox
        )

        await worker.start()
        event = make_event()
        await channel.publish(TOPIC, event)
        await worker.stop()

        assert [e.event_id for e in outbox.acknowledged] == [event.event_id]
        assert outbox.released == []

    @pytest.mark.asyncio
    async def test_dead_lettered_event_is_released_not_acknowledged(self):
        channel = InMemoryEventChannel(
            partitions=1, max_redeliveries=1, redelivery_backoff_seconds=0
        )
        outbox = RecordingOutbox()
        worker = DispatchWorker(
            channel, FailingDispatcher(), topic=TOPIC, drain_timeout=1, publisher=outbox
        )

        await worker.start()
        event = make_event()
        await channel.publish(TOPIC, event)
        await worker.stop()

        assert outbox.acknowledged == []
        assert [e.event_id for e in outbox.released] == [event.event_id]


class TestPeriodicJob:
    @pytest.mark.asyncio
    async def test_runs_repeatedly_and_survives_failures(self):
        runs = 0

        async def job() -> int:
            nonlocal runs
            runs += 1
            if runs == 1:
                raise RuntimeError("store down")
            return runs

        periodic = PeriodicJob("test", interval=0.001, job=job)
        periodic.start()
        await asyncio.sleep(0.05)
        await periodic.stop()

        assert runs >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        async def job() -> None:
            return None

        await PeriodicJob("idle", interval=1, job=job).stop()
