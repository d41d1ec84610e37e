"""Unit tests for the in-process event channel."""

import asyncio
from uuid import uuid4

import pytest

from domain.entities.event import DomainEvent, EventKind
from infrastructure.messaging.in_memory_channel import ChannelClosedError, InMemoryEventChannel

TOPIC = "domain-events"


def make_event(entity_id=None, **payload) -> DomainEvent:
    return DomainEvent(
        kind=EventKind.TASK_UPDATED,
        entity_type="task",
        entity_id=entity_id or uuid4(),
        actor_id=uuid4(),
        payload=payload,
    )


@pytest.fixture
async def channel():
    channel = InMemoryEventChannel(partitions=4, max_redeliveries=2, redelivery_backoff_seconds=0)
    yield channel
    await channel.drain(timeout=1)


class TestPublish:
    @pytest.mark.asyncio
    async def test_handler_receives_event_copy(self, channel):
        received: list[DomainEvent] = []

        async def handler(event: DomainEvent) -> None:
            received.append(event)

        channel.subscribe(TOPIC, handler)
        await channel.start()
        event = make_event(n=1)

        await channel.publish(TOPIC, event)
        await channel.join()

        assert received == [event]

    @pytest.mark.asyncio
    async def test_every_subscription_gets_the_event(self, channel):
        first: list[DomainEvent] = []
        second: list[DomainEvent] = []

        async def record_first(event):
            first.append(event)

        async def record_second(event):
            second.append(event)

        channel.subscribe(TOPIC, record_first)
        channel.subscribe(TOPIC, record_second)
        await channel.start()

        await channel.publish(TOPIC, make_event())
        await channel.join()

        assert len(first) == len(second) == 1

    @pytest.mark.asyncio
    async def test_other_topic_ignored(self, channel):
        received: list[DomainEvent] = []

        async def handler(event):
            received.append(event)

        channel.subscribe(TOPIC, handler)
        await channel.start()

        await channel.publish("audit", make_event())
        await channel.join()

        assert received == []

    @pytest.mark.asyncio
    async def test_per_entity_order(self, channel):
        entity_id = uuid4()
        seen: list[int] = []

        async def handler(event):
            # Later events finish faster; order must still hold
            await asyncio.sleep(0.001 * (5 - event.payload["n"]))
            seen.append(event.payload["n"])

        channel.subscribe(TOPIC, handler)
        await channel.start()

        for n in range(5):
            await channel.publish(TOPIC, make_event(entity_id, n=n))
        await channel.join()

        assert seen == [0, 1, 2, 3, 4]

    def test_partition_is_stable(self):
        channel = InMemoryEventChannel(partitions=4)
        key = str(uuid4())
        assert channel.partition_for(key) == channel.partition_for(key)
        assert 0 <= channel.partition_for(key) < 4

    def test_partitions_must_be_positive(self):
        with pytest.raises(ValueError):
            InMemoryEventChannel(partitions=0)


class TestRedelivery:
    @pytest.mark.asyncio
    async def test_failing_handler_is_retried(self, channel):
        attempts = 0

        async def flaky(event):
            nonlocal attempts
            attempts += 1
            if attempts < 2:
                raise RuntimeError("store down")

        channel.subscribe(TOPIC, flaky)
        await channel.start()

        await channel.publish(TOPIC, make_event())
        await channel.join()

        assert attempts == 2

    @pytest.mark.asyncio
    async def test_gives_up_and_moves_on(self, channel):
        attempts = 0
        received: list[int] = []
        entity_id = uuid4()

        async def handler(event):
            nonlocal attempts
            if event.payload["n"] == 0:
                attempts += 1
                raise RuntimeError("poison")
            received.append(event.payload["n"])

        channel.subscribe(TOPIC, handler)
        await channel.start()

        await channel.publish(TOPIC, make_event(entity_id, n=0))
        await channel.publish(TOPIC, make_event(entity_id, n=1))
        await channel.join()

        assert attempts == 3
        assert received == [1]

    @pytest.mark.asyncio
    async def test_dead_letter_hook_gets_the_event(self, channel):
        dead: list[DomainEvent] = []

        async def poison(event):
            raise RuntimeError("poison")

        async def on_dead_letter(event):
            dead.append(event)

        channel.subscribe(TOPIC, poison, on_dead_letter=on_dead_letter)
        await channel.start()
        event = make_event()

        await channel.publish(TOPIC, event)
        await channel.join()

        assert dead == [event]

    @pytest.mark.asyncio
    async def test_failing_dead_letter_hook_does_not_stop_partition(self, channel):
        received: list[int] = []
        entity_id = uuid4()

        async def handler(event):
            if event.payload["n"] == 0:
                raise RuntimeError("poison")
            received.append(event.payload["n"])

        async def on_dead_letter(event):
            raise ConnectionError("db down")

        channel.subscribe(TOPIC, handler, on_dead_letter=on_dead_letter)
        await channel.start()

        await channel.publish(TOPIC, make_event(entity_id, n=0))
        await channel.publish(TOPIC, make_event(entity_id, n=1))
        await channel.join()

        assert received == [1]


class TestDrain:
    @pytest.mark.asyncio
    async def test_drain_finishes_queued_events(self):
        channel = InMemoryEventChannel(partitions=2)
        received: list[DomainEvent] = []

        async def handler(event):
            await asyncio.sleep(0.001)
            received.append(event)

        channel.subscribe(TOPIC, handler)
        await channel.start()
        for _ in range(3):
            await channel.publish(TOPIC, make_event())

        await channel.drain(timeout=1)

        assert len(received) == 3
        assert not channel.is_running
        assert channel.pending() == 0

    @pytest.mark.asyncio
    async def test_publish_after_drain_is_refused(self):
        channel = InMemoryEventChannel()
        await channel.start()
        await channel.drain(timeout=1)

        with pytest.raises(ChannelClosedError):
            await channel.publish(TOPIC, make_event())

    @pytest.mark.asyncio
    async def test_drain_timeout_cancels_consumers(self):
        channel = InMemoryEventChannel(partitions=1)
        release = asyncio.Event()

        async def stuck(event):
            await release.wait()

        channel.subscribe(TOPIC, stuck)
        await channel.start()
        await channel.publish(TOPIC, make_event())
        await channel.publish(TOPIC, make_event())

        await channel.drain(timeout=0.01)

        assert not channel.is_running
        assert channel.pending() == 1
