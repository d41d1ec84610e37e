"""Event channel protocol."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from domain.entities.event import DomainEvent

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class IEventChannel(Protocol):
    """At-least-once publish/subscribe transport.

    Handlers may see the same event more than once. Order is preserved only
    among events sharing a partition key (the entity id).
    """

    async def publish(self, topic: str, event: DomainEvent) -> None:
        """Publish an event on a topic."""
        ...

    def subscribe(
        self, topic: str, handler: EventHandler, on_dead_letter: EventHandler | None = None
    ) -> None:
        """Register a handler for every event published on ``topic``.

        ``on_dead_letter`` is called with an event the handler kept failing on.
        """
        ...

    async def start(self) -> None:
        """Start consuming for every registered subscription."""
        ...

    async def drain(self, timeout: float) -> None:
        """Stop accepting events, finish in-flight ones, then stop consumers."""
        ...
