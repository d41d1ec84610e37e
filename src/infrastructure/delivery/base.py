"""Shared behaviour for ledger-backed delivery channels."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from uuid import UUID

import structlog

from core.clock import utcnow
from core.deadline import deadline
from core.exceptions import PermanentError, TransientError
from domain.entities.notification import (
    Channel,
    DeliveryOutcome,
    DeliveryRecord,
    DeliveryStatus,
    NotificationContent,
)
from domain.repositories.unit_of_work import IUnitOfWork

logger = structlog.get_logger()


class LedgerDeliveryChannel(ABC):
    """Delivery channel that records each delivery id in a ledger.

    A delivery id already marked DELIVERED is answered with DUPLICATE and
    nothing is sent. Transient failures are retried here with exponential
    backoff up to ``max_attempts``; the final outcome (DELIVERED or FAILED)
    is written to the ledger before returning or raising. Every ledger read
    and write is bounded by ``store_timeout``.
    """

    name: Channel

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        store_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._max_attempts = max(1, max_attempts)
        self._backoff = retry_backoff_seconds
        self._store_timeout = store_timeout

    @abstractmethod
    async def _send(
        self, delivery_id: str, recipient_id: UUID, content: NotificationContent
    ) -> None:
        """Hand the message to the backend. Raises TransientError or PermanentError."""

    async def deliver(
        self, delivery_id: str, recipient_id: UUID, content: NotificationContent
    ) -> DeliveryOutcome:
        async with self._ledger("read"), self._uow_factory() as uow:
            record = await uow.deliveries.get(delivery_id)
        if record and record.status == DeliveryStatus.DELIVERED:
            return DeliveryOutcome.DUPLICATE

        attempts = record.attempts if record else 0
        for attempt in range(1, self._max_attempts + 1):
            attempts += 1
            try:
                await self._send(delivery_id, recipient_id, content)
            except TransientError as exc:
                if attempt < self._max_attempts:
                    logger.debug(
                        "delivery_retry_scheduled",
                        channel=self.name.value,
                        delivery_id=delivery_id,
                        attempt=attempt,
                        error=exc.message,
                    )
                    await asyncio.sleep(self._backoff * 2 ** (attempt - 1))
                    continue
                await self._record(
                    delivery_id, recipient_id, content, DeliveryStatus.FAILED, attempts, exc.message
                )
                raise
            except PermanentError as exc:
                await self._record(
                    delivery_id, recipient_id, content, DeliveryStatus.FAILED, attempts, exc.message
                )
                raise
            else:
                await self._record(
                    delivery_id, recipient_id, content, DeliveryStatus.DELIVERED, attempts
                )
                return DeliveryOutcome.DELIVERED

        raise AssertionError("unreachable")  # pragma: no cover

    async def _record(
        self,
        delivery_id: str,
        recipient_id: UUID,
        content: NotificationContent,
        status: DeliveryStatus,
        attempts: int,
        last_error: str | None = None,
    ) -> None:
        async with self._ledger("write"), self._uow_factory() as uow:
            await uow.deliveries.save(
                DeliveryRecord(
                    delivery_id=delivery_id,
                    event_id=content.event_id,
                    recipient_id=recipient_id,
                    channel=self.name.value,
                    status=status,
                    attempts=attempts,
                    last_error=last_error,
                    updated_at=utcnow(),
                )
            )
            await uow.commit()

    def _ledger(self, action: str) -> AbstractAsyncContextManager[None]:
        return deadline(self._store_timeout, f"{self.name.value}_ledger_{action}")
