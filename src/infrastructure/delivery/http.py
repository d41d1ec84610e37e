"""Email and push channels backed by HTTP delivery APIs.

Both providers accept an ``Idempotency-Key`` header; we send the delivery id
so a retried request that already succeeded upstream is not sent twice.

Status mapping:
    2xx        -> delivered
    429, 5xx   -> DeliveryTransientError (retried)
    other 4xx  -> DeliveryPermanentError
"""

from abc import abstractmethod
from collections.abc import Callable
from typing import Any
from uuid import UUID

import httpx

from core.exceptions import DeliveryPermanentError, DeliveryTransientError
from domain.entities.notification import Channel, NotificationContent
from domain.repositories.unit_of_work import IUnitOfWork
from infrastructure.delivery.base import LedgerDeliveryChannel


class HttpDeliveryChannel(LedgerDeliveryChannel):
    """POSTs one JSON message per delivery to ``{base_url}{path}``."""

    path: str = "/"

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        base_url: str,
        api_token: str = "",
        timeout: float = 5.0,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        client: httpx.AsyncClient | None = None,
        store_timeout: float | None = None,
    ) -> None:
        super().__init__(uow_factory, max_attempts, retry_backoff_seconds, store_timeout)
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @abstractmethod
    def _payload(self, recipient_id: UUID, content: NotificationContent) -> dict[str, Any]:
        """JSON body the provider expects for one message."""

    async def _send(
        self, delivery_id: str, recipient_id: UUID, content: NotificationContent
    ) -> None:
        channel = self.name.value
        try:
            response = await self._client.post(
                self.path,
                json=self._payload(recipient_id, content),
                headers={"Idempotency-Key": delivery_id},
            )
        except httpx.TimeoutException as exc:
            raise DeliveryTransientError(channel, f"timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise DeliveryTransientError(channel, f"transport error: {exc}") from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise DeliveryTransientError(channel, f"HTTP {status}")
        if status >= 400:
            raise DeliveryPermanentError(channel, f"HTTP {status}: {response.text[:200]}")


class HttpEmailChannel(HttpDeliveryChannel):
    name = Channel.EMAIL
    path = "/v1/messages"

    def _payload(self, recipient_id: UUID, content: NotificationContent) -> dict[str, Any]:
        return {
            "recipient_id": str(recipient_id),
            "subject": content.title,
            "text": content.body,
            "tags": [content.kind.value],
        }


class HttpPushChannel(HttpDeliveryChannel):
    name = Channel.PUSH
    path = "/v1/push"

    def _payload(self, recipient_id: UUID, content: NotificationContent) -> dict[str, Any]:
        return {
            "user_id": str(recipient_id),
            "title": content.title,
            "body": content.body,
            "data": {
                "kind": content.kind.value,
                "entity_type": content.entity_type,
                "entity_id": str(content.entity_id),
            },
        }
