"""Dependency injection factories for API v1 and the background workers."""

from functools import lru_cache
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from domain.channels.delivery_channel import IDeliveryChannel
from domain.services.event_publisher import EventPublisher
from domain.services.notification_dispatcher import NotificationDispatcher
from domain.services.notification_service import NotificationService
from domain.services.project_service import ProjectService
from domain.services.task_service import TaskService
from infrastructure.database.session import async_session_factory
from infrastructure.database.sqlalchemy_uow import SQLAlchemyUnitOfWork
from infrastructure.delivery.http import HttpEmailChannel, HttpPushChannel
from infrastructure.delivery.in_app import InAppChannel
from infrastructure.messaging.dispatch_worker import DispatchWorker
from infrastructure.messaging.in_memory_channel import InMemoryEventChannel


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """The application-wide session factory."""
    return async_session_factory


def get_uow_factory() -> Callable[[], SQLAlchemyUnitOfWork]:
    """Factory for creating Unit of Work instances."""
    session_factory = get_session_factory()

    def factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory)

    return factory


@lru_cache
def get_event_channel() -> InMemoryEventChannel:
    """Process-wide event channel."""
    return InMemoryEventChannel(
        partitions=settings.event_partitions,
        max_redeliveries=settings.event_max_redeliveries,
        redelivery_backoff_seconds=settings.event_redelivery_backoff_seconds,
    )


@lru_cache
def get_event_publisher() -> EventPublisher:
    """Get the outbox-backed event publisher."""
    return EventPublisher(
        get_uow_factory(),
        get_event_channel(),
        topic=settings.event_topic,
        relay_grace_seconds=settings.outbox_relay_grace_seconds,
    )


@lru_cache
def get_task_service() -> TaskService:
    """Get Task service instance."""
    return TaskService(
        get_uow_factory(),
        publisher=get_event_publisher(),
        operation_timeout=settings.operation_timeout_seconds,
    )


@lru_cache
def get_project_service() -> ProjectService:
    """Get Project service instance."""
    return ProjectService(
        get_uow_factory(),
        publisher=get_event_publisher(),
        operation_timeout=settings.operation_timeout_seconds,
    )


@lru_cache
def get_notification_service() -> NotificationService:
    """Get Notification service instance."""
    return NotificationService(
        get_uow_factory(), operation_timeout=settings.operation_timeout_seconds
    )


@lru_cache
def get_delivery_channels() -> tuple[IDeliveryChannel, ...]:
    """In-app is always on; email and push only when their API URL is set."""
    uow_factory = get_uow_factory()
    channels: list[IDeliveryChannel] = [
        InAppChannel(
            uow_factory,
            retention_days=settings.notification_retention_days,
            store_timeout=settings.operation_timeout_seconds,
        )
    ]
    http_options: dict[str, Any] = {
        "api_token": settings.delivery_api_token,
        "timeout": settings.delivery_http_timeout_seconds,
        "max_attempts": settings.delivery_max_attempts,
        "retry_backoff_seconds": settings.delivery_retry_backoff_seconds,
        "store_timeout": settings.operation_timeout_seconds,
    }
    if settings.email_api_url:
        channels.append(HttpEmailChannel(uow_factory, settings.email_api_url, **http_options))
    if settings.push_api_url:
        channels.append(HttpPushChannel(uow_factory, settings.push_api_url, **http_options))
    return tuple(channels)


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the dispatcher that consumes domain events."""
    return NotificationDispatcher(
        get_uow_factory(),
        get_delivery_channels(),
        operation_timeout=settings.operation_timeout_seconds,
    )


@lru_cache
def get_dispatch_worker() -> DispatchWorker:
    """Get the worker wiring the dispatcher to the event channel."""
    return DispatchWorker(
        get_event_channel(),
        get_notification_dispatcher(),
        topic=settings.event_topic,
        drain_timeout=settings.event_drain_timeout_seconds,
        publisher=get_event_publisher(),
    )
