"""Fixtures wiring the real services to the test database."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from domain.services.event_publisher import EventPublisher
from domain.services.notification_dispatcher import NotificationDispatcher
from domain.services.notification_service import NotificationService
from domain.services.project_service import ProjectService
from domain.services.task_service import TaskService
from infrastructure.delivery.in_app import InAppChannel
from infrastructure.messaging.dispatch_worker import DispatchWorker
from infrastructure.messaging.in_memory_channel import InMemoryEventChannel

TOPIC = "domain-events"


@pytest.fixture
async def event_channel() -> AsyncGenerator[InMemoryEventChannel, None]:
    """Event channel without backoff; drained at teardown."""
    channel = InMemoryEventChannel(partitions=2, max_redeliveries=1, redelivery_backoff_seconds=0)
    yield channel
    await channel.drain(timeout=1)


@pytest.fixture
def event_publisher(uow_factory, event_channel) -> EventPublisher:
    return EventPublisher(uow_factory, event_channel, topic=TOPIC)


@pytest.fixture
def task_service(uow_factory, event_publisher) -> TaskService:
    return TaskService(uow_factory, publisher=event_publisher)


@pytest.fixture
def project_service(uow_factory, event_publisher) -> ProjectService:
    return ProjectService(uow_factory, publisher=event_publisher)


@pytest.fixture
def notification_service(uow_factory) -> NotificationService:
    return NotificationService(uow_factory)


@pytest.fixture
def notification_dispatcher(uow_factory) -> NotificationDispatcher:
    """Dispatcher with only the in-app channel configured."""
    return NotificationDispatcher(uow_factory, [InAppChannel(uow_factory, retention_days=30)])


@pytest.fixture
async def dispatch_worker(
    event_channel, notification_dispatcher, event_publisher
) -> AsyncGenerator[DispatchWorker, None]:
    worker = DispatchWorker(
        event_channel,
        notification_dispatcher,
        topic=TOPIC,
        drain_timeout=1,
        publisher=event_publisher,
    )
    await worker.start()
    yield worker
    await worker.stop()


@pytest.fixture
async def api_client(
    session_factory,
    auth_provider,
    event_channel,
    task_service,
    project_service,
    notification_service,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client for the v1 API backed by the test database.

    The lifespan does not run under ASGITransport; tests that need
    notifications delivered also request ``dispatch_worker``.
    """
    from api.dependencies.auth import get_auth_provider
    from api.v1.dependencies import (
        get_event_channel,
        get_notification_service,
        get_project_service,
        get_session_factory,
        get_task_service,
    )
    from main import create_app

    app = create_app()
    app.dependency_overrides[get_auth_provider] = lambda: auth_provider
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_event_channel] = lambda: event_channel
    app.dependency_overrides[get_task_service] = lambda: task_service
    app.dependency_overrides[get_project_service] = lambda: project_service
    app.dependency_overrides[get_notification_service] = lambda: notification_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
