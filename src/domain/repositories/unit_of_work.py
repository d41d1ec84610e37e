"""Unit of Work protocol."""

from typing import Protocol

from domain.repositories.notification_repository import (
    IDeliveryRepository,
    INotificationRepository,
)
from domain.repositories.outbox_repository import IOutboxRepository
from domain.repositories.project_repository import IProjectRepository
from domain.repositories.task_repository import ICommentRepository, ITaskRepository


class IUnitOfWork(Protocol):
    """Unit of Work interface for managing transactions."""

    tasks: ITaskRepository
    comments: ICommentRepository
    projects: IProjectRepository
    notifications: INotificationRepository
    deliveries: IDeliveryRepository
    outbox: IOutboxRepository

    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    async def __aenter__(self) -> "IUnitOfWork":
        """Enter the context manager."""
        ...

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore
        """Exit the context manager."""
        ...
