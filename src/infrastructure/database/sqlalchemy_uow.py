"""SQLAlchemy Unit of Work implementation."""

from typing import Any, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import StoreUnavailableError
from infrastructure.database.repositories.sqlalchemy_notification_repo import (
    SQLAlchemyDeliveryRepository,
    SQLAlchemyNotificationRepository,
)
from infrastructure.database.repositories.sqlalchemy_outbox_repo import SQLAlchemyOutboxRepository
from infrastructure.database.repositories.sqlalchemy_project_repo import (
    SQLAlchemyProjectRepository,
)
from infrastructure.database.repositories.sqlalchemy_task_repo import (
    SQLAlchemyCommentRepository,
    SQLAlchemyTaskRepository,
)


class SQLAlchemyUnitOfWork:
    """Unit of Work implementation using SQLAlchemy.

    Connectivity failures (``OperationalError``) leave the context as
    StoreUnavailableError so callers see a retryable TransientError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: Optional[AsyncSession] = None

    def _require_session(self) -> AsyncSession:
        if not self._session:
            raise RuntimeError("UnitOfWork not initialized. Use as context manager.")
        return self._session

    @property
    def tasks(self) -> SQLAlchemyTaskRepository:
        """Get task repository."""
        return SQLAlchemyTaskRepository(self._require_session())

    @property
    def comments(self) -> SQLAlchemyCommentRepository:
        """Get comment repository."""
        return SQLAlchemyCommentRepository(self._require_session())

    @property
    def projects(self) -> SQLAlchemyProjectRepository:
        """Get project repository."""
        return SQLAlchemyProjectRepository(self._require_session())

    @property
    def notifications(self) -> SQLAlchemyNotificationRepository:
        """Get notification repository."""
        return SQLAlchemyNotificationRepository(self._require_session())

    @property
    def deliveries(self) -> SQLAlchemyDeliveryRepository:
        """Get delivery ledger repository."""
        return SQLAlchemyDeliveryRepository(self._require_session())

    @property
    def outbox(self) -> SQLAlchemyOutboxRepository:
        """Get outbox repository."""
        return SQLAlchemyOutboxRepository(self._require_session())

    async def commit(self) -> None:
        """Commit the current transaction."""
        if self._session:
            await self._session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        if self._session:
            await self._session.rollback()

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        """Enter the context manager and create session."""
        self._session = self._session_factory()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        """Exit the context manager and cleanup."""
        if self._session:
            try:
                if exc_type:
                    await self.rollback()
                await self._session.close()
            finally:
                self._session = None

        if isinstance(exc_val, OperationalError):
            raise StoreUnavailableError(str(exc_val.orig or exc_val)) from exc_val
