"""Task repository protocol."""

from typing import Protocol
from uuid import UUID

from domain.entities.task import Comment, Task


class ITaskRepository(Protocol):
    """Repository interface for Task entities."""

    async def get(self, id: UUID) -> Task | None:
        """Get a task by ID (including soft-deleted tasks)."""
        ...

    async def list_for_project(self, project_id: UUID, include_deleted: bool = False) -> list[Task]:
        """Get all tasks of a project ordered by number."""
        ...

    async def create(self, task: Task) -> Task:
        """Create a new task."""
        ...

    async def update(self, task: Task, expected_version: int) -> Task:
        """Conditionally write a task.

        Succeeds only if the stored version still equals ``expected_version``;
        the stored version is then incremented. Raises TaskConflictError
        otherwise.
        """
        ...


class ICommentRepository(Protocol):
    """Repository interface for task comments."""

    async def create(self, comment: Comment) -> Comment:
        """Append a comment."""
        ...

    async def list_for_task(self, task_id: UUID) -> list[Comment]:
        """Get all comments of a task, oldest first."""
        ...
