"""Project repository protocol."""

from typing import Protocol
from uuid import UUID

from domain.entities.project import Project


class IProjectRepository(Protocol):
    """Repository interface for the Project aggregate (project + members)."""

    async def get(self, id: UUID) -> Project | None:
        """Get a project with its members by ID."""
        ...

    async def get_by_key(self, key: str) -> Project | None:
        """Get a project by its unique key (secondary index)."""
        ...

    async def list_for_user(self, user_id: UUID) -> list[Project]:
        """Get all projects a user is a member of."""
        ...

    async def create(self, project: Project) -> Project:
        """Create a project and its initial members.

        Raises ProjectKeyTakenError when the unique key constraint fires.
        """
        ...

    async def update(self, project: Project, expected_version: int) -> Project:
        """Conditionally write the project row and sync its membership set.

        Raises ProjectConflictError if the stored version moved on.
        """
        ...

    async def next_task_number(self, project_id: UUID) -> int:
        """Atomically allocate the next per-project task number."""
        ...
