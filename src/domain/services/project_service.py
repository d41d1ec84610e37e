"""Project service layer with business logic."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any
from uuid import UUID

import structlog

from core.deadline import deadline
from core.exceptions import (
    InsufficientPermissionsError,
    InvalidRoleError,
    LastOwnerError,
    MemberNotFoundError,
    NotAMemberError,
    ProjectKeyTakenError,
    ProjectNotFoundError,
    ValidationError,
)
from domain.entities.event import DomainEvent, EventKind
from domain.entities.project import (
    Project,
    ProjectMember,
    ProjectRole,
    ProjectSettings,
    has_permission,
    normalize_project_key,
)
from domain.repositories.unit_of_work import IUnitOfWork
from domain.services.event_publisher import EventPublisher

logger = structlog.get_logger()


def parse_role(role: ProjectRole | str) -> ProjectRole:
    """Accept a ProjectRole or its name in any case (``"admin"``)."""
    if isinstance(role, ProjectRole):
        return role
    try:
        return ProjectRole[str(role).strip().upper()]
    except KeyError as exc:
        raise InvalidRoleError(str(role)) from exc


class ProjectService:
    """Service layer for Project business logic.

    Membership changes rewrite the project aggregate with a conditional write
    on its version, so concurrent changes conflict instead of overwriting
    each other.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        publisher: EventPublisher | None = None,
        operation_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._timeout = operation_timeout

    # --- Reads ---

    async def list_for_user(self, user_id: UUID, timeout: float | None = None) -> list[Project]:
        """Get all projects a user is a member of."""
        async with self._deadline("list_projects", timeout), self._uow_factory() as uow:
            return await uow.projects.list_for_user(user_id)

    async def get_project(
        self, project_id: UUID, user_id: UUID, timeout: float | None = None
    ) -> Project:
        """Get a project by ID, verifying membership."""
        async with self._deadline("get_project", timeout), self._uow_factory() as uow:
            project = await self._get_project(uow, project_id)
            self._require_role(project, user_id, ProjectRole.VIEWER)
            return project

    async def list_members(
        self, project_id: UUID, user_id: UUID, timeout: float | None = None
    ) -> list[ProjectMember]:
        """Get all members of a project. Requires membership."""
        project = await self.get_project(project_id, user_id, timeout=timeout)
        return sorted(project.members, key=lambda m: (-m.role, m.joined_at))

    # --- Mutations ---

    async def create_project(
        self,
        actor_id: UUID,
        name: str,
        key: str,
        description: str | None = None,
        settings: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Project:
        """Create a project owned by the actor.

        The ``get_by_key`` lookup only fails fast; the unique constraint on
        the key decides concurrent creations, and the repository turns its
        violation into ProjectKeyTakenError.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name must not be empty", details={"field": "name"})
        key = normalize_project_key(key)
        project_settings = ProjectSettings.from_dict(settings or {}, key)
        if project_settings.default_assignee_id not in (None, actor_id):
            raise ValidationError(
                "Default assignee must be a member of the project",
                details={"default_assignee_id": str(project_settings.default_assignee_id)},
            )

        async with self._deadline("create_project", timeout), self._uow_factory() as uow:
            if await uow.projects.get_by_key(key):
                raise ProjectKeyTakenError(key)

            project = Project(
                name=name,
                key=key,
                owner_id=actor_id,
                description=description,
                settings=project_settings,
                members=[ProjectMember(user_id=actor_id, role=ProjectRole.OWNER)],
            )
            created = await uow.projects.create(project)

            events = [
                self._event(
                    EventKind.PROJECT_CREATED,
                    created,
                    actor_id,
                    key=created.key,
                    owner_id=str(actor_id),
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "project_created",
            project_id=str(created.id),
            key=created.key,
            owner_id=str(actor_id),
        )
        await self._flush(events)
        return created

    async def add_member(
        self,
        project_id: UUID,
        user_id: UUID,
        role: ProjectRole | str,
        actor_id: UUID,
        timeout: float | None = None,
    ) -> ProjectMember:
        """Add a member. Requires Admin+ role; OWNER cannot be granted here."""
        member_role = parse_role(role)

        async with self._deadline("add_member", timeout), self._uow_factory() as uow:
            project = await self._get_project(uow, project_id)
            self._require_role(project, actor_id, ProjectRole.ADMIN)

            read_version = project.version
            member = project.add_member(user_id, member_role, invited_by=actor_id)
            updated = await uow.projects.update(project, expected_version=read_version)

            events = [
                self._event(
                    EventKind.PROJECT_MEMBER_ADDED,
                    updated,
                    actor_id,
                    user_id=str(user_id),
                    role=member_role.name.lower(),
                    owner_id=str(updated.owner_id),
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "project_member_added",
            project_id=str(project_id),
            user_id=str(user_id),
            role=member_role.name.lower(),
            actor_id=str(actor_id),
        )
        await self._flush(events)
        return member

    async def remove_member(
        self,
        project_id: UUID,
        user_id: UUID,
        actor_id: UUID,
        timeout: float | None = None,
    ) -> None:
        """Remove a member.

        Anyone may leave except the owner. Removing someone else requires
        Admin+, and an Admin may only remove members below Admin.
        """
        async with self._deadline("remove_member", timeout), self._uow_factory() as uow:
            project = await self._get_project(uow, project_id)

            actor_role = project.role_of(actor_id)
            if actor_role is None:
                raise NotAMemberError(str(project_id))

            target = project.get_member(user_id)
            if not target:
                raise MemberNotFoundError(str(user_id))
            if target.role == ProjectRole.OWNER:
                raise LastOwnerError()

            self_removal = user_id == actor_id
            if not self_removal:
                if not has_permission(actor_role, ProjectRole.ADMIN):
                    raise InsufficientPermissionsError("admin")
                if actor_role != ProjectRole.OWNER and target.role >= actor_role:
                    raise InsufficientPermissionsError("owner")

            read_version = project.version
            project.remove_member(user_id)
            updated = await uow.projects.update(project, expected_version=read_version)

            events = [
                self._event(
                    EventKind.PROJECT_MEMBER_REMOVED,
                    updated,
                    actor_id,
                    user_id=str(user_id),
                    self_removal=self_removal,
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "project_member_removed",
            project_id=str(project_id),
            user_id=str(user_id),
            self_removal=self_removal,
        )
        await self._flush(events)

    async def transfer_ownership(
        self,
        project_id: UUID,
        new_owner_id: UUID,
        actor_id: UUID,
        timeout: float | None = None,
    ) -> Project:
        """Hand ownership to an existing member. Only the owner may do this.

        The previous owner stays on as Admin. Both role changes land in one
        conditional write of the aggregate.
        """
        async with self._deadline("transfer_ownership", timeout), self._uow_factory() as uow:
            project = await self._get_project(uow, project_id)
            self._require_role(project, actor_id, ProjectRole.OWNER)

            if new_owner_id == project.owner_id:
                raise ValidationError(
                    "User already owns this project",
                    details={"new_owner_id": str(new_owner_id)},
                )

            read_version = project.version
            previous_owner_id = project.owner_id
            project.transfer_ownership(new_owner_id)
            updated = await uow.projects.update(project, expected_version=read_version)

            events = [
                self._event(
                    EventKind.PROJECT_OWNERSHIP_TRANSFERRED,
                    updated,
                    actor_id,
                    previous_owner_id=str(previous_owner_id),
                    new_owner_id=str(new_owner_id),
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "project_ownership_transferred",
            project_id=str(project_id),
            previous_owner_id=str(previous_owner_id),
            new_owner_id=str(new_owner_id),
        )
        await self._flush(events)
        return updated

    # --- Helpers ---

    def _deadline(
        self, operation: str, timeout: float | None
    ) -> AbstractAsyncContextManager[None]:
        return deadline(timeout if timeout is not None else self._timeout, operation)

    async def _stage(self, uow: IUnitOfWork, events: list[DomainEvent]) -> None:
        if self._publisher:
            await self._publisher.stage(uow, events)

    async def _flush(self, events: list[DomainEvent]) -> None:
        if self._publisher:
            await self._publisher.flush(events)

    @staticmethod
    async def _get_project(uow: IUnitOfWork, project_id: UUID) -> Project:
        project = await uow.projects.get(project_id)
        if not project:
            raise ProjectNotFoundError(str(project_id))
        return project

    @staticmethod
    def _require_role(project: Project, user_id: UUID, required_role: ProjectRole) -> None:
        """Verify the user has at least the required role in the project."""
        role = project.role_of(user_id)
        if role is None:
            raise NotAMemberError(str(project.id))
        if not has_permission(role, required_role):
            raise InsufficientPermissionsError(required_role.name.lower())

    @staticmethod
    def _event(kind: EventKind, project: Project, actor_id: UUID, **payload: Any) -> DomainEvent:
        return DomainEvent(
            kind=kind,
            entity_type="project",
            entity_id=project.id,
            actor_id=actor_id,
            project_id=project.id,
            payload={"project_name": project.name, **payload},
        )
