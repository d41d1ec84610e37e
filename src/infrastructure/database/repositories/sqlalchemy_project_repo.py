"""SQLAlchemy implementation of the Project repository."""

from uuid import UUID

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ProjectConflictError, ProjectKeyTakenError
from domain.entities.project import (
    Project,
    ProjectMember,
    ProjectRole,
    ProjectSettings,
    ProjectStatus,
)
from infrastructure.database.models import ProjectMemberModel, ProjectModel

# Map string role values in DB to ProjectRole enum
_ROLE_TO_ENUM = {
    "owner": ProjectRole.OWNER,
    "admin": ProjectRole.ADMIN,
    "member": ProjectRole.MEMBER,
    "viewer": ProjectRole.VIEWER,
}

_ENUM_TO_ROLE = {v: k for k, v in _ROLE_TO_ENUM.items()}


class SQLAlchemyProjectRepository:
    """SQLAlchemy implementation of IProjectRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, id: UUID) -> Project | None:
        """Get a project with its members by ID."""
        stmt = (
            select(ProjectModel)
            .where(ProjectModel.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_key(self, key: str) -> Project | None:
        """Get a project by its unique key."""
        stmt = select(ProjectModel).where(ProjectModel.key == key)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_for_user(self, user_id: UUID) -> list[Project]:
        """Get all projects a user is a member of."""
        stmt = (
            select(ProjectModel)
            .join(
                ProjectMemberModel,
                ProjectMemberModel.project_id == ProjectModel.id,
            )
            .where(ProjectMemberModel.user_id == user_id)
            .order_by(ProjectModel.created_at)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars()]

    async def create(self, project: Project) -> Project:
        """Create a project and its initial members."""
        model = self._to_model(project)
        model.members = [self._member_to_model(project.id, m) for m in project.members]
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # Only a unique violation means the key race was lost
            orig = str(exc.orig).lower() if exc.orig else ""
            if "unique" in orig or "duplicate" in orig:
                raise ProjectKeyTakenError(project.key) from exc
            raise
        return self._to_entity(model)

    async def update(self, project: Project, expected_version: int) -> Project:
        """Conditionally write the project row and sync its membership set.

        Role changes are applied demotions first, so the single-owner index
        never sees two owners mid-transfer.
        """
        new_version = expected_version + 1
        stmt = (
            update(ProjectModel)
            .where(ProjectModel.id == project.id, ProjectModel.version == expected_version)
            .values(
                name=project.name,
                description=project.description,
                status=project.status.value,
                owner_id=project.owner_id,
                settings=project.settings.to_dict() if project.settings else {},
                version=new_version,
                updated_at=project.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:  # type: ignore[attr-defined]
            raise ProjectConflictError(str(project.id), expected_version)

        await self._sync_members(project)

        project.version = new_version
        return project

    async def next_task_number(self, project_id: UUID) -> int:
        """Atomically allocate the next per-project task number."""
        stmt = (
            update(ProjectModel)
            .where(ProjectModel.id == project_id)
            .values(task_counter=ProjectModel.task_counter + 1)
            .returning(ProjectModel.task_counter)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def _sync_members(self, project: Project) -> None:
        stmt = select(ProjectMemberModel.user_id, ProjectMemberModel.role).where(
            ProjectMemberModel.project_id == project.id
        )
        result = await self._session.execute(stmt)
        stored = {user_id: _ROLE_TO_ENUM[role] for user_id, role in result.all()}
        wanted = {m.user_id: m for m in project.members}

        removed = [user_id for user_id in stored if user_id not in wanted]
        if removed:
            await self._session.execute(
                delete(ProjectMemberModel)
                .where(
                    ProjectMemberModel.project_id == project.id,
                    ProjectMemberModel.user_id.in_(removed),
                )
                .execution_options(synchronize_session=False)
            )

        changed = [
            m for user_id, m in wanted.items() if user_id in stored and stored[user_id] != m.role
        ]
        # Demotions (new role below stored role) before promotions
        changed.sort(key=lambda m: m.role - stored[m.user_id])
        for member in changed:
            await self._session.execute(
                update(ProjectMemberModel)
                .where(
                    ProjectMemberModel.project_id == project.id,
                    ProjectMemberModel.user_id == member.user_id,
                )
                .values(role=_ENUM_TO_ROLE[member.role])
                .execution_options(synchronize_session=False)
            )

        added = [m for user_id, m in wanted.items() if user_id not in stored]
        if added:
            await self._session.execute(
                insert(ProjectMemberModel),
                [
                    {
                        "project_id": project.id,
                        "user_id": m.user_id,
                        "role": _ENUM_TO_ROLE[m.role],
                        "joined_at": m.joined_at,
                        "invited_by": m.invited_by,
                    }
                    for m in added
                ],
            )

    def _to_entity(self, model: ProjectModel) -> Project:
        """Convert ORM model to domain entity."""
        return Project(
            id=model.id,
            name=model.name,
            key=model.key,
            description=model.description,
            status=ProjectStatus(model.status),
            owner_id=model.owner_id,
            members=[self._member_to_entity(m) for m in model.members],
            settings=ProjectSettings.from_dict(model.settings or {}, model.key),
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Project) -> ProjectModel:
        """Convert domain entity to ORM model."""
        return ProjectModel(
            id=entity.id,
            name=entity.name,
            key=entity.key,
            description=entity.description,
            status=entity.status.value,
            owner_id=entity.owner_id,
            settings=entity.settings.to_dict() if entity.settings else {},
            task_counter=0,
            version=entity.version,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    def _member_to_entity(self, model: ProjectMemberModel) -> ProjectMember:
        """Convert member ORM model to domain entity."""
        return ProjectMember(
            user_id=model.user_id,
            role=_ROLE_TO_ENUM[model.role],
            joined_at=model.joined_at,
            invited_by=model.invited_by,
        )

    def _member_to_model(self, project_id: UUID, entity: ProjectMember) -> ProjectMemberModel:
        """Convert member domain entity to ORM model."""
        return ProjectMemberModel(
            project_id=project_id,
            user_id=entity.user_id,
            role=_ENUM_TO_ROLE[entity.role],
            joined_at=entity.joined_at,
            invited_by=entity.invited_by,
        )
