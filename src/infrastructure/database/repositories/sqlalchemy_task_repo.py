"""SQLAlchemy implementation of Task and Comment repositories."""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import TaskConflictError
from domain.entities.task import Comment, Task, TaskPriority, TaskStatus
from infrastructure.database.models import CommentModel, TaskModel


class SQLAlchemyTaskRepository:
    """SQLAlchemy implementation of ITaskRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, id: UUID) -> Task | None:
        """Get a task by ID (including soft-deleted tasks)."""
        stmt = (
            select(TaskModel)
            .where(TaskModel.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_for_project(self, project_id: UUID, include_deleted: bool = False) -> list[Task]:
        """Get all tasks of a project ordered by number."""
        stmt = select(TaskModel).where(TaskModel.project_id == project_id)
        if not include_deleted:
            stmt = stmt.where(TaskModel.deleted_at.is_(None))
        stmt = stmt.order_by(TaskModel.number)

        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars()]

    async def create(self, task: Task) -> Task:
        """Create a new task."""
        model = self._to_model(task)
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return self._to_entity(model)

    async def update(self, task: Task, expected_version: int) -> Task:
        """Write the task if its stored version is still ``expected_version``."""
        new_version = expected_version + 1
        stmt = (
            update(TaskModel)
            .where(TaskModel.id == task.id, TaskModel.version == expected_version)
            .values(
                title=task.title,
                description=task.description,
                assignee_id=task.assignee_id,
                status=task.status.value,
                priority=task.priority.value,
                due_date=task.due_date,
                estimated_hours=task.estimated_hours,
                labels=sorted(task.labels),
                parent_id=task.parent_id,
                attachments=sorted(task.attachments),
                watchers=sorted(str(w) for w in task.watchers),
                version=new_version,
                updated_at=task.updated_at,
                deleted_at=task.deleted_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:  # type: ignore[attr-defined]
            raise TaskConflictError(str(task.id), expected_version)

        task.version = new_version
        return task

    def _to_entity(self, model: TaskModel) -> Task:
        """Convert ORM model to domain entity."""
        return Task(
            id=model.id,
            project_id=model.project_id,
            number=model.number,
            title=model.title,
            description=model.description,
            assignee_id=model.assignee_id,
            reporter_id=model.reporter_id,
            status=TaskStatus(model.status),
            priority=TaskPriority(model.priority),
            due_date=model.due_date,
            estimated_hours=model.estimated_hours,
            labels=set(model.labels or []),
            parent_id=model.parent_id,
            attachments=set(model.attachments or []),
            watchers={UUID(w) for w in model.watchers or []},
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
            deleted_at=model.deleted_at,
        )

    def _to_model(self, entity: Task) -> TaskModel:
        """Convert domain entity to ORM model."""
        return TaskModel(
            id=entity.id,
            project_id=entity.project_id,
            number=entity.number,
            title=entity.title,
            description=entity.description,
            assignee_id=entity.assignee_id,
            reporter_id=entity.reporter_id,
            status=entity.status.value,
            priority=entity.priority.value,
            due_date=entity.due_date,
            estimated_hours=entity.estimated_hours,
            labels=sorted(entity.labels),
            parent_id=entity.parent_id,
            attachments=sorted(entity.attachments),
            watchers=sorted(str(w) for w in entity.watchers),
            version=entity.version,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            deleted_at=entity.deleted_at,
        )


class SQLAlchemyCommentRepository:
    """SQLAlchemy implementation of ICommentRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, comment: Comment) -> Comment:
        """Append a comment."""
        model = CommentModel(
            id=comment.id,
            task_id=comment.task_id,
            author_id=comment.author_id,
            content=comment.content,
            created_at=comment.created_at,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def list_for_task(self, task_id: UUID) -> list[Comment]:
        """Get all comments of a task, oldest first."""
        stmt = (
            select(CommentModel)
            .where(CommentModel.task_id == task_id)
            .order_by(CommentModel.created_at, CommentModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(model) for model in result.scalars()]

    def _to_entity(self, model: CommentModel) -> Comment:
        """Convert ORM model to domain entity."""
        return Comment(
            id=model.id,
            task_id=model.task_id,
            author_id=model.author_id,
            content=model.content,
            created_at=model.created_at,
        )
