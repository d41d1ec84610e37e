"""Integration tests for the task and comment repositories against SQLite."""

from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from core.clock import utcnow
from core.exceptions import TaskConflictError
from domain.entities.project import Project, ProjectMember, ProjectRole
from domain.entities.task import Comment, Task, TaskPriority, TaskStatus
from infrastructure.database.sqlalchemy_uow import SQLAlchemyUnitOfWork


@pytest.fixture
async def project(uow_factory) -> Project:
    owner_id = uuid4()
    project = Project(
        name="Engineering",
        key="ENG",
        owner_id=owner_id,
        members=[ProjectMember(user_id=owner_id, role=ProjectRole.OWNER)],
    )
    async with uow_factory() as uow:
        created = await uow.projects.create(project)
        await uow.commit()
    return created


async def save_task(uow_factory, project: Project, number: int, **fields) -> Task:
    task = Task(
        project_id=project.id,
        reporter_id=project.owner_id,
        title=fields.pop("title", f"Task {number}"),
        number=number,
        **fields,
    )
    async with uow_factory() as uow:
        created = await uow.tasks.create(task)
        await uow.commit()
    return created


class TestTaskRepository:
    @pytest.mark.asyncio
    async def test_round_trip(self, uow_factory, project):
        assignee = uuid4()
        created = await save_task(
            uow_factory,
            project,
            1,
            title="Fix login",
            assignee_id=assignee,
            priority=TaskPriority.HIGH,
            labels={"backend", "auth"},
            attachments={"s3://logs/trace.txt"},
            watchers={assignee},
            due_date=utcnow() + timedelta(days=3),
            estimated_hours=2.5,
        )

        async with uow_factory() as uow:
            stored = await uow.tasks.get(created.id)

        assert stored is not None
        assert stored.title == "Fix login"
        assert stored.status == TaskStatus.TODO
        assert stored.priority == TaskPriority.HIGH
        assert stored.labels == {"backend", "auth"}
        assert stored.attachments == {"s3://logs/trace.txt"}
        assert stored.watchers == {assignee, project.owner_id}
        assert stored.estimated_hours == 2.5
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_number_unique_per_project(self, uow_factory, project):
        await save_task(uow_factory, project, 1)

        with pytest.raises(IntegrityError):
            await save_task(uow_factory, project, 1)

    @pytest.mark.asyncio
    async def test_conditional_update(self, uow_factory, project):
        created = await save_task(uow_factory, project, 1)

        async with uow_factory() as uow:
            task = await uow.tasks.get(created.id)
            task.transition_to(TaskStatus.IN_PROGRESS)
            updated = await uow.tasks.update(task, expected_version=1)
            await uow.commit()

        assert updated.version == 2
        async with uow_factory() as uow:
            stored = await uow.tasks.get(created.id)
        assert stored.status == TaskStatus.IN_PROGRESS
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, uow_factory, project):
        created = await save_task(uow_factory, project, 1)

        async with uow_factory() as uow:
            task = await uow.tasks.get(created.id)
            task.title = "Renamed"
            with pytest.raises(TaskConflictError) as exc_info:
                await uow.tasks.update(task, expected_version=5)

        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_concurrent_writers(self, uow_factory, session_factory, project):
        """Two writers read version 1; the slower one must not overwrite."""
        created = await save_task(uow_factory, project, 1)

        async with SQLAlchemyUnitOfWork(session_factory) as a, SQLAlchemyUnitOfWork(
            session_factory
        ) as b:
            mine = await a.tasks.get(created.id)
            theirs = await b.tasks.get(created.id)

            mine.title = "First writer"
            await a.tasks.update(mine, expected_version=1)
            await a.commit()

            theirs.title = "Second writer"
            with pytest.raises(TaskConflictError):
                await b.tasks.update(theirs, expected_version=1)

        async with uow_factory() as uow:
            stored = await uow.tasks.get(created.id)
        assert stored.title == "First writer"
        assert stored.version == 2

    @pytest.mark.asyncio
    async def test_list_hides_deleted(self, uow_factory, project):
        await save_task(uow_factory, project, 2)
        doomed = await save_task(uow_factory, project, 1)

        async with uow_factory() as uow:
            task = await uow.tasks.get(doomed.id)
            task.soft_delete()
            await uow.tasks.update(task, expected_version=1)
            await uow.commit()

        async with uow_factory() as uow:
            live = await uow.tasks.list_for_project(project.id)
            everything = await uow.tasks.list_for_project(project.id, include_deleted=True)
            deleted = await uow.tasks.get(doomed.id)

        assert [t.number for t in live] == [2]
        assert [t.number for t in everything] == [1, 2]
        assert deleted.is_deleted


class TestCommentRepository:
    @pytest.mark.asyncio
    async def test_comments_oldest_first(self, uow_factory, project):
        task = await save_task(uow_factory, project, 1)
        now = utcnow()

        async with uow_factory() as uow:
            await uow.comments.create(
                Comment(
                    task_id=task.id,
                    author_id=project.owner_id,
                    content="second",
                    created_at=now,
                )
            )
            await uow.comments.create(
                Comment(
                    task_id=task.id,
                    author_id=project.owner_id,
                    content="first",
                    created_at=now - timedelta(minutes=1),
                )
            )
            await uow.commit()

        async with uow_factory() as uow:
            comments = await uow.comments.list_for_task(task.id)
            none = await uow.comments.list_for_task(uuid4())

        assert [c.content for c in comments] == ["first", "second"]
        assert none == []
