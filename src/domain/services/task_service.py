"""Task service layer with business logic."""

from collections.abc import Callable, Iterable, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from core.deadline import deadline
from core.exceptions import (
    CircularReferenceError,
    InsufficientPermissionsError,
    NotAMemberError,
    ProjectNotFoundError,
    TaskConflictError,
    TaskNotFoundError,
    ValidationError,
)
from domain.entities.event import DomainEvent, EventKind
from domain.entities.project import Project, ProjectRole, has_permission
from domain.entities.task import Comment, Task, TaskPriority, TaskStatus
from domain.repositories.unit_of_work import IUnitOfWork
from domain.services.event_publisher import EventPublisher

logger = structlog.get_logger()

IMMUTABLE_FIELDS = frozenset({"id", "reporter_id", "project_id"})
SYSTEM_FIELDS = frozenset({"version", "number", "created_at", "updated_at", "deleted_at"})
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "assignee_id",
        "status",
        "priority",
        "due_date",
        "estimated_hours",
        "labels",
        "parent_id",
        "attachments",
        "watchers",
    }
)

# Snapshot keys that never count as a user-visible change
_DIFF_IGNORED = frozenset({"version", "updated_at"})

EXCERPT_LENGTH = 140


class TaskService:
    """Service layer for Task business logic.

    Every mutation stages its events in the same unit of work as the state
    change and publishes them after commit, so a failed operation emits
    nothing.
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

    async def get_task(self, task_id: UUID, user_id: UUID, timeout: float | None = None) -> Task:
        """Get a live task. Requires Viewer+ role in its project."""
        async with self._deadline("get_task", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, user_id, ProjectRole.VIEWER)
            return task

    async def list_project_tasks(
        self,
        project_id: UUID,
        user_id: UUID,
        include_deleted: bool = False,
        timeout: float | None = None,
    ) -> list[Task]:
        """List a project's tasks ordered by number. Requires Viewer+ role."""
        async with self._deadline("list_project_tasks", timeout), self._uow_factory() as uow:
            project = await self._get_project(uow, project_id)
            self._require_role(project, user_id, ProjectRole.VIEWER)
            return await uow.tasks.list_for_project(project_id, include_deleted=include_deleted)

    async def list_comments(
        self, task_id: UUID, user_id: UUID, timeout: float | None = None
    ) -> list[Comment]:
        """List a task's comments, oldest first. Requires Viewer+ role."""
        async with self._deadline("list_comments", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, user_id, ProjectRole.VIEWER)
            return await uow.comments.list_for_task(task_id)

    # --- Mutations ---

    async def create_task(
        self,
        actor_id: UUID,
        project_id: UUID,
        title: str,
        description: str | None = None,
        assignee_id: UUID | None = None,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        due_date: datetime | None = None,
        estimated_hours: float | None = None,
        labels: Iterable[str] | None = None,
        parent_id: UUID | None = None,
        attachments: Iterable[str] | None = None,
        watchers: Iterable[UUID] | None = None,
        timeout: float | None = None,
    ) -> Task:
        """Create a task in TODO. Requires Member+ role in the project.

        Without an explicit assignee the project's default assignee is used.
        The reporter, the assignee and any given watchers all watch the task.
        """
        title = self._clean_title(title)
        task_priority = self._parse_enum(TaskPriority, priority, "priority")
        self._check_description(description)
        self._check_due_date(due_date)
        self._check_estimate(estimated_hours)
        task_labels = self._as_str_set(labels, "labels")
        task_attachments = self._as_str_set(attachments, "attachments")
        task_watchers = self._as_uuid_set(watchers, "watchers")

        async with self._deadline("create_task", timeout), self._uow_factory() as uow:
            project = await uow.projects.get(project_id)
            if not project:
                raise ValidationError(
                    f"Project not found: {project_id}",
                    details={"field": "project_id", "project_id": str(project_id)},
                )
            if not project.is_active:
                raise ValidationError(
                    "Tasks can only be created in active projects",
                    details={"project_id": str(project_id), "status": project.status.value},
                )
            self._require_role(project, actor_id, ProjectRole.MEMBER)

            if assignee_id is None and project.settings:
                assignee_id = project.settings.default_assignee_id
            if assignee_id is not None:
                self._require_assignable(project, assignee_id)

            if parent_id is not None:
                await self._validate_parent(uow, project_id, parent_id)

            number = await uow.projects.next_task_number(project_id)
            task = Task(
                project_id=project_id,
                reporter_id=actor_id,
                title=title,
                number=number,
                description=description,
                assignee_id=assignee_id,
                priority=task_priority,
                due_date=due_date,
                estimated_hours=estimated_hours,
                labels=task_labels,
                parent_id=parent_id,
                attachments=task_attachments,
                watchers=task_watchers,
            )
            if assignee_id is not None:
                task.watchers.add(assignee_id)

            created = await uow.tasks.create(task)
            events = [
                self._event(
                    EventKind.TASK_CREATED, created, actor_id, project, task=created.snapshot()
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "task_created",
            task_id=str(created.id),
            project_id=str(project_id),
            task_ref=self._task_ref(project, created),
            actor_id=str(actor_id),
        )
        await self._flush(events)
        return created

    async def update_task(
        self,
        task_id: UUID,
        patch: Mapping[str, Any],
        actor_id: UUID,
        expected_version: int | None = None,
        timeout: float | None = None,
    ) -> Task:
        """Apply a partial update. Requires Member+ role in the task's project.

        ``id``, ``reporter_id`` and ``project_id`` are immutable; system fields
        and unknown fields are rejected too. A status change must follow the
        state machine. Passing ``expected_version`` turns a stale read into
        a TaskConflictError; the write itself is always conditional on the
        version read here.
        """
        self._validate_patch(patch)

        async with self._deadline("update_task", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, actor_id, ProjectRole.MEMBER)

            read_version = task.version
            if expected_version is not None and expected_version != read_version:
                raise TaskConflictError(str(task_id), expected_version)

            before = task.snapshot()
            old_status = task.status
            old_assignee = task.assignee_id

            await self._apply_patch(uow, project, task, patch)

            changes = self._diff(before, task.snapshot())
            if not changes:
                return task

            task.touch()
            updated = await uow.tasks.update(task, expected_version=read_version)

            snapshot = updated.snapshot()
            update_payload: dict[str, Any] = {"task": snapshot, "changes": changes}
            if updated.assignee_id != old_assignee and updated.assignee_id is not None:
                update_payload["assignment"] = {
                    "assignee_id": str(updated.assignee_id),
                    "previous_assignee_id": str(old_assignee) if old_assignee else None,
                }
            events = [
                self._event(EventKind.TASK_UPDATED, updated, actor_id, project, **update_payload)
            ]
            if updated.status != old_status:
                events.append(
                    self._event(
                        EventKind.TASK_STATUS_CHANGED,
                        updated,
                        actor_id,
                        project,
                        task=snapshot,
                        old_status=old_status.value,
                        new_status=updated.status.value,
                    )
                )
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "task_updated",
            task_id=str(task_id),
            fields=sorted(changes),
            version=updated.version,
            actor_id=str(actor_id),
        )
        await self._flush(events)
        return updated

    async def assign(
        self,
        task_id: UUID,
        assignee_id: UUID,
        actor_id: UUID,
        timeout: float | None = None,
    ) -> Task:
        """Assign a task to a project member and make them a watcher.

        Re-assigning the current assignee is a no-op and emits nothing.
        """
        async with self._deadline("assign_task", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, actor_id, ProjectRole.MEMBER)
            self._require_assignable(project, assignee_id)

            if task.assignee_id == assignee_id:
                return task

            read_version = task.version
            previous = task.assignee_id
            task.assign(assignee_id)
            updated = await uow.tasks.update(task, expected_version=read_version)

            events = [
                self._event(
                    EventKind.TASK_UPDATED,
                    updated,
                    actor_id,
                    project,
                    task=updated.snapshot(),
                    changes={
                        "assignee_id": {
                            "old": str(previous) if previous else None,
                            "new": str(assignee_id),
                        }
                    },
                    assignment={
                        "assignee_id": str(assignee_id),
                        "previous_assignee_id": str(previous) if previous else None,
                    },
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info(
            "task_assigned",
            task_id=str(task_id),
            assignee_id=str(assignee_id),
            actor_id=str(actor_id),
        )
        await self._flush(events)
        return updated

    async def add_comment(
        self,
        task_id: UUID,
        author_id: UUID,
        content: str,
        timeout: float | None = None,
    ) -> Comment:
        """Comment on a task. Requires Member+ role."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment content must not be empty", details={"field": "content"})

        async with self._deadline("add_comment", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, author_id, ProjectRole.MEMBER)

            comment = await uow.comments.create(
                Comment(task_id=task_id, author_id=author_id, content=content)
            )
            events = [
                self._event(
                    EventKind.TASK_COMMENTED,
                    task,
                    author_id,
                    project,
                    task=task.snapshot(),
                    comment_id=str(comment.id),
                    author_id=str(author_id),
                    excerpt=content[:EXCERPT_LENGTH],
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info("task_commented", task_id=str(task_id), comment_id=str(comment.id))
        await self._flush(events)
        return comment

    async def delete_task(
        self, task_id: UUID, actor_id: UUID, timeout: float | None = None
    ) -> None:
        """Soft-delete a task. Requires Member+ role."""
        async with self._deadline("delete_task", timeout), self._uow_factory() as uow:
            task = await self._get_live_task(uow, task_id)
            project = await self._get_project(uow, task.project_id)
            self._require_role(project, actor_id, ProjectRole.MEMBER)

            read_version = task.version
            task.soft_delete()
            deleted = await uow.tasks.update(task, expected_version=read_version)

            events = [
                self._event(
                    EventKind.TASK_DELETED, deleted, actor_id, project, task=deleted.snapshot()
                )
            ]
            await self._stage(uow, events)
            await uow.commit()

        logger.info("task_deleted", task_id=str(task_id), actor_id=str(actor_id))
        await self._flush(events)

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

    async def _apply_patch(
        self, uow: IUnitOfWork, project: Project, task: Task, patch: Mapping[str, Any]
    ) -> None:
        if "status" in patch:
            new_status = self._parse_enum(TaskStatus, patch["status"], "status")
            if new_status != task.status:
                task.transition_to(new_status)

        if "title" in patch:
            task.title = self._clean_title(patch["title"])
        if "description" in patch:
            self._check_description(patch["description"])
            task.description = patch["description"]
        if "priority" in patch:
            task.priority = self._parse_enum(TaskPriority, patch["priority"], "priority")
        if "due_date" in patch:
            self._check_due_date(patch["due_date"])
            task.due_date = patch["due_date"]
        if "estimated_hours" in patch:
            self._check_estimate(patch["estimated_hours"])
            task.estimated_hours = patch["estimated_hours"]
        if "labels" in patch:
            task.labels = self._as_str_set(patch["labels"], "labels")
        if "attachments" in patch:
            task.attachments = self._as_str_set(patch["attachments"], "attachments")
        if "watchers" in patch:
            task.watchers = self._as_uuid_set(patch["watchers"], "watchers")
            task.watchers.add(task.reporter_id)
            if task.assignee_id:
                task.watchers.add(task.assignee_id)

        if "parent_id" in patch:
            parent_id = self._as_uuid(patch["parent_id"], "parent_id")
            if parent_id != task.parent_id:
                if parent_id is not None:
                    await self._validate_parent(uow, task.project_id, parent_id)
                    if await self._would_create_cycle(uow, task.id, parent_id):
                        raise CircularReferenceError("Cannot move task under its own descendant")
                task.parent_id = parent_id

        if "assignee_id" in patch:
            assignee_id = self._as_uuid(patch["assignee_id"], "assignee_id")
            if assignee_id != task.assignee_id:
                if assignee_id is None:
                    task.assignee_id = None
                else:
                    self._require_assignable(project, assignee_id)
                    task.assign(assignee_id)

    @staticmethod
    def _validate_patch(patch: Mapping[str, Any]) -> None:
        immutable = sorted(IMMUTABLE_FIELDS.intersection(patch))
        if immutable:
            raise ValidationError(
                f"Fields are immutable: {', '.join(immutable)}",
                details={"fields": immutable},
            )
        system = sorted(SYSTEM_FIELDS.intersection(patch))
        if system:
            raise ValidationError(
                f"Fields are managed by the system: {', '.join(system)}",
                details={"fields": system},
            )
        unknown = sorted(set(patch) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown fields: {', '.join(unknown)}",
                details={"fields": unknown},
            )

    @staticmethod
    def _diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
        return {
            key: {"old": before.get(key), "new": value}
            for key, value in after.items()
            if key not in _DIFF_IGNORED and before.get(key) != value
        }

    async def _get_live_task(self, uow: IUnitOfWork, task_id: UUID) -> Task:
        task = await uow.tasks.get(task_id)
        if not task or task.is_deleted:
            raise TaskNotFoundError(str(task_id))
        return task

    @staticmethod
    async def _get_project(uow: IUnitOfWork, project_id: UUID) -> Project:
        project = await uow.projects.get(project_id)
        if not project:
            raise ProjectNotFoundError(str(project_id))
        return project

    async def _validate_parent(self, uow: IUnitOfWork, project_id: UUID, parent_id: UUID) -> None:
        """A parent must be a live task of the same project."""
        parent = await uow.tasks.get(parent_id)
        if not parent or parent.is_deleted:
            raise TaskNotFoundError(str(parent_id))
        if parent.project_id != project_id:
            raise ValidationError(
                "Parent task must belong to the same project",
                details={"parent_id": str(parent_id), "project_id": str(project_id)},
            )

    async def _would_create_cycle(
        self, uow: IUnitOfWork, task_id: UUID, new_parent_id: UUID
    ) -> bool:
        """Check if moving task under new_parent would make it its own ancestor."""
        current_id: UUID | None = new_parent_id
        seen: set[UUID] = set()

        while current_id and current_id not in seen:
            if current_id == task_id:
                return True
            seen.add(current_id)

            current = await uow.tasks.get(current_id)
            if not current:
                break

            current_id = current.parent_id

        return False

    @staticmethod
    def _require_role(project: Project, user_id: UUID, required_role: ProjectRole) -> None:
        """Verify the user has at least the required role in the project."""
        role = project.role_of(user_id)
        if role is None:
            raise NotAMemberError(str(project.id))
        if not has_permission(role, required_role):
            raise InsufficientPermissionsError(required_role.name.lower())

    @staticmethod
    def _require_assignable(project: Project, assignee_id: UUID) -> None:
        if project.get_member(assignee_id) is None:
            raise ValidationError(
                "Assignee must be a member of the project",
                details={"assignee_id": str(assignee_id)},
            )

    @staticmethod
    def _clean_title(title: Any) -> str:
        if title is not None and not isinstance(title, str):
            raise ValidationError("Title must be a string", details={"field": "title"})
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValidationError("Title must not be empty", details={"field": "title"})
        return cleaned

    @staticmethod
    def _check_description(description: Any) -> None:
        if description is not None and not isinstance(description, str):
            raise ValidationError(
                "Description must be a string", details={"field": "description"}
            )

    @staticmethod
    def _check_due_date(due_date: Any) -> None:
        if due_date is not None and not isinstance(due_date, datetime):
            raise ValidationError("Due date must be a datetime", details={"field": "due_date"})

    @staticmethod
    def _check_estimate(estimated_hours: Any) -> None:
        if estimated_hours is None:
            return
        # bool is an int subclass
        if isinstance(estimated_hours, bool) or not isinstance(estimated_hours, (int, float)):
            raise ValidationError(
                "Estimated hours must be a number",
                details={"field": "estimated_hours"},
            )
        if estimated_hours < 0:
            raise ValidationError(
                "Estimated hours must not be negative",
                details={"field": "estimated_hours"},
            )

    @staticmethod
    def _as_str_set(values: Any, field_name: str) -> set[str]:
        """A collection of strings; a bare string is rejected, not split into characters."""
        if values is None:
            return set()
        if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
            raise ValidationError(
                f"{field_name} must be a list of strings", details={"field": field_name}
            )
        items = list(values)
        if not all(isinstance(item, str) for item in items):
            raise ValidationError(
                f"{field_name} must be a list of strings", details={"field": field_name}
            )
        return set(items)

    @classmethod
    def _as_uuid_set(cls, values: Any, field_name: str) -> set[UUID]:
        if values is None:
            return set()
        if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
            raise ValidationError(
                f"{field_name} must be a list of user ids", details={"field": field_name}
            )
        ids = {cls._as_uuid(value, field_name) for value in values}
        if None in ids:
            raise ValidationError(
                f"{field_name} must not contain null", details={"field": field_name}
            )
        return {user_id for user_id in ids if user_id is not None}

    @staticmethod
    def _parse_enum(enum_cls: Any, value: Any, field_name: str) -> Any:
        try:
            return enum_cls(value)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid {field_name}: {value}",
                details={"field": field_name, "allowed": [m.value for m in enum_cls]},
            ) from exc

    @staticmethod
    def _as_uuid(value: Any, field_name: str) -> UUID | None:
        if value is None or isinstance(value, UUID):
            return value
        try:
            return UUID(str(value))
        except ValueError as exc:
            raise ValidationError(
                f"Invalid {field_name}: {value}", details={"field": field_name}
            ) from exc

    @staticmethod
    def _task_ref(project: Project, task: Task) -> str:
        prefix = project.settings.task_prefix if project.settings else project.key
        return f"{prefix}-{task.number}"

    def _event(
        self,
        kind: EventKind,
        task: Task,
        actor_id: UUID,
        project: Project,
        /,
        **payload: Any,
    ) -> DomainEvent:
        return DomainEvent(
            kind=kind,
            entity_type="task",
            entity_id=task.id,
            actor_id=actor_id,
            project_id=project.id,
            payload={"task_ref": self._task_ref(project, task), **payload},
        )
