"""Task API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from api.dependencies.auth import CurrentUser
from api.v1.dependencies import get_task_service
from api.v1.schemas.task import (
    CommentCreate,
    CommentDetailResponse,
    CommentListResponse,
    CommentResponse,
    TaskAssign,
    TaskCreate,
    TaskDetailResponse,
    TaskListResponse,
    TaskResponse,
    TaskUpdate,
)
from core.exceptions import ValidationError
from core.rate_limit import READ_LIMIT, WRITE_LIMIT, limiter
from domain.services.task_service import TaskService

# Tasks are created and listed under their project
project_tasks_router = APIRouter(prefix="/projects/{project_id}/tasks", tags=["tasks"])

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _parse_if_match(if_match: str | None) -> int | None:
    """``If-Match: 3`` or ``If-Match: "3"`` -> 3."""
    if if_match is None:
        return None
    raw = if_match.strip().removeprefix("W/").strip('"')
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(
            "If-Match must carry the task version",
            details={"header": "If-Match", "value": if_match},
        ) from exc


@project_tasks_router.post(
    "",
    response_model=TaskDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a task",
    responses={
        201: {"description": "Task created in TODO"},
        400: {"description": "Invalid field, assignee or parent"},
        403: {"description": "Member role required"},
    },
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def create_task(
    request: Request,
    project_id: UUID,
    body: TaskCreate,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> TaskDetailResponse:
    task = await service.create_task(
        actor_id=user.id,
        project_id=project_id,
        title=body.title,
        description=body.description,
        assignee_id=body.assignee_id,
        priority=body.priority,
        due_date=body.due_date,
        estimated_hours=body.estimated_hours,
        labels=body.labels,
        parent_id=body.parent_id,
        attachments=body.attachments,
        watchers=body.watchers,
    )
    return TaskDetailResponse(data=TaskResponse.from_entity(task))


@project_tasks_router.get("", response_model=TaskListResponse, summary="List project tasks")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def list_tasks(
    request: Request,
    project_id: UUID,
    user: CurrentUser,
    include_deleted: bool = Query(False, description="Include soft-deleted tasks"),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    """Tasks of a project ordered by number."""
    tasks = await service.list_project_tasks(project_id, user.id, include_deleted=include_deleted)
    return TaskListResponse(
        data=[TaskResponse.from_entity(t) for t in tasks],
        meta={"total": len(tasks)},
    )


@router.get(
    "/{task_id}",
    response_model=TaskDetailResponse,
    summary="Get a task",
    responses={404: {"description": "Task not found or deleted"}},
)
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def get_task(
    request: Request,
    response: Response,
    task_id: UUID,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> TaskDetailResponse:
    """The response carries the task version in an ETag for use with If-Match."""
    task = await service.get_task(task_id, user.id)
    response.headers["ETag"] = f'"{task.version}"'
    return TaskDetailResponse(data=TaskResponse.from_entity(task))


@router.patch(
    "/{task_id}",
    response_model=TaskDetailResponse,
    summary="Update a task",
    responses={
        400: {"description": "Immutable, system or unknown field"},
        409: {"description": "Invalid status transition, or stale If-Match version"},
    },
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def update_task(
    request: Request,
    response: Response,
    task_id: UUID,
    body: TaskUpdate,
    user: CurrentUser,
    if_match: Annotated[str | None, Header()] = None,
    service: TaskService = Depends(get_task_service),
) -> TaskDetailResponse:
    """Apply the fields present in the body. Status changes follow the state machine."""
    task = await service.update_task(
        task_id,
        body.to_patch(),
        actor_id=user.id,
        expected_version=_parse_if_match(if_match),
    )
    response.headers["ETag"] = f'"{task.version}"'
    return TaskDetailResponse(data=TaskResponse.from_entity(task))


@router.post("/{task_id}/assign", response_model=TaskDetailResponse, summary="Assign a task")
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def assign_task(
    request: Request,
    task_id: UUID,
    body: TaskAssign,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> TaskDetailResponse:
    """Assign to a project member; the assignee starts watching the task."""
    task = await service.assign(task_id, body.assignee_id, actor_id=user.id)
    return TaskDetailResponse(data=TaskResponse.from_entity(task))


@router.post(
    "/{task_id}/comments",
    response_model=CommentDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on a task",
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def add_comment(
    request: Request,
    task_id: UUID,
    body: CommentCreate,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> CommentDetailResponse:
    comment = await service.add_comment(task_id, user.id, body.content)
    return CommentDetailResponse(data=CommentResponse.model_validate(comment))


@router.get("/{task_id}/comments", response_model=CommentListResponse, summary="List comments")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def list_comments(
    request: Request,
    task_id: UUID,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> CommentListResponse:
    comments = await service.list_comments(task_id, user.id)
    return CommentListResponse(
        data=[CommentResponse.model_validate(c) for c in comments],
        meta={"total": len(comments)},
    )


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a task",
    responses={404: {"description": "Task not found or already deleted"}},
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def delete_task(
    request: Request,
    task_id: UUID,
    user: CurrentUser,
    service: TaskService = Depends(get_task_service),
) -> Response:
    """Soft delete. The task disappears from reads; watchers are notified."""
    await service.delete_task(task_id, user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
