"""
Task API endpoints.

Listing is scoped by the task filters; single-task endpoints load the task
first (404) and then apply the permission predicates (403).
"""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Set, Type

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
import models
import schemas
from time_utils import utc_now
from attachments import storage
from auth.dependencies import get_identity
from auth.identity import Identity
from auth.permissions import get_authorized_task
from tasks.filters import query_visible_tasks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000

_datetime_adapter = TypeAdapter(datetime)


def task_list_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    task_status: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    sort_by: schemas.TaskSortField = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
) -> schemas.TaskListParams:
    """Collect the listing query parameters into TaskListParams."""
    try:
        return schemas.TaskListParams(
            page=page,
            limit=limit,
            search=search,
            status=task_status,
            priority=priority,
            assigned_to=assigned_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


async def submitted_form_fields(request: Request) -> Set[str]:
    """
    Names of the form fields present in the request body.

    FastAPI maps an empty form value to the parameter default, so a field
    sent as "" is otherwise indistinguishable from one that was left out.
    """
    form = await request.form()
    return set(form.keys())


def _parse_enum(enum_cls: Type[Enum], value: Optional[str], field: str):
    if value is None or not value.strip():
        return None
    try:
        return enum_cls(value.strip())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field}. Allowed values: {allowed}",
        )


def _parse_due_date(value: Optional[str]) -> Optional[datetime]:
    if value is None or not value.strip():
        return None
    try:
        return _datetime_adapter.validate_python(value.strip())
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid due date format")


def _parse_tags(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _check_length(value: Optional[str], field: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} cannot exceed {max_length} characters",
        )


def _require_assignee(db: Session, user_id: str) -> None:
    """The assignee must reference an existing user at create/update time."""
    exists = db.query(models.User.id).filter(models.User.id == user_id).first()
    if exists is None:
        logger.info(f"Assigned user {user_id} not found")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assigned user not found")


def _attachment_rows(stored: List[storage.StoredFile]) -> List[models.TaskAttachment]:
    return [
        models.TaskAttachment(
            filename=s.filename,
            original_name=s.original_name,
            size=s.size,
            mimetype=s.mimetype,
            uploaded_at=utc_now(),
        )
        for s in stored
    ]


def _commit_or_cleanup(db: Session, stored: List[storage.StoredFile], action: str) -> None:
    """Commit the session; on failure roll back and drop files written by this request."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        storage.remove_files([s.filename for s in stored])
        logger.error(f"Failed to {action}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to {action}")


@router.get("", response_model=schemas.TaskListResponse)
def list_tasks(
    params: schemas.TaskListParams = Depends(task_list_params),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """List tasks visible to the caller (admins see all tasks)."""
    logger.debug(f"User {identity.user_id} listing tasks with {params.model_dump()}")
    tasks, pagination = query_visible_tasks(db, identity, params)
    logger.info(f"list_tasks returned {len(tasks)} of {pagination.total} tasks for user {identity.user_id}")
    return {"data": {"tasks": tasks, "pagination": pagination}}


@router.post("", response_model=schemas.TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    title: str = Form(...),
    description: str = Form(""),
    task_status: Optional[str] = Form(None, alias="status"),
    priority: Optional[str] = Form(None),
    due_date: str = Form(..., alias="dueDate"),
    assigned_to: Optional[str] = Form(None, alias="assignedTo"),
    tags: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Create a task. The caller always becomes its creator."""
    logger.info(f"User {identity.user_id} creating task: {title}")

    title = title.strip()
    if not title:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Title is required")
    _check_length(title, "Title", MAX_TITLE_LENGTH)
    description = (description or "").strip()
    _check_length(description, "Description", MAX_DESCRIPTION_LENGTH)

    parsed_due_date = _parse_due_date(due_date)
    if parsed_due_date is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Due date is required")

    assigned_to = assigned_to.strip() if assigned_to and assigned_to.strip() else None
    if assigned_to is not None:
        _require_assignee(db, assigned_to)

    task = models.Task(
        title=title,
        description=description,
        status=_parse_enum(models.TaskStatus, task_status, "status") or models.TaskStatus.pending,
        priority=_parse_enum(models.TaskPriority, priority, "priority") or models.TaskPriority.medium,
        due_date=parsed_due_date,
        tags=_parse_tags(tags),
        assigned_to_id=assigned_to,
        created_by_id=identity.user_id,
    )

    stored = storage.save_upload_files(attachments)
    task.attachments = _attachment_rows(stored)

    db.add(task)
    _commit_or_cleanup(db, stored, "create task")
    db.refresh(task)

    logger.info(f"Task created: {task.id} by user: {identity.user_id} with {len(stored)} attachment(s)")
    return {"message": "Task created successfully", "data": {"task": task}}


@router.get("/{task_id}", response_model=schemas.TaskResponse)
def get_task(
    task_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Get a task by ID (admin, assignee or creator)."""
    logger.debug(f"User {identity.user_id} requesting task {task_id}")
    task = get_authorized_task(db, identity, task_id, "view")
    return {"data": {"task": task}}


@router.put("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    task_status: Optional[str] = Form(None, alias="status"),
    priority: Optional[str] = Form(None),
    due_date: Optional[str] = Form(None, alias="dueDate"),
    assigned_to: Optional[str] = Form(None, alias="assignedTo"),
    tags: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    present: Set[str] = Depends(submitted_form_fields),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """
    Update a task (admin, assignee or creator).

    Blank fields are left unchanged, except ``description`` and ``tags`` which
    are applied whenever present. Uploaded files are appended to the task's
    attachments.
    """
    logger.info(f"User {identity.user_id} updating task {task_id}")

    task = get_authorized_task(db, identity, task_id, "edit")

    update_data = {}
    if title and title.strip():
        _check_length(title.strip(), "Title", MAX_TITLE_LENGTH)
        update_data["title"] = title.strip()
    if "description" in present:
        description = (description or "").strip()
        _check_length(description, "Description", MAX_DESCRIPTION_LENGTH)
        update_data["description"] = description

    new_status = _parse_enum(models.TaskStatus, task_status, "status")
    if new_status is not None:
        update_data["status"] = new_status
    new_priority = _parse_enum(models.TaskPriority, priority, "priority")
    if new_priority is not None:
        update_data["priority"] = new_priority
    new_due_date = _parse_due_date(due_date)
    if new_due_date is not None:
        update_data["due_date"] = new_due_date

    if assigned_to and assigned_to.strip():
        _require_assignee(db, assigned_to.strip())
        update_data["assigned_to_id"] = assigned_to.strip()

    if "tags" in present:
        update_data["tags"] = _parse_tags(tags)

    stored = storage.save_upload_files(attachments)

    for key, value in update_data.items():
        setattr(task, key, value)
    task.attachments.extend(_attachment_rows(stored))
    task.updated_at = utc_now()

    _commit_or_cleanup(db, stored, "update task")
    db.refresh(task)

    logger.info(
        f"Task updated: {task_id} by user: {identity.user_id} "
        f"(fields: {sorted(update_data)}, new attachments: {len(stored)})"
    )
    return {"message": "Task updated successfully", "data": {"task": task}}


@router.delete("/{task_id}", response_model=schemas.MessageResponse)
def delete_task(
    task_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Delete a task and its attachments (admin or creator)."""
    logger.debug(f"User {identity.user_id} deleting task {task_id}")

    task = get_authorized_task(db, identity, task_id, "delete")
    filenames = [attachment.filename for attachment in task.attachments]

    db.delete(task)
    db.commit()

    storage.remove_files(filenames)
    logger.critical(f"Task {task_id} deleted by user {identity.user_id} ({len(filenames)} attachment(s) removed)")
    return {"message": "Task deleted successfully"}
