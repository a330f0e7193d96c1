"""
Task-level permission checking utilities.

This module decides whether an identity may view, edit or delete a task, and
whether it may delete the task's attachments. The predicates are pure: they
read the identity and the task's ``assigned_to_id`` / ``created_by_id``
references and never touch the database.

Rules:
1. Admins may do everything.
2. The assignee and the creator may view and edit the task.
3. Only the creator may delete the task or its attachments.
"""

import logging
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from auth.identity import Identity
import models

logger = logging.getLogger(__name__)

TASK_NOT_FOUND = "Task not found"

DENIAL_MESSAGES = {
    "view": "Access denied. You do not have permission to view this task.",
    "edit": "Access denied. You do not have permission to edit this task.",
    "delete": "Access denied. You do not have permission to delete this task.",
    "read_attachment": "Access denied",
    "delete_attachment": "Access denied. Only task creator or admin can delete attachments.",
}


def _is_participant(identity: Identity, task: Any) -> bool:
    return identity.is_user(getattr(task, "assigned_to_id", None)) or identity.is_user(
        getattr(task, "created_by_id", None)
    )


def _is_creator(identity: Identity, task: Any) -> bool:
    return identity.is_user(getattr(task, "created_by_id", None))


def can_view(identity: Identity, task: Any) -> bool:
    """
    Check whether an identity may view a task.

    Example:
        >>> can_view(Identity("u1", UserRole.user), task)  # task.assigned_to_id == "u1"
        True
    """
    return identity.is_admin or _is_participant(identity, task)


def can_edit(identity: Identity, task: Any) -> bool:
    """Assignee and creator have equal edit rights; same rule set as viewing."""
    return identity.is_admin or _is_participant(identity, task)


def can_delete(identity: Identity, task: Any) -> bool:
    return identity.is_admin or _is_creator(identity, task)


def can_delete_attachment(identity: Identity, task: Any) -> bool:
    """
    Check whether an identity may delete a task's attachments.

    Narrower than can_edit: an assignee who is not the creator may change the
    task body but may not remove its files.
    """
    return identity.is_admin or _is_creator(identity, task)


_CHECKS = {
    "view": can_view,
    "edit": can_edit,
    "delete": can_delete,
    "read_attachment": can_view,
    "delete_attachment": can_delete_attachment,
}


def require_task_permission(identity: Identity, task: Any, action: str) -> None:
    """
    Require an identity to pass the check for ``action`` on a task, or raise.

    Args:
        identity: Identity Context of the caller
        task: Task row (must already be known to exist)
        action: One of 'view', 'edit', 'delete', 'read_attachment', 'delete_attachment'

    Raises:
        HTTPException: 403 with an action-specific message if denied
    """
    check = _CHECKS[action]
    if not check(identity, task):
        logger.info(
            f"User {identity.user_id} (role: {identity.role.value}) denied '{action}' on task {task.id}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=DENIAL_MESSAGES[action],
        )

    logger.debug(f"Permission '{action}' granted for user {identity.user_id} on task {task.id}")


def get_task_or_404(db: Session, task_id: str) -> models.Task:
    """
    Load a task or raise 404.

    Existence is checked before any permission check, so a missing task is
    always "not found" regardless of the caller's role.
    """
    task = db.query(models.Task).filter(models.Task.id == task_id).first()
    if task is None:
        logger.info(f"Task {task_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TASK_NOT_FOUND)
    return task


def get_authorized_task(db: Session, identity: Identity, task_id: str, action: str) -> models.Task:
    """
    Load a task and require ``action`` on it.

    Raises:
        HTTPException: 404 if the task does not exist
        HTTPException: 403 if the identity fails the check

    Example:
        >>> task = get_authorized_task(db, identity, task_id, "edit")
        >>> # If we get here, identity is admin, assignee or creator
    """
    task = get_task_or_404(db, task_id)
    require_task_permission(identity, task, action)
    return task
