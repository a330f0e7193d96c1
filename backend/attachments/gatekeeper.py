"""
Attachment access control.

Every read or delete of a task attachment goes through this module, which
applies the task permission predicates before resolving the file:

- read (list/download/view): task must exist, caller must pass can_view
- delete: task must exist, caller must be admin or the task creator

Checks run in a fixed order: task existence (404), permission (403),
attachment existence (404). A caller without access to a task therefore
learns nothing about its attachments.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

import models
from attachments import storage
from auth.identity import Identity
from auth.permissions import get_authorized_task

logger = logging.getLogger(__name__)


@dataclass
class ResolvedAttachment:
    attachment: models.TaskAttachment
    path: Path

    @property
    def mimetype(self) -> str:
        return self.attachment.mimetype or "application/octet-stream"

    @property
    def size(self) -> int:
        return self.attachment.size


def _find_attachment(task: models.Task, filename: str) -> models.TaskAttachment:
    for attachment in task.attachments:
        if attachment.filename == filename:
            return attachment
    logger.info(f"Attachment {filename} not found in task {task.id}")
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found in task")


def list_attachments(db: Session, identity: Identity, task_id: str) -> List[models.TaskAttachment]:
    """Return a task's attachments, gated by the view rule."""
    task = get_authorized_task(db, identity, task_id, "read_attachment")
    return list(task.attachments)


def resolve_download(db: Session, identity: Identity, task_id: str, filename: str) -> ResolvedAttachment:
    """
    Authorize a download/view and locate the bytes.

    Raises:
        HTTPException: 404 if task, attachment record, or stored file is missing
        HTTPException: 403 if the identity may not view the task
    """
    task = get_authorized_task(db, identity, task_id, "read_attachment")
    attachment = _find_attachment(task, filename)

    path = storage.resolve_path(attachment.filename)
    if not path.is_file():
        logger.error(f"Attachment {filename} of task {task_id} is missing on disk at {path}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found on server")

    logger.info(f"Attachment {filename} of task {task_id} released to user {identity.user_id}")
    return ResolvedAttachment(attachment=attachment, path=path)


def delete_attachment(db: Session, identity: Identity, task_id: str, filename: str) -> None:
    """
    Remove one attachment from a task.

    The attachment row is deleted and committed before the file is unlinked.

    Raises:
        HTTPException: 404 if task or attachment is missing
        HTTPException: 403 unless the identity is admin or the task creator
    """
    task = get_authorized_task(db, identity, task_id, "delete_attachment")
    attachment = _find_attachment(task, filename)

    task.attachments.remove(attachment)
    db.commit()

    storage.remove_files([filename])
    logger.critical(f"Attachment {filename} deleted from task {task_id} by user {identity.user_id}")
