"""
File attachment API endpoints.

- GET /api/files/list/{task_id}
- GET /api/files/download/{task_id}/{filename}
- GET /api/files/view/{task_id}/{filename}
- DELETE /api/files/delete/{task_id}/{filename}
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from database import get_db
import schemas
from attachments import gatekeeper
from auth.dependencies import get_identity
from auth.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/list/{task_id}", response_model=schemas.AttachmentListResponse)
def list_task_files(
    task_id: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """List all attachments for a task, with download and view links."""
    logger.debug(f"User {identity.user_id} listing attachments of task {task_id}")
    attachments = gatekeeper.list_attachments(db, identity, task_id)

    items = [
        schemas.AttachmentLink(
            filename=att.filename,
            original_name=att.original_name,
            size=att.size,
            mimetype=att.mimetype,
            uploaded_at=att.uploaded_at,
            download_url=f"/api/files/download/{task_id}/{att.filename}",
            view_url=f"/api/files/view/{task_id}/{att.filename}",
        )
        for att in attachments
    ]
    return {"data": {"task_id": task_id, "attachments": items}}


@router.get("/download/{task_id}/{filename}")
def download_file(
    task_id: str,
    filename: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Download a task attachment."""
    logger.debug(f"User {identity.user_id} downloading {filename} from task {task_id}")
    resolved = gatekeeper.resolve_download(db, identity, task_id, filename)
    return FileResponse(
        resolved.path,
        media_type=resolved.mimetype,
        filename=resolved.attachment.original_name,
        headers={"Cache-Control": "private, max-age=0"},
    )


@router.get("/view/{task_id}/{filename}")
def view_file(
    task_id: str,
    filename: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Serve a task attachment for inline display in the browser."""
    logger.debug(f"User {identity.user_id} viewing {filename} from task {task_id}")
    resolved = gatekeeper.resolve_download(db, identity, task_id, filename)
    return FileResponse(
        resolved.path,
        media_type=resolved.mimetype,
        filename=resolved.attachment.original_name,
        content_disposition_type="inline",
    )


@router.delete("/delete/{task_id}/{filename}", response_model=schemas.MessageResponse)
def delete_file(
    task_id: str,
    filename: str,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Delete a task attachment (task creator or admin only)."""
    logger.debug(f"User {identity.user_id} deleting {filename} from task {task_id}")
    gatekeeper.delete_attachment(db, identity, task_id, filename)
    return {"message": "Attachment deleted successfully"}
