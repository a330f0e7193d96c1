"""
Filesystem storage for task attachments.

Uploaded files are streamed to ``UPLOAD_DIR`` under a UUID filename that is
unique across all tasks. The database holds the metadata; this module only
owns the bytes.
"""

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from fastapi import HTTPException, UploadFile, status

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "uploads/tasks"))

try:
    MAX_FILE_SIZE = int(os.environ.get("MAX_FILE_SIZE", str(10 * 1024 * 1024)))  # 10MB
except ValueError:
    logger.warning("⚠️  Invalid MAX_FILE_SIZE value in environment. Using default of 10MB.")
    MAX_FILE_SIZE = 10 * 1024 * 1024

MAX_FILES_PER_REQUEST = 3
CHUNK_SIZE = 1024 * 1024  # 1MB

ALLOWED_EXTENSIONS = {
    ".pdf", ".txt", ".md", ".doc", ".docx",  # Documents
    ".png", ".jpg", ".jpeg", ".gif", ".webp",  # Images (no .svg: inline XSS)
    ".json", ".xml", ".csv", ".xlsx",  # Data files
    ".zip",
}
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "text/plain", "text/markdown",
    "application/msword", "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "image/png", "image/jpeg", "image/gif", "image/webp",
    "application/json", "application/xml", "text/xml", "text/csv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/zip",
}


@dataclass
class StoredFile:
    filename: str
    original_name: str
    size: int
    mimetype: str


def resolve_path(filename: str) -> Path:
    """Map a stored filename to its location, refusing anything outside UPLOAD_DIR."""
    path = (UPLOAD_DIR / filename).resolve()
    if path.parent != UPLOAD_DIR.resolve():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid filename")
    return path


def validate_file_upload(file: UploadFile) -> None:
    """Validate file extension and MIME type."""
    file_ext = Path(file.filename or "").suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type not allowed. Allowed extensions: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    # Many clients send octet-stream for binary files, so the extension decides
    if file.content_type not in ALLOWED_MIME_TYPES and file.content_type != "application/octet-stream":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"MIME type not allowed: {file.content_type}",
        )


def save_upload_file(file: UploadFile) -> StoredFile:
    """
    Save an uploaded file using chunked streaming.

    Reads the file in 1MB chunks, validating size incrementally, and removes
    the partial file if the limit is exceeded or the write fails.
    """
    validate_file_upload(file)
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

    file_ext = Path(file.filename).suffix.lower()
    unique_filename = f"{uuid.uuid4()}{file_ext}"
    filepath = UPLOAD_DIR / unique_filename
    total_size = 0

    try:
        with open(filepath, "wb") as f:
            while True:
                chunk = file.file.read(CHUNK_SIZE)
                if not chunk:
                    break

                total_size += len(chunk)
                if total_size > MAX_FILE_SIZE:
                    raise HTTPException(
                        status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                        detail=f"File too large. Maximum size: {MAX_FILE_SIZE / (1024 * 1024):.0f}MB",
                    )

                f.write(chunk)
    except HTTPException:
        filepath.unlink(missing_ok=True)
        raise
    except OSError as e:
        filepath.unlink(missing_ok=True)
        logger.error(f"Failed to save file {file.filename}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save file")

    logger.debug(f"Stored upload {file.filename} as {unique_filename} ({total_size} bytes)")
    return StoredFile(
        filename=unique_filename,
        original_name=file.filename,
        size=total_size,
        mimetype=file.content_type or "application/octet-stream",
    )


def save_upload_files(files: Optional[List[UploadFile]]) -> List[StoredFile]:
    """
    Store every uploaded file of a request.

    If any file fails validation, the files already written by this call are
    removed before the error propagates.
    """
    files = [f for f in (files or []) if f.filename]
    if len(files) > MAX_FILES_PER_REQUEST:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files. Maximum {MAX_FILES_PER_REQUEST} attachments per request",
        )

    stored: List[StoredFile] = []
    try:
        for file in files:
            stored.append(save_upload_file(file))
    except HTTPException:
        remove_files([s.filename for s in stored])
        raise
    return stored


def remove_files(filenames: List[str]) -> None:
    """
    Unlink stored files.

    Called after the owning database change is committed, so a failure here
    leaves an orphaned file rather than a dangling reference; it is logged and
    not raised.
    """
    for filename in filenames:
        try:
            path = resolve_path(filename)
            if path.exists():
                path.unlink()
                logger.debug(f"Deleted file from disk: {path}")
        except (OSError, HTTPException) as e:
            logger.error(f"Failed to delete file {filename} from disk: {e}")
