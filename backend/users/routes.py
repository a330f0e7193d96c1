"""
User administration endpoints.

Listing is open to every authenticated user (non-admins need it to pick an
assignee); everything else is admin-only.
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from database import get_db
import models
import schemas
from auth.dependencies import get_current_admin, get_current_user
from auth.security import hash_password
from tasks.filters import escape_like

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _get_user_or_404(db: Session, user_id: str) -> models.User:
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _active_admin_count(db: Session) -> int:
    return db.query(models.User).filter(
        models.User.role == models.UserRole.admin.value,
        models.User.is_active == True  # noqa: E712
    ).count()


@router.get("")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    role: Optional[models.UserRole] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List users, sorted by first then last name.

    Admins see every account with full fields and may filter by role and
    isActive. Other callers see active accounts only, with the basic fields
    needed to pick an assignee.
    """
    is_admin = current_user.role == models.UserRole.admin.value
    query = db.query(models.User)

    if search and search.strip():
        pattern = f"%{escape_like(search.strip())}%"
        query = query.filter(or_(
            models.User.first_name.ilike(pattern, escape="\\"),
            models.User.last_name.ilike(pattern, escape="\\"),
            models.User.email.ilike(pattern, escape="\\"),
        ))

    if is_admin:
        if role is not None:
            query = query.filter(models.User.role == role.value)
        if is_active is not None:
            query = query.filter(models.User.is_active == is_active)
    else:
        query = query.filter(models.User.is_active == True)  # noqa: E712

    total = query.count()
    users = (
        query.order_by(models.User.first_name, models.User.last_name, models.User.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    schema = schemas.User if is_admin else schemas.UserBasic
    logger.info(f"Users fetched by {current_user.role}: {current_user.id} ({len(users)} of {total})")

    return {
        "success": True,
        "data": {
            "users": [schema.model_validate(u).model_dump(by_alias=True, mode="json") for u in users],
            "pagination": {
                "current": page,
                "pages": math.ceil(total / limit),
                "total": total,
                "limit": limit,
            },
        },
    }


@router.post("", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: schemas.UserCreate,
    current_user: models.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Create a new user (admin only)."""
    logger.debug(f"Admin {current_user.id} creating user: {user_data.email}")

    existing = db.query(models.User).filter(models.User.email == user_data.email).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    user_dict = user_data.model_dump(exclude={"password", "role"})
    user_dict["role"] = user_data.role.value
    user_dict["password_hash"] = hash_password(user_data.password)

    db_user = models.User(**user_dict)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)

    logger.info(f"User created: {db_user.email} (ID: {db_user.id}) by admin: {current_user.id}")
    return {"message": "User created successfully", "data": {"user": db_user}}


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: str,
    current_user: models.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Get user by ID (admin only)."""
    logger.debug(f"Admin {current_user.id} requesting user {user_id}")
    return {"data": {"user": _get_user_or_404(db, user_id)}}


@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: str,
    user_update: schemas.UserUpdate,
    current_user: models.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Update user (admin only). A new password is re-hashed."""
    logger.debug(f"Admin {current_user.id} updating user {user_id}")

    user = _get_user_or_404(db, user_id)
    update_data = user_update.model_dump(exclude_unset=True)

    # Explicit nulls for non-nullable columns
    for field in ("role", "is_active", "email", "first_name", "last_name"):
        if field in update_data and update_data[field] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{field} cannot be null"
            )

    if "email" in update_data and update_data["email"] != user.email:
        existing_user = db.query(models.User).filter(
            models.User.email == update_data["email"],
            models.User.id != user_id
        ).first()
        if existing_user:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already in use")

    # Same lockout guard as delete: an update may not leave zero active admins
    demoting = "role" in update_data and update_data["role"] != models.UserRole.admin
    deactivating = update_data.get("is_active") is False
    if (
        user.role == models.UserRole.admin.value
        and user.is_active
        and (demoting or deactivating)
        and _active_admin_count(db) <= 1
    ):
        logger.warning(f"Admin {current_user.id} attempted to demote or deactivate the last admin user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot demote or deactivate the last active admin user. Promote another user to admin first."
        )

    password = update_data.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    if "role" in update_data:
        update_data["role"] = update_data["role"].value
    for field in ("first_name", "last_name"):
        if field in update_data:
            update_data[field] = update_data[field].strip()

    for key, value in update_data.items():
        setattr(user, key, value)

    db.commit()
    db.refresh(user)

    logger.info(f"User updated: {user.email} (ID: {user.id}) by admin: {current_user.id}")
    return {"message": "User updated successfully", "data": {"user": user}}


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_user(
    user_id: str,
    current_user: models.User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """
    Delete user (admin only).

    Tasks that reference the user are left untouched; their assignee or
    creator then resolves to nothing.
    """
    logger.debug(f"Admin {current_user.id} deleting user {user_id}")

    user = _get_user_or_404(db, user_id)

    # Guard 1: Prevent self-deletion (admin locking themselves out)
    if user.id == current_user.id:
        logger.warning(f"Admin {current_user.id} attempted to delete their own account")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    # Guard 2: Prevent deleting the last admin (system lockout)
    if user.role == models.UserRole.admin.value and user.is_active and _active_admin_count(db) <= 1:
        logger.warning(f"Admin {current_user.id} attempted to delete the last admin user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete the last admin user. Promote another user to admin first."
        )

    db.delete(user)
    db.commit()

    logger.critical(f"User deleted: {user.email} (ID: {user_id}) by admin: {current_user.id}")
    return {"message": "User deleted successfully"}
