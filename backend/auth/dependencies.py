"""
FastAPI dependencies for authentication and authorization.

This module provides dependency functions that can be used in route handlers to:
- Extract and validate the current user from a JWT bearer token
- Build the per-request Identity Context handed to permission checks
- Enforce role-based access control for admin-only endpoints
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from models import User, UserRole
from auth.identity import Identity
from auth.security import verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from a JWT bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid, or names no user
        HTTPException: 403 if the account is inactive

    Example:
        @router.get("/api/protected")
        def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    if not credentials or not credentials.credentials:
        logger.info("No authentication credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(credentials.credentials)
    if payload is None or payload.get("type") != "access" or not payload.get("sub"):
        logger.info("JWT token rejected (invalid, expired, wrong type or missing sub)")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. Invalid token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = str(payload["sub"])
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. Invalid token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        logger.info(f"Inactive user attempted access: {user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    logger.debug(f"Authenticated user {user.id} ({user.role})")
    return user


def get_identity(current_user: User = Depends(get_current_user)) -> Identity:
    """
    Build the Identity Context for the current request.

    Example:
        @router.get("/api/tasks/{task_id}")
        def get_task(task_id: str, identity: Identity = Depends(get_identity)):
            ...
    """
    return Identity.from_user(current_user)


def require_role(required_role: str):
    """
    Create a dependency that requires a specific user role.

    Args:
        required_role: Role required to access the endpoint ('admin' or 'user')

    Example:
        @router.delete("/api/users/{user_id}")
        def delete_user(current_user: User = Depends(require_role("admin"))):
            ...
    """
    role_hierarchy = {UserRole.user.value: 0, UserRole.admin.value: 1}

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        """Check if the current user has the required role."""
        current_level = role_hierarchy.get(current_user.role, 0)
        required_level = role_hierarchy.get(required_role, 0)

        if current_level < required_level:
            logger.info(
                f"Access denied: user {current_user.email} has role '{current_user.role}', "
                f"but '{required_role}' is required"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. Insufficient permissions.",
            )

        return current_user

    return role_checker


def get_current_admin(current_user: User = Depends(require_role(UserRole.admin.value))) -> User:
    """Convenience dependency for admin-only endpoints."""
    return current_user
