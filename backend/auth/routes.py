"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login
- Fetching the current user
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
import models
import schemas
from time_utils import utc_now
from auth.security import hash_password, verify_password, create_access_token
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def issue_token(user: models.User) -> str:
    return create_access_token({"sub": user.id, "role": user.role, "email": user.email})


@router.post("/register", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account.

    New accounts always get the 'user' role; admins are created through
    the user administration endpoints.

    Raises:
        HTTPException: 409 if email already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    existing_user = db.query(models.User).filter(models.User.email == request.email).first()
    if existing_user:
        logger.info(f"Registration failed: email already exists: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists",
        )

    new_user = models.User(
        first_name=request.first_name.strip(),
        last_name=request.last_name.strip(),
        email=request.email,
        password_hash=hash_password(request.password),
        role=models.UserRole.user.value,
        is_active=True,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.critical(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return {
        "message": "User registered successfully",
        "data": {"user": new_user, "token": issue_token(new_user)},
    }


@router.post("/login", response_model=schemas.AuthResponse)
def login(request: schemas.LoginRequest, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Raises:
        HTTPException: 401 if credentials invalid
        HTTPException: 403 if the account is inactive
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = db.query(models.User).filter(models.User.email == request.email).first()
    if not user or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed: invalid credentials for {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        logger.info(f"Login failed: inactive user: {request.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    user.last_login_at = utc_now()
    db.commit()
    db.refresh(user)

    logger.critical(f"User logged in successfully: {user.email} (ID: {user.id})")
    return {
        "message": "Login successful",
        "data": {"user": user, "token": issue_token(user)},
    }


@router.get("/me", response_model=schemas.UserResponse)
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    """Get current authenticated user information."""
    logger.debug(f"Fetching user info for: {current_user.email}")
    return {"data": {"user": current_user}}
