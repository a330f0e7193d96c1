"""
Tests for authentication endpoints (/api/auth).

Tests cover:
- Register (role forced to user, duplicate email 409, validation 400)
- Login (token issued, bad credentials 401, inactive 403, last login recorded)
- Current user, expired tokens
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

import models
from auth import security
from auth.security import verify_token
from tests.conftest import create_auth_token

logger = logging.getLogger(__name__)


def _register_payload(**overrides):
    payload = {
        "email": "new@test.com",
        "password": "secret123",
        "firstName": "New",
        "lastName": "Person",
    }
    payload.update(overrides)
    return payload


def test_register_returns_user_and_token(client: TestClient, test_db: Session):
    response = client.post("/api/auth/register", json=_register_payload())

    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"

    user = body["data"]["user"]
    assert user["email"] == "new@test.com"
    assert user["firstName"] == "New"
    assert user["role"] == "user"
    assert "passwordHash" not in user

    payload = verify_token(body["data"]["token"])
    assert payload["sub"] == user["id"]
    assert payload["type"] == "access"
    logger.info("✓ Registration returns user and access token")


def test_register_ignores_requested_role(client: TestClient, test_db: Session):
    response = client.post("/api/auth/register", json=_register_payload(role="admin"))

    assert response.status_code == 201
    assert response.json()["data"]["user"]["role"] == "user"
    logger.info("✓ Self-registration cannot grant admin")


def test_register_duplicate_email(client: TestClient, regular_user: models.User):
    response = client.post("/api/auth/register", json=_register_payload(email=regular_user.email))

    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "User with this email already exists"}
    logger.info("✓ Duplicate registration rejected with 409")


def test_register_duplicate_email_other_case(client: TestClient, regular_user: models.User):
    response = client.post("/api/auth/register", json=_register_payload(email="USER@Test.com"))

    assert response.status_code == 409
    assert response.json()["message"] == "User with this email already exists"
    logger.info("✓ Email uniqueness ignores case")


def test_register_stores_lowercased_email(client: TestClient, test_db: Session):
    response = client.post("/api/auth/register", json=_register_payload(email="Mixed.Case@Test.com"))

    assert response.status_code == 201
    assert response.json()["data"]["user"]["email"] == "mixed.case@test.com"
    logger.info("✓ Registered email stored lowercased")


def test_register_validation_errors(client: TestClient):
    response = client.post("/api/auth/register", json=_register_payload(email="not-an-email", password="123"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation errors"
    assert len(body["errors"]) == 2
    logger.info("✓ Registration validation errors reported as 400")


def test_login_success_records_last_login(client: TestClient, regular_user: models.User, test_db: Session):
    assert regular_user.last_login_at is None

    response = client.post("/api/auth/login", json={"email": "user@test.com", "password": "user123"})

    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["data"]["user"]["id"] == regular_user.id
    assert body["data"]["token"]

    test_db.refresh(regular_user)
    assert regular_user.last_login_at is not None
    logger.info("✓ Login succeeds and records last login")


def test_login_email_case_insensitive(client: TestClient, regular_user: models.User):
    response = client.post("/api/auth/login", json={"email": "User@TEST.com", "password": "user123"})

    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    assert response.json()["data"]["user"]["id"] == regular_user.id
    logger.info("✓ Login matches email regardless of case")


def test_login_wrong_password(client: TestClient, regular_user: models.User):
    response = client.post("/api/auth/login", json={"email": "user@test.com", "password": "wrong"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"
    logger.info("✓ Wrong password rejected")


def test_login_unknown_email(client: TestClient):
    response = client.post("/api/auth/login", json={"email": "ghost@test.com", "password": "whatever"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid email or password"
    logger.info("✓ Unknown email rejected with the same message")


def test_login_inactive_account(client: TestClient, regular_user: models.User, test_db: Session):
    regular_user.is_active = False
    test_db.commit()

    response = client.post("/api/auth/login", json={"email": "user@test.com", "password": "user123"})

    assert response.status_code == 403
    assert response.json()["message"] == "Account is inactive"
    logger.info("✓ Inactive account cannot log in")


def test_me_returns_current_user(client: TestClient, regular_user: models.User, user_auth_headers: dict):
    response = client.get("/api/auth/me", headers=user_auth_headers)

    assert response.status_code == 200
    user = response.json()["data"]["user"]
    assert user["id"] == regular_user.id
    assert user["isActive"] is True
    logger.info("✓ /me returns the authenticated user")


def test_expired_token_rejected(client: TestClient, regular_user: models.User):
    token = create_auth_token(regular_user, expires_delta=timedelta(minutes=-1))

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Access denied. Invalid token."
    logger.info("✓ Expired token rejected")


def test_token_for_deleted_user_rejected(client: TestClient, regular_user: models.User, test_db: Session):
    token = create_auth_token(regular_user)
    test_db.delete(regular_user)
    test_db.commit()

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    logger.info("✓ Token of a deleted user rejected")


def test_token_signed_with_other_key_rejected(client: TestClient, regular_user: models.User):
    forged = jwt.encode(
        {"sub": regular_user.id, "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "not-the-board-key",
        algorithm=security.ALGORITHM,
    )

    assert verify_token(forged) is None
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401
    logger.info("✓ Token signed with a foreign key rejected")


def test_password_hash_is_argon2():
    hashed = security.hash_password("secret123")

    assert hashed.startswith("$argon2")
    assert security.verify_password("secret123", hashed)
    assert not security.verify_password("secret124", hashed)
    logger.info("✓ Passwords hashed with Argon2")


def test_health_is_public(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
