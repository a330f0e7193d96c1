"""
Credentials for the Taskboard API: Argon2 password hashes and signed bearer tokens.

Tokens carry the user's id as ``sub`` plus role and email. They are checked
against the database on every request, so a deleted or deactivated account
stops working right away even while its token is still unexpired.

Settings, all read from the environment at import time:
- JWT_SECRET_KEY: signing key, mandatory when ENVIRONMENT is production or staging
- JWT_ALGORITHM: HS256, HS384 or HS512
- ACCESS_TOKEN_EXPIRE_MINUTES: token lifetime, 1 to 10080 (one week)
"""

import logging
import secrets
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

DEFAULT_EXPIRE_MINUTES = 1440
MAX_EXPIRE_MINUTES = 10080
SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]


def is_production_like() -> bool:
    """True when ENVIRONMENT names a deployed board (production or staging)."""
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not SECRET_KEY:
    if is_production_like():
        raise ValueError(
            "Taskboard cannot sign tokens: set JWT_SECRET_KEY before starting a production or staging board."
        )
    SECRET_KEY = "taskboard-dev-" + secrets.token_urlsafe(32)
    logger.warning(
        "⚠️  No JWT_SECRET_KEY configured; signing with a random key for this process. "
        "Users will have to log in again after every restart."
    )

ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
if ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"⚠️  JWT_ALGORITHM={ALGORITHM} is not one of {', '.join(SUPPORTED_ALGORITHMS)}; signing tokens with HS256."
    )
    ALGORITHM = "HS256"

try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", str(DEFAULT_EXPIRE_MINUTES)))
except ValueError:
    logger.warning(
        f"⚠️  ACCESS_TOKEN_EXPIRE_MINUTES is not a whole number; tokens will last {DEFAULT_EXPIRE_MINUTES} minutes."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES = DEFAULT_EXPIRE_MINUTES

if not 1 <= ACCESS_TOKEN_EXPIRE_MINUTES <= MAX_EXPIRE_MINUTES:
    logger.warning(
        f"⚠️  Token lifetime of {ACCESS_TOKEN_EXPIRE_MINUTES} minutes rejected (allowed 1-{MAX_EXPIRE_MINUTES}); "
        f"tokens will last {DEFAULT_EXPIRE_MINUTES} minutes."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES = DEFAULT_EXPIRE_MINUTES


def hash_password(password: str) -> str:
    """Hash a board member's password for storage in ``users.password_hash``."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    is_valid = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password check {'passed' if is_valid else 'failed'}")
    return is_valid


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a bearer token for a board member.

    Args:
        data: Claims to embed; callers pass sub, role and email
        expires_delta: Lifetime override, mostly for tests; defaults to
            ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        Compact JWT string
    """
    lifetime = expires_delta if expires_delta else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    expire = datetime.now(timezone.utc) + lifetime

    claims = {**data, "exp": expire, "type": "access"}
    token = jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)
    logger.debug(f"Token issued for user {data.get('sub')}, valid until {expire}")
    return token


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the claims of a valid token, or None if it is forged, malformed or expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None
