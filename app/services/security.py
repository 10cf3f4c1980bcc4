"""
Security Service

Password hashing and JWT token operations.

- Passwords are hashed with bcrypt (passlib)
- Access and refresh tokens are HS256 JWTs carrying a "type" claim so a
  refresh token can never be used as an access token

Usage:
    from app.services.security import create_access_token, verify_token_type

    token = create_access_token({"sub": str(user.id)})
    payload = verify_token_type(token, "access")
"""

import logging
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import get_settings

logger = logging.getLogger(__name__)

# deprecated="auto" upgrades old hashes on the next successful login
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


def hash_password(password: str) -> str:
    """Hash a plain text password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    Returns:
        True if the password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=get_settings().access_token_expire_minutes)


def refresh_token_lifetime() -> timedelta:
    return timedelta(days=get_settings().refresh_token_expire_days)


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({"exp": datetime.now(UTC) + lifetime, "type": token_type})
    return jwt.encode(to_encode, get_settings().secret_key, algorithm=ALGORITHM)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode, normally {"sub": str(user_id)}
        expires_delta: Custom lifetime (defaults to access_token_expire_minutes)

    Returns:
        Encoded JWT string
    """
    return _encode(data, TOKEN_TYPE_ACCESS, expires_delta or access_token_lifetime())


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT refresh token (longer-lived than the access token)."""
    return _encode(data, TOKEN_TYPE_REFRESH, expires_delta or refresh_token_lifetime())


def decode_token(token: str) -> dict | None:
    """
    Decode and validate a JWT.

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jwt.decode(token, get_settings().secret_key, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None


def verify_token_type(token: str, expected_type: str) -> dict | None:
    """
    Decode a token and check its "type" claim.

    Returns:
        Decoded payload if valid and of the expected type, None otherwise
    """
    payload = decode_token(token)
    if payload is None:
        return None

    if payload.get("type") != expected_type:
        logger.warning(f"Token type mismatch: expected {expected_type}")
        return None

    return payload
