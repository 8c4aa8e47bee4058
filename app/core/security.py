"""
Security module for password hashing, JWT handling and OTP codes.

App users and admin-panel accounts share the signing key but carry
different claims: admin tokens set ``isAdmin`` and use the admin UUID as
subject, app-user tokens use the numeric user id.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
import bcrypt
from fastapi.security import HTTPBearer
from pydantic import BaseModel

from app.core.config import settings

# HTTP Bearer token scheme for FastAPI
security = HTTPBearer()

# JWT Algorithm
ALGORITHM = "HS256"


class TokenPayload(BaseModel):
    """
    Decoded JWT claims.

    ``sub`` is the user id (app users) or admin UUID (admin accounts).
    """
    sub: str
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: Optional[Any] = None
    is_admin: bool = False
    exp: Optional[datetime] = None


def _password_bytes(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    # bcrypt only looks at the first 72 bytes
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]
    return password_bytes


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    Args:
        plain_password: The plain text password to verify
        hashed_password: The stored hash

    Returns:
        True if password matches, False otherwise
    """
    if not hashed_password:
        return False
    hashed_bytes = hashed_password.encode("utf-8") if isinstance(hashed_password, str) else hashed_password
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed_bytes)
    except ValueError:
        # Malformed hash in storage
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt (12 rounds).

    Returns:
        Hash as a UTF-8 string ready for storage
    """
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to encode in the token
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token({"sub": "12", "userId": 12, "role": 1})
    """
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def create_user_token(user) -> str:
    """Issue an app-user token for a ``User`` row."""
    return create_access_token({
        "sub": str(user.id),
        "userId": user.id,
        "email": user.email,
        "role": user.role,
    })


def create_admin_token(admin) -> str:
    """Issue an admin-panel token for an ``AdminAccount`` row."""
    return create_access_token(
        {
            "sub": admin.id,
            "email": admin.email,
            "role": admin.role,
            "isAdmin": True,
        },
        expires_delta=timedelta(minutes=settings.admin_token_expire_minutes),
    )


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Returns:
        TokenPayload if valid, None if invalid, expired or without subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[ALGORITHM]
        )
    except JWTError:
        return None

    subject = payload.get("sub")
    if subject is None:
        return None

    return TokenPayload(
        sub=str(subject),
        user_id=payload.get("userId"),
        email=payload.get("email"),
        role=payload.get("role"),
        is_admin=bool(payload.get("isAdmin", False)),
        exp=payload.get("exp"),
    )


def generate_otp() -> str:
    """Six random digits."""
    return f"{secrets.randbelow(1_000_000):06d}"
