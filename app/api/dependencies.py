"""
FastAPI dependency functions.

Authentication for app users and admin accounts, the database session and
the storage backend, exposed as ``Annotated`` aliases for route signatures.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import decode_access_token
from app.core.storage import Storage, get_storage
from app.models.admin import ADMIN_STATUS_ACTIVE, SUPERADMIN_ROLE, AdminAccount
from app.models.user import STATUS_SUSPENDED, User


# HTTP Bearer token scheme
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current app user from the JWT token.

    Raises:
        HTTPException 401: Token missing, invalid, expired, issued for an
            admin account, or user not found
        HTTPException 403: Account suspended

    Example:
        @router.get("/user/profile")
        async def my_profile(current_user: CurrentUser):
            return {"id": current_user.id}
    """
    token_data = decode_access_token(credentials.credentials)
    if token_data is None or token_data.is_admin:
        raise _credentials_exception()

    try:
        user_id = int(token_data.sub)
    except ValueError:
        raise _credentials_exception()

    user = await db.get(User, user_id)
    if user is None:
        raise _credentials_exception()

    if user.status == STATUS_SUSPENDED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account suspended"
        )

    return user


async def get_current_admin(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AdminAccount:
    """
    Dependency to get the current admin-panel account.

    Raises:
        HTTPException 401: Token invalid or not an admin token
        HTTPException 403: Admin account is inactive
    """
    token_data = decode_access_token(credentials.credentials)
    if token_data is None or not token_data.is_admin:
        raise _credentials_exception()

    admin = await db.get(AdminAccount, token_data.sub)
    if admin is None:
        raise _credentials_exception()

    if admin.status != ADMIN_STATUS_ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin account is inactive"
        )

    return admin


async def require_superadmin(
    admin: Annotated[AdminAccount, Depends(get_current_admin)],
) -> AdminAccount:
    """
    Restrict a route to superadmins.

    Raises:
        HTTPException 403: Caller is a regular admin
    """
    if admin.role != SUPERADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: Insufficient permissions"
        )
    return admin


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[AdminAccount, Depends(get_current_admin)]
SuperAdmin = Annotated[AdminAccount, Depends(require_superadmin)]
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
StorageBackend = Annotated[Storage, Depends(get_storage)]
