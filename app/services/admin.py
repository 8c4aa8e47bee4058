"""
Admin panel accounts and audit trail.

Every account change and successful login is written to the audit log.
Audit writes are best effort: a failure is logged and never fails the
request that triggered it.
"""

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.security import create_admin_token, get_password_hash, verify_password
from app.models.admin import (
    ADMIN_ROLE,
    ADMIN_STATUS_ACTIVE,
    ADMIN_STATUS_INACTIVE,
    SUPERADMIN_ROLE,
    AdminAccount,
    AdminAuditLog,
)
from app.models.base import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100
EDITABLE_FIELDS = ("full_name", "role", "status", "email")


def admin_to_dict(admin: AdminAccount) -> dict:
    return {
        "id": admin.id,
        "email": admin.email,
        "full_name": admin.full_name,
        "role": admin.role,
        "status": admin.status,
        "last_login_at": admin.last_login_at,
        "created_at": admin.created_at,
        "updated_at": admin.updated_at,
    }


def audit_to_dict(log: AdminAuditLog) -> dict:
    return {
        "id": log.id,
        "admin_id": log.admin_id,
        "action": log.action,
        "target_type": log.target_type,
        "target_id": log.target_id,
        "details": log.details,
        "ip_address": log.ip_address,
        "user_agent": log.user_agent,
        "created_at": log.created_at,
    }


def clamp_paging(page: int, limit: int) -> tuple[int, int]:
    page = max(page or 1, 1)
    limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)
    return page, limit


class AdminService:
    """
    Admin login, account management (superadmin) and audit logs.

    ``ip_address`` and ``user_agent`` describe the calling request and are
    copied onto every audit entry this instance writes.
    """

    def __init__(self, session: AsyncSession, ip_address: Optional[str] = None, user_agent: Optional[str] = None):
        self.session = session
        self.ip_address = ip_address
        self.user_agent = user_agent

    async def audit(
        self,
        admin_id: Optional[str],
        action: str,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            async with self.session.begin_nested():
                self.session.add(
                    AdminAuditLog(
                        admin_id=admin_id,
                        action=action,
                        target_type=target_type,
                        target_id=str(target_id) if target_id is not None else None,
                        details=details or {},
                        ip_address=self.ip_address,
                        user_agent=(self.user_agent or "")[:512] or None,
                    )
                )
        except SQLAlchemyError as exc:
            logger.error("Audit log write failed", extra={"action": action, "error": str(exc)})

    async def get_or_404(self, admin_id: str) -> AdminAccount:
        admin = await self.session.get(AdminAccount, admin_id)
        if admin is None:
            raise NotFoundError("Admin not found")
        return admin

    async def get_by_email(self, email: str) -> Optional[AdminAccount]:
        result = await self.session.execute(
            select(AdminAccount).where(AdminAccount.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def login(self, email: str, password: str) -> dict:
        """
        Raises:
            BadRequestError: Unknown email or wrong password
            ForbiddenError: Account inactive
        """
        admin = await self.get_by_email(email)
        if admin is None or not verify_password(password, admin.password):
            raise BadRequestError("Invalid credentials")
        if admin.status != ADMIN_STATUS_ACTIVE:
            raise ForbiddenError("Admin account is inactive")

        admin.last_login_at = utc_now_iso()
        await self.session.flush()
        await self.audit(admin.id, "ADMIN_LOGIN_SUCCESS", "admin", admin.id)
        logger.info("Admin logged in", extra={"admin_id": admin.id})
        return {
            "message": "Login successful",
            "access_token": create_admin_token(admin),
            "token_type": "bearer",
            "admin": admin_to_dict(admin),
        }

    async def create_admin(self, actor: AdminAccount, data: dict[str, Any]) -> dict:
        role = data.get("role") or ADMIN_ROLE
        if role == SUPERADMIN_ROLE:
            raise BadRequestError("Cannot create a superadmin account")
        if role != ADMIN_ROLE:
            raise BadRequestError(f"Invalid role: {role}")
        email = data["email"].strip().lower()
        if await self.get_by_email(email) is not None:
            raise BadRequestError("Email already in use")

        admin = AdminAccount(
            email=email,
            password=get_password_hash(data["password"]),
            full_name=data.get("full_name"),
            role=role,
            status=data.get("status") or ADMIN_STATUS_ACTIVE,
        )
        self.session.add(admin)
        await self.session.flush()
        await self.audit(
            actor.id,
            "ADMIN_ACCOUNT_CREATED",
            "admin",
            admin.id,
            {"email": admin.email, "role": admin.role},
        )
        return admin_to_dict(admin)

    async def list_admins(self) -> list[dict]:
        result = await self.session.execute(select(AdminAccount).order_by(AdminAccount.created_at))
        return [admin_to_dict(a) for a in result.scalars().all()]

    async def update_admin(self, actor: AdminAccount, admin_id: str, changes: dict[str, Any]) -> dict:
        """
        Edit a regular admin account. Promotion to superadmin is allowed
        and audited separately.

        Raises:
            ForbiddenError: Target is a superadmin
            BadRequestError: Invalid role/status or duplicate email
        """
        admin = await self.get_or_404(admin_id)
        if admin.role == SUPERADMIN_ROLE:
            raise ForbiddenError("Cannot edit a superadmin account")

        if changes.get("role") is not None and changes["role"] not in (ADMIN_ROLE, SUPERADMIN_ROLE):
            raise BadRequestError(f"Invalid role: {changes['role']}")
        if changes.get("status") is not None and changes["status"] not in (ADMIN_STATUS_ACTIVE, ADMIN_STATUS_INACTIVE):
            raise BadRequestError(f"Invalid status: {changes['status']}")
        if changes.get("email"):
            changes["email"] = changes["email"].strip().lower()
            other = await self.get_by_email(changes["email"])
            if other is not None and other.id != admin.id:
                raise BadRequestError("Email already in use")

        before = {f: getattr(admin, f) for f in EDITABLE_FIELDS}
        for field in EDITABLE_FIELDS:
            if changes.get(field) is not None:
                setattr(admin, field, changes[field])
        password_changed = bool(changes.get("password"))
        if password_changed:
            admin.password = get_password_hash(changes["password"])
        await self.session.flush()

        after = {f: getattr(admin, f) for f in EDITABLE_FIELDS}
        changed = [f for f in EDITABLE_FIELDS if before[f] != after[f]]
        if password_changed:
            changed.append("password")
        promoted = before["role"] != SUPERADMIN_ROLE and admin.role == SUPERADMIN_ROLE
        await self.audit(
            actor.id,
            "ADMIN_ACCOUNT_PROMOTED_TO_SUPERADMIN" if promoted else "ADMIN_ACCOUNT_UPDATED",
            "admin",
            admin.id,
            {"before": before, "after": after, "changed_fields": changed},
        )
        return admin_to_dict(admin)

    async def delete_admin(self, actor: AdminAccount, admin_id: str) -> dict:
        if admin_id == actor.id:
            raise BadRequestError("You cannot delete your own account")
        admin = await self.get_or_404(admin_id)
        if admin.role == SUPERADMIN_ROLE:
            raise ForbiddenError("Cannot delete a superadmin account")
        snapshot = {"email": admin.email, "role": admin.role}
        await self.session.delete(admin)
        await self.session.flush()
        await self.audit(actor.id, "ADMIN_ACCOUNT_DELETED", "admin", admin_id, snapshot)
        return {"message": "Admin account deleted successfully"}

    async def audit_logs(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE, admin_id: Optional[str] = None) -> dict:
        """Paged audit entries, newest first; ``admin_id`` restricts to one admin."""
        page, limit = clamp_paging(page, limit)
        count_stmt = select(func.count(AdminAuditLog.id))
        stmt = select(AdminAuditLog)
        if admin_id is not None:
            count_stmt = count_stmt.where(AdminAuditLog.admin_id == admin_id)
            stmt = stmt.where(AdminAuditLog.admin_id == admin_id)
        total = int((await self.session.execute(count_stmt)).scalar() or 0)
        result = await self.session.execute(
            stmt.order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "total": total,
            "page": page,
            "limit": limit,
            "data": [audit_to_dict(log) for log in result.scalars().all()],
        }
