"""
Admin panel accounts and their audit trail.

Admin accounts are separate from app users: they sign in to the back office
only and carry their own role (admin or superadmin).
"""

from sqlalchemy import Column, ForeignKey, Integer, JSON, String

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin, UUIDMixin

ADMIN_ROLE = "admin"
SUPERADMIN_ROLE = "superadmin"

ADMIN_STATUS_ACTIVE = "active"
ADMIN_STATUS_INACTIVE = "inactive"


class AdminAccount(Base, UUIDMixin, TimestampMixin, ModelMixin):
    """
    Back-office account.

    Attributes:
        id: UUID primary key
        email: Lower-cased unique login
        password: Bcrypt hash (never exposed)
        role: "admin" or "superadmin"
        status: "active" or "inactive"
    """

    __tablename__ = "admin_accounts"

    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False, doc="Bcrypt password hash")
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default=ADMIN_ROLE)
    status = Column(String(20), nullable=False, default=ADMIN_STATUS_ACTIVE)
    last_login_at = Column(String, nullable=True)

    def __repr__(self) -> str:
        return f"AdminAccount(id={self.id!r}, email={self.email!r}, role={self.role!r})"


class AdminAuditLog(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Append-only record of admin actions.
    """

    __tablename__ = "admin_audit_logs"

    admin_id = Column(
        String,
        ForeignKey("admin_accounts.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(64), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    status_code = Column(Integer, nullable=True)
