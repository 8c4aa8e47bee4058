"""
App user and profile models.

A ``User`` is an account (credentials, verification state, role). Everything
shown to other members lives on the one-to-one ``UserProfile``, including the
user's primary family code and the list of associated family codes.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from app.models.base import Base, IntPKMixin, ModelMixin, TimestampMixin


# User.status values
STATUS_UNVERIFIED = 0
STATUS_ACTIVE = 1
STATUS_SUSPENDED = 2

# User.role values
ROLE_MEMBER = 1
ROLE_ADMIN = 2
ROLE_SUPERADMIN = 3
ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)


class User(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Application user account.

    Attributes:
        email: Login e-mail (unique, may be null for non-app persons)
        mobile: Phone number without country code
        password: Bcrypt hash, null for persons added to a tree without an account
        otp / otp_expires_at / otp_sent_at: Pending verification or reset code
        status: 0 unverified, 1 active, 2 suspended
        role: 1 member, 2 family admin, 3 superadmin
        is_app_user: False for persons that only exist as tree cards
    """

    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=True, doc="Login e-mail")
    country_code = Column(String(8), nullable=True, doc="Dialing prefix such as +91")
    mobile = Column(String(20), index=True, nullable=True, doc="Phone number")
    password = Column(String(255), nullable=True, doc="Bcrypt password hash")
    otp = Column(String(6), nullable=True, doc="Current one-time code")
    otp_expires_at = Column(String, nullable=True, doc="OTP expiry (UTC ISO)")
    otp_sent_at = Column(String, nullable=True, doc="When the last OTP was sent (UTC ISO)")
    status = Column(Integer, nullable=False, default=0, doc="0 unverified, 1 active, 2 suspended")
    role = Column(Integer, nullable=False, default=1, doc="1 member, 2 admin, 3 superadmin")
    is_app_user = Column(Boolean, nullable=False, default=True, doc="Has a usable app account")
    last_login_at = Column(String, nullable=True, doc="Last successful login (UTC ISO)")
    verified_at = Column(String, nullable=True, doc="When the OTP was verified (UTC ISO)")

    profile = relationship(
        "UserProfile",
        back_populates="user",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    @property
    def is_family_admin_role(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def full_name(self) -> str:
        if self.profile is None:
            return self.email or ""
        return self.profile.full_name

    def __repr__(self) -> str:
        return f"User(id={self.id!r}, email={self.email!r}, role={self.role!r})"


class UserProfile(Base, IntPKMixin, TimestampMixin, ModelMixin):
    """
    Public profile of a user.

    ``family_code`` is the user's own family; ``associated_family_codes``
    lists other family codes the user is related to (through spouse links,
    tree links or admin association). Private and family-only content from
    any of these codes is visible to the user.
    """

    __tablename__ = "user_profiles"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        doc="Owning user"
    )
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    profile = Column(String(512), nullable=True, doc="Profile photo storage key")
    gender = Column(String(16), nullable=True)
    dob = Column(String(10), nullable=True, doc="Date of birth YYYY-MM-DD")
    age = Column(Integer, nullable=True)
    marital_status = Column(String(32), nullable=True)
    contact_number = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    country_id = Column(Integer, ForeignKey("countries.id", ondelete="SET NULL"), nullable=True)
    language_id = Column(Integer, ForeignKey("languages.id", ondelete="SET NULL"), nullable=True)
    gothram_id = Column(Integer, ForeignKey("gothrams.id", ondelete="SET NULL"), nullable=True)
    family_code = Column(String(30), index=True, nullable=True, doc="Primary family code")
    associated_family_codes = Column(
        JSON,
        nullable=False,
        default=list,
        doc="Other family codes this user is associated with"
    )
    is_private = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="profile")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part).strip()
