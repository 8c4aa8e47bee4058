"""
User service.

Registration with e-mail OTP verification, login by e-mail or phone,
password reset and profile management.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import BadRequestError, ForbiddenError, NotFoundError
from app.core.mail import send_otp_email
from app.core.security import create_user_token, generate_otp, get_password_hash, verify_password
from app.models.base import parse_iso, to_iso, utc_now, utc_now_iso
from app.models.family import FamilyMember
from app.models.user import (
    STATUS_ACTIVE,
    STATUS_SUSPENDED,
    STATUS_UNVERIFIED,
    User,
    UserProfile,
)
from app.repositories.user import UserRepository, user_summary
from app.services.lookup import validate_profile_lookups
from app.services.upload import UploadService

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "gender",
    "dob",
    "age",
    "marital_status",
    "contact_number",
    "address",
    "bio",
    "is_private",
    "country_id",
    "language_id",
    "gothram_id",
)


def profile_to_dict(profile: Optional[UserProfile], uploads: Optional[UploadService] = None) -> Optional[dict]:
    if profile is None:
        return None
    data = {
        "user_id": profile.user_id,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "profile": profile.profile,
        "gender": profile.gender,
        "dob": profile.dob,
        "age": profile.age,
        "marital_status": profile.marital_status,
        "contact_number": profile.contact_number,
        "address": profile.address,
        "bio": profile.bio,
        "country_id": profile.country_id,
        "language_id": profile.language_id,
        "gothram_id": profile.gothram_id,
        "family_code": profile.family_code,
        "associated_family_codes": list(profile.associated_family_codes or []),
        "is_private": profile.is_private,
    }
    if uploads is not None:
        data["profile_url"] = uploads.url_for(profile.profile)
    return data


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "country_code": user.country_code,
        "mobile": user.mobile,
        "status": user.status,
        "role": user.role,
        "is_app_user": user.is_app_user,
        "last_login_at": user.last_login_at,
        "verified_at": user.verified_at,
        "created_at": user.created_at,
    }


class UserService:
    """
    Account lifecycle of app users.
    """

    def __init__(self, session: AsyncSession, uploads: Optional[UploadService] = None):
        self.session = session
        self.users = UserRepository(session)
        self._uploads = uploads

    @property
    def uploads(self) -> UploadService:
        if self._uploads is None:
            self._uploads = UploadService()
        return self._uploads

    def _issue_otp(self, user: User, minutes: int) -> str:
        otp = generate_otp()
        now = utc_now()
        user.otp = otp
        user.otp_expires_at = to_iso(now + timedelta(minutes=minutes))
        user.otp_sent_at = to_iso(now)
        return otp

    @staticmethod
    def _check_otp(user: User, otp: str) -> None:
        if not user.otp or user.otp != otp:
            raise BadRequestError("Invalid OTP")
        expires_at = parse_iso(user.otp_expires_at)
        if expires_at is None or expires_at < utc_now():
            raise BadRequestError("OTP has expired")

    async def _find(self, email: Optional[str], mobile: Optional[str]) -> User:
        user = None
        if email:
            user = await self.users.get_by_email(email)
        if user is None and mobile:
            user = await self.users.get_by_mobile(mobile)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def register(self, data: dict[str, Any]) -> dict:
        """
        Create (or refresh an unverified) account and mail a verification OTP.

        Raises:
            BadRequestError: A verified account already uses the email or mobile
        """
        email = data["email"].strip().lower()
        mobile = data["mobile"].strip()
        matches = await self.users.find_by_email_or_mobile(email, mobile)
        if any(u.status != STATUS_UNVERIFIED for u in matches):
            raise BadRequestError("User already exists")

        user = matches[0] if matches else None
        if user is None:
            user = User(status=STATUS_UNVERIFIED, is_app_user=True)
            self.session.add(user)
        user.email = email
        user.mobile = mobile
        user.country_code = data["country_code"]
        user.password = get_password_hash(data["password"])
        user.is_app_user = True
        await self.session.flush()

        profile = await self.users.ensure_profile(user)
        profile.first_name = data["first_name"]
        profile.last_name = data["last_name"]

        otp = self._issue_otp(user, settings.otp_expiry_minutes)
        await self.session.flush()
        await send_otp_email(email, otp, purpose="verification")

        logger.info("User registered", extra={"user_id": user.id})
        return {
            "message": "Registration successful. Please verify the OTP sent to your email",
            "email": user.email,
            "mobile": user.mobile,
        }

    async def verify_otp(self, otp: str, email: Optional[str] = None, mobile: Optional[str] = None) -> dict:
        user = await self._find(email and email.lower(), mobile)
        if user.status != STATUS_UNVERIFIED:
            raise BadRequestError("Account already verified")
        self._check_otp(user, otp)

        user.status = STATUS_ACTIVE
        user.verified_at = utc_now_iso()
        user.otp = None
        user.otp_expires_at = None
        await self.session.flush()
        logger.info("User verified", extra={"user_id": user.id})
        return {
            "message": "Account verified successfully",
            "access_token": create_user_token(user),
            "token_type": "bearer",
            "user": user_to_dict(user),
        }

    async def resend_otp(self, email: Optional[str] = None, mobile: Optional[str] = None) -> dict:
        user = await self._find(email and email.lower(), mobile)
        if user.status != STATUS_UNVERIFIED:
            raise BadRequestError("Account already verified")
        sent_at = parse_iso(user.otp_sent_at)
        if sent_at is not None and utc_now() - sent_at < timedelta(seconds=settings.otp_resend_interval_seconds):
            raise BadRequestError("Please wait before requesting another OTP")

        otp = self._issue_otp(user, settings.otp_expiry_minutes)
        await self.session.flush()
        await send_otp_email(user.email, otp, purpose="verification")
        return {"message": "OTP resent successfully"}

    async def login(self, username: str, password: str) -> dict:
        """
        Log in with an e-mail address or phone number.

        Raises:
            BadRequestError: Malformed username or wrong credentials
            ForbiddenError: Account unverified or suspended
        """
        username = (username or "").strip()
        if EMAIL_PATTERN.match(username):
            user = await self.users.get_by_email(username.lower())
        elif PHONE_PATTERN.match(username):
            user = await self.users.get_by_mobile(username)
        else:
            raise BadRequestError("Invalid email or mobile")

        if user is None or not user.password or not verify_password(password, user.password):
            raise BadRequestError("Invalid credentials")
        if user.status == STATUS_UNVERIFIED:
            raise ForbiddenError("Account not verified. Please verify your OTP")
        if user.status == STATUS_SUSPENDED:
            raise ForbiddenError("Account suspended")

        user.last_login_at = utc_now_iso()
        await self.session.flush()
        logger.info("User logged in", extra={"user_id": user.id})
        return {
            "message": "Login successful",
            "access_token": create_user_token(user),
            "token_type": "bearer",
            "user": user_to_dict(user),
            "profile": profile_to_dict(user.profile),
        }

    async def forget_password(self, email: str) -> dict:
        user = await self.users.get_by_email(email.lower())
        if user is None:
            raise NotFoundError("User not found")
        otp = self._issue_otp(user, settings.reset_otp_expiry_minutes)
        await self.session.flush()
        await send_otp_email(user.email, otp, purpose="reset")
        return {"message": "Password reset OTP sent to your email"}

    async def reset_password(self, email: str, otp: str, new_password: str, confirm_password: str) -> dict:
        if new_password != confirm_password:
            raise BadRequestError("Passwords do not match")
        user = await self.users.get_by_email(email.lower())
        if user is None:
            raise NotFoundError("User not found")
        self._check_otp(user, otp)

        user.password = get_password_hash(new_password)
        user.otp = None
        user.otp_expires_at = None
        await self.session.flush()
        logger.info("Password reset", extra={"user_id": user.id})
        return {"message": "Password reset successfully"}

    # Profile
    async def get_profile(self, user: User) -> dict:
        return {
            "user": user_to_dict(user),
            "profile": profile_to_dict(user.profile, self.uploads),
        }

    async def update_profile(self, user: User, changes: dict[str, Any], photo_key: Optional[str] = None) -> dict:
        await validate_profile_lookups(self.session, changes)
        profile = await self.users.ensure_profile(user)
        for field in PROFILE_FIELDS:
            if changes.get(field) is not None:
                setattr(profile, field, changes[field])
        if changes.get("email"):
            email = changes["email"].strip().lower()
            other = await self.users.get_by_email(email)
            if other is not None and other.id != user.id:
                raise BadRequestError("Email already in use")
            user.email = email
        if changes.get("mobile"):
            other = await self.users.get_by_mobile(changes["mobile"])
            if other is not None and other.id != user.id:
                raise BadRequestError("Mobile already in use")
            user.mobile = changes["mobile"]

        old_photo = None
        if photo_key:
            old_photo, profile.profile = profile.profile, photo_key
        await self.session.flush()
        if old_photo:
            await self.uploads.delete_quietly(old_photo)
        return {"message": "Profile updated successfully", **(await self.get_profile(user))}

    async def get_user_by_id(self, user_id: int) -> dict:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return {"user": user_to_dict(user), "profile": profile_to_dict(user.profile, self.uploads)}

    async def lookup(self, email: Optional[str] = None, mobile: Optional[str] = None) -> list[dict]:
        """Existing users matching an email or phone, for adding them to a tree."""
        if not email and not mobile:
            raise BadRequestError("email or mobile is required")
        users = await self.users.find_by_email_or_mobile(email and email.lower(), mobile)
        return [user_summary(u) | {"is_app_user": u.is_app_user} for u in users]

    async def delete_account(self, user: User) -> dict:
        """Suspend the account and drop its family memberships."""
        user.status = STATUS_SUSPENDED
        await self.session.execute(delete(FamilyMember).where(FamilyMember.member_id == user.id))
        if user.profile is not None:
            user.profile.family_code = None
        await self.session.flush()
        logger.info("Account deleted", extra={"user_id": user.id})
        return {"message": "Account deleted successfully"}
