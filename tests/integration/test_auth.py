"""
Integration tests for the app user authentication flow.

Tests the complete account lifecycle end-to-end:
- Registration with an OTP stored on the account
- OTP verification issuing a bearer token
- Login by e-mail or phone
- Password reset through a mailed OTP
- Rejection of unverified, suspended and unauthenticated callers

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest
from sqlalchemy import select

from app.models.user import STATUS_ACTIVE, STATUS_SUSPENDED, User
from tests.helpers import TEST_PASSWORD, auth_headers

REGISTRATION = {
    "email": "Asha@Example.com",
    "password": "s3cret-pass",
    "first_name": "Asha",
    "last_name": "Rao",
    "country_code": "+91",
    "mobile": "9876543210",
}


async def _stored_user(db_session, email: str) -> User:
    db_session.expire_all()
    result = await db_session.execute(select(User).where(User.email == email))
    return result.scalar_one()


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_verify_and_use_token(self, client, db_session):
        """
        Arrange: Nothing registered
        Act: Register, read the OTP from the account, verify it
        Assert: Token works on a protected endpoint
        """
        response = await client.post("/api/v1/auth/register", json=REGISTRATION)
        assert response.status_code == 201
        assert response.json()["email"] == "asha@example.com"

        user = await _stored_user(db_session, "asha@example.com")
        assert len(user.otp) == 6

        response = await client.post(
            "/api/v1/auth/verify-otp",
            json={"email": "asha@example.com", "otp": user.otp},
        )
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = await client.get("/api/v1/user/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["profile"]["first_name"] == "Asha"

    @pytest.mark.asyncio
    async def test_wrong_otp_is_rejected(self, client):
        await client.post("/api/v1/auth/register", json=REGISTRATION)

        response = await client.post(
            "/api/v1/auth/verify-otp",
            json={"mobile": "9876543210", "otp": "000000"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_verified_account_cannot_register_again(self, client, make_user):
        await make_user(email="asha@example.com")

        response = await client.post("/api/v1/auth/register", json=REGISTRATION)

        assert response.status_code == 400
        assert response.json()["detail"] == "User already exists"

    @pytest.mark.asyncio
    async def test_unverified_registration_can_be_repeated(self, client, db_session):
        await client.post("/api/v1/auth/register", json=REGISTRATION)

        response = await client.post("/api/v1/auth/register", json=REGISTRATION)

        assert response.status_code == 201
        db_session.expire_all()
        count = len((await db_session.execute(select(User))).scalars().all())
        assert count == 1

    @pytest.mark.asyncio
    async def test_invalid_mobile_fails_validation(self, client):
        response = await client.post("/api/v1/auth/register", json={**REGISTRATION, "mobile": "12ab"})

        assert response.status_code == 422


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_by_email_and_mobile(self, client, make_user):
        user = await make_user(email="ravi@example.com", mobile="9123456780")

        by_email = await client.post(
            "/api/v1/auth/login",
            json={"username": "RAVI@example.com", "password": TEST_PASSWORD},
        )
        by_mobile = await client.post(
            "/api/v1/auth/login",
            json={"username": "9123456780", "password": TEST_PASSWORD},
        )

        assert by_email.status_code == 200
        assert by_email.json()["user"]["id"] == user.id
        assert by_mobile.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, make_user):
        await make_user(email="ravi@example.com")

        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "ravi@example.com", "password": "nope-nope"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid credentials"

    @pytest.mark.asyncio
    async def test_malformed_username(self, client):
        response = await client.post("/api/v1/auth/login", json={"username": "not an id", "password": "x"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid email or mobile"

    @pytest.mark.asyncio
    async def test_unverified_account_cannot_log_in(self, client):
        await client.post("/api/v1/auth/register", json=REGISTRATION)

        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "asha@example.com", "password": "s3cret-pass"},
        )

        assert response.status_code == 403


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_reset_with_mailed_otp(self, client, db_session, make_user):
        await make_user(email="ravi@example.com")

        response = await client.post("/api/v1/auth/forget-password", json={"email": "ravi@example.com"})
        assert response.status_code == 200
        otp = (await _stored_user(db_session, "ravi@example.com")).otp

        response = await client.post(
            "/api/v1/auth/reset-password",
            json={
                "email": "ravi@example.com",
                "otp": otp,
                "new_password": "brand-new-pass",
                "confirm_password": "brand-new-pass",
            },
        )
        assert response.status_code == 200

        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "ravi@example.com", "password": "brand-new-pass"},
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_mismatched_passwords(self, client, make_user):
        await make_user(email="ravi@example.com")

        response = await client.post(
            "/api/v1/auth/reset-password",
            json={
                "email": "ravi@example.com",
                "otp": "123456",
                "new_password": "aaaaaaa",
                "confirm_password": "bbbbbbb",
            },
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Passwords do not match"


class TestProtectedAccess:
    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/v1/user/profile")

        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/api/v1/user/profile", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_suspended_user_is_forbidden(self, client, make_user):
        user = await make_user(status=STATUS_SUSPENDED)

        response = await client.get("/api/v1/user/profile", headers=auth_headers(user))

        assert response.status_code == 403
        assert response.json()["detail"] == "Account suspended"

    @pytest.mark.asyncio
    async def test_delete_account_suspends(self, client, db_session, make_user):
        user = await make_user()

        response = await client.delete("/api/v1/user/account", headers=auth_headers(user))

        assert response.status_code == 200
        await db_session.refresh(user)
        assert user.status == STATUS_SUSPENDED
        assert user.status != STATUS_ACTIVE
