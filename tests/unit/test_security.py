"""
Unit tests for password hashing, JWT tokens and OTP codes.
"""

from datetime import timedelta
from types import SimpleNamespace

from app.core.security import (
    create_access_token,
    create_admin_token,
    create_user_token,
    decode_access_token,
    generate_otp,
    get_password_hash,
    verify_password,
)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = get_password_hash("secret123")

        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("wrong", hashed)

    def test_empty_or_malformed_hash_never_verifies(self):
        assert not verify_password("secret123", "")
        assert not verify_password("secret123", "not-a-bcrypt-hash")


class TestTokens:
    def test_user_token_round_trip(self):
        user = SimpleNamespace(id=12, email="asha@example.com", role=1)

        payload = decode_access_token(create_user_token(user))

        assert payload.sub == "12"
        assert payload.user_id == 12
        assert payload.email == "asha@example.com"
        assert payload.is_admin is False

    def test_admin_token_sets_admin_flag(self):
        admin = SimpleNamespace(id="b1c2", email="root@example.com", role="superadmin")

        payload = decode_access_token(create_admin_token(admin))

        assert payload.sub == "b1c2"
        assert payload.is_admin is True
        assert payload.role == "superadmin"

    def test_expired_token_is_rejected(self):
        token = create_access_token({"sub": "1"}, expires_delta=timedelta(seconds=-5))

        assert decode_access_token(token) is None

    def test_token_without_subject_is_rejected(self):
        assert decode_access_token(create_access_token({"userId": 1})) is None

    def test_garbage_is_rejected(self):
        assert decode_access_token("not.a.jwt") is None


def test_otp_is_six_digits():
    otp = generate_otp()

    assert len(otp) == 6
    assert otp.isdigit()
