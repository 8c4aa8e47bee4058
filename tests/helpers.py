"""
Helpers shared by the API tests.
"""

from app.core.security import create_admin_token, create_user_token

TEST_PASSWORD = "secret123"

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


def admin_headers(admin) -> dict:
    return {"Authorization": f"Bearer {create_admin_token(admin)}"}


def png_file(name: str = "photo.png") -> tuple:
    """Multipart file tuple for httpx ``files=``."""
    return (name, PNG_BYTES, "image/png")
