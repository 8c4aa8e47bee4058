"""
Tests for the superadmin bootstrap script.
"""

import pytest
from sqlalchemy import select

from app.core.security import verify_password
from app.models.admin import SUPERADMIN_ROLE, AdminAccount, AdminAuditLog
from scripts.create_superadmin import create_superadmin, parse_args


class TestArguments:
    def test_flags(self):
        args = parse_args(["--email", "root@example.com", "--password", "longenough"])

        assert args.email == "root@example.com"
        assert args.name == "Super Admin"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("SUPERADMIN_EMAIL", "env@example.com")
        monkeypatch.setenv("SUPERADMIN_PASSWORD", "from-the-env")

        args = parse_args([])

        assert args.email == "env@example.com"

    @pytest.mark.parametrize("argv", [
        ["--password", "longenough"],
        ["--email", "root@example.com", "--password", "short"],
    ])
    def test_invalid_arguments_exit(self, argv, monkeypatch):
        monkeypatch.delenv("SUPERADMIN_EMAIL", raising=False)
        monkeypatch.delenv("SUPERADMIN_PASSWORD", raising=False)

        with pytest.raises(SystemExit):
            parse_args(argv)


class TestCreateSuperadmin:
    @pytest.mark.asyncio
    async def test_create_then_reset(self, db_session):
        """
        Arrange: Empty admin table
        Act: Run the bootstrap twice with different passwords
        Assert: One superadmin, latest password wins, both runs audited
        """
        created = await create_superadmin("Root@Example.com", "first-password", "Root")
        reset = await create_superadmin("root@example.com", "second-password", "Root")

        assert created is True
        assert reset is False

        admins = (await db_session.execute(select(AdminAccount))).scalars().all()
        assert len(admins) == 1
        assert admins[0].role == SUPERADMIN_ROLE
        assert verify_password("second-password", admins[0].password)

        actions = (await db_session.execute(select(AdminAuditLog.action))).scalars().all()
        assert sorted(actions) == ["SUPERADMIN_CREATED", "SUPERADMIN_RESET"]
