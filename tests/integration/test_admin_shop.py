"""
Integration tests for the admin panel and the gift shop.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from app.models.admin import ADMIN_STATUS_INACTIVE, SUPERADMIN_ROLE
from app.models.user import STATUS_SUSPENDED
from tests.helpers import TEST_PASSWORD, admin_headers, auth_headers, png_file


class TestAdminAuth:
    @pytest.mark.asyncio
    async def test_login_is_audited(self, client, make_admin):
        """
        Arrange: Active admin account
        Act: Log in and read own audit log
        Assert: Token issued, login recorded with the request's user agent
        """
        admin = await make_admin(email="ops@example.com")

        response = await client.post(
            "/api/v1/admin/login",
            json={"email": "OPS@example.com", "password": TEST_PASSWORD},
            headers={"User-Agent": "pytest-agent"},
        )

        assert response.status_code == 200
        token = response.json()["access_token"]
        me = await client.get("/api/v1/admin/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["admin"]["id"] == admin.id

        logs = await client.get("/api/v1/admin/audit-logs/me", headers=admin_headers(admin))
        entry = logs.json()["data"][0]
        assert entry["action"] == "ADMIN_LOGIN_SUCCESS"
        assert entry["user_agent"] == "pytest-agent"

    @pytest.mark.asyncio
    async def test_login_failures(self, client, make_admin):
        await make_admin(email="ops@example.com")
        await make_admin(email="gone@example.com", status=ADMIN_STATUS_INACTIVE)

        wrong = await client.post("/api/v1/admin/login", json={"email": "ops@example.com", "password": "nope"})
        inactive = await client.post("/api/v1/admin/login", json={"email": "gone@example.com", "password": TEST_PASSWORD})

        assert wrong.status_code == 400
        assert wrong.json()["detail"] == "Invalid credentials"
        assert inactive.status_code == 403
        assert inactive.json()["detail"] == "Admin account is inactive"

    @pytest.mark.asyncio
    async def test_app_user_token_is_not_an_admin_token(self, client, make_user):
        user = await make_user()

        response = await client.get("/api/v1/admin/me", headers=auth_headers(user))

        assert response.status_code == 401


class TestAdminAccounts:
    @pytest.mark.asyncio
    async def test_account_management_is_superadmin_only(self, client, make_admin):
        admin = await make_admin()

        response = await client.get("/api/v1/admin/accounts", headers=admin_headers(admin))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_superadmin_creates_and_deletes_admin(self, client, make_admin):
        root = await make_admin(role=SUPERADMIN_ROLE)
        headers = admin_headers(root)

        created = await client.post(
            "/api/v1/admin/accounts",
            json={"email": "new@example.com", "password": "longpassword", "full_name": "New Admin"},
            headers=headers,
        )
        escalation = await client.post(
            "/api/v1/admin/accounts",
            json={"email": "boss@example.com", "password": "longpassword", "role": "superadmin"},
            headers=headers,
        )
        new_id = created.json()["admin"]["id"]
        deleted = await client.delete(f"/api/v1/admin/accounts/{new_id}", headers=headers)
        self_delete = await client.delete(f"/api/v1/admin/accounts/{root.id}", headers=headers)
        logs = await client.get("/api/v1/admin/audit-logs", headers=headers)

        assert created.status_code == 201
        assert escalation.status_code == 400
        assert deleted.json()["message"] == "Admin account deleted successfully"
        assert self_delete.status_code == 400
        actions = {entry["action"] for entry in logs.json()["data"]}
        assert {"ADMIN_ACCOUNT_CREATED", "ADMIN_ACCOUNT_DELETED"} <= actions

    @pytest.mark.asyncio
    async def test_superadmin_cannot_be_edited(self, client, make_admin):
        root = await make_admin(role=SUPERADMIN_ROLE)
        other_root = await make_admin(role=SUPERADMIN_ROLE)

        response = await client.put(
            f"/api/v1/admin/accounts/{other_root.id}",
            json={"full_name": "Renamed"},
            headers=admin_headers(root),
        )

        assert response.status_code == 403


class TestAdminUsers:
    @pytest.mark.asyncio
    async def test_suspend_and_activate_user(self, client, db_session, make_admin, make_user):
        """
        Arrange: Admin and an active member
        Act: Suspend the member, then reactivate
        Assert: Member locked out while suspended, both changes audited
        """
        admin = await make_admin()
        user = await make_user()

        suspended = await client.post(f"/api/v1/admin/users/{user.id}/suspend", headers=admin_headers(admin))
        locked_out = await client.get("/api/v1/user/profile", headers=auth_headers(user))
        stats = await client.get("/api/v1/admin/stats/users", headers=admin_headers(admin))
        activated = await client.post(f"/api/v1/admin/users/{user.id}/activate", headers=admin_headers(admin))

        assert suspended.json()["user"]["status"] == STATUS_SUSPENDED
        assert locked_out.status_code == 403
        assert stats.json()["suspended"] == 1
        assert activated.json()["message"] == "User activated successfully"

        logs = await client.get("/api/v1/admin/audit-logs/me", headers=admin_headers(admin))
        assert [e["action"] for e in logs.json()["data"]][:2] == ["APP_USER_ACTIVATED", "APP_USER_SUSPENDED"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, client, make_admin):
        admin = await make_admin()

        response = await client.post("/api/v1/admin/users/9999/suspend", headers=admin_headers(admin))

        assert response.status_code == 404


async def create_product(client, admin, stock: int = 3) -> dict:
    response = await client.post(
        "/api/v1/products",
        data={"name": "Photo Frame", "price": "25.50", "stock": str(stock)},
        files=[("images", png_file())],
        headers=admin_headers(admin),
    )
    assert response.status_code == 201
    return response.json()["data"]


class TestShop:
    @pytest.mark.asyncio
    async def test_product_catalogue(self, client, make_admin, make_user, local_storage):
        admin = await make_admin()
        user = await make_user()

        product = await create_product(client, admin)
        listed = await client.get("/api/v1/products")
        denied = await client.post(
            "/api/v1/products",
            data={"name": "Mug", "price": "5"},
            headers=auth_headers(user),
        )

        assert product["price"] == 25.5
        assert product["images"][0]["url"].startswith("/media/products/")
        assert local_storage.exists(product["images"][0]["image"])
        assert [p["name"] for p in listed.json()["data"]] == ["Photo Frame"]
        assert denied.status_code == 401

    @pytest.mark.asyncio
    async def test_order_takes_and_cancel_restores_stock(self, client, make_admin, make_user):
        """
        Arrange: Product with three units
        Act: Order two, try to order two more, cancel the first order
        Assert: Stock follows each step and totals use the unit price
        """
        admin = await make_admin()
        user = await make_user()
        product = await create_product(client, admin, stock=3)

        ordered = await client.post(
            "/api/v1/orders",
            json={"product_id": product["id"], "quantity": 2, "gift_message": "Happy birthday"},
            headers=auth_headers(user),
        )
        too_many = await client.post(
            "/api/v1/orders",
            json={"product_id": product["id"], "quantity": 2},
            headers=auth_headers(user),
        )
        after_order = await client.get(f"/api/v1/products/{product['id']}")

        assert ordered.status_code == 201
        order = ordered.json()["data"]
        assert order["price"] == 51.0
        assert order["order_number"].startswith("ORD-")
        assert too_many.json()["detail"] == "Insufficient stock"
        assert after_order.json()["data"]["stock"] == 1

        cancelled = await client.post(f"/api/v1/orders/{order['id']}/cancel", headers=auth_headers(user))
        after_cancel = await client.get(f"/api/v1/products/{product['id']}")

        assert cancelled.json()["data"]["delivery_status"] == "cancelled"
        assert after_cancel.json()["data"]["stock"] == 3

    @pytest.mark.asyncio
    async def test_shipped_order_cannot_be_cancelled(self, client, make_admin, make_user):
        admin = await make_admin()
        buyer = await make_user()
        stranger = await make_user()
        product = await create_product(client, admin)
        ordered = await client.post("/api/v1/orders", json={"product_id": product["id"]}, headers=auth_headers(buyer))
        order_id = ordered.json()["data"]["id"]

        foreign = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=auth_headers(stranger))
        shipped = await client.patch(
            f"/api/v1/admin/orders/{order_id}/status",
            json={"delivery_status": "shipped", "payment_status": "paid"},
            headers=admin_headers(admin),
        )
        late = await client.post(f"/api/v1/orders/{order_id}/cancel", headers=auth_headers(buyer))
        hidden = await client.get(f"/api/v1/orders/{order_id}", headers=auth_headers(stranger))

        assert foreign.status_code == 403
        assert shipped.json()["data"]["payment_status"] == "paid"
        assert late.json()["detail"] == "Only pending orders can be cancelled"
        assert hidden.status_code == 404

    @pytest.mark.asyncio
    async def test_categories(self, client, make_admin):
        admin = await make_admin()

        created = await client.post("/api/v1/categories", json={"name": "Frames"}, headers=admin_headers(admin))
        duplicate = await client.post("/api/v1/categories", json={"name": "Frames"}, headers=admin_headers(admin))
        listed = await client.get("/api/v1/categories")

        assert created.status_code == 201
        assert duplicate.json()["detail"] == "Category already exists"
        assert [c["name"] for c in listed.json()["data"]] == ["Frames"]
