"""
Integration tests for families, trees and membership.

Tests the family lifecycle end-to-end:
- Family creation and code uniqueness
- Saving and reading a tree, including repair of one-sided edges
- Access control for non-members
- Join requests, approval and the notifications they produce

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from tests.helpers import auth_headers


def tree_payload(owner_id: int) -> dict:
    return {
        "members": [
            {"id": 1, "member_id": owner_id, "name": "Asha Rao", "gender": "female", "age": 40, "generation": 1, "children": [2]},
            {"id": 2, "name": "Kiran Rao", "gender": "M", "age": 12, "generation": 2},
        ]
    }


class TestFamilyCreation:
    @pytest.mark.asyncio
    async def test_create_family_upper_cases_code(self, client, make_user):
        """
        Arrange: Plain member account
        Act: Create a family with a lower-case code
        Assert: Code stored upper-cased, new token issued, caller is admin
        """
        user = await make_user()

        response = await client.post(
            "/api/v1/families",
            data={"family_name": "Rao Family", "family_code": "rao001"},
            headers=auth_headers(user),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["data"]["family_code"] == "RAO001"
        assert body["access_token"]

        members = await client.get("/api/v1/family-members/RAO001/members", headers=auth_headers(user))
        assert [m["member_id"] for m in members.json()["data"]] == [user.id]

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        other = await make_user()

        response = await client.post(
            "/api/v1/families",
            data={"family_name": "Other", "family_code": "Rao001"},
            headers=auth_headers(other),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Family code already exists"

    @pytest.mark.asyncio
    async def test_search_by_code_prefix(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001", "Rao Family")

        response = await client.get("/api/v1/families/search", params={"q": "rao"}, headers=auth_headers(owner))

        assert response.status_code == 200
        assert [f["family_code"] for f in response.json()["data"]] == ["RAO001"]

    @pytest.mark.asyncio
    async def test_unknown_family_is_404(self, client, make_user):
        user = await make_user()

        response = await client.get("/api/v1/families/NOPE01", headers=auth_headers(user))

        assert response.status_code == 404


class TestFamilyTree:
    @pytest.mark.asyncio
    async def test_save_and_read_tree(self, client, make_user, make_family):
        """
        Arrange: Family with its owner
        Act: Save a two-person tree where only the parent lists the edge
        Assert: Stored tree has the edge mirrored on the child
        """
        owner = await make_user()
        await make_family(owner, "RAO001")

        response = await client.post(
            "/api/v1/families/RAO001/tree",
            json=tree_payload(owner.id),
            headers=auth_headers(owner),
        )
        assert response.status_code == 200
        assert response.json()["created"] == 2

        response = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(owner))
        people = {p["id"]: p for p in response.json()["people"]}
        assert people[2]["parents"] == [1]
        assert people[2]["gender"] == "male"
        assert people[1]["member_id"] == owner.id
        assert people[1]["is_app_user"] is True

    @pytest.mark.asyncio
    async def test_resave_removes_missing_cards(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        await client.post("/api/v1/families/RAO001/tree", json=tree_payload(owner.id), headers=auth_headers(owner))

        payload = {"members": [tree_payload(owner.id)["members"][0] | {"children": []}]}
        response = await client.post("/api/v1/families/RAO001/tree", json=payload, headers=auth_headers(owner))

        assert response.json()["removed"] == 1
        assert response.json()["updated"] == 1
        tree = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(owner))
        assert [p["id"] for p in tree.json()["people"]] == [1]

    @pytest.mark.asyncio
    async def test_duplicate_person_id_is_rejected(self, client, make_user, make_family):
        """
        Arrange: Family with a saved tree
        Act: Save a payload listing person id 1 twice
        Assert: 400 naming the id, stored tree unchanged
        """
        owner = await make_user()
        await make_family(owner, "RAO001")
        await client.post("/api/v1/families/RAO001/tree", json=tree_payload(owner.id), headers=auth_headers(owner))
        payload = {"members": [
            {"id": 1, "name": "Asha Rao", "generation": 1},
            {"id": 1, "name": "Meera Rao", "generation": 1},
        ]}

        response = await client.post("/api/v1/families/RAO001/tree", json=payload, headers=auth_headers(owner))

        assert response.status_code == 400
        assert response.json()["detail"] == "Duplicate person id 1 in family tree"
        tree = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(owner))
        assert sorted(p["id"] for p in tree.json()["people"]) == [1, 2]

    @pytest.mark.asyncio
    async def test_unnumbered_member_gets_free_id(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        payload = {"members": [
            {"id": 0, "name": "Meera Rao", "generation": 1},
            {"id": 1, "member_id": owner.id, "name": "Asha Rao", "generation": 1},
        ]}

        response = await client.post("/api/v1/families/RAO001/tree", json=payload, headers=auth_headers(owner))

        assert response.status_code == 200
        tree = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(owner))
        assert {p["id"]: p["name"] for p in tree.json()["people"]} == {1: "Asha Rao", 2: "Meera Rao"}

    @pytest.mark.asyncio
    async def test_empty_tree_message(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")

        response = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(owner))

        assert response.json()["people"] == []

    @pytest.mark.asyncio
    async def test_non_member_cannot_read_or_save(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        outsider = await make_user()

        read = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(outsider))
        save = await client.post(
            "/api/v1/families/RAO001/tree",
            json=tree_payload(outsider.id),
            headers=auth_headers(outsider),
        )

        assert read.status_code == 403
        assert save.status_code == 403

    @pytest.mark.asyncio
    async def test_repair_is_admin_only(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        outsider = await make_user()

        ok = await client.post("/api/v1/families/RAO001/tree/repair", headers=auth_headers(owner))
        denied = await client.post("/api/v1/families/RAO001/tree/repair", headers=auth_headers(outsider))

        assert ok.status_code == 200
        assert denied.status_code == 403


class TestMembership:
    @pytest.mark.asyncio
    async def test_join_approve_flow(self, client, make_user, make_family):
        """
        Arrange: Family owner and a user outside the family
        Act: User asks to join, owner approves
        Assert: Both sides are notified and the user becomes a member
        """
        owner = await make_user()
        await make_family(owner, "RAO001")
        joiner = await make_user(first_name="Meena")

        response = await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))
        assert response.status_code == 201

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(owner))
        assert count.json() == {"count": 1}
        pending = await client.get("/api/v1/family-members/RAO001/requests", headers=auth_headers(owner))
        assert [r["member_id"] for r in pending.json()["data"]] == [joiner.id]

        response = await client.post(
            f"/api/v1/family-members/RAO001/members/{joiner.id}/approve",
            headers=auth_headers(owner),
        )
        assert response.status_code == 200

        notifications = await client.get("/api/v1/notifications", headers=auth_headers(joiner))
        assert notifications.json()["data"][0]["type"] == "FAMILY_MEMBER_APPROVED"
        tree = await client.get("/api/v1/families/RAO001/tree", headers=auth_headers(joiner))
        assert tree.status_code == 200

    @pytest.mark.asyncio
    async def test_duplicate_join_request(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        joiner = await make_user()
        await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))

        response = await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))

        assert response.status_code == 400
        assert response.json()["detail"] == "Join request already pending"

    @pytest.mark.asyncio
    async def test_only_admins_approve(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        joiner = await make_user()
        await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))

        response = await client.post(
            f"/api/v1/family-members/RAO001/members/{joiner.id}/approve",
            headers=auth_headers(joiner),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_reject_notifies_requester(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        joiner = await make_user()
        await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))

        response = await client.post(
            f"/api/v1/family-members/RAO001/members/{joiner.id}/reject",
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        notifications = await client.get(
            "/api/v1/notifications",
            params={"type": "FAMILY_JOIN_REJECTED"},
            headers=auth_headers(joiner),
        )
        assert len(notifications.json()["data"]) == 1

    @pytest.mark.asyncio
    async def test_add_member_without_account(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")

        response = await client.post(
            "/api/v1/family-members/RAO001/members",
            json={"first_name": "Dadi", "gender": "female"},
            headers=auth_headers(owner),
        )

        assert response.status_code == 201
        assert response.json()["data"]["approve_status"] == "approved"


class TestNotifications:
    @pytest.mark.asyncio
    async def test_read_all_clears_unread_count(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        for _ in range(2):
            joiner = await make_user()
            await client.post("/api/v1/family-members/RAO001/join", headers=auth_headers(joiner))

        before = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(owner))
        response = await client.post("/api/v1/notifications/read-all", headers=auth_headers(owner))
        after = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(owner))

        assert before.json()["count"] == 2
        assert response.json()["updated"] == 2
        assert after.json()["count"] == 0
