"""
Integration tests for cross-family tree links and family merges.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from tests.helpers import auth_headers


async def family_with_tree(client, make_user, make_family, code: str, first_name: str, gender: str):
    """Family whose tree holds a single card for its owner; returns (owner, node_uid)."""
    owner = await make_user(first_name=first_name, gender=gender)
    await make_family(owner, code)
    await client.post(
        f"/api/v1/families/{code}/tree",
        json={"members": [
            {"id": 1, "member_id": owner.id, "name": f"{first_name} Rao", "gender": gender, "age": 40, "generation": 1},
        ]},
        headers=auth_headers(owner),
    )
    tree = await client.get(f"/api/v1/families/{code}/tree", headers=auth_headers(owner))
    return owner, tree.json()["people"][0]["node_uid"]


async def notification_of_type(client, user, notification_type: str) -> dict:
    response = await client.get("/api/v1/notifications", headers=auth_headers(user))
    return next(n for n in response.json()["data"] if n["type"] == notification_type)


class TestTreeLinks:
    @pytest.mark.asyncio
    async def test_accepted_sibling_link(self, client, make_user, make_family):
        """
        Arrange: Two families, each with its owner on the tree
        Act: First owner proposes a sibling link, second owner accepts it
        Assert: Both trees gain a linked card and the families are linked
        """
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")

        created = await client.post(
            "/api/v1/family-links/tree-link-requests",
            json={
                "receiver_family_code": "BBB001",
                "sender_node_uid": asha_uid,
                "receiver_node_uid": ravi_uid,
                "relationship_type": "sibling",
            },
            headers=auth_headers(asha),
        )
        assert created.status_code == 201
        assert created.json()["data"]["status"] == "pending"

        sent = await client.get("/api/v1/family-links/tree-link-requests/sent", headers=auth_headers(asha))
        assert sent.json()["data"][0]["receiver_node_name"] == "Ravi Rao"

        request = await notification_of_type(client, ravi, "TREE_LINK_REQUEST")
        accepted = await client.post(
            f"/api/v1/notifications/{request['id']}/respond",
            json={"action": "accept"},
            headers=auth_headers(ravi),
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        ravi_tree = await client.get("/api/v1/families/BBB001/tree", headers=auth_headers(ravi))
        linked = [p for p in ravi_tree.json()["people"] if p["is_external_linked"]]
        assert len(linked) == 1
        assert linked[0]["canonical_family_code"] == "AAA001"
        assert linked[0]["canonical_node_uid"] == asha_uid

        families = await client.get("/api/v1/family-links/linked", headers=auth_headers(asha))
        assert [f["family_code"] for f in families.json()["data"]] == ["BBB001"]
        assert await notification_of_type(client, asha, "TREE_LINK_ACCEPTED")

    @pytest.mark.asyncio
    async def test_rejected_link_notifies_sender(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        payload = {
            "receiver_family_code": "BBB001",
            "sender_node_uid": asha_uid,
            "receiver_node_uid": ravi_uid,
            "relationship_type": "sibling",
        }
        await client.post("/api/v1/family-links/tree-link-requests", json=payload, headers=auth_headers(asha))

        duplicate = await client.post("/api/v1/family-links/tree-link-requests", json=payload, headers=auth_headers(asha))
        request = await notification_of_type(client, ravi, "TREE_LINK_REQUEST")
        rejected = await client.post(
            f"/api/v1/notifications/{request['id']}/respond",
            json={"action": "reject"},
            headers=auth_headers(ravi),
        )

        assert duplicate.json()["message"] == "Link request already pending."
        assert rejected.json()["status"] == "rejected"
        assert await notification_of_type(client, asha, "TREE_LINK_REJECTED")
        families = await client.get("/api/v1/family-links/linked", headers=auth_headers(asha))
        assert families.json()["data"] == []

    @pytest.mark.asyncio
    async def test_link_to_own_family_rejected(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")

        response = await client.post(
            "/api/v1/family-links/tree-link-requests",
            json={
                "receiver_family_code": "AAA001",
                "sender_node_uid": asha_uid,
                "receiver_node_uid": asha_uid,
                "relationship_type": "sibling",
            },
            headers=auth_headers(asha),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_sender_revokes_request(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        created = await client.post(
            "/api/v1/family-links/tree-link-requests",
            json={
                "receiver_family_code": "BBB001",
                "sender_node_uid": asha_uid,
                "receiver_node_uid": ravi_uid,
                "relationship_type": "parent",
            },
            headers=auth_headers(asha),
        )
        request_id = created.json()["data"]["id"]

        denied = await client.post(
            f"/api/v1/family-links/tree-link-requests/{request_id}/revoke", headers=auth_headers(ravi)
        )
        revoked = await client.post(
            f"/api/v1/family-links/tree-link-requests/{request_id}/revoke", headers=auth_headers(asha)
        )

        assert denied.status_code == 403
        assert revoked.json()["data"]["status"] == "revoked"
        assert created.json()["data"]["parent_role"] == "mother"


class TestFamilyMerge:
    async def open_request(self, client, make_user, make_family):
        primary, _ = await family_with_tree(client, make_user, make_family, "PRI001", "Meera", "female")
        secondary, _ = await family_with_tree(client, make_user, make_family, "SEC001", "Vikram", "male")
        response = await client.post(
            "/api/v1/family-merge/requests",
            json={"primary_family_code": "pri001", "secondary_family_code": "SEC001"},
            headers=auth_headers(secondary),
        )
        assert response.status_code == 201
        return primary, secondary, response.json()["data"]["id"]

    @pytest.mark.asyncio
    async def test_request_lifecycle(self, client, make_user, make_family):
        """
        Arrange: Secondary admin opens a merge request
        Act: Duplicate request, secondary tries to accept, primary accepts
        Assert: Only the primary admin decides; tracking follows the status
        """
        primary, secondary, request_id = await self.open_request(client, make_user, make_family)

        duplicate = await client.post(
            "/api/v1/family-merge/requests",
            json={"primary_family_code": "PRI001", "secondary_family_code": "SEC001"},
            headers=auth_headers(secondary),
        )
        denied = await client.post(f"/api/v1/family-merge/requests/{request_id}/accept", headers=auth_headers(secondary))
        accepted = await client.post(f"/api/v1/family-merge/requests/{request_id}/accept", headers=auth_headers(primary))
        tracking = await client.get(f"/api/v1/family-merge/requests/{request_id}/tracking", headers=auth_headers(secondary))

        assert duplicate.status_code == 400
        assert denied.status_code == 403
        assert accepted.json()["data"]["primary_status"] == "accepted"
        assert tracking.json()["data"]["tracking_status"] == "ACCEPTED_WAITING_EXECUTION"
        assert tracking.json()["data"]["total_members"] == 1

    @pytest.mark.asyncio
    async def test_analysis(self, client, make_user, make_family):
        primary, _, request_id = await self.open_request(client, make_user, make_family)

        response = await client.get(f"/api/v1/family-merge/requests/{request_id}/analysis", headers=auth_headers(primary))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["primary_family_code"] == "PRI001"
        assert "crisis_analysis" in data
        assert len(data["new_persons"]) == 1

    @pytest.mark.asyncio
    async def test_state_versions_and_execute(self, client, make_user, make_family):
        """
        Arrange: Accepted merge request
        Act: Save, edit and revert the working state, then execute
        Assert: Every change is a version; the final tree replaces the primary tree once
        """
        primary, secondary, request_id = await self.open_request(client, make_user, make_family)
        base = f"/api/v1/family-merge/requests/{request_id}"
        headers = auth_headers(primary)
        await client.post(f"{base}/accept", headers=headers)

        early = await client.post(f"{base}/execute", headers=headers)
        assert early.status_code == 400

        final_tree = {"members": [
            {"id": 1, "member_id": primary.id, "name": "Meera Rao", "gender": "female", "generation": 1, "spouses": [2]},
            {"id": 2, "member_id": secondary.id, "name": "Vikram Rao", "gender": "male", "generation": 1, "spouses": [1]},
        ]}
        saved = await client.put(f"{base}/state", json={"state": {"finalTree": final_tree}}, headers=headers)
        edited = await client.patch(
            f"{base}/state",
            json={"changes": {"finalTree": {"members": []}}, "description": "Cleared"},
            headers=headers,
        )
        reverted = await client.post(f"{base}/state/revert", json={"target_version": 1}, headers=headers)
        history = await client.get(f"{base}/state/history", headers=headers)

        assert saved.json()["data"]["version"] == 1
        assert edited.json()["data"]["version"] == 2
        assert reverted.json()["data"]["reverted_to"] == 1
        assert reverted.json()["data"]["version"] == 3
        assert [v["description"] for v in history.json()["data"]] == [
            "Saved merge state",
            "Cleared",
            "Reverted to version 1",
        ]

        executed = await client.post(f"{base}/execute", headers=headers)
        again = await client.post(f"{base}/execute", headers=headers)

        assert executed.status_code == 200
        assert executed.json()["data"]["request"]["primary_status"] == "merged"
        assert again.status_code == 400
        tree = await client.get("/api/v1/families/PRI001/tree", headers=headers)
        assert sorted(p["name"] for p in tree.json()["people"]) == ["Meera Rao", "Vikram Rao"]

    @pytest.mark.asyncio
    async def test_generation_offset_requires_acceptance(self, client, make_user, make_family):
        primary, _, request_id = await self.open_request(client, make_user, make_family)

        response = await client.post(
            f"/api/v1/family-merge/requests/{request_id}/generation-offset",
            json={"offset": 1},
            headers=auth_headers(primary),
        )

        assert response.status_code == 400


async def link_cards(client, sender, receiver, sender_uid, receiver_uid, receiver_code, relationship_type):
    """Send a tree link request and accept it as ``receiver``."""
    created = await client.post(
        "/api/v1/family-links/tree-link-requests",
        json={
            "receiver_family_code": receiver_code,
            "sender_node_uid": sender_uid,
            "receiver_node_uid": receiver_uid,
            "relationship_type": relationship_type,
        },
        headers=auth_headers(sender),
    )
    assert created.status_code == 201
    request = await notification_of_type(client, receiver, "TREE_LINK_REQUEST")
    return await client.post(
        f"/api/v1/notifications/{request['id']}/respond",
        json={"action": "accept"},
        headers=auth_headers(receiver),
    )


async def tree_people(client, user, family_code: str) -> list[dict]:
    response = await client.get(f"/api/v1/families/{family_code}/tree", headers=auth_headers(user))
    assert response.status_code == 200
    return response.json()["people"]


class TestParentChildLinks:
    @pytest.mark.asyncio
    async def test_parent_link_replaces_parent_with_same_role(self, client, make_user, make_family):
        """
        Arrange: Ravi's tree already has a mother and a father who are spouses
        Act: Asha (female) proposes herself as Ravi's parent, Ravi accepts
        Assert: The old mother is replaced and the father's spouse moves to Asha's card
        """
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi = await make_user(first_name="Ravi", gender="male")
        await make_family(ravi, "BBB001")
        await client.post(
            "/api/v1/families/BBB001/tree",
            json={"members": [
                {"id": 1, "member_id": ravi.id, "name": "Ravi Rao", "gender": "male", "generation": 1, "parents": [2, 3]},
                {"id": 2, "name": "Lakshmi Rao", "gender": "female", "generation": 0, "children": [1], "spouses": [3]},
                {"id": 3, "name": "Mohan Rao", "gender": "male", "generation": 0, "children": [1], "spouses": [2]},
            ]},
            headers=auth_headers(ravi),
        )
        ravi_uid = next(p["node_uid"] for p in await tree_people(client, ravi, "BBB001") if p["id"] == 1)

        accepted = await link_cards(client, asha, ravi, asha_uid, ravi_uid, "BBB001", "parent")

        assert accepted.json()["status"] == "accepted"
        people = {p["id"]: p for p in await tree_people(client, ravi, "BBB001")}
        external = next(p for p in people.values() if p["is_external_linked"])
        assert external["canonical_node_uid"] == asha_uid
        assert external["generation"] == 0
        assert set(people[1]["parents"]) == {3, external["id"]}
        assert people[2]["children"] == []
        assert people[3]["spouses"] == [external["id"]]
        assert external["spouses"] == [3]
        assert external["children"] == [1]

        asha_people = await tree_people(client, asha, "AAA001")
        ravi_card = next(p for p in asha_people if p["is_external_linked"])
        asha_card = next(p for p in asha_people if not p["is_external_linked"])
        assert ravi_card["generation"] == 2
        assert ravi_card["parents"] == [asha_card["id"]]
        assert asha_card["children"] == [ravi_card["id"]]

    @pytest.mark.asyncio
    async def test_child_link_adds_parent_card_to_sender_tree(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")

        accepted = await link_cards(client, asha, ravi, asha_uid, ravi_uid, "BBB001", "child")

        assert accepted.json()["status"] == "accepted"
        asha_people = await tree_people(client, asha, "AAA001")
        father = next(p for p in asha_people if p["is_external_linked"])
        asha_card = next(p for p in asha_people if not p["is_external_linked"])
        assert father["gender"] == "male"
        assert father["generation"] == 0
        assert asha_card["parents"] == [father["id"]]

        ravi_people = await tree_people(client, ravi, "BBB001")
        child = next(p for p in ravi_people if p["is_external_linked"])
        assert child["generation"] == 2
        assert child["parents"] == [1]


class TestUnlinking:
    @pytest.mark.asyncio
    async def test_unlink_family_removes_cards_on_both_sides(self, client, make_user, make_family):
        """
        Arrange: Two families joined by an accepted sibling link
        Act: Asha's family admin unlinks the other family
        Assert: Linked cards gone from both trees, link list empty, second unlink is 404
        """
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        await link_cards(client, asha, ravi, asha_uid, ravi_uid, "BBB001", "sibling")

        response = await client.post(
            "/api/v1/family-links/unlink", json={"other_family_code": "bbb001"}, headers=auth_headers(asha)
        )

        assert response.status_code == 200
        assert response.json() == {
            "message": "Family unlinked successfully",
            "deactivated_tree_links": 1,
            "removed_cards": 2,
        }
        for user, code in ((asha, "AAA001"), (ravi, "BBB001")):
            people = await tree_people(client, user, code)
            assert len(people) == 1
            assert people[0]["siblings"] == []
        families = await client.get("/api/v1/family-links/linked", headers=auth_headers(ravi))
        assert families.json()["data"] == []

        again = await client.post(
            "/api/v1/family-links/unlink", json={"other_family_code": "BBB001"}, headers=auth_headers(asha)
        )
        assert again.status_code == 404
        assert again.json()["detail"] == "Family link not found"

    @pytest.mark.asyncio
    async def test_unlink_single_linked_card(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        await link_cards(client, asha, ravi, asha_uid, ravi_uid, "BBB001", "sibling")
        external = next(p for p in await tree_people(client, ravi, "BBB001") if p["is_external_linked"])

        local = await client.post(
            "/api/v1/family-links/unlink-card",
            json={"family_code": "BBB001", "node_uid": ravi_uid},
            headers=auth_headers(ravi),
        )
        removed = await client.post(
            "/api/v1/family-links/unlink-card",
            json={"family_code": "BBB001", "node_uid": external["node_uid"]},
            headers=auth_headers(ravi),
        )

        assert local.status_code == 400
        assert local.json()["detail"] == "Only linked cards can be unlinked"
        assert removed.status_code == 200
        assert removed.json()["message"] == "Linked card removed"
        assert removed.json()["deactivated_tree_links"] == 1
        people = await tree_people(client, ravi, "BBB001")
        assert [p["id"] for p in people] == [1]
        assert people[0]["siblings"] == []

    @pytest.mark.asyncio
    async def test_only_admins_unlink(self, client, make_user, make_family):
        asha, asha_uid = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, ravi_uid = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        await link_cards(client, asha, ravi, asha_uid, ravi_uid, "BBB001", "sibling")
        external = next(p for p in await tree_people(client, ravi, "BBB001") if p["is_external_linked"])

        response = await client.post(
            "/api/v1/family-links/unlink-card",
            json={"family_code": "BBB001", "node_uid": external["node_uid"]},
            headers=auth_headers(asha),
        )

        assert response.status_code == 403


class TestLinkedTreeAccess:
    @pytest.mark.asyncio
    async def test_active_family_link_grants_tree_view(self, client, db_session, make_user, make_family):
        """
        Arrange: Two families joined only by an active family link, plus an outsider
        Act: Each reads the first family's tree
        Assert: The linked family's owner may read it, the outsider may not
        """
        from app.models.family_link import LINK_SOURCE_TREE
        from app.services.family_link import FamilyLinkService

        asha = await make_user(first_name="Asha")
        await make_family(asha, "AAA001")
        ravi = await make_user(first_name="Ravi")
        await make_family(ravi, "BBB001")
        outsider = await make_user()
        await make_family(outsider, "CCC001")

        before = await client.get("/api/v1/families/AAA001/tree", headers=auth_headers(ravi))
        await FamilyLinkService(db_session).ensure_family_link("AAA001", "BBB001", LINK_SOURCE_TREE)
        await db_session.commit()
        linked = await client.get("/api/v1/families/AAA001/tree", headers=auth_headers(ravi))
        denied = await client.get("/api/v1/families/AAA001/tree", headers=auth_headers(outsider))

        assert before.status_code == 403
        assert linked.status_code == 200
        assert denied.status_code == 403


class TestAssociationRequests:
    async def send_request(self, client, make_user, make_family):
        asha, _ = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, _ = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        response = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": ravi.id},
            headers=auth_headers(asha),
        )
        assert response.status_code == 201
        return asha, ravi, response.json()["notification_id"]

    async def respond(self, client, user, notification_id: int, action: str):
        return await client.post(
            f"/api/v1/notifications/{notification_id}/respond",
            json={"action": action},
            headers=auth_headers(user),
        )

    @pytest.mark.asyncio
    async def test_pending_request_is_found_from_either_side(self, client, make_user, make_family):
        """
        Arrange: Asha has asked Ravi to associate
        Act: Asha asks again, then Ravi asks Asha
        Assert: Both calls return the pending request instead of a new one
        """
        asha, ravi, notification_id = await self.send_request(client, make_user, make_family)

        repeated = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": ravi.id},
            headers=auth_headers(asha),
        )
        reverse = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": asha.id},
            headers=auth_headers(ravi),
        )

        for response in (repeated, reverse):
            assert response.json()["message"] == "Association request already pending"
            assert response.json()["notification_id"] == notification_id
        pending = await client.get(
            "/api/v1/notifications",
            params={"type": "FAMILY_ASSOCIATION_REQUEST"},
            headers=auth_headers(asha),
        )
        assert pending.json()["data"] == []

    @pytest.mark.asyncio
    async def test_accept_links_both_families(self, client, make_user, make_family):
        """
        Arrange: Pending association request from Asha to Ravi
        Act: Ravi accepts
        Assert: Spouse cards in both trees, spouse family link, user relationship and associated codes
        """
        asha, ravi, notification_id = await self.send_request(client, make_user, make_family)

        response = await self.respond(client, ravi, notification_id, "accept")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Association request accepted",
            "status": "accepted",
            "generation": 1,
        }
        for user, code, partner in ((asha, "AAA001", ravi), (ravi, "BBB001", asha)):
            people = await tree_people(client, user, code)
            own = next(p for p in people if p["member_id"] == user.id)
            spouse = next(p for p in people if p["is_external_linked"])
            assert spouse["member_id"] == partner.id
            assert own["spouses"] == [spouse["id"]]
            assert spouse["generation"] == 1

        families = await client.get("/api/v1/family-links/linked", headers=auth_headers(asha))
        assert [(f["family_code"], f["source"]) for f in families.json()["data"]] == [("BBB001", "spouse")]

        relationships = await client.get(
            f"/api/v1/families/user/{asha.id}/relationships", headers=auth_headers(asha)
        )
        assert [(r["relationship_type"], r["other_user_id"]) for r in relationships.json()["data"]] == [
            ("spouse", ravi.id)
        ]

        codes = await client.get(f"/api/v1/families/user/{ravi.id}/codes", headers=auth_headers(ravi))
        assert [c["family_code"] for c in codes.json()["data"]] == ["BBB001", "AAA001"]
        assert await notification_of_type(client, asha, "FAMILY_ASSOCIATION_ACCEPTED")

        again = await self.respond(client, ravi, notification_id, "accept")
        assert again.json()["message"] == "Request already accepted"

    @pytest.mark.asyncio
    async def test_reject_notifies_sender(self, client, make_user, make_family):
        asha, ravi, notification_id = await self.send_request(client, make_user, make_family)

        response = await self.respond(client, ravi, notification_id, "reject")

        assert response.json() == {"message": "Association request rejected", "status": "rejected"}
        assert await notification_of_type(client, asha, "FAMILY_ASSOCIATION_REJECTED")
        families = await client.get("/api/v1/family-links/linked", headers=auth_headers(asha))
        assert families.json()["data"] == []

    @pytest.mark.asyncio
    async def test_block_after_request_rejects_it(self, client, make_user, make_family):
        """
        Arrange: Pending association request, then Ravi blocks Asha
        Act: Ravi tries to accept
        Assert: 403, the request is closed as rejected and no spouse cards exist
        """
        asha, ravi, notification_id = await self.send_request(client, make_user, make_family)
        blocked = await client.post(f"/api/v1/user/blocks/{asha.id}", headers=auth_headers(ravi))
        assert blocked.status_code == 200

        response = await self.respond(client, ravi, notification_id, "accept")

        assert response.status_code == 403
        assert response.json()["detail"] == "Not allowed"
        request = await notification_of_type(client, ravi, "FAMILY_ASSOCIATION_REQUEST")
        assert request["status"] == "rejected"
        people = await tree_people(client, ravi, "BBB001")
        assert not any(p["is_external_linked"] for p in people)

    @pytest.mark.asyncio
    async def test_request_needs_families_on_both_sides(self, client, make_user, make_family):
        asha, _ = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        loner = await make_user()

        response = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": loner.id},
            headers=auth_headers(asha),
        )
        own = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": asha.id},
            headers=auth_headers(asha),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Both users must belong to a family"
        assert own.status_code == 400


class TestAssociatedTree:
    async def associated_pair(self, client, make_user, make_family):
        asha, _ = await family_with_tree(client, make_user, make_family, "AAA001", "Asha", "female")
        ravi, _ = await family_with_tree(client, make_user, make_family, "BBB001", "Ravi", "male")
        created = await client.post(
            "/api/v1/family-links/association-requests",
            json={"target_user_id": ravi.id},
            headers=auth_headers(asha),
        )
        await client.post(
            f"/api/v1/notifications/{created.json()['notification_id']}/respond",
            json={"action": "accept"},
            headers=auth_headers(ravi),
        )
        return asha, ravi

    @pytest.mark.asyncio
    async def test_merged_tree_unifies_people_per_user(self, client, make_user, make_family):
        """
        Arrange: Asha and Ravi associated as spouses across two families
        Act: Read Asha's associated tree
        Assert: One person per user, spanning both family codes, joined as spouses
        """
        asha, ravi = await self.associated_pair(client, make_user, make_family)

        response = await client.get(f"/api/v1/families/associated-tree/{asha.id}", headers=auth_headers(asha))

        assert response.status_code == 200
        body = response.json()
        assert body["family_codes"] == ["AAA001", "BBB001"]
        people = {p["id"]: p for p in body["people"]}
        assert set(people) == {f"U{asha.id}", f"U{ravi.id}"}
        assert sorted(people[f"U{asha.id}"]["family_codes"]) == ["AAA001", "BBB001"]
        assert people[f"U{asha.id}"]["spouses"] == [f"U{ravi.id}"]
        assert people[f"U{ravi.id}"]["spouses"] == [f"U{asha.id}"]
        assert body["total_connections"] == 1

    @pytest.mark.asyncio
    async def test_prefix_follows_spouse_gender(self, client, make_user, make_family):
        asha, ravi = await self.associated_pair(client, make_user, make_family)

        from_asha = await client.get(f"/api/v1/families/associated-prefixes/{asha.id}", headers=auth_headers(asha))
        from_ravi = await client.get(f"/api/v1/families/associated-prefixes/{ravi.id}", headers=auth_headers(ravi))

        assert from_asha.json() == {
            "user_id": asha.id,
            "family_code": "AAA001",
            "associated": [{"family_code": "BBB001", "prefix": "SH", "via_user_id": ravi.id}],
        }
        assert from_ravi.json()["associated"] == [{"family_code": "AAA001", "prefix": "SW", "via_user_id": asha.id}]

    @pytest.mark.asyncio
    async def test_user_without_family_has_no_associated_tree(self, client, make_user):
        loner = await make_user()

        response = await client.get(f"/api/v1/families/associated-tree/{loner.id}", headers=auth_headers(loner))

        assert response.status_code == 404
        assert response.json()["detail"] == "No associated family trees found for this user"
