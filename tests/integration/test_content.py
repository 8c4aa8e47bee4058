"""
Integration tests for posts, galleries, likes, comments and user blocks.

Tests follow AAA (Arrange, Act, Assert) pattern.
"""

import pytest

from tests.helpers import auth_headers, png_file


async def create_post(client, user, caption="Hello family", **form):
    response = await client.post(
        "/api/v1/posts",
        data={"caption": caption, **form},
        headers=auth_headers(user),
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestPosts:
    @pytest.mark.asyncio
    async def test_create_post_with_image(self, client, make_user, local_storage):
        """
        Arrange: Any app user
        Act: Create a public post with an image
        Assert: Image stored under posts/ and served from the media URL
        """
        user = await make_user()

        response = await client.post(
            "/api/v1/posts",
            data={"caption": "Diwali"},
            files={"post_image": png_file()},
            headers=auth_headers(user),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["post_image"].startswith("posts/")
        assert data["post_image"].endswith(".png")
        assert data["post_image_url"] == f"/media/{data['post_image']}"
        assert local_storage.exists(data["post_image"])

    @pytest.mark.asyncio
    async def test_empty_post_rejected(self, client, make_user):
        user = await make_user()

        response = await client.post("/api/v1/posts", data={"caption": "  "}, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json()["detail"] == "Post must have a caption or an image"

    @pytest.mark.asyncio
    async def test_non_image_upload_rejected(self, client, make_user):
        user = await make_user()

        response = await client.post(
            "/api/v1/posts",
            data={"caption": "doc"},
            files={"post_image": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Only image uploads are allowed"

    @pytest.mark.asyncio
    async def test_family_post_needs_membership(self, client, make_user, make_family):
        owner = await make_user()
        await make_family(owner, "RAO001")
        outsider = await make_user()

        response = await client.post(
            "/api/v1/posts",
            data={"caption": "hi", "privacy": "family", "family_code": "RAO001"},
            headers=auth_headers(outsider),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_feed_visibility(self, client, make_user, make_family):
        """
        Arrange: Family post and public post by a family owner
        Act: Owner and an outsider read the feed
        Assert: Outsider only sees the public post
        """
        owner = await make_user()
        await make_family(owner, "RAO001")
        outsider = await make_user()
        family_post = await create_post(client, owner, "family only", privacy="family")
        public_post = await create_post(client, owner, "for everyone")

        owner_feed = await client.get("/api/v1/posts", headers=auth_headers(owner))
        outsider_feed = await client.get("/api/v1/posts", headers=auth_headers(outsider))
        direct = await client.get(f"/api/v1/posts/{family_post['id']}", headers=auth_headers(outsider))

        assert family_post["family_code"] == "RAO001"
        assert {p["id"] for p in owner_feed.json()["data"]} == {family_post["id"], public_post["id"]}
        assert [p["id"] for p in outsider_feed.json()["data"]] == [public_post["id"]]
        assert direct.status_code == 404

    @pytest.mark.asyncio
    async def test_like_toggle_and_notification(self, client, make_user):
        author = await make_user()
        fan = await make_user()
        post = await create_post(client, author)

        first = await client.post(f"/api/v1/posts/{post['id']}/like", headers=auth_headers(fan))
        count = await client.get(f"/api/v1/posts/{post['id']}/like-count", headers=auth_headers(fan))
        second = await client.post(f"/api/v1/posts/{post['id']}/like", headers=auth_headers(fan))
        notifications = await client.get("/api/v1/notifications", headers=auth_headers(author))

        assert first.json() == {"liked": True, "like_count": 1}
        assert count.json() == {"count": 1}
        assert second.json() == {"liked": False, "like_count": 0}
        assert [n["type"] for n in notifications.json()["data"]] == ["post_like"]

    @pytest.mark.asyncio
    async def test_own_like_does_not_notify(self, client, make_user):
        author = await make_user()
        post = await create_post(client, author)

        await client.post(f"/api/v1/posts/{post['id']}/like", headers=auth_headers(author))
        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(author))

        assert count.json()["count"] == 0

    @pytest.mark.asyncio
    async def test_comments_and_replies(self, client, make_user):
        author = await make_user()
        reader = await make_user()
        post = await create_post(client, author)

        comment = await client.post(
            f"/api/v1/posts/{post['id']}/comments",
            json={"comment": "Lovely"},
            headers=auth_headers(reader),
        )
        comment_id = comment.json()["data"]["id"]
        reply = await client.post(
            f"/api/v1/posts/comments/{comment_id}/reply",
            json={"comment": "Thanks!"},
            headers=auth_headers(author),
        )
        listing = await client.get(f"/api/v1/posts/{post['id']}/comments", headers=auth_headers(author))

        assert comment.status_code == 201
        assert reply.json()["data"]["parent_comment_id"] == comment_id
        assert listing.json()["total"] == 2

        denied = await client.put(
            f"/api/v1/posts/comments/{comment_id}",
            json={"comment": "edited"},
            headers=auth_headers(author),
        )
        deleted = await client.delete(f"/api/v1/posts/comments/{comment_id}", headers=auth_headers(reader))
        count = await client.get(f"/api/v1/posts/{post['id']}/comment-count", headers=auth_headers(author))

        assert denied.status_code == 403
        assert deleted.json()["deleted"] == 2
        assert count.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_only_author_edits_and_deletes(self, client, make_user):
        author = await make_user()
        other = await make_user()
        post = await create_post(client, author)

        edit = await client.put(f"/api/v1/posts/{post['id']}", data={"caption": "mine"}, headers=auth_headers(other))
        delete = await client.delete(f"/api/v1/posts/{post['id']}", headers=auth_headers(other))
        own_edit = await client.put(f"/api/v1/posts/{post['id']}", data={"caption": "edited"}, headers=auth_headers(author))
        own_delete = await client.delete(f"/api/v1/posts/{post['id']}", headers=auth_headers(author))
        gone = await client.get(f"/api/v1/posts/{post['id']}", headers=auth_headers(author))

        assert edit.status_code == 403
        assert delete.status_code == 403
        assert own_edit.json()["data"]["caption"] == "edited"
        assert own_delete.status_code == 200
        assert gone.status_code == 404


class TestGalleries:
    @pytest.mark.asyncio
    async def test_create_gallery_copies_first_image_as_cover(self, client, make_user, local_storage):
        user = await make_user()

        response = await client.post(
            "/api/v1/galleries",
            data={"gallery_title": "Wedding"},
            files=[("images", png_file("a.png")), ("images", png_file("b.png"))],
            headers=auth_headers(user),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert len(data["albums"]) == 2
        assert data["cover_photo"].startswith("gallery/cover/")
        assert local_storage.exists(data["cover_photo"])

    @pytest.mark.asyncio
    async def test_gallery_needs_images(self, client, make_user):
        user = await make_user()

        response = await client.post(
            "/api/v1/galleries",
            data={"gallery_title": "Empty"},
            headers=auth_headers(user),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_single_gallery_is_public_to_read(self, client, make_user):
        user = await make_user()
        created = await client.post(
            "/api/v1/galleries",
            data={"gallery_title": "Trip"},
            files=[("images", png_file())],
            headers=auth_headers(user),
        )

        response = await client.get(f"/api/v1/galleries/{created.json()['data']['id']}")

        assert response.status_code == 200
        assert response.json()["data"]["gallery_title"] == "Trip"

    @pytest.mark.asyncio
    async def test_remove_and_add_images(self, client, make_user, local_storage):
        user = await make_user()
        created = (await client.post(
            "/api/v1/galleries",
            data={"gallery_title": "Trip"},
            files=[("images", png_file("a.png")), ("images", png_file("b.png"))],
            headers=auth_headers(user),
        )).json()["data"]
        removed = created["albums"][0]

        response = await client.put(
            f"/api/v1/galleries/{created['id']}",
            data={"remove_image_ids": [str(removed["id"])]},
            files=[("images", png_file("c.png"))],
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        albums = response.json()["data"]["albums"]
        assert len(albums) == 2
        assert removed["id"] not in {a["id"] for a in albums}
        assert not local_storage.exists(removed["album"])

    @pytest.mark.asyncio
    async def test_delete_gallery_removes_files(self, client, make_user, local_storage):
        user = await make_user()
        created = (await client.post(
            "/api/v1/galleries",
            data={"gallery_title": "Trip"},
            files=[("images", png_file())],
            headers=auth_headers(user),
        )).json()["data"]

        response = await client.delete(f"/api/v1/galleries/{created['id']}", headers=auth_headers(user))
        after = await client.get(f"/api/v1/galleries/{created['id']}")

        assert response.status_code == 200
        assert after.status_code == 404
        assert not local_storage.exists(created["cover_photo"])


class TestBlocking:
    @pytest.mark.asyncio
    async def test_blocked_author_disappears_from_feed(self, client, make_user):
        author = await make_user()
        viewer = await make_user()
        post = await create_post(client, author)

        block = await client.post(f"/api/v1/user/blocks/{author.id}", headers=auth_headers(viewer))
        feed = await client.get("/api/v1/posts", headers=auth_headers(viewer))
        status = await client.get(f"/api/v1/user/blocks/{viewer.id}/status", headers=auth_headers(author))
        like = await client.post(f"/api/v1/posts/{post['id']}/like", headers=auth_headers(viewer))

        assert block.status_code == 200
        assert feed.json()["data"] == []
        assert status.json() == {"is_blocked_by_me": False, "is_blocked_by_them": True}
        assert like.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_block_self(self, client, make_user):
        user = await make_user()

        response = await client.post(f"/api/v1/user/blocks/{user.id}", headers=auth_headers(user))

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unblock_restores_feed(self, client, make_user):
        author = await make_user()
        viewer = await make_user()
        await create_post(client, author)
        await client.post(f"/api/v1/user/blocks/{author.id}", headers=auth_headers(viewer))

        response = await client.delete(f"/api/v1/user/blocks/{author.id}", headers=auth_headers(viewer))
        feed = await client.get("/api/v1/posts", headers=auth_headers(viewer))

        assert response.status_code == 200
        assert len(feed.json()["data"]) == 1
