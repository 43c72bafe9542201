"""
Notification endpoint tests — publish fan-out to followers, read state
and ownership of notifications.
"""
import uuid
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.services import notification_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _headers(user_id: str) -> dict:
    return {"X-User-ID": user_id}


async def _create_user(client: AsyncClient, username: str, role: str = "reader") -> str:
    resp = await client.post("/api/v1/users", json={
        "username": username,
        "email": f"{username}@example.com",
        "role": role,
    })
    assert resp.status_code == 201
    return resp.json()["id"]


async def _follow(client: AsyncClient, follower_id: str, following_id: str) -> None:
    resp = await client.post(f"/api/v1/users/{following_id}/follow", headers=_headers(follower_id))
    assert resp.status_code == 200


async def _draft(client: AsyncClient, author_id: str, title: str) -> str:
    resp = await client.post(
        "/api/v1/articles",
        json={"title": title, "content": "Draft content"},
        headers=_headers(author_id),
    )
    assert resp.status_code == 201
    return resp.json()["id"]


async def _list(client: AsyncClient, user_id: str) -> list[dict]:
    resp = await client.get("/api/v1/notifications", headers=_headers(user_id))
    assert resp.status_code == 200
    return resp.json()["items"]


async def _unread(client: AsyncClient, user_id: str) -> int:
    resp = await client.get("/api/v1/notifications/unread-count", headers=_headers(user_id))
    return resp.json()["count"]


# ---------------------------------------------------------------------------
# Publish fan-out
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_publish_notifies_every_follower(async_client: AsyncClient):
    author_id = await _create_user(async_client, "author", "author")
    followers = [await _create_user(async_client, f"fan{i}") for i in range(3)]
    for follower_id in followers:
        await _follow(async_client, follower_id, author_id)
    article_id = await _draft(async_client, author_id, "Big News")

    resp = await async_client.post(f"/api/v1/articles/{article_id}/publish", headers=_headers(author_id))
    assert resp.status_code == 200

    for follower_id in followers:
        items = await _list(async_client, follower_id)
        assert len(items) == 1
        assert items[0]["type"] == "article"
        assert items[0]["message"] == "author published a new article"
        assert items[0]["article"]["slug"] == "big-news"

    # The author only has the follow notifications, nothing for their own publication.
    assert {n["type"] for n in await _list(async_client, author_id)} == {"follow"}


@pytest.mark.asyncio
async def test_publish_without_followers(async_client: AsyncClient):
    author_id = await _create_user(async_client, "author", "author")
    article_id = await _draft(async_client, author_id, "Quiet Launch")

    resp = await async_client.post(f"/api/v1/articles/{article_id}/publish", headers=_headers(author_id))
    assert resp.status_code == 200
    assert await _list(async_client, author_id) == []


@pytest.mark.asyncio
async def test_republish_after_unpublish_notifies_again(async_client: AsyncClient):
    author_id = await _create_user(async_client, "author", "author")
    fan_id = await _create_user(async_client, "fan")
    await _follow(async_client, fan_id, author_id)
    article_id = await _draft(async_client, author_id, "Again")

    await async_client.post(f"/api/v1/articles/{article_id}/publish", headers=_headers(author_id))
    await async_client.post(f"/api/v1/articles/{article_id}/unpublish", headers=_headers(author_id))
    await async_client.post(f"/api/v1/articles/{article_id}/publish", headers=_headers(author_id))

    assert len(await _list(async_client, fan_id)) == 2


@pytest.mark.asyncio
async def test_failed_follower_write_does_not_fail_publish(async_client: AsyncClient, monkeypatch):
    author_id = await _create_user(async_client, "author", "author")
    unlucky_id = await _create_user(async_client, "unlucky")
    lucky_id = await _create_user(async_client, "lucky")
    await _follow(async_client, unlucky_id, author_id)
    await _follow(async_client, lucky_id, author_id)
    article_id = await _draft(async_client, author_id, "Partial Fan Out")

    create_notification = notification_service.create_notification

    async def failing_for_unlucky(db, actor_id, recipient_id, *args, **kwargs):
        if str(recipient_id) == unlucky_id:
            raise SQLAlchemyError("notification store unavailable")
        return await create_notification(db, actor_id, recipient_id, *args, **kwargs)

    monkeypatch.setattr(notification_service, "create_notification", failing_for_unlucky)

    resp = await async_client.post(f"/api/v1/articles/{article_id}/publish", headers=_headers(author_id))
    assert resp.status_code == 200
    assert resp.json()["status"] == "published"

    assert await _list(async_client, unlucky_id) == []
    assert [n["type"] for n in await _list(async_client, lucky_id)] == ["article"]


class _UnreachableStore:
    """Session stand-in whose every query fails."""

    @asynccontextmanager
    async def begin_nested(self):
        yield

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT follower_id FROM user_follows", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_follower_lookup_failure_notifies_nobody():
    author = SimpleNamespace(id=uuid.uuid4(), public_name="author")
    article = SimpleNamespace(id=uuid.uuid4())

    written = await notification_service.notify_followers_of_publication(_UnreachableStore(), article, author)
    assert written == 0


# ---------------------------------------------------------------------------
# Read state
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mark_one_notification_read(async_client: AsyncClient):
    target_id = await _create_user(async_client, "target")
    fan_a = await _create_user(async_client, "fan_a")
    fan_b = await _create_user(async_client, "fan_b")
    await _follow(async_client, fan_a, target_id)
    await _follow(async_client, fan_b, target_id)
    assert await _unread(async_client, target_id) == 2

    newest = (await _list(async_client, target_id))[0]
    assert newest["actor"]["username"] == "fan_b"

    resp = await async_client.put(
        f"/api/v1/notifications/{newest['id']}/read", headers=_headers(target_id)
    )
    assert resp.status_code == 204
    assert await _unread(async_client, target_id) == 1

    items = await _list(async_client, target_id)
    assert [n["read"] for n in items] == [True, False]


@pytest.mark.asyncio
async def test_mark_other_users_notification_is_not_found(async_client: AsyncClient):
    target_id = await _create_user(async_client, "target")
    fan_id = await _create_user(async_client, "fan")
    await _follow(async_client, fan_id, target_id)
    notification = (await _list(async_client, target_id))[0]

    resp = await async_client.put(
        f"/api/v1/notifications/{notification['id']}/read", headers=_headers(fan_id)
    )
    assert resp.status_code == 404
    assert await _unread(async_client, target_id) == 1


@pytest.mark.asyncio
async def test_mark_unknown_notification(async_client: AsyncClient):
    user_id = await _create_user(async_client, "someone")
    resp = await async_client.put(
        f"/api/v1/notifications/{uuid.uuid4()}/read", headers=_headers(user_id)
    )
    assert resp.status_code == 404

    resp = await async_client.put("/api/v1/notifications/not-a-uuid/read", headers=_headers(user_id))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_mark_all_read(async_client: AsyncClient):
    target_id = await _create_user(async_client, "target")
    for i in range(3):
        fan_id = await _create_user(async_client, f"fan{i}")
        await _follow(async_client, fan_id, target_id)
    assert await _unread(async_client, target_id) == 3

    resp = await async_client.put("/api/v1/notifications/read-all", headers=_headers(target_id))
    assert resp.status_code == 204
    assert await _unread(async_client, target_id) == 0
    assert all(n["read"] for n in await _list(async_client, target_id))


@pytest.mark.asyncio
async def test_notifications_require_identity(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/notifications")
    assert resp.status_code == 401

    resp = await async_client.get("/api/v1/notifications", headers=_headers("not-a-uuid"))
    assert resp.status_code == 401
