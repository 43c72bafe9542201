"""
Article endpoint tests — role checks on create, the draft/published
lifecycle over HTTP, listings, and diagnostic response headers.

Each test is self-contained: it creates the users and articles it needs
via the API rather than relying on shared fixtures, so test order does
not matter.
"""
import uuid

import pytest
from httpx import AsyncClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _headers(user_id: str) -> dict:
    return {"X-User-ID": user_id}


async def _create_user(client: AsyncClient, username: str, role: str = "author") -> str:
    resp = await client.post("/api/v1/users", json={
        "username": username,
        "email": f"{username}@example.com",
        "role": role,
    })
    assert resp.status_code == 201
    return resp.json()["id"]


async def _create_article(client: AsyncClient, author_id: str, title: str, **extra) -> dict:
    payload = {"title": title, "content": "Article content", **extra}
    resp = await client.post("/api/v1/articles", json=payload, headers=_headers(author_id))
    assert resp.status_code == 201
    return resp.json()


# ---------------------------------------------------------------------------
# Infrastructure / health
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    """Health endpoint returns 200 with status=healthy and cache stats."""
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["cache"]["available"] is False


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_article_requires_identity(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/articles", json={"title": "Anon", "content": "x"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_article_requires_author_role(async_client: AsyncClient):
    reader_id = await _create_user(async_client, "reader", "reader")
    resp = await async_client.post(
        "/api/v1/articles", json={"title": "Nope", "content": "x"}, headers=_headers(reader_id)
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_create_and_get_article(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    tag = (await async_client.post(
        "/api/v1/tags", json={"name": "Python"}, headers=_headers(author_id)
    )).json()

    article = await _create_article(
        async_client, author_id, "Hello World", status="published", tag_ids=[tag["id"]]
    )
    assert article["slug"] == "hello-world"
    assert article["status"] == "published"
    assert article["author"]["id"] == author_id
    assert [t["slug"] for t in article["tags"]] == ["python"]

    resp = await async_client.get("/api/v1/articles/hello-world")
    assert resp.status_code == 200
    detail = resp.json()
    assert detail["id"] == article["id"]
    assert detail["content"] == "Article content"
    assert detail["view_count"] == 1


@pytest.mark.asyncio
async def test_create_article_validation(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    resp = await async_client.post(
        "/api/v1/articles", json={"title": "", "content": "x"}, headers=_headers(author_id)
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_article_unknown_category(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    resp = await async_client.post(
        "/api/v1/articles",
        json={"title": "Filed", "content": "x", "category_ids": [str(uuid.uuid4())]},
        headers=_headers(author_id),
    )
    assert resp.status_code == 404
    assert resp.json()["code"] == "CATEGORY_NOT_FOUND"

    listing = await async_client.get(f"/api/v1/users/{author_id}/articles")
    assert listing.json()["total"] == 0


@pytest.mark.asyncio
async def test_create_article_slug_is_url_safe(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    article = await _create_article(async_client, author_id, "What's New in Python 3.12?!")
    assert article["slug"] == "what-s-new-in-python-3-12"


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_empty(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    data = resp.json()
    assert data["items"] == []
    assert data["total"] == 0


@pytest.mark.asyncio
async def test_list_articles_only_shows_published(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    await _create_article(async_client, author_id, "Public", status="published")
    await _create_article(async_client, author_id, "Private")

    resp = await async_client.get("/api/v1/articles")
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["title"] == "Public"
    assert "content" not in data["items"][0]


@pytest.mark.asyncio
async def test_list_articles_rejects_unknown_sort(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles?sort=random")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_article_pagination(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    for i in range(5):
        await _create_article(async_client, author_id, f"Paged {i}", status="published")

    resp = await async_client.get("/api/v1/articles?page=3&per_page=2")
    data = resp.json()
    assert data["total"] == 5
    assert data["pages"] == 3
    assert data["page"] == 3
    assert len(data["items"]) == 1


@pytest.mark.asyncio
async def test_draft_visible_to_author_only(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    reader_id = await _create_user(async_client, "reader", "reader")
    await _create_article(async_client, author_id, "Work In Progress")

    assert (await async_client.get("/api/v1/articles/work-in-progress")).status_code == 404
    resp = await async_client.get("/api/v1/articles/work-in-progress", headers=_headers(reader_id))
    assert resp.status_code == 404
    resp = await async_client.get("/api/v1/articles/work-in-progress", headers=_headers(author_id))
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_article_not_found(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/articles/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Article not found", "code": "NOT_FOUND"}


@pytest.mark.asyncio
async def test_trending_and_recent(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    await _create_article(async_client, author_id, "Older", status="published")
    await _create_article(async_client, author_id, "Newer", status="published")
    for _ in range(3):
        await async_client.get("/api/v1/articles/older")

    trending = (await async_client.get("/api/v1/articles/trending?limit=1")).json()
    assert [a["slug"] for a in trending] == ["older"]

    recent = (await async_client.get("/api/v1/articles/recent")).json()
    assert [a["slug"] for a in recent] == ["newer", "older"]


# ---------------------------------------------------------------------------
# Update / lifecycle
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    article = await _create_article(async_client, author_id, "Original Title")

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}",
        json={"title": "Updated Title"},
        headers=_headers(author_id),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Updated Title"
    assert data["slug"] == "updated-title"
    assert data["content"] == "Article content"


@pytest.mark.asyncio
async def test_update_article_by_other_author_forbidden(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    other_id = await _create_user(async_client, "other")
    article = await _create_article(async_client, author_id, "Mine")

    resp = await async_client.put(
        f"/api/v1/articles/{article['id']}", json={"title": "Theirs"}, headers=_headers(other_id)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_update_nonexistent_article(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    resp = await async_client.put(
        f"/api/v1/articles/{uuid.uuid4()}", json={"title": "Ghost"}, headers=_headers(author_id)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_publish_and_unpublish(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    article = await _create_article(async_client, author_id, "Lifecycle")
    url = f"/api/v1/articles/{article['id']}"

    resp = await async_client.post(f"{url}/publish", headers=_headers(author_id))
    assert resp.status_code == 200
    assert resp.json()["status"] == "published"
    assert (await async_client.get("/api/v1/articles")).json()["total"] == 1

    resp = await async_client.post(f"{url}/publish", headers=_headers(author_id))
    assert resp.status_code == 409
    assert resp.json()["code"] == "ALREADY_PUBLISHED"

    resp = await async_client.post(f"{url}/unpublish", headers=_headers(author_id))
    assert resp.status_code == 200
    assert resp.json()["published_at"] is None
    assert (await async_client.get("/api/v1/articles")).json()["total"] == 0

    resp = await async_client.post(f"{url}/unpublish", headers=_headers(author_id))
    assert resp.status_code == 409
    assert resp.json()["code"] == "NOT_PUBLISHED"


@pytest.mark.asyncio
async def test_staff_pick_requires_editor(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    editor_id = await _create_user(async_client, "editor", "editor")
    article = await _create_article(async_client, author_id, "Pick Me", status="published")
    url = f"/api/v1/articles/{article['id']}/staff-pick"

    resp = await async_client.put(url, json={"is_staff_pick": True}, headers=_headers(author_id))
    assert resp.status_code == 403

    resp = await async_client.put(url, json={"is_staff_pick": True}, headers=_headers(editor_id))
    assert resp.status_code == 200
    assert resp.json()["is_staff_pick"] is True

    picks = (await async_client.get("/api/v1/feed/staff-picks")).json()
    assert [a["slug"] for a in picks["items"]] == ["pick-me"]


@pytest.mark.asyncio
async def test_delete_article(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    article = await _create_article(async_client, author_id, "To Delete", status="published")

    resp = await async_client.delete(f"/api/v1/articles/{article['id']}", headers=_headers(author_id))
    assert resp.status_code == 204

    assert (await async_client.get("/api/v1/articles/to-delete")).status_code == 404


@pytest.mark.asyncio
async def test_delete_nonexistent_article(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    resp = await async_client.delete(f"/api/v1/articles/{uuid.uuid4()}", headers=_headers(author_id))
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Response headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_response_diagnostic_headers(async_client: AsyncClient):
    """Every response carries X-Request-ID, X-Response-Time-Ms and X-Query-Count."""
    resp = await async_client.get("/health")
    assert "x-request-id" in resp.headers
    assert "x-response-time-ms" in resp.headers
    assert resp.headers["x-query-count"] == "0"


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client: AsyncClient):
    resp = await async_client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert resp.headers["x-request-id"] == "trace-123"


@pytest.mark.asyncio
async def test_article_list_query_count_header(async_client: AsyncClient):
    author_id = await _create_user(async_client, "writer")
    await _create_article(async_client, author_id, "Counted", status="published")

    resp = await async_client.get("/api/v1/articles")
    assert resp.status_code == 200
    assert int(resp.headers["x-query-count"]) > 0
