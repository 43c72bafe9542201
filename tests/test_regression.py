"""
Regression tests for issues found during code review.

1. Unique constraint violations must return 409 (not 500)
2. Renaming an article onto a taken slug must not fail
3. view_count must increment on every access
4. CORS must not set allow_credentials=true with allow_origins=*
5. A rejected write must leave no partial rows behind
"""
import pytest
from httpx import AsyncClient


def _headers(user_id: str) -> dict:
    return {"X-User-ID": user_id}


async def _create_author(client: AsyncClient, username: str) -> str:
    resp = await client.post("/api/v1/users", json={
        "username": username, "email": f"{username}@example.com", "role": "author",
    })
    assert resp.status_code == 201
    return resp.json()["id"]


# ---------------------------------------------------------------------------
# 1. Unique constraint violations -> 409
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_duplicate_user_returns_409(async_client: AsyncClient):
    """Creating a user with an existing username returns 409, not 500."""
    payload = {"username": "dup_user", "email": "dup1@example.com"}
    resp1 = await async_client.post("/api/v1/users", json=payload)
    assert resp1.status_code == 201

    payload2 = {"username": "dup_user", "email": "dup2@example.com"}
    resp2 = await async_client.post("/api/v1/users", json=payload2)
    assert resp2.status_code == 409
    assert resp2.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_duplicate_email_returns_409(async_client: AsyncClient):
    """Creating a user with an existing email returns 409, not 500."""
    await async_client.post("/api/v1/users", json={
        "username": "emailuser1", "email": "same@example.com",
    })
    resp = await async_client.post("/api/v1/users", json={
        "username": "emailuser2", "email": "same@example.com",
    })
    assert resp.status_code == 409


# ---------------------------------------------------------------------------
# 2. Slug collisions on update
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article_slug_collision_handled(async_client: AsyncClient):
    """Updating a title to match another article's slug keeps the old slug."""
    author_id = await _create_author(async_client, "slug_col")

    resp1 = await async_client.post(
        "/api/v1/articles", json={"title": "First Article", "content": "A"}, headers=_headers(author_id)
    )
    resp2 = await async_client.post(
        "/api/v1/articles", json={"title": "Second Article", "content": "B"}, headers=_headers(author_id)
    )
    assert resp1.status_code == 201
    assert resp2.status_code == 201

    resp = await async_client.put(
        f"/api/v1/articles/{resp2.json()['id']}",
        json={"title": "First Article"},
        headers=_headers(author_id),
    )
    assert resp.status_code == 200
    assert resp.json()["title"] == "First Article"
    assert resp.json()["slug"] == "second-article"


# ---------------------------------------------------------------------------
# 3. View count
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_view_count_increments_via_http(async_client: AsyncClient):
    author_id = await _create_author(async_client, "viewer_http")
    await async_client.post(
        "/api/v1/articles",
        json={"title": "Viewed", "content": "Body", "status": "published"},
        headers=_headers(author_id),
    )

    counts = [
        (await async_client.get("/api/v1/articles/viewed")).json()["view_count"]
        for _ in range(3)
    ]
    assert counts == [1, 2, 3]

    listing = (await async_client.get("/api/v1/articles")).json()
    assert listing["items"][0]["view_count"] == 3


# ---------------------------------------------------------------------------
# 4. CORS headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_no_credentials_with_wildcard_origin(async_client: AsyncClient):
    """
    When allow_origins=["*"], the response must NOT include
    Access-Control-Allow-Credentials: true.
    """
    resp = await async_client.options(
        "/api/v1/articles",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    cred_header = resp.headers.get("access-control-allow-credentials", "").lower()
    assert cred_header != "true", (
        "CORS must not combine allow_origins=* with allow_credentials=true"
    )


# ---------------------------------------------------------------------------
# 5. No partial writes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failed_tag_delete_leaves_tag_usable(async_client: AsyncClient):
    author_id = await _create_author(async_client, "tagger")
    admin = await async_client.post("/api/v1/users", json={
        "username": "boss", "email": "boss@example.com", "role": "admin",
    })
    admin_id = admin.json()["id"]
    tag = (await async_client.post("/api/v1/tags", json={"name": "Sticky"}, headers=_headers(author_id))).json()
    await async_client.post(
        "/api/v1/articles",
        json={"title": "Uses Sticky", "content": "Body", "status": "published", "tag_ids": [tag["id"]]},
        headers=_headers(author_id),
    )

    resp = await async_client.delete(f"/api/v1/tags/{tag['id']}", headers=_headers(admin_id))
    assert resp.status_code == 409
    assert resp.json()["code"] == "TAG_IN_USE"

    fetched = (await async_client.get("/api/v1/tags/sticky")).json()
    assert fetched["usage_count"] == 1
    popular = (await async_client.get("/api/v1/tags/popular")).json()
    assert [t["slug"] for t in popular] == ["sticky"]
