"""
Tag service — tag management and the tag usage ledger.

``usage_count`` is a derived counter of the articles referencing a tag.
It is only ever changed through ``increment_usage`` / ``decrement_usage``,
each a single ``UPDATE ... SET usage_count = usage_count +/- 1`` so
concurrent article writes touching the same tag never lose an update.
Both are called from the article service inside the same savepoint as
the article mutation that changes the association.
"""
import uuid

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache, popular_tags_key
from app.config import settings
from app.errors import ConflictError, NotFoundError, parse_id, wrap_errors
from app.models import Article, Tag, article_tags
from app.pagination import Pagination, paginated, resolve_limit
from app.schemas import TagCreate, TagUpdate
from app.services.article_queries import fetch_article_page, published_articles
from app.services.serializers import tag_to_dict
from app.slug import generate_slug, resolve_unique_slug


# ---------------------------------------------------------------------------
# Usage ledger
# ---------------------------------------------------------------------------

async def increment_usage(db: AsyncSession, tag_id: uuid.UUID) -> None:
    await db.execute(
        update(Tag)
        .where(Tag.id == tag_id)
        .values(usage_count=Tag.usage_count + 1)
    )


async def decrement_usage(db: AsyncSession, tag_id: uuid.UUID) -> None:
    # The usage_count > 0 guard keeps the counter from going negative.
    await db.execute(
        update(Tag)
        .where(Tag.id == tag_id, Tag.usage_count > 0)
        .values(usage_count=Tag.usage_count - 1)
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Tag.id).where(Tag.slug == slug))
    return result.first() is not None


async def _get_tag_by_id(db: AsyncSession, tag_id: str) -> Tag:
    tid = parse_id(tag_id)
    async with wrap_errors("failed to find tag"):
        tag = (await db.execute(select(Tag).where(Tag.id == tid))).scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found")
    return tag


async def get_tag_model_by_slug(db: AsyncSession, slug: str) -> Tag:
    async with wrap_errors("failed to find tag"):
        tag = (await db.execute(select(Tag).where(Tag.slug == slug))).scalar_one_or_none()
    if tag is None:
        raise NotFoundError("Tag not found", code="TAG_NOT_FOUND")
    return tag


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_tag(db: AsyncSession, data: TagCreate) -> dict:
    slug = await resolve_unique_slug(lambda s: _slug_exists(db, s), data.name)
    tag = Tag(name=data.name, slug=slug, description=data.description, usage_count=0)
    async with wrap_errors("failed to create tag"):
        db.add(tag)
        await db.flush()
    await cache.invalidate_tags()
    return tag_to_dict(tag)


async def get_tag(db: AsyncSession, slug: str) -> dict:
    return tag_to_dict(await get_tag_model_by_slug(db, slug))


async def get_tags(db: AsyncSession, pagination: Pagination, search: str | None = None) -> dict:
    stmt = select(Tag)
    if search:
        stmt = stmt.where(Tag.name.ilike(f"%{search}%"))
    async with wrap_errors("failed to find tags"):
        total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
        result = await db.execute(
            stmt.order_by(Tag.name).offset(pagination.offset).limit(pagination.limit)
        )
        tags = result.scalars().all()
    return paginated([tag_to_dict(t) for t in tags], total, pagination)


async def get_popular_tags(db: AsyncSession, limit: int | None = None) -> list[dict]:
    """Return the most used tags, highest ``usage_count`` first (cached)."""
    limit = resolve_limit(limit)

    async def load() -> list[dict]:
        async with wrap_errors("failed to find popular tags"):
            result = await db.execute(
                select(Tag)
                .where(Tag.usage_count > 0)
                .order_by(desc(Tag.usage_count), Tag.name)
                .limit(limit)
            )
            return [tag_to_dict(t) for t in result.scalars().all()]

    return await cache.get_or_load(popular_tags_key(limit), load, ttl=settings.CACHE_TTL_TAGS)


async def update_tag(db: AsyncSession, tag_id: str, data: TagUpdate) -> dict:
    """
    Patch a tag.  A new name regenerates the slug only when the new slug
    is free; on collision the old slug is kept.
    """
    tag = await _get_tag_by_id(db, tag_id)

    if data.name is not None:
        tag.name = data.name
        new_slug = generate_slug(data.name)
        if new_slug and new_slug != tag.slug and not await _slug_exists(db, new_slug):
            tag.slug = new_slug
    if data.description is not None:
        tag.description = data.description

    async with wrap_errors("failed to update tag"):
        await db.flush()
    await cache.invalidate_tags()
    return tag_to_dict(tag)


async def delete_tag(db: AsyncSession, tag_id: str) -> None:
    """Delete a tag; refused while any article still references it."""
    tag = await _get_tag_by_id(db, tag_id)
    if tag.usage_count > 0:
        raise ConflictError("Cannot delete tag that is in use", code="TAG_IN_USE")

    async with wrap_errors("failed to delete tag"):
        await db.delete(tag)
        await db.flush()
    await cache.invalidate_tags()


async def get_tag_articles(db: AsyncSession, slug: str, pagination: Pagination) -> dict:
    tag = await get_tag_model_by_slug(db, slug)
    tagged = select(article_tags.c.article_id).where(article_tags.c.tag_id == tag.id)
    stmt = published_articles().where(Article.id.in_(tagged))
    return await fetch_article_page(db, stmt, pagination)
