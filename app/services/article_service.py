"""
Article service — the article lifecycle.

Design notes
------------
- An article moves draft -> published -> draft.  ``archived`` exists in
  the status enum but nothing transitions into it.
- Every write that touches more than one row (article + associations +
  tag usage counters) runs inside ``db.begin_nested()`` so the coupled
  rows are saved or rolled back together.  The outer transaction is
  still owned by ``get_db``.
- Tag usage is kept in step with the association: create increments
  every attached tag, update decrements every old tag and increments
  every new one, delete decrements every attached tag.
- Publishing notifies the author's followers after the status change is
  saved; a failed notification never undoes the publication.
- Public listings (trending, recent) are cached; every mutation drops
  them.  Anything carrying engagement state is read fresh.
"""
import logging
import uuid

from sqlalchemy import delete, desc, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.cache import cache, recent_key, trending_key
from app.config import settings
from app.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    parse_id,
    wrap_errors,
)
from app.models import (
    Article,
    ArticleStatus,
    Bookmark,
    Category,
    Comment,
    Like,
    Notification,
    Tag,
    User,
    UserRole,
    article_categories,
    article_tags,
)
from app.pagination import Pagination, resolve_limit
from app.schemas import ArticleCreate, ArticleUpdate
from app.services import tag_service
from app.services.article_queries import (
    article_load_options,
    fetch_article_list,
    fetch_article_page,
    get_article_by_slug,
    get_visible_article,
    published_articles,
)
from app.services.category_service import get_category_model_by_slug
from app.services.engagement_service import get_article_engagement
from app.services.notification_service import notify_followers_of_publication
from app.services.serializers import article_to_detail_dict
from app.slug import generate_slug, resolve_unique_slug, truncate_slug

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
RELATED_LIMIT_DEFAULT = 5
RELATED_LIMIT_MAX = 20


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_excerpt(content: str, excerpt: str | None = None) -> str | None:
    """Return *excerpt*, or the head of *content* when none is given and it is long."""
    if excerpt:
        return excerpt
    limit = settings.EXCERPT_LENGTH
    if len(content) > limit:
        return content[:limit] + "..."
    return excerpt


def reading_time_minutes(content: str) -> int:
    # ~5 characters per word
    return max(1, len(content) // 5 // WORDS_PER_MINUTE)


def _parse_ids(raw_ids: list[str], code: str, label: str) -> list[uuid.UUID]:
    """Parse and de-duplicate ids, keeping first-seen order."""
    ids: list[uuid.UUID] = []
    for raw in raw_ids:
        parsed = parse_id(raw, ValidationError(f"Invalid {label} ID: {raw}", code=code))
        if parsed not in ids:
            ids.append(parsed)
    return ids


async def _load_categories(db: AsyncSession, raw_ids: list[str]) -> list[Category]:
    """All-or-nothing: every id must name an existing category."""
    ids = _parse_ids(raw_ids, "INVALID_CATEGORY_ID", "category")
    if not ids:
        return []
    async with wrap_errors("failed to find categories"):
        result = await db.execute(select(Category).where(Category.id.in_(ids)))
        categories = list(result.scalars().all())
    if len(categories) != len(ids):
        raise NotFoundError("One or more categories not found", code="CATEGORY_NOT_FOUND")
    return categories


async def _load_tags(db: AsyncSession, raw_ids: list[str]) -> list[Tag]:
    """Unknown tag ids are dropped silently."""
    ids = _parse_ids(raw_ids, "INVALID_TAG_ID", "tag")
    if not ids:
        return []
    async with wrap_errors("failed to find tags"):
        result = await db.execute(select(Tag).where(Tag.id.in_(ids)))
        return list(result.scalars().all())


async def _slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    return result.first() is not None


async def _get_article_for_write(db: AsyncSession, article_id: str) -> Article:
    aid = parse_id(article_id)
    async with wrap_errors("failed to find article"):
        result = await db.execute(
            select(Article)
            .where(Article.id == aid)
            .options(
                joinedload(Article.author),
                selectinload(Article.categories),
                selectinload(Article.tags),
            )
        )
        article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    return article


async def _reload(db: AsyncSession, article_id: uuid.UUID) -> Article:
    result = await db.execute(
        select(Article)
        .where(Article.id == article_id)
        .options(*article_load_options())
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one()


def _ensure_can_modify(article: Article, user: User) -> None:
    if article.author_id != user.id and not user.role.has_permission(UserRole.EDITOR):
        raise ForbiddenError("You do not have permission to modify this article")


async def _detail(db: AsyncSession, article: Article, viewer_id: uuid.UUID | None = None) -> dict:
    engagement = await get_article_engagement(db, article.id, viewer_id)
    return article_to_detail_dict(article, engagement)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_article(
    db: AsyncSession,
    slug: str,
    viewer: User | None = None,
    increment_view: bool = True,
) -> dict:
    """
    Return the detail view of the article at *slug*.

    Drafts are visible only to their author and to editors.  Each read
    bumps ``view_count`` with a single atomic UPDATE unless
    *increment_view* is False.
    """
    article = await get_visible_article(db, slug, viewer, *article_load_options())

    if increment_view:
        async with wrap_errors("failed to record view"):
            await db.execute(
                update(Article)
                .where(Article.id == article.id)
                .values(view_count=Article.view_count + 1)
            )
    return await _detail(db, article, viewer.id if viewer else None)


async def get_articles(
    db: AsyncSession,
    pagination: Pagination,
    category_slug: str | None = None,
    tag_slug: str | None = None,
    author_id: str | None = None,
    search: str | None = None,
) -> dict:
    """Paginated published articles, optionally filtered."""
    stmt = published_articles()
    if category_slug:
        category = await get_category_model_by_slug(db, category_slug)
        stmt = stmt.where(
            Article.id.in_(
                select(article_categories.c.article_id).where(
                    article_categories.c.category_id == category.id
                )
            )
        )
    if tag_slug:
        tag = await tag_service.get_tag_model_by_slug(db, tag_slug)
        stmt = stmt.where(
            Article.id.in_(
                select(article_tags.c.article_id).where(article_tags.c.tag_id == tag.id)
            )
        )
    if author_id:
        aid = parse_id(author_id, ValidationError("Invalid author ID", code="INVALID_AUTHOR_ID"))
        stmt = stmt.where(Article.author_id == aid)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(Article.title.ilike(pattern), Article.content.ilike(pattern)))
    return await fetch_article_page(db, stmt, pagination)


async def get_trending_articles(db: AsyncSession, limit: int | None = None) -> list[dict]:
    limit = resolve_limit(limit)
    stmt = published_articles().order_by(desc(Article.view_count), desc(Article.created_at), Article.id)
    return await cache.get_or_load(
        trending_key(limit),
        lambda: fetch_article_list(db, stmt, limit, "failed to get trending articles"),
        ttl=settings.CACHE_TTL_LIST,
    )


async def get_recent_articles(db: AsyncSession, limit: int | None = None) -> list[dict]:
    limit = resolve_limit(limit)
    stmt = published_articles().order_by(desc(Article.published_at), Article.id)
    return await cache.get_or_load(
        recent_key(limit),
        lambda: fetch_article_list(db, stmt, limit, "failed to get recent articles"),
        ttl=settings.CACHE_TTL_LIST,
    )


async def get_related_articles(db: AsyncSession, slug: str, limit: int | None = None) -> list[dict]:
    """Published articles sharing a category or a tag with *slug*, most viewed first."""
    limit = resolve_limit(limit, RELATED_LIMIT_DEFAULT, RELATED_LIMIT_MAX)
    article = await get_article_by_slug(
        db, slug, selectinload(Article.categories), selectinload(Article.tags)
    )
    category_ids = [c.id for c in article.categories]
    tag_ids = [t.id for t in article.tags]
    if not category_ids and not tag_ids:
        return []

    criteria = []
    if category_ids:
        criteria.append(
            Article.id.in_(
                select(article_categories.c.article_id).where(
                    article_categories.c.category_id.in_(category_ids)
                )
            )
        )
    if tag_ids:
        criteria.append(
            Article.id.in_(
                select(article_tags.c.article_id).where(article_tags.c.tag_id.in_(tag_ids))
            )
        )
    stmt = (
        published_articles()
        .where(Article.id != article.id, or_(*criteria))
        .order_by(desc(Article.view_count), desc(Article.created_at), Article.id)
    )
    return await fetch_article_list(db, stmt, limit, "failed to find related articles")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_article(db: AsyncSession, author: User, data: ArticleCreate) -> dict:
    """
    Create an article owned by *author*.

    Categories are all-or-nothing (``CATEGORY_NOT_FOUND``); unknown tag
    ids are ignored.  Only an explicit ``published`` status publishes on
    creation, anything else starts as a draft.
    """
    slug = await resolve_unique_slug(
        lambda s: _slug_exists(db, s), data.title, max_length=settings.ARTICLE_SLUG_MAX_LENGTH
    )
    categories = await _load_categories(db, data.category_ids)
    tags = await _load_tags(db, data.tag_ids)

    article = Article(
        title=data.title,
        slug=slug,
        content=data.content,
        excerpt=make_excerpt(data.content, data.excerpt),
        reading_time_minutes=reading_time_minutes(data.content),
        author_id=author.id,
        status=ArticleStatus.DRAFT,
        view_count=0,
        is_staff_pick=False,
    )
    if data.status == ArticleStatus.PUBLISHED:
        article.publish()
    article.categories = categories
    article.tags = tags

    async with wrap_errors("failed to create article"):
        async with db.begin_nested():
            db.add(article)
            await db.flush()
            for tag in tags:
                await tag_service.increment_usage(db, tag.id)
        article = await _reload(db, article.id)

    logger.info("Article %s created by %s (%s)", article.id, author.id, article.status.value)
    await cache.invalidate_articles()
    await cache.invalidate_tags()
    return article_to_detail_dict(article)


async def update_article(db: AsyncSession, article_id: str, user: User, data: ArticleUpdate) -> dict:
    """
    Patch an article.

    Permission is checked before anything changes.  A new title
    regenerates the slug only when the new slug is free.  Category and
    tag lists, when given, replace the current sets.
    """
    article = await _get_article_for_write(db, article_id)
    _ensure_can_modify(article, user)

    new_categories = await _load_categories(db, data.category_ids) if data.category_ids is not None else None
    new_tags = await _load_tags(db, data.tag_ids) if data.tag_ids is not None else None

    if data.title is not None:
        article.title = data.title
        new_slug = truncate_slug(generate_slug(data.title), settings.ARTICLE_SLUG_MAX_LENGTH)
        if new_slug and new_slug != article.slug and not await _slug_exists(db, new_slug):
            article.slug = new_slug
    if data.content is not None:
        article.content = data.content
        article.reading_time_minutes = reading_time_minutes(data.content)
    if data.excerpt is not None:
        article.excerpt = data.excerpt
    if new_categories is not None:
        article.categories = new_categories

    async with wrap_errors("failed to update article"):
        async with db.begin_nested():
            if new_tags is not None:
                for tag in article.tags:
                    await tag_service.decrement_usage(db, tag.id)
                article.tags = new_tags
                for tag in new_tags:
                    await tag_service.increment_usage(db, tag.id)
            await db.flush()
        article = await _reload(db, article.id)

    await cache.invalidate_articles()
    if new_tags is not None:
        await cache.invalidate_tags()
    return await _detail(db, article, user.id)


async def delete_article(db: AsyncSession, article_id: str, user: User) -> None:
    """Delete an article with its engagement, comments and notifications."""
    article = await _get_article_for_write(db, article_id)
    _ensure_can_modify(article, user)

    async with wrap_errors("failed to delete article"):
        async with db.begin_nested():
            for tag in article.tags:
                await tag_service.decrement_usage(db, tag.id)
            for model in (Like, Bookmark, Comment, Notification):
                await db.execute(
                    delete(model)
                    .where(model.article_id == article.id)
                    .execution_options(synchronize_session=False)
                )
            await db.delete(article)
            await db.flush()

    logger.info("Article %s deleted by %s", article.id, user.id)
    await cache.invalidate_articles()
    await cache.invalidate_tags()


async def publish_article(db: AsyncSession, article_id: str, user: User) -> dict:
    """
    Publish a draft and notify the author's followers.

    The fan-out runs after the status change is flushed; each follower's
    notification is best-effort.
    """
    article = await _get_article_for_write(db, article_id)
    _ensure_can_modify(article, user)
    if article.status == ArticleStatus.PUBLISHED:
        raise ConflictError("Article is already published", code="ALREADY_PUBLISHED")

    article.publish()
    async with wrap_errors("failed to publish article"):
        await db.flush()
    await notify_followers_of_publication(db, article, article.author)

    await cache.invalidate_articles()
    return await _detail(db, article, user.id)


async def unpublish_article(db: AsyncSession, article_id: str, user: User) -> dict:
    article = await _get_article_for_write(db, article_id)
    _ensure_can_modify(article, user)
    if article.status != ArticleStatus.PUBLISHED:
        raise ConflictError("Article is not published", code="NOT_PUBLISHED")

    article.unpublish()
    async with wrap_errors("failed to unpublish article"):
        await db.flush()

    await cache.invalidate_articles()
    return await _detail(db, article, user.id)


async def set_staff_pick(db: AsyncSession, article_id: str, is_staff_pick: bool) -> dict:
    article = await _get_article_for_write(db, article_id)
    article.is_staff_pick = is_staff_pick
    async with wrap_errors("failed to update staff pick"):
        await db.flush()

    await cache.invalidate_articles()
    return await _detail(db, article)
