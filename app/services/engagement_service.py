"""
Engagement service — likes and bookmarks.

A like or bookmark is a unique (user, article) pair, guarded in storage
by the composite primary key.  Adding one is idempotent: an existing row
is reported as-is, and a concurrent duplicate insert that trips the key
is treated the same way.  Counts are always re-read from the store, never
cached.  A draft is engaged with only by those allowed to read it; to
anyone else it is a 404.
"""
import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import wrap_errors
from app.models import Article, Bookmark, Comment, Like, NotificationType, User
from app.pagination import Pagination
from app.services.article_queries import fetch_article_page, get_visible_article, published_articles
from app.services.notification_service import like_message, notify_best_effort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _pair_exists(db: AsyncSession, model, user_id: uuid.UUID, article_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(model.user_id).where(model.user_id == user_id, model.article_id == article_id)
    )
    return result.first() is not None


async def _insert_pair(db: AsyncSession, model, user_id: uuid.UUID, article_id: uuid.UUID) -> bool:
    """
    Insert a (user, article) row unless one exists.

    Returns True only when this call created the row.
    """
    if await _pair_exists(db, model, user_id, article_id):
        return False
    try:
        async with db.begin_nested():
            db.add(model(user_id=user_id, article_id=article_id))
            await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same pair.
        logger.debug("Duplicate %s for user=%s article=%s", model.__tablename__, user_id, article_id)
        return False
    return True


async def _delete_pair(db: AsyncSession, model, user_id: uuid.UUID, article_id: uuid.UUID) -> None:
    await db.execute(
        delete(model).where(model.user_id == user_id, model.article_id == article_id)
    )


async def count_likes(db: AsyncSession, article_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(Like).where(Like.article_id == article_id)
    )
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

async def like_article(db: AsyncSession, user: User, slug: str) -> dict:
    """
    Like the article at *slug* on behalf of *user*.

    Only a newly created like by someone other than the author notifies
    the author; repeating the call changes nothing.
    """
    article = await get_visible_article(db, slug, user)
    async with wrap_errors("failed to like article"):
        created = await _insert_pair(db, Like, user.id, article.id)
        if created and article.author_id != user.id:
            await notify_best_effort(
                db, user.id, article.author_id, NotificationType.LIKE,
                like_message(user), article.id,
            )
        likes_count = await count_likes(db, article.id)
    return {"liked": True, "likes_count": likes_count}


async def unlike_article(db: AsyncSession, user: User, slug: str) -> dict:
    article = await get_visible_article(db, slug, user)
    async with wrap_errors("failed to unlike article"):
        await _delete_pair(db, Like, user.id, article.id)
        likes_count = await count_likes(db, article.id)
    return {"liked": False, "likes_count": likes_count}


async def get_like_status(db: AsyncSession, viewer: User | None, slug: str) -> dict:
    article = await get_visible_article(db, slug, viewer)
    async with wrap_errors("failed to get like status"):
        liked = viewer is not None and await _pair_exists(db, Like, viewer.id, article.id)
        likes_count = await count_likes(db, article.id)
    return {"liked": liked, "likes_count": likes_count}


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------

async def bookmark_article(db: AsyncSession, user: User, slug: str) -> dict:
    article = await get_visible_article(db, slug, user)
    async with wrap_errors("failed to bookmark article"):
        await _insert_pair(db, Bookmark, user.id, article.id)
    return {"bookmarked": True}


async def unbookmark_article(db: AsyncSession, user: User, slug: str) -> dict:
    article = await get_visible_article(db, slug, user)
    async with wrap_errors("failed to remove bookmark"):
        await _delete_pair(db, Bookmark, user.id, article.id)
    return {"bookmarked": False}


async def get_bookmarked_articles(db: AsyncSession, user_id: uuid.UUID, pagination: Pagination) -> dict:
    bookmarked = select(Bookmark.article_id).where(Bookmark.user_id == user_id)
    stmt = published_articles().where(Article.id.in_(bookmarked))
    return await fetch_article_page(db, stmt, pagination, "failed to find bookmarks")


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

async def get_article_engagement(
    db: AsyncSession,
    article_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
) -> tuple[int, int, bool, bool]:
    """
    Return ``(likes_count, comments_count, liked, bookmarked)``.

    Anonymous viewers (no *user_id*) cost two COUNT queries and get
    ``liked = bookmarked = False``; the per-user lookups are skipped.
    """
    async with wrap_errors("failed to get engagement"):
        likes_count = await count_likes(db, article_id)
        comments_count = (
            await db.execute(
                select(func.count()).select_from(Comment).where(Comment.article_id == article_id)
            )
        ).scalar_one()
        if not user_id:
            return likes_count, comments_count, False, False
        liked = await _pair_exists(db, Like, user_id, article_id)
        bookmarked = await _pair_exists(db, Bookmark, user_id, article_id)
    return likes_count, comments_count, liked, bookmarked
