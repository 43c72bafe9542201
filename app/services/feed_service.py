"""
Feed service — the personalised feed and the staff-picks page.

The personalised feed is the set of published articles that were either
written by someone the reader follows or filed under a category the
reader is interested in.  It is expressed as one query with an OR of two
IN-subqueries, so an article matching both criteria appears once without
a DISTINCT.
"""
import uuid

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache, staff_picks_key
from app.config import settings
from app.errors import wrap_errors
from app.models import Article, article_categories
from app.pagination import Pagination, paginated
from app.services.article_queries import fetch_article_page, published_articles
from app.services.user_service import get_following_ids, get_interest_ids


async def get_personalized_feed(db: AsyncSession, user_id: uuid.UUID, pagination: Pagination) -> dict:
    """
    Articles from followed authors or interest categories.

    A reader who follows nobody and has no interests gets an empty page
    without the article query being run.
    """
    async with wrap_errors("failed to get personalized feed"):
        following_ids = await get_following_ids(db, user_id)
        interest_ids = await get_interest_ids(db, user_id)
    if not following_ids and not interest_ids:
        return paginated([], 0, pagination)

    criteria = []
    if following_ids:
        criteria.append(Article.author_id.in_(following_ids))
    if interest_ids:
        in_interests = select(article_categories.c.article_id).where(
            article_categories.c.category_id.in_(interest_ids)
        )
        criteria.append(Article.id.in_(in_interests))

    stmt = published_articles().where(or_(*criteria))
    return await fetch_article_page(db, stmt, pagination, "failed to get personalized feed")


async def get_staff_picks(db: AsyncSession, pagination: Pagination) -> dict:
    """Published staff picks; identical for every reader, so cached."""
    stmt = published_articles().where(Article.is_staff_pick.is_(True))
    return await cache.get_or_load(
        staff_picks_key(pagination.page, pagination.per_page, pagination.sort),
        lambda: fetch_article_page(db, stmt, pagination, "failed to get staff picks"),
        ttl=settings.CACHE_TTL_LIST,
    )
