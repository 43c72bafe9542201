"""
Query building blocks for published-article listings.

Every listing (feeds, staff picks, category/tag/author pages, bookmarks)
goes through ``fetch_article_page`` so they share one sort contract and
one eager-loading strategy:

1. COUNT over the filtered statement.
2. SELECT with ORDER BY / LIMIT / OFFSET and author, categories and tags
   eager-loaded.
"""
from sqlalchemy import Select, asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.errors import NotFoundError, wrap_errors
from app.models import Article, ArticleStatus, User, UserRole
from app.pagination import (
    SORT_ALPHABETICAL,
    SORT_OLDEST,
    SORT_POPULAR,
    Pagination,
    paginated,
)
from app.services.serializers import article_to_list_dict


def article_load_options():
    """Eager-loading options for anything rendered as an article list item."""
    return (
        joinedload(Article.author),
        selectinload(Article.categories),
        selectinload(Article.tags),
    )


def published_articles() -> Select:
    return select(Article).where(Article.status == ArticleStatus.PUBLISHED)


def apply_sort(stmt: Select, sort: str) -> Select:
    """
    Order *stmt* by a resolved sort key.

    ``Article.id`` is appended as a tie-breaker so pages are stable when
    the primary key of the sort collides.
    """
    if sort == SORT_OLDEST:
        order = (asc(Article.created_at),)
    elif sort == SORT_POPULAR:
        order = (desc(Article.view_count), desc(Article.created_at))
    elif sort == SORT_ALPHABETICAL:
        order = (asc(Article.title),)
    else:
        order = (desc(Article.created_at),)
    return stmt.order_by(*order, Article.id)


async def fetch_article_page(
    db: AsyncSession,
    stmt: Select,
    pagination: Pagination,
    context: str = "failed to find articles",
) -> dict:
    """Run *stmt* as a sorted, paginated article listing."""
    count_q = select(func.count()).select_from(stmt.order_by(None).subquery())
    async with wrap_errors(context):
        total: int = (await db.execute(count_q)).scalar_one()
        page_q = (
            apply_sort(stmt, pagination.sort)
            .options(*article_load_options())
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        result = await db.execute(page_q)
        articles = result.unique().scalars().all()
    return paginated([article_to_list_dict(a) for a in articles], total, pagination)


async def fetch_article_list(
    db: AsyncSession,
    stmt: Select,
    limit: int,
    context: str = "failed to find articles",
) -> list[dict]:
    """Run *stmt* (already ordered) as a top-N list."""
    async with wrap_errors(context):
        result = await db.execute(stmt.options(*article_load_options()).limit(limit))
        articles = result.unique().scalars().all()
    return [article_to_list_dict(a) for a in articles]


async def get_article_by_slug(db: AsyncSession, slug: str, *options) -> Article:
    """Load one article by slug (any status) or raise ``NotFoundError``."""
    async with wrap_errors("failed to find article"):
        result = await db.execute(select(Article).where(Article.slug == slug).options(*options))
        article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    return article


def can_view_unpublished(article: Article, viewer: User | None) -> bool:
    """Drafts are visible to their author and to editors and above."""
    if viewer is None:
        return False
    return article.author_id == viewer.id or viewer.role.has_permission(UserRole.EDITOR)


async def get_visible_article(db: AsyncSession, slug: str, viewer: User | None, *options) -> Article:
    """
    Load the article at *slug* as *viewer* sees it.

    An unpublished article the viewer may not see is reported as missing,
    so reads and engagement on a draft behave exactly like an unknown slug.
    """
    article = await get_article_by_slug(db, slug, *options)
    if not article.is_published and not can_view_unpublished(article, viewer):
        raise NotFoundError("Article not found")
    return article
