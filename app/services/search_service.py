"""
Search service — one query matched against articles, categories and tags.

There is no search index: each kind is looked up through its own listing
filter (a case-insensitive substring match) and the results are returned
side by side.  Only published articles are searched.
"""
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ValidationError
from app.pagination import Pagination, resolve_pagination
from app.services import article_service, category_service, tag_service

SEARCH_TYPES = ("all", "articles", "categories", "tags")
TAG_RESULT_LIMIT = 20


async def search(
    db: AsyncSession,
    query: str,
    pagination: Pagination,
    search_type: str = "all",
) -> dict:
    """
    Search every kind named by *search_type*.

    Articles follow *pagination*; categories are returned whole and tags
    are capped at ``TAG_RESULT_LIMIT``.  Kinds not searched come back as
    empty lists.
    """
    if search_type not in SEARCH_TYPES:
        raise ValidationError("Invalid search type", code="INVALID_SEARCH_TYPE")

    results: dict = {"articles": [], "categories": [], "tags": []}
    if search_type in ("all", "articles"):
        page = await article_service.get_articles(db, pagination, search=query)
        results["articles"] = page["items"]
    if search_type in ("all", "categories"):
        results["categories"] = await category_service.get_categories(db, search=query)
    if search_type in ("all", "tags"):
        page = await tag_service.get_tags(db, resolve_pagination(1, TAG_RESULT_LIMIT), search=query)
        results["tags"] = page["items"]
    return results
