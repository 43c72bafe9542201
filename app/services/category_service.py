"""
Category service — the category hierarchy.

Categories form a forest through ``parent_id``.  The hierarchy is never
materialised in storage; ``get_category_tree`` rebuilds it from a single
flat query.  A category cannot be removed while it still has children or
articles.
"""
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ConflictError, NotFoundError, ValidationError, parse_id, wrap_errors
from app.models import Article, ArticleStatus, Category, article_categories
from app.pagination import Pagination
from app.schemas import CategoryCreate, CategoryUpdate
from app.services.article_queries import fetch_article_page, published_articles
from app.services.serializers import category_to_dict, category_to_summary
from app.slug import generate_slug, resolve_unique_slug

CATEGORY_SLUG_MAX_LENGTH = 100


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Category.id).where(Category.slug == slug))
    return result.first() is not None


async def _get_category_by_id(db: AsyncSession, category_id) -> Category:
    cid = parse_id(category_id)
    async with wrap_errors("failed to find category"):
        category = await db.get(Category, cid)
    if category is None:
        raise NotFoundError("Category not found")
    return category


async def get_category_model_by_slug(db: AsyncSession, slug: str) -> Category:
    async with wrap_errors("failed to find category"):
        result = await db.execute(select(Category).where(Category.slug == slug))
        category = result.scalar_one_or_none()
    if category is None:
        raise NotFoundError("Category not found")
    return category


async def _resolve_parent(db: AsyncSession, raw_parent_id: str) -> uuid.UUID:
    parent_id = parse_id(
        raw_parent_id, ValidationError("Invalid parent ID", code="INVALID_PARENT_ID")
    )
    async with wrap_errors("failed to find parent category"):
        parent = await db.get(Category, parent_id)
    if parent is None:
        raise NotFoundError("Parent category not found", code="PARENT_NOT_FOUND")
    return parent_id


async def _is_descendant(db: AsyncSession, candidate_id: uuid.UUID, ancestor_id: uuid.UUID) -> bool:
    """True when *candidate_id* sits somewhere below *ancestor_id*."""
    current = candidate_id
    seen: set[uuid.UUID] = set()
    while current is not None and current not in seen:
        if current == ancestor_id:
            return True
        seen.add(current)
        result = await db.execute(select(Category.parent_id).where(Category.id == current))
        current = result.scalar_one_or_none()
    return False


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    parent_id = await _resolve_parent(db, data.parent_id) if data.parent_id else None
    slug = await resolve_unique_slug(
        lambda s: _slug_exists(db, s), data.name, max_length=CATEGORY_SLUG_MAX_LENGTH
    )
    category = Category(
        name=data.name,
        slug=slug,
        description=data.description,
        parent_id=parent_id,
        display_order=data.display_order,
    )
    async with wrap_errors("failed to create category"):
        db.add(category)
        await db.flush()
    return category_to_dict(category)


async def get_category(db: AsyncSession, slug: str) -> dict:
    """Category detail: parent, direct children and published article count."""
    category = await get_category_model_by_slug(db, slug)
    async with wrap_errors("failed to load category"):
        parent = await db.get(Category, category.parent_id) if category.parent_id else None
        children = (
            await db.execute(
                select(Category)
                .where(Category.parent_id == category.id)
                .order_by(Category.display_order, Category.name)
            )
        ).scalars().all()
        article_count = (
            await db.execute(
                select(func.count())
                .select_from(article_categories)
                .join(Article, Article.id == article_categories.c.article_id)
                .where(
                    article_categories.c.category_id == category.id,
                    Article.status == ArticleStatus.PUBLISHED,
                )
            )
        ).scalar_one()

    data = category_to_dict(category)
    data["parent"] = category_to_summary(parent) if parent is not None else None
    data["children"] = [category_to_summary(c) for c in children]
    data["article_count"] = article_count
    return data


async def get_categories(db: AsyncSession, search: str | None = None, top_level_only: bool = False) -> list[dict]:
    stmt = select(Category)
    if search:
        stmt = stmt.where(Category.name.ilike(f"%{search}%"))
    if top_level_only:
        stmt = stmt.where(Category.parent_id.is_(None))
    async with wrap_errors("failed to find categories"):
        result = await db.execute(stmt.order_by(Category.display_order, Category.name))
    return [category_to_dict(c) for c in result.scalars().all()]


async def get_category_tree(db: AsyncSession) -> list[dict]:
    """Return the whole hierarchy as nested dicts, roots first."""
    async with wrap_errors("failed to find categories"):
        result = await db.execute(select(Category).order_by(Category.display_order, Category.name))
        categories = result.scalars().all()

    nodes = {c.id: {**category_to_dict(c), "children": []} for c in categories}
    roots = []
    for category in categories:
        node = nodes[category.id]
        parent = nodes.get(category.parent_id) if category.parent_id else None
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)
    return roots


async def update_category(db: AsyncSession, category_id: str, data: CategoryUpdate) -> dict:
    """
    Patch a category.

    ``parent_id=""`` detaches it from its parent.  A category cannot
    become its own parent or be moved beneath one of its descendants.
    """
    category = await _get_category_by_id(db, category_id)

    if data.name is not None:
        category.name = data.name
        new_slug = generate_slug(data.name)
        if new_slug and new_slug != category.slug and not await _slug_exists(db, new_slug):
            category.slug = new_slug
    if data.description is not None:
        category.description = data.description
    if data.display_order is not None:
        category.display_order = data.display_order
    if data.parent_id is not None:
        if data.parent_id == "":
            category.parent_id = None
        else:
            parent_id = parse_id(
                data.parent_id, ValidationError("Invalid parent ID", code="INVALID_PARENT_ID")
            )
            if parent_id == category.id:
                raise ValidationError("Category cannot be its own parent", code="INVALID_PARENT")
            await _resolve_parent(db, data.parent_id)
            if await _is_descendant(db, parent_id, category.id):
                raise ValidationError(
                    "Category cannot be moved beneath its own subcategory", code="INVALID_PARENT"
                )
            category.parent_id = parent_id

    async with wrap_errors("failed to update category"):
        await db.flush()
    return category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: str) -> None:
    category = await _get_category_by_id(db, category_id)
    async with wrap_errors("failed to delete category"):
        has_children = (
            await db.execute(select(Category.id).where(Category.parent_id == category.id).limit(1))
        ).first() is not None
        if has_children:
            raise ConflictError("Cannot delete category with subcategories", code="HAS_CHILDREN")

        has_articles = (
            await db.execute(
                select(article_categories.c.article_id)
                .where(article_categories.c.category_id == category.id)
                .limit(1)
            )
        ).first() is not None
        if has_articles:
            raise ConflictError("Cannot delete category with articles", code="HAS_ARTICLES")

        await db.delete(category)
        await db.flush()


async def get_category_articles(db: AsyncSession, slug: str, pagination: Pagination) -> dict:
    category = await get_category_model_by_slug(db, slug)
    in_category = select(article_categories.c.article_id).where(
        article_categories.c.category_id == category.id
    )
    stmt = published_articles().where(Article.id.in_(in_category))
    return await fetch_article_page(db, stmt, pagination)
