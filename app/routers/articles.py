from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user, get_optional_user, require_role
from app.models import User, UserRole
from app.schemas import ArticleCreate, ArticleDetail, ArticleListItem, ArticleUpdate, PaginatedResponse, StaffPickUpdate
from app.services import article_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    category: str | None = Query(None, description="Category slug."),
    tag: str | None = Query(None, description="Tag slug."),
    author_id: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db, pagination.value, category_slug=category, tag_slug=tag, author_id=author_id, search=search
    )

@router.get("/trending", response_model=list[ArticleListItem])
async def trending_articles(limit: int | None = None, db: AsyncSession = Depends(get_db)):
    return await article_service.get_trending_articles(db, limit)

@router.get("/recent", response_model=list[ArticleListItem])
async def recent_articles(limit: int | None = None, db: AsyncSession = Depends(get_db)):
    return await article_service.get_recent_articles(db, limit)

@router.get("/{slug}", response_model=ArticleDetail)
async def get_article(
    slug: str,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_article(db, slug, viewer=user)

@router.get("/{slug}/related", response_model=list[ArticleListItem])
async def related_articles(slug: str, limit: int | None = None, db: AsyncSession = Depends(get_db)):
    return await article_service.get_related_articles(db, slug, limit)

@router.post("", status_code=201, response_model=ArticleDetail)
async def create_article(
    data: ArticleCreate,
    user: User = Depends(require_role(UserRole.AUTHOR)),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, user, data)

@router.put("/{article_id}", response_model=ArticleDetail)
async def update_article(
    article_id: str,
    data: ArticleUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.update_article(db, article_id, user, data)

@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article_id, user)

@router.post("/{article_id}/publish", response_model=ArticleDetail)
async def publish_article(
    article_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.publish_article(db, article_id, user)

@router.post("/{article_id}/unpublish", response_model=ArticleDetail)
async def unpublish_article(
    article_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.unpublish_article(db, article_id, user)

@router.put("/{article_id}/staff-pick", response_model=ArticleDetail)
async def set_staff_pick(
    article_id: str,
    data: StaffPickUpdate,
    user: User = Depends(require_role(UserRole.EDITOR)),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.set_staff_pick(db, article_id, data.is_staff_pick)
