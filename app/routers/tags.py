from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, require_role
from app.models import User, UserRole
from app.schemas import PaginatedResponse, TagCreate, TagResponse, TagUpdate
from app.services import tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])

@router.get("", response_model=PaginatedResponse)
async def list_tags(
    pagination: PaginationParams = Depends(),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.get_tags(db, pagination.value, search)

@router.get("/popular", response_model=list[TagResponse])
async def popular_tags(limit: int | None = None, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_popular_tags(db, limit)

@router.get("/{slug}", response_model=TagResponse)
async def get_tag(slug: str, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_tag(db, slug)

@router.get("/{slug}/articles", response_model=PaginatedResponse)
async def get_tag_articles(
    slug: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.get_tag_articles(db, slug, pagination.value)

@router.post("", status_code=201, response_model=TagResponse)
async def create_tag(
    data: TagCreate,
    user: User = Depends(require_role(UserRole.AUTHOR)),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.create_tag(db, data)

@router.put("/{tag_id}", response_model=TagResponse)
async def update_tag(
    tag_id: str,
    data: TagUpdate,
    user: User = Depends(require_role(UserRole.EDITOR)),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.update_tag(db, tag_id, data)

@router.delete("/{tag_id}", status_code=204)
async def delete_tag(
    tag_id: str,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await tag_service.delete_tag(db, tag_id)
