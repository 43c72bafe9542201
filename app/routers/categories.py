from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, require_role
from app.models import User, UserRole
from app.schemas import CategoryCreate, CategoryDetail, CategoryResponse, CategoryTree, CategoryUpdate, PaginatedResponse
from app.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])

@router.get("", response_model=list[CategoryResponse])
async def list_categories(
    search: str | None = None,
    top_level_only: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await category_service.get_categories(db, search, top_level_only)

@router.get("/tree", response_model=list[CategoryTree])
async def category_tree(db: AsyncSession = Depends(get_db)):
    return await category_service.get_category_tree(db)

@router.get("/{slug}", response_model=CategoryDetail)
async def get_category(slug: str, db: AsyncSession = Depends(get_db)):
    return await category_service.get_category(db, slug)

@router.get("/{slug}/articles", response_model=PaginatedResponse)
async def get_category_articles(
    slug: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.get_category_articles(db, slug, pagination.value)

@router.post("", status_code=201, response_model=CategoryResponse)
async def create_category(
    data: CategoryCreate,
    user: User = Depends(require_role(UserRole.EDITOR)),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.create_category(db, data)

@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    user: User = Depends(require_role(UserRole.EDITOR)),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.update_category(db, category_id, data)

@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: str,
    user: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await category_service.delete_category(db, category_id)
