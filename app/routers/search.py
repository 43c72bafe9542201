from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams
from app.schemas import SearchResponse
from app.services import search_service

router = APIRouter(prefix="/api/v1/search", tags=["search"])

@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query(min_length=2, max_length=100),
    type: str = Query("all", pattern="^(all|articles|categories|tags)$"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await search_service.search(db, q, pagination.value, type)
