from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user
from app.models import User
from app.schemas import PaginatedResponse
from app.services import feed_service

router = APIRouter(prefix="/api/v1/feed", tags=["feed"])

@router.get("", response_model=PaginatedResponse)
async def personalized_feed(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await feed_service.get_personalized_feed(db, user.id, pagination.value)

@router.get("/staff-picks", response_model=PaginatedResponse)
async def staff_picks(pagination: PaginationParams = Depends(), db: AsyncSession = Depends(get_db)):
    return await feed_service.get_staff_picks(db, pagination.value)
