from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user
from app.models import User
from app.schemas import PaginatedResponse, UnreadCountResponse
from app.services import notification_service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

@router.get("", response_model=PaginatedResponse)
async def list_notifications(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.get_notifications(db, user.id, pagination.value)

@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return {"count": await notification_service.get_unread_count(db, user.id)}

@router.put("/read-all", status_code=204)
async def mark_all_as_read(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await notification_service.mark_all_notifications_as_read(db, user.id)

@router.put("/{notification_id}/read", status_code=204)
async def mark_as_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.mark_notification_as_read(db, user.id, notification_id)
