from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user, get_optional_user, require_role
from app.models import User, UserRole
from app.schemas import (
    CategoryResponse,
    FollowResponse,
    InterestsUpdate,
    PaginatedResponse,
    RoleUpdate,
    UserCreate,
    UserProfile,
    UserResponse,
    UserUpdate,
)
from app.services import engagement_service, user_service
from app.services.serializers import user_to_dict

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("", response_model=PaginatedResponse)
async def list_users(
    pagination: PaginationParams = Depends(),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_users(db, pagination.value, search)

@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return await user_service.create_user(db, data)

# --- Current user ---

@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return user_to_dict(user)

@router.get("/me/bookmarks", response_model=PaginatedResponse)
async def my_bookmarks(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await engagement_service.get_bookmarked_articles(db, user.id, pagination.value)

@router.get("/me/interests", response_model=list[CategoryResponse])
async def my_interests(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await user_service.get_interests(db, user.id)

@router.put("/me/interests", response_model=list[CategoryResponse])
async def set_my_interests(
    data: InterestsUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.set_interests(db, user.id, data.category_ids)

# --- Any user ---

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)

@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user(db, user_id, data, user)

@router.get("/{user_id}/profile", response_model=UserProfile)
async def get_user_profile(
    user_id: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user_profile(db, user_id, viewer.id if viewer else None)

@router.get("/{user_id}/articles", response_model=PaginatedResponse)
async def get_user_articles(
    user_id: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user_articles(db, user_id, pagination.value)

@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: str,
    data: RoleUpdate,
    admin: User = Depends(require_role(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user_role(db, user_id, data.role)

# --- Social graph ---

@router.post("/{user_id}/follow", response_model=FollowResponse)
async def follow_user(user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await user_service.follow_user(db, user, user_id)

@router.delete("/{user_id}/follow", response_model=FollowResponse)
async def unfollow_user(user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await user_service.unfollow_user(db, user, user_id)

@router.get("/{user_id}/followers", response_model=PaginatedResponse)
async def get_followers(
    user_id: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_followers(db, user_id, pagination.value)

@router.get("/{user_id}/following", response_model=PaginatedResponse)
async def get_following(
    user_id: str,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_following(db, user_id, pagination.value)
