from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user, get_optional_user
from app.models import User, UserRole
from app.schemas import BookmarkResponse, CommentCreate, CommentResponse, CommentUpdate, LikeResponse, PaginatedResponse
from app.services import comment_service, engagement_service

router = APIRouter(prefix="/api/v1/articles/{slug}", tags=["engagement"])

# --- Likes ---

@router.get("/like", response_model=LikeResponse)
async def like_status(
    slug: str,
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await engagement_service.get_like_status(db, user, slug)

@router.post("/like", response_model=LikeResponse)
async def like_article(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await engagement_service.like_article(db, user, slug)

@router.delete("/like", response_model=LikeResponse)
async def unlike_article(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await engagement_service.unlike_article(db, user, slug)

# --- Bookmarks ---

@router.post("/bookmark", response_model=BookmarkResponse)
async def bookmark_article(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await engagement_service.bookmark_article(db, user, slug)

@router.delete("/bookmark", response_model=BookmarkResponse)
async def unbookmark_article(slug: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await engagement_service.unbookmark_article(db, user, slug)

# --- Comments ---

@router.get("/comments", response_model=PaginatedResponse)
async def list_comments(
    slug: str,
    pagination: PaginationParams = Depends(),
    user: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.get_comments(db, slug, pagination.value, user)

@router.post("/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    slug: str,
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.create_comment(db, user, slug, data)

@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    slug: str,
    comment_id: str,
    data: CommentUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.update_comment(db, user, slug, comment_id, data)

@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(
        db, user, slug, comment_id, is_admin=user.role == UserRole.ADMIN
    )
