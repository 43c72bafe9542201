"""
User service — user records and the social graph (follows, interests).

Follow edges and interests are sets: the composite primary keys of
``user_follows`` and ``user_interests`` make a duplicate impossible in
storage, and the service treats a duplicate insert as "already there"
rather than an error.
"""
import logging
import uuid

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    parse_id,
    wrap_errors,
)
from app.models import Article, ArticleStatus, Category, Follow, NotificationType, User, UserInterest, UserRole
from app.pagination import Pagination, paginated
from app.schemas import UserCreate, UserUpdate
from app.services.article_queries import fetch_article_page, published_articles
from app.services.notification_service import follow_message, notify_best_effort
from app.services.serializers import category_to_dict, user_to_dict, user_to_public_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def get_user_model(db: AsyncSession, user_id) -> User:
    """Load a user by id or raise ``NotFoundError``."""
    uid = parse_id(user_id)
    async with wrap_errors("failed to find user"):
        user = await db.get(User, uid)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()


async def _is_following(db: AsyncSession, follower_id: uuid.UUID, following_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(Follow.follower_id).where(
            Follow.follower_id == follower_id, Follow.following_id == following_id
        )
    )
    return result.first() is not None


# ---------------------------------------------------------------------------
# User records
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    user = User(**data.model_dump())
    try:
        async with db.begin_nested():
            db.add(user)
            await db.flush()
    except IntegrityError as exc:
        raise ConflictError("Username or email already exists") from exc
    logger.info("Created user %s (%s)", user.username, user.id)
    return user_to_dict(user)


async def get_users(db: AsyncSession, pagination: Pagination, search: str | None = None) -> dict:
    """Return users newest first, optionally filtered by username / display name."""
    stmt = select(User)
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(User.username.ilike(pattern), User.display_name.ilike(pattern)))
    async with wrap_errors("failed to find users"):
        total = await _count(db, stmt)
        result = await db.execute(
            stmt.order_by(User.created_at.desc(), User.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        users = result.scalars().all()
    return paginated([user_to_dict(u) for u in users], total, pagination)


async def get_user(db: AsyncSession, user_id: str) -> dict:
    return user_to_dict(await get_user_model(db, user_id))


async def update_user(db: AsyncSession, user_id: str, data: UserUpdate, current_user: User) -> dict:
    """Patch profile fields.  Users may edit themselves; admins may edit anyone."""
    user = await get_user_model(db, user_id)
    if user.id != current_user.id and current_user.role != UserRole.ADMIN:
        raise ForbiddenError("You can only update your own profile")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    async with wrap_errors("failed to update user"):
        await db.flush()
    return user_to_dict(user)


async def update_user_role(db: AsyncSession, user_id: str, role: str) -> dict:
    try:
        new_role = UserRole(role)
    except ValueError:
        raise ValidationError("Invalid role specified", code="INVALID_ROLE") from None

    user = await get_user_model(db, user_id)
    user.role = new_role
    async with wrap_errors("failed to update user"):
        await db.flush()
    logger.info("User %s role changed to %s", user.id, new_role.value)
    return user_to_dict(user)


async def get_user_articles(db: AsyncSession, user_id: str, pagination: Pagination) -> dict:
    user = await get_user_model(db, user_id)
    stmt = published_articles().where(Article.author_id == user.id)
    return await fetch_article_page(db, stmt, pagination)


async def get_user_profile(db: AsyncSession, user_id: str, viewer_id: uuid.UUID | None = None) -> dict:
    """
    Public profile: published article count, follower / following counts,
    interests, and whether *viewer_id* follows this user.
    """
    user = await get_user_model(db, user_id)
    async with wrap_errors("failed to load profile"):
        article_count = await _count(
            db,
            select(Article.id).where(
                Article.author_id == user.id, Article.status == ArticleStatus.PUBLISHED
            ),
        )
        follower_count = await _count(db, select(Follow.follower_id).where(Follow.following_id == user.id))
        following_count = await _count(db, select(Follow.following_id).where(Follow.follower_id == user.id))
        is_following = False
        if viewer_id and viewer_id != user.id:
            is_following = await _is_following(db, viewer_id, user.id)
        interests = await get_interests(db, user.id)

    profile = user_to_public_dict(user)
    profile.update(
        {
            "role": user.role.value,
            "article_count": article_count,
            "follower_count": follower_count,
            "following_count": following_count,
            "is_following": is_following,
            "interests": interests,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }
    )
    return profile


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------

async def follow_user(db: AsyncSession, follower: User, following_id: str) -> dict:
    """
    Make *follower* follow *following_id*.

    Idempotent.  The first follow notifies the followed user.
    """
    target_id = parse_id(following_id)
    if target_id == follower.id:
        raise ValidationError("You cannot follow yourself", code="INVALID_OPERATION")
    target = await get_user_model(db, target_id)

    async with wrap_errors("failed to follow user"):
        if await _is_following(db, follower.id, target.id):
            return {"is_following": True}
        try:
            async with db.begin_nested():
                db.add(Follow(follower_id=follower.id, following_id=target.id))
                await db.flush()
        except IntegrityError:
            logger.debug("Concurrent follow %s -> %s", follower.id, target.id)
            return {"is_following": True}

        await notify_best_effort(
            db, follower.id, target.id, NotificationType.FOLLOW, follow_message(follower)
        )
    return {"is_following": True}


async def unfollow_user(db: AsyncSession, follower: User, following_id: str) -> dict:
    target_id = parse_id(following_id)
    if target_id == follower.id:
        raise ValidationError("You cannot unfollow yourself", code="INVALID_OPERATION")
    async with wrap_errors("failed to unfollow user"):
        await db.execute(
            delete(Follow).where(Follow.follower_id == follower.id, Follow.following_id == target_id)
        )
    return {"is_following": False}


async def _user_page(db: AsyncSession, stmt, pagination: Pagination, context: str) -> dict:
    async with wrap_errors(context):
        total = await _count(db, stmt)
        result = await db.execute(
            stmt.order_by(Follow.created_at.desc(), User.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        users = result.scalars().all()
    return paginated([user_to_public_dict(u) for u in users], total, pagination)


async def get_followers(db: AsyncSession, user_id: str, pagination: Pagination) -> dict:
    uid = parse_id(user_id)
    stmt = select(User).join(Follow, Follow.follower_id == User.id).where(Follow.following_id == uid)
    return await _user_page(db, stmt, pagination, "failed to get followers")


async def get_following(db: AsyncSession, user_id: str, pagination: Pagination) -> dict:
    uid = parse_id(user_id)
    stmt = select(User).join(Follow, Follow.following_id == User.id).where(Follow.follower_id == uid)
    return await _user_page(db, stmt, pagination, "failed to get following")


async def get_following_ids(db: AsyncSession, user_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(select(Follow.following_id).where(Follow.follower_id == user_id))
    return list(result.scalars().all())


async def get_follower_ids(db: AsyncSession, user_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(select(Follow.follower_id).where(Follow.following_id == user_id))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Interests
# ---------------------------------------------------------------------------

async def get_interest_ids(db: AsyncSession, user_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(select(UserInterest.category_id).where(UserInterest.user_id == user_id))
    return list(result.scalars().all())


async def get_interests(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    result = await db.execute(
        select(Category)
        .join(UserInterest, UserInterest.category_id == Category.id)
        .where(UserInterest.user_id == user_id)
        .order_by(Category.display_order, Category.name)
    )
    return [category_to_dict(c) for c in result.scalars().all()]


async def set_interests(db: AsyncSession, user_id: uuid.UUID, category_ids: list[str]) -> list[dict]:
    """
    Replace *user_id*'s interests with *category_ids*.

    Every id is parsed and checked before anything is written, so a bad
    id leaves the previous interests untouched.
    """
    ids: list[uuid.UUID] = []
    for raw in category_ids:
        cid = parse_id(
            raw, ValidationError(f"Invalid category ID: {raw}", code="INVALID_CATEGORY_ID")
        )
        if cid not in ids:
            ids.append(cid)

    async with wrap_errors("failed to set interests"):
        if ids:
            found = await db.execute(select(Category.id).where(Category.id.in_(ids)))
            if len(set(found.scalars().all())) != len(ids):
                raise NotFoundError("One or more categories not found", code="CATEGORY_NOT_FOUND")

        async with db.begin_nested():
            await db.execute(delete(UserInterest).where(UserInterest.user_id == user_id))
            db.add_all([UserInterest(user_id=user_id, category_id=cid) for cid in ids])
            await db.flush()

        return await get_interests(db, user_id)
