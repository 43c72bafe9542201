"""
Notification service — writes and reads the per-user notification inbox.

Notifications are a side effect of another action (a like, a comment, a
follow, a publication).  They are written best-effort: each write runs in
its own SAVEPOINT so a failure rolls back only the notification row and
is logged, never surfaced to the caller whose primary action succeeded.
"""
import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.errors import NotFoundError, parse_id, wrap_errors
from app.models import Article, Follow, Notification, NotificationType, User
from app.pagination import Pagination, paginated
from app.services.serializers import notification_to_dict

logger = logging.getLogger(__name__)


def like_message(actor: User) -> str:
    return f"{actor.public_name} liked your article"


def comment_message(actor: User) -> str:
    return f"{actor.public_name} commented on your article"


def publish_message(author: User) -> str:
    return f"{author.public_name} published a new article"


def follow_message(actor: User) -> str:
    return f"{actor.public_name} started following you"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_notification(
    db: AsyncSession,
    actor_id: uuid.UUID,
    recipient_id: uuid.UUID,
    type: NotificationType,
    message: str,
    article_id: uuid.UUID | None = None,
) -> Notification | None:
    """Insert one notification.  Users are never notified of their own actions."""
    if actor_id == recipient_id:
        return None
    notification = Notification(
        user_id=recipient_id,
        actor_id=actor_id,
        type=type,
        message=message,
        article_id=article_id,
        read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def notify_best_effort(
    db: AsyncSession,
    actor_id: uuid.UUID,
    recipient_id: uuid.UUID,
    type: NotificationType,
    message: str,
    article_id: uuid.UUID | None = None,
) -> Notification | None:
    try:
        async with db.begin_nested():
            return await create_notification(
                db, actor_id, recipient_id, type, message, article_id
            )
    except SQLAlchemyError as exc:
        logger.warning(
            "Failed to write %s notification for user %s: %s",
            type.value, recipient_id, exc,
        )
        return None


async def notify_followers_of_publication(db: AsyncSession, article: Article, author: User) -> int:
    """
    Fan out an ``article`` notification to every follower of *author*.

    Each recipient is written in its own savepoint; a failed write is
    logged and skipped.  A failed follower lookup is logged and nobody is
    notified.  Returns the number of notifications written.
    """
    try:
        async with db.begin_nested():
            result = await db.execute(
                select(Follow.follower_id).where(Follow.following_id == author.id)
            )
            follower_ids = list(result.scalars().all())
    except SQLAlchemyError as exc:
        logger.warning("Failed to load followers of %s for article %s: %s", author.id, article.id, exc)
        return 0
    message = publish_message(author)
    written = 0
    for follower_id in follower_ids:
        notification = await notify_best_effort(
            db, author.id, follower_id, NotificationType.ARTICLE, message, article.id
        )
        if notification is not None:
            written += 1
    logger.info(
        "Article %s published: notified %d/%d follower(s)",
        article.id, written, len(follower_ids),
    )
    return written


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_notifications(db: AsyncSession, user_id: uuid.UUID, pagination: Pagination) -> dict:
    """Return *user_id*'s notifications, newest first."""
    base = select(Notification).where(Notification.user_id == user_id)
    async with wrap_errors("failed to find notifications"):
        total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
        result = await db.execute(
            base.options(joinedload(Notification.actor), joinedload(Notification.article))
            .order_by(Notification.created_at.desc(), Notification.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        notifications = result.scalars().all()
    return paginated([notification_to_dict(n) for n in notifications], total, pagination)


async def get_unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    async with wrap_errors("failed to count notifications"):
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
        )
    return result.scalar_one()


async def mark_notification_as_read(db: AsyncSession, user_id: uuid.UUID, notification_id: str) -> None:
    """
    Mark one notification read.

    Ownership is part of the UPDATE's WHERE clause, so another user's
    notification is indistinguishable from a missing one.
    """
    nid = parse_id(notification_id)
    async with wrap_errors("failed to mark notification as read"):
        result = await db.execute(
            update(Notification)
            .where(Notification.id == nid, Notification.user_id == user_id)
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
    if result.rowcount == 0:
        raise NotFoundError("Notification not found")


async def mark_all_notifications_as_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    async with wrap_errors("failed to mark notifications as read"):
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount
