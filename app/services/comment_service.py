"""
Comment service — threaded comments on an article.

Comments form a tree through ``parent_id``.  Listing paginates the
top-level comments (newest first) and then loads their replies one depth
level per query, so the number of queries is bounded by the depth of the
thread rather than by the number of comments.  The tree is assembled in
Python from the already-loaded rows.

Comments on a draft exist only for readers allowed to see the draft.
"""
import uuid
from collections import defaultdict

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.attributes import set_committed_value

from app.errors import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    parse_id,
    wrap_errors,
)
from app.models import Comment, NotificationType, User
from app.pagination import Pagination, paginated
from app.schemas import CommentCreate, CommentUpdate
from app.services.article_queries import get_visible_article
from app.services.notification_service import comment_message, notify_best_effort
from app.services.serializers import comment_to_dict


# ---------------------------------------------------------------------------
# Tree assembly
# ---------------------------------------------------------------------------

def build_comment_tree(roots: list[Comment], replies: list[Comment]) -> list[dict]:
    """
    Nest *replies* under their parents and serialise *roots*.

    Replies keep the order they arrive in; callers pass them oldest first.
    """
    children: dict[uuid.UUID, list[Comment]] = defaultdict(list)
    for reply in replies:
        children[reply.parent_id].append(reply)
    return [comment_to_dict(root, children) for root in roots]


async def _load_replies(db: AsyncSession, root_ids: list[uuid.UUID]) -> list[Comment]:
    """Load every descendant of *root_ids*, one query per depth level."""
    replies: list[Comment] = []
    frontier = root_ids
    while frontier:
        result = await db.execute(
            select(Comment)
            .where(Comment.parent_id.in_(frontier))
            .options(joinedload(Comment.user))
            .order_by(Comment.created_at.asc(), Comment.id)
        )
        level = list(result.scalars().all())
        replies.extend(level)
        frontier = [c.id for c in level]
    return replies


async def _collect_descendant_ids(db: AsyncSession, comment_id: uuid.UUID) -> list[uuid.UUID]:
    ids = [comment_id]
    frontier = [comment_id]
    while frontier:
        result = await db.execute(select(Comment.id).where(Comment.parent_id.in_(frontier)))
        frontier = list(result.scalars().all())
        ids.extend(frontier)
    return ids


async def _get_comment(db: AsyncSession, article_id: uuid.UUID, comment_id: str) -> Comment:
    cid = parse_id(comment_id)
    async with wrap_errors("failed to find comment"):
        result = await db.execute(
            select(Comment).where(Comment.id == cid).options(joinedload(Comment.user))
        )
        comment = result.scalar_one_or_none()
    if comment is None or comment.article_id != article_id:
        raise NotFoundError("Comment not found")
    return comment


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_comments(
    db: AsyncSession, slug: str, pagination: Pagination, viewer: User | None = None
) -> dict:
    article = await get_visible_article(db, slug, viewer)
    top_level = select(Comment).where(
        Comment.article_id == article.id, Comment.parent_id.is_(None)
    )
    async with wrap_errors("failed to get comments"):
        total = (await db.execute(select(func.count()).select_from(top_level.subquery()))).scalar_one()
        result = await db.execute(
            top_level.options(joinedload(Comment.user))
            .order_by(Comment.created_at.desc(), Comment.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        roots = list(result.scalars().all())
        replies = await _load_replies(db, [r.id for r in roots])
    return paginated(build_comment_tree(roots, replies), total, pagination)


async def create_comment(db: AsyncSession, user: User, slug: str, data: CommentCreate) -> dict:
    """
    Add a comment (or a reply when ``parent_id`` is set) to the article.

    A reply's parent must be a comment on the same article.  Commenting on
    someone else's article notifies its author.
    """
    article = await get_visible_article(db, slug, user)

    parent_id = None
    if data.parent_id is not None:
        parent_id = parse_id(
            data.parent_id,
            ValidationError("Invalid parent comment ID", code="INVALID_PARENT_ID"),
        )
        async with wrap_errors("failed to find parent comment"):
            parent = await db.get(Comment, parent_id)
        if parent is None or parent.article_id != article.id:
            raise ValidationError(
                "Parent comment does not belong to this article", code="INVALID_PARENT"
            )

    comment = Comment(
        article_id=article.id,
        user_id=user.id,
        parent_id=parent_id,
        content=data.content,
    )
    async with wrap_errors("failed to create comment"):
        db.add(comment)
        await db.flush()

    if article.author_id != user.id:
        await notify_best_effort(
            db, user.id, article.author_id, NotificationType.COMMENT,
            comment_message(user), article.id,
        )

    set_committed_value(comment, "user", user)
    return comment_to_dict(comment)


async def update_comment(
    db: AsyncSession, user: User, slug: str, comment_id: str, data: CommentUpdate
) -> dict:
    article = await get_visible_article(db, slug, user)
    comment = await _get_comment(db, article.id, comment_id)
    if comment.user_id != user.id:
        raise ForbiddenError("Only the author can edit this comment")

    comment.content = data.content
    async with wrap_errors("failed to update comment"):
        await db.flush()
        replies = await _load_replies(db, [comment.id])
    return build_comment_tree([comment], replies)[0]


async def delete_comment(
    db: AsyncSession, user: User, slug: str, comment_id: str, is_admin: bool = False
) -> None:
    """Delete a comment together with every reply beneath it."""
    article = await get_visible_article(db, slug, user)
    comment = await _get_comment(db, article.id, comment_id)
    if comment.user_id != user.id and not is_admin:
        raise ForbiddenError("Only the author or an admin can delete this comment")

    async with wrap_errors("failed to delete comment"):
        async with db.begin_nested():
            ids = await _collect_descendant_ids(db, comment.id)
            await db.execute(
                delete(Comment).where(Comment.id.in_(ids)).execution_options(synchronize_session=False)
            )
