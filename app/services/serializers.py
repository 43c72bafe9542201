"""
Plain-dict serialisers shared by the service modules.

Relationships are read only if the caller eager-loaded them; with
``lazy="noload"`` an unloaded collection is simply empty, never a
hidden query.
"""
from app.models import Article, Category, Comment, Notification, Tag, User


def _iso(value):
    return value.isoformat() if value else None


def user_to_public_dict(user: User | None) -> dict | None:
    if user is None:
        return None
    return {
        "id": str(user.id),
        "username": user.username,
        "display_name": user.display_name,
        "bio": user.bio,
    }


def user_to_dict(user: User) -> dict:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "role": user.role.value,
        "is_active": user.is_active,
        "created_at": _iso(user.created_at),
    }


def category_to_summary(category: Category) -> dict:
    return {"id": str(category.id), "name": category.name, "slug": category.slug}


def category_to_dict(category: Category) -> dict:
    data = category_to_summary(category)
    data.update(
        {
            "description": category.description,
            "parent_id": str(category.parent_id) if category.parent_id else None,
            "display_order": category.display_order,
            "created_at": _iso(category.created_at),
        }
    )
    return data


def tag_to_summary(tag: Tag) -> dict:
    return {"id": str(tag.id), "name": tag.name, "slug": tag.slug}


def tag_to_dict(tag: Tag) -> dict:
    data = tag_to_summary(tag)
    data.update(
        {
            "description": tag.description,
            "usage_count": tag.usage_count,
            "created_at": _iso(tag.created_at),
        }
    )
    return data


def article_to_list_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    return {
        "id": str(article.id),
        "title": article.title,
        "slug": article.slug,
        "excerpt": article.excerpt,
        "status": article.status.value,
        "published_at": _iso(article.published_at),
        "view_count": article.view_count,
        "reading_time_minutes": article.reading_time_minutes,
        "is_staff_pick": article.is_staff_pick,
        "created_at": _iso(article.created_at),
        "author": user_to_public_dict(article.author),
        "categories": [category_to_summary(c) for c in article.categories],
        "tags": [tag_to_summary(t) for t in article.tags],
    }


def article_to_detail_dict(article: Article, engagement: tuple[int, int, bool, bool] | None = None) -> dict:
    """Serialise an Article to the detail view, with its engagement block."""
    likes_count, comments_count, liked, bookmarked = engagement or (0, 0, False, False)
    data = article_to_list_dict(article)
    data.update(
        {
            "content": article.content,
            "updated_at": _iso(article.updated_at),
            "likes_count": likes_count,
            "comments_count": comments_count,
            "liked": liked,
            "bookmarked": bookmarked,
        }
    )
    return data


def comment_to_dict(comment: Comment, children: dict | None = None) -> dict:
    """
    Map *comment* and, recursively, its replies to nested dicts.

    *children* maps a parent comment id to its already-loaded replies;
    nothing is re-queried here.
    """
    children = children or {}
    return {
        "id": str(comment.id),
        "article_id": str(comment.article_id),
        "parent_id": str(comment.parent_id) if comment.parent_id else None,
        "content": comment.content,
        "user": user_to_public_dict(comment.user),
        "created_at": _iso(comment.created_at),
        "updated_at": _iso(comment.updated_at),
        "replies": [comment_to_dict(reply, children) for reply in children.get(comment.id, [])],
    }


def notification_to_dict(notification: Notification) -> dict:
    article = notification.article
    return {
        "id": str(notification.id),
        "type": notification.type.value,
        "message": notification.message,
        "read": notification.read,
        "actor": user_to_public_dict(notification.actor),
        "article": (
            {"id": str(article.id), "slug": article.slug, "title": article.title}
            if article is not None
            else None
        ),
        "created_at": _iso(notification.created_at),
    }
