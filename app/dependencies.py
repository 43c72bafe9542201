from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.errors import ForbiddenError, UnauthorizedError, parse_id
from app.models import User, UserRole
from app.pagination import resolve_pagination


class PaginationParams:
    """
    Reusable FastAPI dependency that parses pagination / sorting query
    parameters.

    Usage in a router::

        @router.get("/articles")
        async def list_articles(pagination: PaginationParams = Depends()):
            ...

    The raw values are normalised by ``resolve_pagination`` and exposed as
    ``pagination.value`` (a ``Pagination``), which is what the service
    layer accepts.

    Attributes
    ----------
    page:
        1-based page number.
    per_page:
        Items per page, clamped to ``settings.MAX_PAGE_SIZE``.
    sort:
        ``newest`` (default), ``oldest``, ``popular`` or ``alphabetical``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        per_page: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=100,
            description="Number of items returned per page (max 100).",
        ),
        sort: str = Query(
            "newest",
            pattern="^(newest|oldest|popular|alphabetical)$",
            description="Sort order.",
        ),
    ) -> None:
        self.value = resolve_pagination(page, per_page, sort)
        self.page = self.value.page
        self.per_page = self.value.per_page
        self.sort = self.value.sort


# ---------------------------------------------------------------------------
# Caller identity
#
# Authentication happens upstream; the gateway forwards the authenticated
# user's id in the X-User-ID header.
# ---------------------------------------------------------------------------

async def _load_user(db: AsyncSession, raw_id: str) -> User | None:
    user_id = parse_id(raw_id, UnauthorizedError("Invalid user identity"))
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def get_optional_user(
    x_user_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if not x_user_id:
        return None
    return await _load_user(db, x_user_id)


async def get_current_user(
    x_user_id: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not x_user_id:
        raise UnauthorizedError("Authentication required")
    user = await _load_user(db, x_user_id)
    if user is None:
        raise UnauthorizedError("Unknown or inactive user")
    return user


def require_role(role: UserRole):
    """Dependency factory: the caller must hold *role* or a higher one."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if not user.role.has_permission(role):
            raise ForbiddenError(f"Requires {role.value} role")
        return user

    return checker
