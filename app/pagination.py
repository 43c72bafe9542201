"""
Pagination, sorting and limit normalisation.

Everything here is pure so services and the HTTP dependency share one
set of defaults and bounds.
"""
import math
from dataclasses import dataclass

from app.config import settings

SORT_NEWEST = "newest"
SORT_OLDEST = "oldest"
SORT_POPULAR = "popular"
SORT_ALPHABETICAL = "alphabetical"

SORT_KEYS: frozenset[str] = frozenset(
    {SORT_NEWEST, SORT_OLDEST, SORT_POPULAR, SORT_ALPHABETICAL}
)


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    per_page: int = 20
    sort: str = SORT_NEWEST

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


def resolve_pagination(
    page: int | None = None,
    per_page: int | None = None,
    sort: str | None = None,
) -> Pagination:
    """
    Normalise raw page / per-page / sort inputs.

    Missing or non-positive pages become 1; per-page defaults to
    ``settings.DEFAULT_PAGE_SIZE`` and is clamped to
    ``[1, settings.MAX_PAGE_SIZE]``; unknown sort keys fall back to
    ``"newest"``.
    """
    effective_page = page if page and page > 0 else 1
    if not per_page or per_page <= 0:
        effective_per_page = settings.DEFAULT_PAGE_SIZE
    else:
        effective_per_page = min(per_page, settings.MAX_PAGE_SIZE)
    effective_sort = sort if sort in SORT_KEYS else SORT_NEWEST
    return Pagination(page=effective_page, per_page=effective_per_page, sort=effective_sort)


def calculate_total_pages(total: int, per_page: int) -> int:
    if per_page <= 0:
        return 0
    return math.ceil(total / per_page)


def resolve_limit(limit: int | None, default: int | None = None, maximum: int | None = None) -> int:
    """Clamp a top-N list size; missing or non-positive values use *default*."""
    default = default if default is not None else settings.LIST_LIMIT_DEFAULT
    maximum = maximum if maximum is not None else settings.LIST_LIMIT_MAX
    if not limit or limit <= 0:
        return default
    return min(limit, maximum)


def paginated(items: list, total: int, pagination: Pagination) -> dict:
    """Assemble the standard paginated payload."""
    return {
        "items": items,
        "total": total,
        "page": pagination.page,
        "per_page": pagination.per_page,
        "pages": calculate_total_pages(total, pagination.per_page),
    }
