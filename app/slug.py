"""
URL slug helpers shared by every slug-owning entity (articles,
categories, tags).
"""
import re
import unicodedata
from typing import Awaitable, Callable

from app.config import settings
from app.errors import ConflictError, ValidationError

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9]+")
_SLUG_DASH_RE = re.compile(r"-+")
_SLUG_VALID_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Room left for the "-<n>" suffix when a length cap applies.
_SUFFIX_RESERVE = 10


def generate_slug(text: str) -> str:
    """
    Return a URL-safe, lowercase slug derived from *text*.

    Diacritics are stripped via NFKD decomposition, anything outside
    ASCII is dropped and every run of other characters becomes a single
    hyphen.  Empty or all-symbol input yields ``""``.
    """
    text = unicodedata.normalize("NFKD", text or "").lower()
    text = text.encode("ascii", "ignore").decode("ascii")
    text = _SLUG_INVALID_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def generate_unique_slug(base: str, suffix: str) -> str:
    if not suffix:
        return base
    return f"{base}-{suffix}"


def truncate_slug(slug: str, max_length: int) -> str:
    """Cap *slug* at *max_length* characters without leaving a trailing hyphen."""
    if len(slug) <= max_length:
        return slug
    return slug[:max_length].rstrip("-")


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and _SLUG_VALID_RE.match(slug) is not None


async def resolve_unique_slug(
    exists: Callable[[str], Awaitable[bool]],
    text: str,
    max_length: int | None = None,
    max_attempts: int | None = None,
) -> str:
    """
    Return the first free slug for *text*.

    The base slug is tried first, then ``base-1``, ``base-2``, ... until
    *exists* reports a free one.  When *max_length* is given the base is
    truncated to it, and shortened further for suffixed candidates so the
    suffix always fits.  Gives up with ``ConflictError`` after
    *max_attempts* suffixes.  Text with no slug-able characters is
    rejected with ``ValidationError``.
    """
    if max_attempts is None:
        max_attempts = settings.SLUG_MAX_ATTEMPTS

    base = generate_slug(text)
    if not base:
        raise ValidationError(
            f"Cannot derive a URL slug from {text!r}", code="INVALID_SLUG"
        )
    slug = truncate_slug(base, max_length) if max_length else base
    if not await exists(slug):
        return slug

    suffix_base = truncate_slug(base, max_length - _SUFFIX_RESERVE) if max_length else base
    for attempt in range(1, max_attempts + 1):
        candidate = generate_unique_slug(suffix_base, str(attempt))
        if not await exists(candidate):
            return candidate

    raise ConflictError(
        f"Could not find a free slug for {text!r} after {max_attempts} attempts",
        code="SLUG_UNAVAILABLE",
    )
