"""
Slug helper tests — pure functions plus the async unique-slug resolver
driven by an in-memory "taken" set.
"""
import pytest

from app.errors import ConflictError, ValidationError
from app.slug import (
    generate_slug,
    generate_unique_slug,
    is_valid_slug,
    resolve_unique_slug,
    truncate_slug,
)


def _exists_in(taken: set[str]):
    async def exists(slug: str) -> bool:
        return slug in taken

    return exists


# ---------------------------------------------------------------------------
# generate_slug
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hello World", "hello-world"),
        ("Hello, World!", "hello-world"),
        ("  spaced   out  ", "spaced-out"),
        ("Café Crème", "cafe-creme"),
        ("Python 3.12 released", "python-3-12-released"),
        ("--already--dashed--", "already-dashed"),
        ("C++ & Rust", "c-rust"),
    ],
)
def test_generate_slug(text, expected):
    assert generate_slug(text) == expected


@pytest.mark.parametrize("text", ["", "!!!", "日本語", "   "])
def test_generate_slug_without_ascii_content_is_empty(text):
    assert generate_slug(text) == ""


def test_generated_slugs_are_valid():
    for text in ["Hello World", "Café Crème", "a  b  c", "Trailing!!"]:
        assert is_valid_slug(generate_slug(text))


# ---------------------------------------------------------------------------
# generate_unique_slug / truncate_slug / is_valid_slug
# ---------------------------------------------------------------------------

def test_generate_unique_slug():
    assert generate_unique_slug("hello", "") == "hello"
    assert generate_unique_slug("hello", "2") == "hello-2"


def test_truncate_slug_leaves_short_slugs_alone():
    assert truncate_slug("short", 10) == "short"


def test_truncate_slug_drops_trailing_hyphen():
    assert truncate_slug("hello-world", 6) == "hello"
    assert len(truncate_slug("a" * 300, 200)) == 200


@pytest.mark.parametrize(
    "slug, valid",
    [
        ("hello-world", True),
        ("a1", True),
        ("", False),
        ("-leading", False),
        ("trailing-", False),
        ("double--dash", False),
        ("Upper", False),
        ("under_score", False),
    ],
)
def test_is_valid_slug(slug, valid):
    assert is_valid_slug(slug) is valid


# ---------------------------------------------------------------------------
# resolve_unique_slug
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_resolve_unique_slug_returns_base_when_free():
    assert await resolve_unique_slug(_exists_in(set()), "Hello World") == "hello-world"


@pytest.mark.asyncio
async def test_resolve_unique_slug_appends_first_free_suffix():
    taken = {"hello-world", "hello-world-1", "hello-world-2"}
    assert await resolve_unique_slug(_exists_in(taken), "Hello World") == "hello-world-3"


@pytest.mark.asyncio
async def test_resolve_unique_slug_truncates_base_and_suffix_candidates():
    title = "word " * 100
    base = truncate_slug(generate_slug(title), 200)

    first = await resolve_unique_slug(_exists_in(set()), title, max_length=200)
    assert first == base
    assert len(first) <= 200

    second = await resolve_unique_slug(_exists_in({base}), title, max_length=200)
    assert second == truncate_slug(generate_slug(title), 190) + "-1"
    assert len(second) <= 200


@pytest.mark.asyncio
async def test_resolve_unique_slug_rejects_unsluggable_text():
    with pytest.raises(ValidationError) as exc_info:
        await resolve_unique_slug(_exists_in(set()), "!!!")
    assert exc_info.value.code == "INVALID_SLUG"


@pytest.mark.asyncio
async def test_resolve_unique_slug_gives_up_after_max_attempts():
    taken = {"busy"} | {f"busy-{i}" for i in range(1, 4)}
    with pytest.raises(ConflictError) as exc_info:
        await resolve_unique_slug(_exists_in(taken), "busy", max_attempts=3)
    assert exc_info.value.code == "SLUG_UNAVAILABLE"
