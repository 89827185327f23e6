"""
Direct service-layer tests: slug generation, pagination bounds, token
resolution and the identity service's uniqueness probes, called without
HTTP.
"""
import re
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from forum.context import CallContext
from forum.exceptions import EntityExists, NotFound, TokenExpired, TokenInvalid, Unauthorized
from forum.schemas import ChannelCreate, UserCreate
from forum.security import create_token
from forum.services import channel_service, user_service
from forum.services.common import SLUG_SUFFIX_LENGTH, make_slug, page_bounds, slugify


async def _create_user(ctx: CallContext, username: str = "svcuser",
                       email: str = "svc@example.com") -> dict:
    result = await user_service.create_user(ctx, UserCreate(
        username=username, email=email, password="secret123",
    ))
    return result["user"]


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("title,prefix", [
    ("General", "general"),
    ("Hello World!", "hello-world"),
    ("  Python   & Async  ", "python-async"),
    ("snake_case title", "snake-case-title"),
])
def test_slug_prefix_and_suffix(title, prefix):
    slug = make_slug(title)
    assert slugify(title) == prefix
    assert re.fullmatch(rf"{prefix}-[0-9a-z]{{{SLUG_SUFFIX_LENGTH}}}", slug)


def test_slug_without_readable_prefix_is_suffix_only():
    assert re.fullmatch(r"[0-9a-z]{6}", make_slug("!!!"))


def test_same_title_gives_different_slugs():
    slugs = {make_slug("General") for _ in range(50)}
    assert len(slugs) == 50


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def test_page_bounds_defaults_and_ceiling():
    assert page_bounds(None, None) == (20, 0)
    assert page_bounds(500, 3) == (100, 3)
    assert page_bounds(5, -1) == (5, 0)


@pytest.mark.asyncio
async def test_list_length_is_min_of_limit_and_remaining(ctx: CallContext):
    owner = await _create_user(ctx)
    caller = CallContext(db=ctx.db, user=owner, token=owner["token"])
    for i in range(7):
        await channel_service.create_channel(
            caller, ChannelCreate(title=f"Channel {i}", description="desc")
        )

    for limit, offset in ((3, 0), (3, 6), (10, 2), (5, 7)):
        page = await channel_service.list_channels(ctx, limit=limit, offset=offset)
        assert len(page["channels"]) == max(0, min(limit, 7 - offset))
        assert page["count"] == 7


# ---------------------------------------------------------------------------
# Identity service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_user_conflicts_name_the_field(ctx: CallContext):
    await _create_user(ctx, "alice", "a@x.com")

    with pytest.raises(EntityExists) as exc_info:
        await _create_user(ctx, "alice", "fresh@x.com")
    assert exc_info.value.field == "username"

    with pytest.raises(EntityExists) as exc_info:
        await _create_user(ctx, "fresh", "a@x.com")
    assert exc_info.value.field == "email"

    fresh = await _create_user(ctx, "fresh", "fresh@x.com")
    assert fresh["username"] == "fresh"


@pytest.mark.asyncio
async def test_resolve_token_round_trip(ctx: CallContext):
    user = await _create_user(ctx)
    resolved = await user_service.resolve_token(ctx, user["token"])
    assert resolved["id"] == user["id"]
    assert "password" not in resolved


@pytest.mark.asyncio
async def test_resolve_token_for_deleted_user_is_none(ctx: CallContext):
    token = create_token(9999, "ghost")
    assert await user_service.resolve_token(ctx, token) is None


@pytest.mark.asyncio
async def test_resolve_token_failures(ctx: CallContext):
    user = await _create_user(ctx)
    header, _, signature = user["token"].split(".")
    other_payload = create_token(user["id"] + 1, "mallory").split(".")[1]
    tampered = ".".join([header, other_payload, signature])
    with pytest.raises(TokenInvalid):
        await user_service.resolve_token(ctx, tampered)

    old = create_token(user["id"], user["username"], now=datetime.now(timezone.utc) - timedelta(days=61))
    with pytest.raises(TokenExpired):
        await user_service.resolve_token(ctx, old)


@pytest.mark.asyncio
async def test_me_requires_caller(ctx: CallContext):
    with pytest.raises(Unauthorized):
        await user_service.me(ctx)


@pytest.mark.asyncio
async def test_get_profile_by_id(db_session: AsyncSession):
    ctx = CallContext(db=db_session)
    user = await _create_user(ctx, "alice", "a@x.com")
    assert await user_service.get_profile_by_id(ctx, user["id"]) == {
        "username": "alice", "bio": "", "image": "",
    }
    assert await user_service.get_profile_by_id(ctx, 9999) is None

    with pytest.raises(NotFound):
        await user_service.get_profile(ctx, "nobody")
