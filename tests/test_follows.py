"""
Membership tests: the follow service called directly and the
``/api/follows`` listing.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import auth, create_channel, register
from forum.context import CallContext
from forum.exceptions import AlreadyJoined, NotFound, NotJoined
from forum.models import Follow
from forum.schemas import ChannelCreate, UserCreate
from forum.services import channel_service, follow_service, user_service


async def _member(ctx: CallContext, username: str) -> CallContext:
    created = await user_service.create_user(ctx, UserCreate(
        username=username, email=f"{username}@example.com", password="secret123",
    ))
    user = created["user"]
    return CallContext(db=ctx.db, user=user, token=user["token"])


@pytest.mark.asyncio
async def test_add_twice_then_delete_twice(ctx: CallContext):
    alice = await _member(ctx, "alice")
    bob = await _member(ctx, "bob")
    channel = (await channel_service.create_channel(
        alice, ChannelCreate(title="General", description="chat")
    ))["channel"]

    result = await follow_service.add(bob, channel["id"], bob.user_id)
    assert result["follow"]["channel"] == channel["id"]
    assert result["follow"]["user"] == bob.user_id
    assert await follow_service.has(bob, channel["id"], bob.user_id) is True
    assert await follow_service.count(bob, channel["id"]) == 1

    with pytest.raises(AlreadyJoined):
        await follow_service.add(bob, channel["id"], bob.user_id)

    removed = await follow_service.delete(bob, channel["id"], bob.user_id)
    assert removed["follow"]["id"] == result["follow"]["id"]
    rows = (await ctx.db.execute(select(Follow))).scalars().all()
    assert rows == []

    with pytest.raises(NotJoined):
        await follow_service.delete(bob, channel["id"], bob.user_id)


@pytest.mark.asyncio
async def test_add_to_missing_channel(ctx: CallContext):
    bob = await _member(ctx, "bob")
    with pytest.raises(NotFound):
        await follow_service.add(bob, 404, bob.user_id)


@pytest.mark.asyncio
async def test_list_follows_filters(async_client: AsyncClient):
    alice = await register(async_client, "alice")
    bob = await register(async_client, "bob")
    general = await create_channel(async_client, alice, "General")
    random_ = await create_channel(async_client, alice, "Random")
    await async_client.post(f"/api/channels/{general['slug']}/join", headers=auth(bob))
    await async_client.post(f"/api/channels/{random_['slug']}/join", headers=auth(bob))
    await async_client.post(f"/api/channels/{general['slug']}/join", headers=auth(alice))

    resp = await async_client.get("/api/follows")
    assert resp.json()["count"] == 3

    resp = await async_client.get("/api/follows", params={"user": "bob"})
    data = resp.json()
    assert data["count"] == 2
    assert all(f["user"]["username"] == "bob" for f in data["follows"])

    resp = await async_client.get(
        "/api/follows", params={"user": "bob", "channel": general["slug"]}
    )
    assert resp.json()["count"] == 1


@pytest.mark.asyncio
async def test_list_follows_unknown_channel(async_client: AsyncClient):
    resp = await async_client.get("/api/follows", params={"channel": "nope-000000"})
    assert resp.status_code == 404
