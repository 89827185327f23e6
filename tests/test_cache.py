"""
Cache-aside behaviour against a fakeredis backend: entries are written
per caller, served on repeat reads and flushed by any write.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from conftest import async_session_test, auth, create_channel, create_topic, register
from forum.bus import PENDING_KEY, bus
from forum.cache import CacheManager, cache
from forum.config import settings
from forum.context import CallContext
from forum.database import session_dependency
from forum.exceptions import TokenExpired, TokenInvalid
from forum.schemas import ChannelCreate, UserCreate
from forum.security import create_token
from forum.services import channel_service, user_service


def test_make_key_is_caller_and_parameter_specific():
    anon = CacheManager.make_key("channels", "list", None, limit=20, offset=0)
    assert anon == "channels:list:anon:limit=20|offset=0"

    alice = CacheManager.make_key("channels", "list", "token-a", offset=0, limit=20)
    bob = CacheManager.make_key("channels", "list", "token-b", offset=0, limit=20)
    assert alice != bob
    assert alice.startswith("channels:list:")
    assert "token-a" not in alice


@pytest.mark.asyncio
async def test_disabled_cache_is_a_no_op():
    assert cache.client is None
    await cache.set("channels:get:anon:slug=x", {"channel": {}})
    assert await cache.get("channels:get:anon:slug=x") is None
    assert await cache.delete_pattern("channels:*") == 0


@pytest.mark.asyncio
async def test_repeat_read_is_served_from_cache(async_client: AsyncClient, fake_redis):
    alice = await register(async_client, "alice")
    await create_channel(async_client, alice, "General")

    await async_client.get("/api/channels", headers=auth(alice))
    assert await fake_redis.keys("channels:list:*")

    hits_before = cache.stats["hits"]
    resp = await async_client.get("/api/channels", headers=auth(alice))
    assert resp.json()["count"] == 1
    assert cache.stats["hits"] > hits_before


@pytest.mark.asyncio
async def test_create_invalidates_cached_list(async_client: AsyncClient, fake_redis):
    alice = await register(async_client, "alice")
    await create_channel(async_client, alice, "First")

    before = (await async_client.get("/api/channels", headers=auth(alice))).json()
    assert before["count"] == 1

    await create_channel(async_client, alice, "Second")

    after = (await async_client.get("/api/channels", headers=auth(alice))).json()
    assert after["count"] == 2
    assert after["channels"][0]["title"] == "Second"


@pytest.mark.asyncio
async def test_message_create_invalidates_cached_message_list(async_client: AsyncClient, fake_redis):
    alice = await register(async_client, "alice")
    channel = await create_channel(async_client, alice, "General")
    topic = await create_topic(async_client, alice, channel["slug"])
    url = f"/api/topics/{topic['slug']}/messages"

    assert (await async_client.get(url)).json()["count"] == 0
    await async_client.post(url, json={"message": {"body": "hi"}}, headers=auth(alice))
    assert (await async_client.get(url)).json()["count"] == 1


@pytest.mark.asyncio
async def test_join_refreshes_cached_membership(async_client: AsyncClient, fake_redis):
    alice = await register(async_client, "alice")
    bob = await register(async_client, "bob")
    channel = await create_channel(async_client, alice, "General")
    url = f"/api/channels/{channel['slug']}"

    first = (await async_client.get(url, headers=auth(bob))).json()["channel"]
    assert first["joined"] is False

    await async_client.post(f"{url}/join", headers=auth(bob))

    second = (await async_client.get(url, headers=auth(bob))).json()["channel"]
    assert second["joined"] is True
    assert second["membersCount"] == 1


@pytest.mark.asyncio
async def test_any_write_flushes_every_namespace(async_client: AsyncClient, fake_redis):
    alice = await register(async_client, "alice")
    channel = await create_channel(async_client, alice, "General")
    await create_topic(async_client, alice, channel["slug"])
    await async_client.get(f"/api/channels/{channel['slug']}/topics")
    await async_client.get("/api/profiles/alice")
    assert await fake_redis.keys("topics:*")
    assert await fake_redis.keys("users:*")

    await async_client.put("/api/user", json={"user": {"bio": "new"}}, headers=auth(alice))

    assert await fake_redis.keys("topics:*") == []
    profile = (await async_client.get("/api/profiles/alice")).json()["profile"]
    assert profile["bio"] == "new"


# ---------------------------------------------------------------------------
# Token resolution cache
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_resolved_token_cache_never_outlives_the_token(ctx, fake_redis):
    user = (await user_service.create_user(ctx, UserCreate(
        username="alice", email="a@x.com", password="secret123",
    )))["user"]
    # exp lands about three seconds from now
    issued = datetime.now(timezone.utc) - timedelta(days=settings.TOKEN_TTL_DAYS, seconds=-3)
    token = create_token(user["id"], "alice", now=issued)

    assert (await user_service.resolve_token(ctx, token))["id"] == user["id"]
    key = cache.make_key("users", "resolve_token", token=token)
    assert 0 < await fake_redis.ttl(key) <= 3

    await asyncio.sleep(4)
    with pytest.raises(TokenExpired):
        await user_service.resolve_token(ctx, token)


@pytest.mark.asyncio
async def test_cached_resolution_still_checks_signature(ctx, fake_redis):
    user = (await user_service.create_user(ctx, UserCreate(
        username="alice", email="a@x.com", password="secret123",
    )))["user"]
    await user_service.resolve_token(ctx, user["token"])

    header, payload, _ = user["token"].split(".")
    with pytest.raises(TokenInvalid):
        await user_service.resolve_token(ctx, f"{header}.{payload}.forged")


# ---------------------------------------------------------------------------
# Post-commit invalidation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_entries_refilled_before_commit_are_flushed_after_it(fake_redis):
    requests = session_dependency(async_session_test)()
    session = await requests.__anext__()

    writer = CallContext(db=session)
    user = (await user_service.create_user(writer, UserCreate(
        username="alice", email="a@x.com", password="secret123",
    )))["user"]
    writer = CallContext(db=session, user=user, token=user["token"])
    await channel_service.create_channel(
        writer, ChannelCreate(title="General", description="chat")
    )

    # A concurrent reader caches the list before the writer commits.
    stale = cache.make_key("channels", "list", None, limit=20, offset=0)
    await cache.set(stale, {"channels": [], "count": 0})

    with pytest.raises(StopAsyncIteration):
        await requests.__anext__()

    assert await fake_redis.get(stale) is None
    assert session.info.get(PENDING_KEY) is None


@pytest.mark.asyncio
async def test_rollback_drops_pending_invalidations(fake_redis):
    requests = session_dependency(async_session_test)()
    session = await requests.__anext__()
    await bus.announce(session, "channels")
    assert session.info[PENDING_KEY] == {"channels"}

    with pytest.raises(RuntimeError):
        await requests.athrow(RuntimeError("request failed"))
    assert PENDING_KEY not in session.info
