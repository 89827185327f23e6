"""
Follow service: channel membership records.

A follow pairs a channel id with a user id; at most one exists per pair.
The channel service drives join/leave through ``ctx.follows`` and reads
``count``/``has`` for every channel it renders.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from forum.bus import bus
from forum.cache import cache
from forum.config import settings
from forum.exceptions import AlreadyJoined, NotFound, NotJoined
from forum.models import Follow
from forum.services.common import isoformat, list_with_count, page_bounds, populate, resolve_creator

if TYPE_CHECKING:
    from forum.context import CallContext

logger = logging.getLogger(__name__)

NAMESPACE = "follows"


def _follow_to_dict(follow: Follow) -> dict:
    return {
        "id": follow.id,
        "channel": follow.channel_id,
        "user": follow.user_id,
        "createdAt": isoformat(follow.created_at),
    }


async def _find(ctx: CallContext, channel_id: int, user_id: int) -> Follow | None:
    q = select(Follow).where(Follow.channel_id == channel_id, Follow.user_id == user_id)
    return (await ctx.db.execute(q)).scalar_one_or_none()


async def add(ctx: CallContext, channel_id: int, user_id: int) -> dict:
    if await ctx.channels.get_by_id(channel_id) is None:
        raise NotFound("Channel not found")
    if await _find(ctx, channel_id, user_id) is not None:
        raise AlreadyJoined()

    follow = Follow(channel_id=channel_id, user_id=user_id, created_at=datetime.now(timezone.utc))
    ctx.db.add(follow)
    try:
        await ctx.db.flush()
    except IntegrityError as exc:
        raise AlreadyJoined() from exc

    logger.info("User %s joined channel %s", user_id, channel_id)
    await bus.announce(ctx.db, NAMESPACE)
    return {"follow": _follow_to_dict(follow)}


async def delete(ctx: CallContext, channel_id: int, user_id: int) -> dict:
    follow = await _find(ctx, channel_id, user_id)
    if follow is None:
        raise NotJoined()

    result = {"follow": _follow_to_dict(follow)}
    await ctx.db.delete(follow)
    await ctx.db.flush()

    logger.info("User %s left channel %s", user_id, channel_id)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def has(ctx: CallContext, channel_id: int, user_id: int) -> bool:
    return await _find(ctx, channel_id, user_id) is not None


async def count(ctx: CallContext, channel_id: int) -> int:
    q = select(func.count()).select_from(Follow).where(Follow.channel_id == channel_id)
    return (await ctx.db.execute(q)).scalar_one()


async def list_follows(
    ctx: CallContext,
    channel: str | None = None,
    user: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """
    Return ``{"follows": [...], "count": N}``.

    *channel* is a channel slug and *user* a username; the member's public
    profile is inlined as ``user``.
    """
    limit, offset = page_bounds(limit, offset)
    cache_key = cache.make_key(
        NAMESPACE, "list", ctx.token, channel=channel, user=user, limit=limit, offset=offset
    )
    cached = await cache.get(cache_key)
    if cached:
        return cached

    filters = []
    if channel:
        found = await ctx.channels.get_by_slug(channel)
        if found is None:
            raise NotFound("Channel not found")
        filters.append(Follow.channel_id == found["id"])
    if user:
        filters.append(Follow.user_id == await resolve_creator(ctx, user))

    follows, total = await list_with_count(ctx.db, Follow, filters, limit, offset)
    items = await populate(ctx, [_follow_to_dict(f) for f in follows], field="user")
    response = {"follows": items, "count": total}
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_LIST)
    return response


bus.subscribe_all(cache.cleaner(NAMESPACE))
