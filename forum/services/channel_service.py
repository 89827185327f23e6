"""
Channel service: top of the content hierarchy.

Design notes
------------
- Reads (list/get) go through the cache-aside pattern under the
  ``channels`` namespace.  Keys carry the caller's token and exactly the
  parameters each action reads, so callers never see each other's entries
  (``joined`` is caller-specific).
- Writes follow one fixed sequence: checks → insert/update → flush →
  transform (creator fan-out, membership counts) → announce ``channels`` (again after commit).
- ``creator`` is stored as a bare user id and inlined as the creator's
  public profile on every response through ``ctx.users``.
- Join/leave delegate to the membership service through ``ctx.follows``;
  this service never touches the follows table.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from forum.bus import bus
from forum.cache import cache
from forum.config import settings
from forum.exceptions import EntityExists, NotFound
from forum.models import Channel
from forum.schemas import ChannelCreate, ChannelUpdate
from forum.services.common import (
    isoformat,
    list_with_count,
    make_slug,
    page_bounds,
    populate,
    require_owner,
    require_user,
    resolve_creator,
)

if TYPE_CHECKING:
    from forum.context import CallContext

logger = logging.getLogger(__name__)

NAMESPACE = "channels"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _channel_to_dict(channel: Channel) -> dict:
    return {
        "id": channel.id,
        "title": channel.title,
        "slug": channel.slug,
        "description": channel.description,
        "creator": channel.creator_id,
        "createdAt": isoformat(channel.created_at),
        "updatedAt": isoformat(channel.updated_at),
    }


async def _transform(ctx: CallContext, channels: list[Channel]) -> list[dict]:
    """Inline creator profiles and membership data, preserving order."""
    items = await populate(ctx, [_channel_to_dict(c) for c in channels])
    for item in items:
        item["membersCount"] = await ctx.follows.count(item["id"])
        item["joined"] = (
            await ctx.follows.has(item["id"], ctx.user_id) if ctx.user_id is not None else False
        )
    return items


async def _transform_one(ctx: CallContext, channel: Channel) -> dict:
    return {"channel": (await _transform(ctx, [channel]))[0]}


# ---------------------------------------------------------------------------
# Lookups (served to other services through ChannelClient)
# ---------------------------------------------------------------------------

async def _by_slug(ctx: CallContext, slug: str) -> Channel | None:
    return (await ctx.db.execute(select(Channel).where(Channel.slug == slug))).scalar_one_or_none()


async def _get_or_404(ctx: CallContext, slug: str) -> Channel:
    channel = await _by_slug(ctx, slug)
    if channel is None:
        raise NotFound("Channel not found")
    return channel


async def find_by_slug(ctx: CallContext, slug: str) -> dict | None:
    channel = await _by_slug(ctx, slug)
    return _channel_to_dict(channel) if channel else None


async def find_by_id(ctx: CallContext, channel_id: int) -> dict | None:
    q = select(Channel).where(Channel.id == channel_id)
    channel = (await ctx.db.execute(q)).scalar_one_or_none()
    return _channel_to_dict(channel) if channel else None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def create_channel(ctx: CallContext, data: ChannelCreate) -> dict:
    """Create a channel owned by the caller.  Auth is required."""
    user = require_user(ctx)
    now = datetime.now(timezone.utc)
    channel = Channel(
        title=data.title,
        slug=make_slug(data.title),
        description=data.description,
        creator_id=user["id"],
        created_at=now,
        updated_at=now,
    )
    ctx.db.add(channel)
    try:
        await ctx.db.flush()
    except IntegrityError as exc:
        raise EntityExists("slug") from exc

    logger.info("Channel %s created by user %s", channel.slug, user["id"])
    result = await _transform_one(ctx, channel)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def list_channels(
    ctx: CallContext,
    creator: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """
    Return ``{"channels": [...], "count": N}``, newest first.

    *creator* is a username; it is resolved to an id through the identity
    service before the primary query runs.
    """
    limit, offset = page_bounds(limit, offset)
    cache_key = cache.make_key(
        NAMESPACE, "list", ctx.token, creator=creator, limit=limit, offset=offset
    )
    cached = await cache.get(cache_key)
    if cached:
        return cached

    filters = []
    if creator:
        filters.append(Channel.creator_id == await resolve_creator(ctx, creator))

    channels, total = await list_with_count(ctx.db, Channel, filters, limit, offset)
    response = {"channels": await _transform(ctx, channels), "count": total}
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_LIST)
    return response


async def get_channel(ctx: CallContext, slug: str) -> dict:
    cache_key = cache.make_key(NAMESPACE, "get", ctx.token, slug=slug)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    response = await _transform_one(ctx, await _get_or_404(ctx, slug))
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_DETAIL)
    return response


async def update_channel(ctx: CallContext, slug: str, data: ChannelUpdate) -> dict:
    """
    Update title/description.  Only the creator may do this; the slug is
    never regenerated.
    """
    channel = await _get_or_404(ctx, slug)
    require_owner(ctx, channel.creator_id)

    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(channel, field, value)
    channel.updated_at = datetime.now(timezone.utc)
    await ctx.db.flush()

    result = await _transform_one(ctx, channel)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def join_channel(ctx: CallContext, slug: str) -> dict:
    """Make the caller a member; fails with a conflict if already joined."""
    user = require_user(ctx)
    channel = await _get_or_404(ctx, slug)
    await ctx.follows.add(channel.id, user["id"])
    return await _transform_one(ctx, channel)


async def leave_channel(ctx: CallContext, slug: str) -> dict:
    """Drop the caller's membership; fails with a conflict if not joined."""
    user = require_user(ctx)
    channel = await _get_or_404(ctx, slug)
    await ctx.follows.delete(channel.id, user["id"])
    return await _transform_one(ctx, channel)


bus.subscribe_all(cache.cleaner(NAMESPACE))
