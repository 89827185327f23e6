"""
Topic service: topics live under a channel.

A topic's parent channel is resolved through ``ctx.channels`` before the
insert and a miss aborts with 404.  Topics only hold the channel id;
channel data is never copied in.
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
from forum.models import Topic
from forum.schemas import MessageCreate, TopicCreate, TopicUpdate
from forum.services import message_service
from forum.services.common import (
    isoformat,
    list_with_count,
    make_slug,
    page_bounds,
    populate,
    require_owner,
    require_user,
)

if TYPE_CHECKING:
    from forum.context import CallContext

logger = logging.getLogger(__name__)

NAMESPACE = "topics"


def _topic_to_dict(topic: Topic) -> dict:
    return {
        "id": topic.id,
        "title": topic.title,
        "slug": topic.slug,
        "description": topic.description,
        "channel": topic.channel_id,
        "creator": topic.creator_id,
        "createdAt": isoformat(topic.created_at),
        "updatedAt": isoformat(topic.updated_at),
    }


async def _transform_one(ctx: CallContext, topic: Topic) -> dict:
    items = await populate(ctx, [_topic_to_dict(topic)])
    return {"topic": items[0]}


async def _by_slug(ctx: CallContext, slug: str) -> Topic | None:
    return (await ctx.db.execute(select(Topic).where(Topic.slug == slug))).scalar_one_or_none()


async def _get_or_404(ctx: CallContext, slug: str) -> Topic:
    topic = await _by_slug(ctx, slug)
    if topic is None:
        raise NotFound("Topic not found")
    return topic


async def _channel_or_404(ctx: CallContext, channel_slug: str) -> dict:
    channel = await ctx.channels.get_by_slug(channel_slug)
    if channel is None:
        raise NotFound("Channel not found")
    return channel


# ---------------------------------------------------------------------------
# Lookups (TopicClient)
# ---------------------------------------------------------------------------

async def find_by_slug(ctx: CallContext, slug: str) -> dict | None:
    topic = await _by_slug(ctx, slug)
    return _topic_to_dict(topic) if topic else None


async def find_by_id(ctx: CallContext, topic_id: int) -> dict | None:
    topic = (await ctx.db.execute(select(Topic).where(Topic.id == topic_id))).scalar_one_or_none()
    return _topic_to_dict(topic) if topic else None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def create_topic(ctx: CallContext, channel_slug: str, data: TopicCreate) -> dict:
    """Create a topic in the channel identified by *channel_slug*."""
    user = require_user(ctx)
    channel = await _channel_or_404(ctx, channel_slug)

    now = datetime.now(timezone.utc)
    topic = Topic(
        title=data.title,
        slug=make_slug(data.title),
        description=data.description,
        channel_id=channel["id"],
        creator_id=user["id"],
        created_at=now,
        updated_at=now,
    )
    ctx.db.add(topic)
    try:
        await ctx.db.flush()
    except IntegrityError as exc:
        raise EntityExists("slug") from exc

    logger.info("Topic %s created in channel %s", topic.slug, channel["slug"])
    result = await _transform_one(ctx, topic)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def list_topics(
    ctx: CallContext,
    channel_slug: str,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """Return ``{"topics": [...], "topicCount": N}`` for one channel."""
    limit, offset = page_bounds(limit, offset)
    cache_key = cache.make_key(
        NAMESPACE, "list", ctx.token, channel=channel_slug, limit=limit, offset=offset
    )
    cached = await cache.get(cache_key)
    if cached:
        return cached

    channel = await _channel_or_404(ctx, channel_slug)
    topics, total = await list_with_count(
        ctx.db, Topic, [Topic.channel_id == channel["id"]], limit, offset
    )
    items = await populate(ctx, [_topic_to_dict(t) for t in topics])
    response = {"topics": items, "topicCount": total}
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_LIST)
    return response


async def get_topic(ctx: CallContext, slug: str) -> dict:
    cache_key = cache.make_key(NAMESPACE, "get", ctx.token, slug=slug)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    response = await _transform_one(ctx, await _get_or_404(ctx, slug))
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_DETAIL)
    return response


async def update_topic(ctx: CallContext, slug: str, data: TopicUpdate) -> dict:
    topic = await _get_or_404(ctx, slug)
    require_owner(ctx, topic.creator_id)

    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(topic, field, value)
    topic.updated_at = datetime.now(timezone.utc)
    await ctx.db.flush()

    result = await _transform_one(ctx, topic)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def add_message(ctx: CallContext, slug: str, data: MessageCreate) -> dict:
    """Post a message to the topic identified by *slug*."""
    topic = await _get_or_404(ctx, slug)
    return await message_service.create_message(ctx, topic.id, data)


bus.subscribe_all(cache.cleaner(NAMESPACE))
