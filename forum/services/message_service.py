"""
Message service: messages live under a topic.

The parent topic is resolved through ``ctx.topics`` before the insert.
Messages are never deleted; only their creator may edit the body.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select

from forum.bus import bus
from forum.cache import cache
from forum.config import settings
from forum.exceptions import NotFound
from forum.models import Message
from forum.schemas import MessageCreate, MessageUpdate
from forum.services.common import (
    isoformat,
    list_with_count,
    page_bounds,
    populate,
    require_owner,
    require_user,
    resolve_creator,
)

if TYPE_CHECKING:
    from forum.context import CallContext

NAMESPACE = "messages"


def _message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "body": message.body,
        "topic": message.topic_id,
        "creator": message.creator_id,
        "createdAt": isoformat(message.created_at),
        "updatedAt": isoformat(message.updated_at),
    }


async def _transform_one(ctx: CallContext, message: Message) -> dict:
    items = await populate(ctx, [_message_to_dict(message)])
    return {"message": items[0]}


async def _get_or_404(ctx: CallContext, message_id: int) -> Message:
    q = select(Message).where(Message.id == message_id)
    message = (await ctx.db.execute(q)).scalar_one_or_none()
    if message is None:
        raise NotFound("Message not found")
    return message


async def create_message(ctx: CallContext, topic_id: int, data: MessageCreate) -> dict:
    user = require_user(ctx)
    topic = await ctx.topics.get_by_id(topic_id)
    if topic is None:
        raise NotFound("Topic not found")

    now = datetime.now(timezone.utc)
    message = Message(
        body=data.body,
        topic_id=topic["id"],
        creator_id=user["id"],
        created_at=now,
        updated_at=now,
    )
    ctx.db.add(message)
    await ctx.db.flush()

    result = await _transform_one(ctx, message)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def list_messages(
    ctx: CallContext,
    creator: str | None = None,
    topic: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> dict:
    """
    Return ``{"messages": [...], "count": N}``.

    *creator* is a username and *topic* a topic slug; either one that does
    not resolve aborts the list with 404.
    """
    limit, offset = page_bounds(limit, offset)
    cache_key = cache.make_key(
        NAMESPACE, "list", ctx.token, creator=creator, topic=topic, limit=limit, offset=offset
    )
    cached = await cache.get(cache_key)
    if cached:
        return cached

    filters = []
    if creator:
        filters.append(Message.creator_id == await resolve_creator(ctx, creator))
    if topic:
        found = await ctx.topics.get_by_slug(topic)
        if found is None:
            raise NotFound("Topic not found")
        filters.append(Message.topic_id == found["id"])

    messages, total = await list_with_count(ctx.db, Message, filters, limit, offset)
    items = await populate(ctx, [_message_to_dict(m) for m in messages])
    response = {"messages": items, "count": total}
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_LIST)
    return response


async def get_message(ctx: CallContext, message_id: int) -> dict:
    cache_key = cache.make_key(NAMESPACE, "get", ctx.token, id=message_id)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    response = await _transform_one(ctx, await _get_or_404(ctx, message_id))
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_DETAIL)
    return response


async def update_message(ctx: CallContext, message_id: int, data: MessageUpdate) -> dict:
    message = await _get_or_404(ctx, message_id)
    require_owner(ctx, message.creator_id)

    message.body = data.body
    message.updated_at = datetime.now(timezone.utc)
    await ctx.db.flush()

    result = await _transform_one(ctx, message)
    await bus.announce(ctx.db, NAMESPACE)
    return result


bus.subscribe_all(cache.cleaner(NAMESPACE))
