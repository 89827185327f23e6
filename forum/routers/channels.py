from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import PaginationParams, get_context, require_context
from forum.schemas import ChannelCreateRequest, ChannelUpdateRequest, TopicCreateRequest
from forum.services import channel_service, follow_service, topic_service

router = APIRouter(prefix="/api/channels", tags=["channels"])


@router.get("")
async def list_channels(
    creator: str | None = None,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await channel_service.list_channels(
        ctx, creator=creator, limit=pagination.limit, offset=pagination.offset
    )


@router.post("", status_code=201)
async def create_channel(data: ChannelCreateRequest, ctx: CallContext = Depends(require_context)):
    return await channel_service.create_channel(ctx, data.channel)


@router.get("/{slug}")
async def get_channel(slug: str, ctx: CallContext = Depends(get_context)):
    return await channel_service.get_channel(ctx, slug)


@router.put("/{slug}")
async def update_channel(
    slug: str, data: ChannelUpdateRequest, ctx: CallContext = Depends(require_context)
):
    return await channel_service.update_channel(ctx, slug, data.channel)


@router.post("/{slug}/join")
async def join_channel(slug: str, ctx: CallContext = Depends(require_context)):
    return await channel_service.join_channel(ctx, slug)


@router.delete("/{slug}/join")
async def leave_channel(slug: str, ctx: CallContext = Depends(require_context)):
    return await channel_service.leave_channel(ctx, slug)


@router.get("/{slug}/members")
async def list_members(
    slug: str,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await follow_service.list_follows(
        ctx, channel=slug, limit=pagination.limit, offset=pagination.offset
    )


@router.get("/{slug}/topics")
async def list_topics(
    slug: str,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await topic_service.list_topics(
        ctx, slug, limit=pagination.limit, offset=pagination.offset
    )


@router.post("/{slug}/topics", status_code=201)
async def create_topic(
    slug: str, data: TopicCreateRequest, ctx: CallContext = Depends(require_context)
):
    return await topic_service.create_topic(ctx, slug, data.topic)
