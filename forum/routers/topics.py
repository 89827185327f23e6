from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import PaginationParams, get_context, require_context
from forum.schemas import MessageCreateRequest, TopicUpdateRequest
from forum.services import message_service, topic_service

router = APIRouter(prefix="/api/topics", tags=["topics"])


@router.get("/{slug}")
async def get_topic(slug: str, ctx: CallContext = Depends(get_context)):
    return await topic_service.get_topic(ctx, slug)


@router.put("/{slug}")
async def update_topic(
    slug: str, data: TopicUpdateRequest, ctx: CallContext = Depends(require_context)
):
    return await topic_service.update_topic(ctx, slug, data.topic)


@router.get("/{slug}/messages")
async def list_messages(
    slug: str,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await message_service.list_messages(
        ctx, topic=slug, limit=pagination.limit, offset=pagination.offset
    )


@router.post("/{slug}/messages", status_code=201)
async def add_message(
    slug: str, data: MessageCreateRequest, ctx: CallContext = Depends(require_context)
):
    return await topic_service.add_message(ctx, slug, data.message)
