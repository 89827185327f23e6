from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import PaginationParams, get_context, require_context
from forum.schemas import MessageUpdateRequest
from forum.services import message_service

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("")
async def list_messages(
    creator: str | None = None,
    topic: str | None = None,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await message_service.list_messages(
        ctx, creator=creator, topic=topic, limit=pagination.limit, offset=pagination.offset
    )


@router.get("/{message_id}")
async def get_message(message_id: int, ctx: CallContext = Depends(get_context)):
    return await message_service.get_message(ctx, message_id)


@router.put("/{message_id}")
async def update_message(
    message_id: int, data: MessageUpdateRequest, ctx: CallContext = Depends(require_context)
):
    return await message_service.update_message(ctx, message_id, data.message)
