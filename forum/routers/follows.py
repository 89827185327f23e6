from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import PaginationParams, get_context
from forum.services import follow_service

router = APIRouter(prefix="/api/follows", tags=["follows"])


@router.get("")
async def list_follows(
    channel: str | None = None,
    user: str | None = None,
    pagination: PaginationParams = Depends(),
    ctx: CallContext = Depends(get_context),
):
    return await follow_service.list_follows(
        ctx, channel=channel, user=user, limit=pagination.limit, offset=pagination.offset
    )
