"""
Service-to-service routes of the identity service.

These back ``HttpUserClient`` when the users service runs as a separate
deployment.  Callers must present ``INTERNAL_TOKEN`` in ``X-Internal-Token``;
without it every route answers 401.  Missing users answer 404 so the
client can map them to None.
"""
from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import get_context, require_service_token
from forum.exceptions import NotFound
from forum.services import user_service

router = APIRouter(
    prefix="/internal/users",
    tags=["internal"],
    include_in_schema=False,
    dependencies=[Depends(require_service_token)],
)


@router.get("")
async def find_users(username: str, ctx: CallContext = Depends(get_context)):
    return {"users": await user_service.find_by_username(ctx, username)}


@router.get("/{user_id}")
async def get_user(user_id: int, ctx: CallContext = Depends(get_context)):
    user = await user_service.get_user(ctx, user_id)
    if user is None:
        raise NotFound("User not found")
    return {"user": user}


@router.get("/{user_id}/profile")
async def get_profile(user_id: int, ctx: CallContext = Depends(get_context)):
    profile = await user_service.get_profile_by_id(ctx, user_id)
    if profile is None:
        raise NotFound("User not found")
    return {"profile": profile}
