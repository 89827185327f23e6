from fastapi import APIRouter, Depends

from forum.context import CallContext
from forum.dependencies import get_context, require_context
from forum.schemas import UserCreateRequest, UserLoginRequest, UserUpdateRequest
from forum.services import user_service

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/users", status_code=201)
async def create_user(data: UserCreateRequest, ctx: CallContext = Depends(get_context)):
    return await user_service.create_user(ctx, data.user)


@router.post("/users/login")
async def login(data: UserLoginRequest, ctx: CallContext = Depends(get_context)):
    return await user_service.login(ctx, data.user)


@router.get("/user")
async def current_user(ctx: CallContext = Depends(require_context)):
    return await user_service.me(ctx)


@router.put("/user")
async def update_user(data: UserUpdateRequest, ctx: CallContext = Depends(require_context)):
    return await user_service.update_user(ctx, data.user)


@router.get("/profiles/{username}")
async def get_profile(username: str, ctx: CallContext = Depends(get_context)):
    return await user_service.get_profile(ctx, username)
