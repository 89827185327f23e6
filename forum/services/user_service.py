"""
User service: the identity service.

Owns user records, issues bearer tokens and resolves them back to users.
Username and email uniqueness is probed before every insert (username
first, then email) so the caller learns which field clashed; the unique
constraints on both columns catch the writer that loses a race between
probe and insert.

Other services only ever see the public projection (username, bio, image)
through ``get_profile_by_id``; password hashes never leave this module and
emails only reach the owner and the internal client routes.
"""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from forum.bus import bus
from forum.cache import cache
from forum.config import settings
from forum.exceptions import EntityExists, InvalidCredentials, NotFound
from forum.models import User
from forum.schemas import UserCreate, UserLogin, UserUpdate
from forum.security import create_token, decode_token, hash_password, verify_password
from forum.services.common import integrity_field, isoformat, require_user

if TYPE_CHECKING:
    from forum.context import CallContext

logger = logging.getLogger(__name__)

NAMESPACE = "users"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Raw record minus the password hash."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "bio": user.bio or "",
        "image": user.image or "",
        "createdAt": isoformat(user.created_at),
    }


def _profile(user: User) -> dict:
    return {"username": user.username, "bio": user.bio or "", "image": user.image or ""}


def _with_token(user: User, token: str | None = None) -> dict:
    data = _user_to_dict(user)
    data["token"] = token or create_token(user.id, user.username)
    return {"user": data}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def _get(ctx: CallContext, user_id: int) -> User | None:
    return (await ctx.db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()


async def _find_one(ctx: CallContext, **filters) -> User | None:
    q = select(User).filter_by(**filters).limit(1)
    return (await ctx.db.execute(q)).scalar_one_or_none()


async def _ensure_unique(ctx: CallContext, username: str | None, email: str | None,
                         exclude_id: int | None = None) -> None:
    """Probe username then email; raise on the first one already taken."""
    for field, value in (("username", username), ("email", email)):
        if not value:
            continue
        found = await _find_one(ctx, **{field: value})
        if found is not None and found.id != exclude_id:
            raise EntityExists(field)


async def get_user(ctx: CallContext, user_id: int) -> dict | None:
    user = await _get(ctx, user_id)
    return _user_to_dict(user) if user else None


async def get_profile_by_id(ctx: CallContext, user_id: int) -> dict | None:
    """Public projection of one user; what other services inline as ``creator``."""
    cache_key = cache.make_key(NAMESPACE, "profile", ctx.token, id=user_id)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    user = await _get(ctx, user_id)
    if user is None:
        return None
    data = _profile(user)
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def find_by_username(ctx: CallContext, username: str) -> list[dict]:
    result = await ctx.db.execute(select(User).where(User.username == username))
    return [_user_to_dict(u) for u in result.scalars().all()]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

async def create_user(ctx: CallContext, data: UserCreate) -> dict:
    """Register a user and return ``{"user": {..., "token"}}``."""
    await _ensure_unique(ctx, data.username, data.email)

    user = User(
        username=data.username,
        email=data.email,
        password=hash_password(data.password),
        bio=data.bio or "",
        image=data.image or None,
    )
    ctx.db.add(user)
    try:
        await ctx.db.flush()
    except IntegrityError as exc:
        raise EntityExists(integrity_field(exc, ("username", "email")) or "username") from exc

    logger.info("User %s registered (id=%s)", user.username, user.id)
    result = _with_token(user)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def login(ctx: CallContext, data: UserLogin) -> dict:
    user = await _find_one(ctx, email=data.email)
    if user is None or not verify_password(data.password, user.password):
        raise InvalidCredentials()
    return _with_token(user)


async def me(ctx: CallContext) -> dict:
    caller = require_user(ctx)
    user = await _get(ctx, caller["id"])
    if user is None:
        raise NotFound("User not found")
    return _with_token(user, ctx.token)


async def update_user(ctx: CallContext, data: UserUpdate) -> dict:
    """Partially update the caller; re-probes any changed unique field."""
    caller = require_user(ctx)
    user = await _get(ctx, caller["id"])
    if user is None:
        raise NotFound("User not found")

    changes = data.model_dump(exclude_unset=True)
    await _ensure_unique(
        ctx,
        changes.get("username") if changes.get("username") != user.username else None,
        changes.get("email") if changes.get("email") != user.email else None,
        exclude_id=user.id,
    )

    if changes.get("password"):
        changes["password"] = hash_password(changes["password"])
    for field, value in changes.items():
        if value is None:
            continue
        setattr(user, field, value)

    try:
        await ctx.db.flush()
    except IntegrityError as exc:
        raise EntityExists(integrity_field(exc, ("username", "email")) or "username") from exc

    result = _with_token(user, ctx.token)
    await bus.announce(ctx.db, NAMESPACE)
    return result


async def get_profile(ctx: CallContext, username: str) -> dict:
    cache_key = cache.make_key(NAMESPACE, "profile_by_username", ctx.token, username=username)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    user = await _find_one(ctx, username=username)
    if user is None:
        raise NotFound("User not found")
    response = {"profile": _profile(user)}
    await cache.set(cache_key, response, ttl=settings.CACHE_TTL_DETAIL)
    return response


async def resolve_token(ctx: CallContext, token: str) -> dict | None:
    """
    Verify *token* and return the current user it names, or None.

    The signature and expiry are checked on every call, cached or not.
    Only the ``id`` claim is trusted; profile fields are re-read.  Results
    are cached per token for ``RESOLVE_TOKEN_TTL`` seconds, never past the
    token's own ``exp``.  There is no revocation.
    """
    claims = decode_token(token)
    user_id = claims.get("id")
    if user_id is None:
        return None

    cache_key = cache.make_key(NAMESPACE, "resolve_token", token=token)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    user = await get_user(ctx, user_id)
    ttl = min(settings.RESOLVE_TOKEN_TTL, int(claims.get("exp", 0) - time.time()))
    if user is not None and ttl > 0:
        await cache.set(cache_key, user, ttl=ttl)
    return user


bus.subscribe_all(cache.cleaner(NAMESPACE))
