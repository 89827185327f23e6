"""
Orchestration helpers shared by the content services.

- slug generation (readable prefix + random base-36 suffix)
- list-with-count pagination
- creator fan-out and creator-filter resolution through ``ctx.users``
- ownership and authentication guards
"""
from __future__ import annotations

import re
import secrets
import string
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from forum.config import settings
from forum.exceptions import Forbidden, NotFound, Unauthorized

if TYPE_CHECKING:
    from forum.context import CallContext

# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

SLUG_SUFFIX_LENGTH = 6
_BASE36 = string.digits + string.ascii_lowercase


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def random_suffix(length: int = SLUG_SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def make_slug(title: str) -> str:
    """
    ``slugify(title)`` plus a 6-character base-36 suffix.

    Collisions are not checked; with 36**6 suffixes they are left to the
    unique index on the slug column.
    """
    prefix = slugify(title)
    suffix = random_suffix()
    return f"{prefix}-{suffix}" if prefix else suffix


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def page_bounds(limit: int | None, offset: int | None) -> tuple[int, int]:
    """Apply the default page size / offset and the hard page-size ceiling."""
    limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit
    offset = 0 if offset is None else offset
    return max(0, min(limit, settings.MAX_PAGE_SIZE)), max(0, offset)


async def list_with_count(
    db: AsyncSession, model, filters: list, limit: int, offset: int
) -> tuple[list, int]:
    """
    Issue the page read and the unbounded count against the same filters.

    Rows come back newest first; ``id`` breaks ties between rows created
    within the same clock tick.
    """
    page_q = (
        select(model)
        .where(*filters)
        .order_by(model.created_at.desc(), model.id.desc())
        .offset(offset)
        .limit(limit)
    )
    count_q = select(func.count()).select_from(model).where(*filters)

    rows = (await db.execute(page_q)).scalars().all()
    total: int = (await db.execute(count_q)).scalar_one()
    return list(rows), total


# ---------------------------------------------------------------------------
# Cross-service resolution
# ---------------------------------------------------------------------------

async def populate(ctx: CallContext, items: list[dict], field: str = "creator") -> list[dict]:
    """
    Replace the user id held in ``item[field]`` with that user's public
    profile, one identity call per item, in input order.
    """
    for item in items:
        user_id = item.get(field)
        item[field] = await ctx.users.get_profile(user_id) if user_id is not None else None
    return items


async def resolve_creator(ctx: CallContext, username: str) -> int:
    """Turn a creator username filter into a user id, or raise 404."""
    found = await ctx.users.find_by_username(username)
    if not found:
        raise NotFound("Creator not found")
    return found[0]["id"]


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def require_user(ctx: CallContext) -> dict:
    if ctx.user is None:
        raise Unauthorized()
    return ctx.user


def require_owner(ctx: CallContext, creator_id: int | None) -> None:
    """Only the creator may modify an entity."""
    user = require_user(ctx)
    if creator_id != user["id"]:
        raise Forbidden(f"This belongs to {creator_id}")


def integrity_field(exc: IntegrityError, candidates: tuple[str, ...]) -> str | None:
    """Best-effort name of the unique column a racing insert collided on."""
    text = str(exc.orig).lower()
    for name in candidates:
        if name in text:
            return name
    return None


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
