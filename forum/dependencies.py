from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from forum.config import settings
from forum.context import CallContext
from forum.database import get_db
from forum.exceptions import Unauthorized
from forum.security import SERVICE_TOKEN_HEADER, verify_service_token
from forum.services import user_service

_AUTH_SCHEMES = ("token", "bearer")


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset``.

    Usage in a router::

        @router.get("/channels")
        async def list_channels(pagination: PaginationParams = Depends()):
            ...

    Attributes
    ----------
    limit:
        Page size, clamped to ``settings.MAX_PAGE_SIZE`` regardless of the
        value supplied by the caller.
    offset:
        Number of rows to skip.
    """

    def __init__(
        self,
        limit: int = Query(
            20,
            ge=1,
            le=100,
            description="Number of items returned (max 100).",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of items to skip.",
        ),
    ) -> None:
        # Respect the application-level hard ceiling even if the schema
        # already validates le=100, so a settings change is sufficient.
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


def parse_authorization(header: str | None) -> str | None:
    """Extract the token from ``Token <jwt>`` or ``Bearer <jwt>``."""
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() not in _AUTH_SCHEMES or not token.strip():
        return None
    return token.strip()


async def get_context(
    db: AsyncSession = Depends(get_db),
    authorization: str | None = Header(None),
) -> CallContext:
    """
    Build the per-request ``CallContext``.

    Anonymous callers get a context without a user.  A token that is
    present but expired or malformed fails the request with 401.
    """
    ctx = CallContext(db=db)
    token = parse_authorization(authorization)
    if token:
        ctx.token = token
        ctx.user = await user_service.resolve_token(ctx, token)
    return ctx


async def require_context(ctx: CallContext = Depends(get_context)) -> CallContext:
    if ctx.user is None:
        raise Unauthorized()
    return ctx


async def require_service_token(
    internal_token: str | None = Header(None, alias=SERVICE_TOKEN_HEADER),
) -> None:
    """Guard for the service-to-service routes; end-user tokens do not count."""
    if not verify_service_token(internal_token):
        raise Unauthorized("Service credentials required")
