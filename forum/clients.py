"""
Narrow client interfaces between services.

A consuming service depends on the protocol, never on the owning service
module, so each client can be served in-process or over the network.
In-process clients share the caller's ``CallContext`` (and therefore its
session and identity).  ``HttpUserClient`` talks to a separately deployed
identity service and turns every transport failure into ``UpstreamError``.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import httpx

from forum.config import settings
from forum.exceptions import UpstreamError
from forum.security import SERVICE_TOKEN_HEADER
from forum.services import channel_service, follow_service, topic_service, user_service

if TYPE_CHECKING:
    from forum.context import CallContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class UserClient(Protocol):
    async def get_by_id(self, user_id: int) -> dict | None: ...

    async def get_profile(self, user_id: int) -> dict | None: ...

    async def find_by_username(self, username: str) -> list[dict]: ...


class ChannelClient(Protocol):
    async def get_by_id(self, channel_id: int) -> dict | None: ...

    async def get_by_slug(self, slug: str) -> dict | None: ...


class TopicClient(Protocol):
    async def get_by_id(self, topic_id: int) -> dict | None: ...

    async def get_by_slug(self, slug: str) -> dict | None: ...


class FollowClient(Protocol):
    async def add(self, channel_id: int, user_id: int) -> dict: ...

    async def delete(self, channel_id: int, user_id: int) -> dict: ...

    async def has(self, channel_id: int, user_id: int) -> bool: ...

    async def count(self, channel_id: int) -> int: ...


# ---------------------------------------------------------------------------
# In-process implementations
# ---------------------------------------------------------------------------

class LocalUserClient:
    def __init__(self, ctx: CallContext) -> None:
        self._ctx = ctx

    async def get_by_id(self, user_id: int) -> dict | None:
        return await user_service.get_user(self._ctx, user_id)

    async def get_profile(self, user_id: int) -> dict | None:
        return await user_service.get_profile_by_id(self._ctx, user_id)

    async def find_by_username(self, username: str) -> list[dict]:
        return await user_service.find_by_username(self._ctx, username)


class LocalChannelClient:
    def __init__(self, ctx: CallContext) -> None:
        self._ctx = ctx

    async def get_by_id(self, channel_id: int) -> dict | None:
        return await channel_service.find_by_id(self._ctx, channel_id)

    async def get_by_slug(self, slug: str) -> dict | None:
        return await channel_service.find_by_slug(self._ctx, slug)


class LocalTopicClient:
    def __init__(self, ctx: CallContext) -> None:
        self._ctx = ctx

    async def get_by_id(self, topic_id: int) -> dict | None:
        return await topic_service.find_by_id(self._ctx, topic_id)

    async def get_by_slug(self, slug: str) -> dict | None:
        return await topic_service.find_by_slug(self._ctx, slug)


class LocalFollowClient:
    def __init__(self, ctx: CallContext) -> None:
        self._ctx = ctx

    async def add(self, channel_id: int, user_id: int) -> dict:
        return await follow_service.add(self._ctx, channel_id, user_id)

    async def delete(self, channel_id: int, user_id: int) -> dict:
        return await follow_service.delete(self._ctx, channel_id, user_id)

    async def has(self, channel_id: int, user_id: int) -> bool:
        return await follow_service.has(self._ctx, channel_id, user_id)

    async def count(self, channel_id: int) -> int:
        return await follow_service.count(self._ctx, channel_id)


# ---------------------------------------------------------------------------
# Remote identity service
# ---------------------------------------------------------------------------

class HttpUserClient:
    """
    ``UserClient`` over the identity service's ``/internal/users`` routes.

    Every request carries the shared ``INTERNAL_TOKEN`` (or *token*).
    """

    def __init__(self, http: httpx.AsyncClient, token: str | None = None) -> None:
        self._http = http
        token = token or settings.INTERNAL_TOKEN
        self._headers = {SERVICE_TOKEN_HEADER: token} if token else {}

    async def _get(self, path: str, params: dict | None = None) -> dict | None:
        try:
            resp = await self._http.get(path, params=params, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("users service call %s failed: %s", path, exc)
            raise UpstreamError(f"users service unavailable: {exc}") from exc
        if resp.status_code == 404:
            return None
        if resp.is_error:
            try:
                message = resp.json()["errors"]["message"]
            except (ValueError, KeyError, TypeError):
                message = resp.text or resp.reason_phrase
            raise UpstreamError(f"users service returned {resp.status_code}: {message}")
        return resp.json()

    async def get_by_id(self, user_id: int) -> dict | None:
        body = await self._get(f"/internal/users/{user_id}")
        return body["user"] if body else None

    async def get_profile(self, user_id: int) -> dict | None:
        body = await self._get(f"/internal/users/{user_id}/profile")
        return body["profile"] if body else None

    async def find_by_username(self, username: str) -> list[dict]:
        body = await self._get("/internal/users", params={"username": username})
        return body["users"] if body else []


_http_client: httpx.AsyncClient | None = None


def user_client(ctx: CallContext) -> UserClient:
    """In-process unless ``USERS_SERVICE_URL`` points at a remote deployment."""
    global _http_client
    if not settings.USERS_SERVICE_URL:
        return LocalUserClient(ctx)
    if _http_client is None:
        _http_client = httpx.AsyncClient(
            base_url=settings.USERS_SERVICE_URL,
            timeout=settings.UPSTREAM_TIMEOUT,
        )
    return HttpUserClient(_http_client)


async def close_http_clients() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
