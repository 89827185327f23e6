"""
Cache invalidation bus.

Any service that writes announces ``cache.clean.<kind>`` for its own entity
kind.  Subscribers receive only the kind, never which record changed.

Delivery has two legs:

- local subscribers are awaited inline by ``broadcast`` so the writing
  request never observes its own stale cache;
- when Redis is available the event is also published on the channel of
  the same name, and a listener task re-dispatches events published by
  other nodes.  Events carry the publishing node id so a node ignores its
  own echo.
"""
import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from forum.config import settings

logger = logging.getLogger(__name__)

KINDS: tuple[str, ...] = ("users", "channels", "topics", "messages", "follows")
EVENT_PREFIX = "cache.clean."
# session.info key holding the kinds written in the current transaction
PENDING_KEY = "forum.pending_invalidations"

Handler = Callable[[str], Awaitable[None]]


def event_name(kind: str) -> str:
    return f"{EVENT_PREFIX}{kind}"


class InvalidationBus:
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._redis: redis.Redis | None = None
        self._pubsub = None
        self._listener: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, kind: str, handler: Handler) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown entity kind: {kind!r}")
        self._handlers[kind].append(handler)

    def subscribe_all(self, handler: Handler) -> None:
        for kind in KINDS:
            self.subscribe(kind, handler)

    def unsubscribe(self, handler: Handler) -> None:
        for handlers in self._handlers.values():
            while handler in handlers:
                handlers.remove(handler)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def broadcast(self, kind: str) -> None:
        """Announce that entities of *kind* changed."""
        if kind not in KINDS:
            raise ValueError(f"Unknown entity kind: {kind!r}")
        logger.debug("Broadcasting %s", event_name(kind))
        await self._dispatch(kind)
        if self._redis is None:
            return
        payload = json.dumps({"kind": kind, "node": self.node_id})
        try:
            await self._redis.publish(event_name(kind), payload)
        except Exception as exc:
            logger.warning("Publishing %s failed: %s", event_name(kind), exc)

    async def announce(self, session: AsyncSession, kind: str) -> None:
        """
        Broadcast *kind* now and remember it on *session*.

        The immediate broadcast keeps the writing call's own reads fresh;
        ``flush_pending`` repeats it once the transaction has committed, so
        entries refilled from uncommitted data in between do not survive.
        """
        await self.broadcast(kind)
        session.info.setdefault(PENDING_KEY, set()).add(kind)

    async def flush_pending(self, session: AsyncSession) -> None:
        """Re-broadcast every kind announced on *session* (call after commit)."""
        for kind in sorted(session.info.pop(PENDING_KEY, ())):
            await self.broadcast(kind)

    @staticmethod
    def discard_pending(session: AsyncSession) -> None:
        session.info.pop(PENDING_KEY, None)

    async def _dispatch(self, kind: str) -> None:
        for handler in list(self._handlers[kind]):
            try:
                await handler(kind)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s",
                    getattr(handler, "__name__", handler),
                    event_name(kind),
                )

    # ------------------------------------------------------------------
    # Cross-node delivery
    # ------------------------------------------------------------------

    async def start(self, client: redis.Redis | None) -> None:
        """Subscribe to every kind on *client*; without Redis, stay local-only."""
        if client is None or self._listener is not None:
            return
        pubsub = client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(*(event_name(kind) for kind in KINDS))
        except Exception as exc:
            logger.warning("Invalidation bus running local-only: %s", exc)
            await pubsub.aclose()
            return
        self._redis = client
        self._pubsub = pubsub
        self._listener = asyncio.create_task(self._listen(pubsub))
        logger.info("Invalidation bus listening as node %s", self.node_id)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        self._redis = None

    async def _listen(self, pubsub) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            await self.receive(message["data"])

    async def receive(self, raw: str | bytes) -> None:
        """Dispatch an event that arrived over Redis."""
        try:
            payload = json.loads(raw)
            kind = payload["kind"]
            origin = payload.get("node")
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping malformed invalidation event: %r", raw)
            return
        if origin == self.node_id or kind not in KINDS:
            return
        logger.debug("Received %s from node %s", event_name(kind), origin)
        await self._dispatch(kind)


bus = InvalidationBus(node_id=settings.NODE_ID)
