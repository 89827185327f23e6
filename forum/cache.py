import hashlib
import json
import logging

import redis.asyncio as redis

from forum.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Namespace-partitioned cache-aside manager backed by Redis.

    Every service caches under its own namespace (``channels:*``,
    ``topics:*`` ...) and only ever clears whole namespaces; there is no
    per-key invalidation.

    All public methods are safe to call even when Redis is unavailable:
    reads return None and writes are skipped, so a cache outage degrades
    to always hitting the database.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @property
    def client(self) -> redis.Redis | None:
        return self._redis

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    @staticmethod
    def make_key(namespace: str, action: str, token: str | None = None, **params) -> str:
        """
        Build ``<namespace>:<action>:<caller>:<params>``.

        The caller part is a digest of the bearer token so two callers never
        share an entry; *params* must be exactly the inputs the action reads.
        """
        caller = hashlib.sha256(token.encode()).hexdigest()[:16] if token else "anon"
        encoded = "|".join(f"{k}={params[k]}" for k in sorted(params))
        return f"{namespace}:{action}:{caller}:{encoded}"

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                self._hits += 1
                return json.loads(data)
            self._misses += 1
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        """
        Persist *value* under *key* with an optional TTL (seconds).

        Failures are logged and never propagated; a cache write must not
        break a request.
        """
        if not self._redis:
            return
        try:
            serialised = json.dumps(value, default=str)
            await self._redis.set(key, serialised, ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching *pattern* using SCAN; return how many."""
        if not self._redis:
            return 0
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
            return len(keys)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)
            return 0

    # ------------------------------------------------------------------
    # Namespace invalidation
    # ------------------------------------------------------------------

    async def clean(self, namespace: str) -> None:
        """Flush every entry a service has cached under *namespace*."""
        removed = await self.delete_pattern(f"{namespace}:*")
        if removed:
            logger.debug("Cache flushed %d key(s) in namespace %r", removed, namespace)

    def cleaner(self, namespace: str):
        """Return a bus handler that flushes *namespace* whatever kind changed."""

        async def _clean(kind: str) -> None:
            await self.clean(namespace)

        _clean.__name__ = f"clean_{namespace}"
        return _clean

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        """Return a snapshot of hit/miss counters for metrics endpoints."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all services.
cache = CacheManager()
