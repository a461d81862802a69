"""Query cache for aggregator results.

Follows the Repository pattern: ``QueryCache`` depends on the ``CacheProvider``
protocol, and the Redis-backed provider depends on the ``BaseKeyValueStore``
protocol rather than a concrete client.

Keys look like ``insights:{aggregator}:{org_id}:{params}``. Entries keep the
time they were stored; a stale entry is recomputed. Backend errors degrade to
a cache miss.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Protocol, TypeVar

from pydantic import TypeAdapter

from insights import metrics
from insights.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

KEY_PREFIX = "insights"


class BaseKeyValueStore(Protocol):
    """Protocol defining key-value storage interface (a ``redis.Redis`` satisfies it)."""

    def get(self, key: str) -> str | None:
        """Retrieve value by key."""
        ...

    def set(self, key: str, value: str, ex: int | None = None) -> Any:
        """Store value with optional expiration in seconds."""
        ...

    def delete(self, *keys: str) -> Any:
        """Remove keys from store."""
        ...

    def scan_iter(self, match: str | None = None) -> Iterator[str]:
        """Iterate over keys matching a glob pattern."""
        ...


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    stored_at: float


class CacheProvider(Protocol):
    def get(self, key: str) -> CacheEntry | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def invalidate(self, pattern: str) -> None:
        """Drop every entry whose key matches the glob ``pattern``."""
        ...

    def is_stale(self, entry: CacheEntry) -> bool:
        ...


class KeyValueCacheProvider:
    """``CacheProvider`` over a key-value store such as Redis."""

    def __init__(
        self,
        store: BaseKeyValueStore,
        ttl: int | None = None,
        stale_after: int | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: Any object implementing BaseKeyValueStore protocol
            ttl: Expiration of stored entries, in seconds
            stale_after: Age after which an entry is recomputed, in seconds
            clock: Returns the current epoch time
        """
        self.store = store
        self.ttl = ttl or settings.CACHE_TTL_SECONDS
        self.stale_after = settings.CACHE_STALE_SECONDS if stale_after is None else stale_after
        self._clock = clock

    def get(self, key: str) -> CacheEntry | None:
        try:
            raw = self.store.get(key)
            if raw is None:
                return None
            payload = json.loads(raw)
            return CacheEntry(value=payload["value"], stored_at=float(payload["stored_at"]))
        except Exception as e:  # noqa: BLE001
            # Cache is optional - log as warning not error to avoid Sentry noise
            logger.warning("Cache read error for %s: %s", key, e)
            metrics.cache_error("get")
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps({"stored_at": self._clock(), "value": value})
            self.store.set(key, payload, ex=self.ttl)
            logger.debug("Cached %s (TTL: %ss)", key, self.ttl)
        except Exception as e:  # noqa: BLE001
            logger.warning("Cache write error for %s: %s", key, e)
            metrics.cache_error("set")

    def invalidate(self, pattern: str) -> None:
        try:
            keys = list(self.store.scan_iter(match=pattern))
            if keys:
                self.store.delete(*keys)
            logger.debug("Invalidated %d cache keys matching %s", len(keys), pattern)
        except Exception as e:  # noqa: BLE001
            logger.warning("Cache invalidation error for %s: %s", pattern, e)
            metrics.cache_error("invalidate")

    def is_stale(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at >= self.stale_after


class DisabledCacheProvider:
    """Provider used when caching is off: nothing is ever stored."""

    def get(self, key: str) -> CacheEntry | None:
        return None

    def set(self, key: str, value: Any) -> None:
        return None

    def invalidate(self, pattern: str) -> None:
        return None

    def is_stale(self, entry: CacheEntry) -> bool:
        return True


def _format_param(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class QueryCache:
    """Read-through cache keyed on (aggregator, organization, parameters)."""

    def __init__(self, provider: CacheProvider):
        self.provider = provider

    @staticmethod
    def key(aggregator: str, org_id: str, **params: Any) -> str:
        encoded = "|".join(f"{name}={_format_param(params[name])}" for name in sorted(params)) or "-"
        return f"{KEY_PREFIX}:{aggregator}:{org_id}:{encoded}"

    async def fetch(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        response_type: Any,
    ) -> T:
        """Return the cached value for ``key`` or compute, store and return it."""
        aggregator = key.split(":", 2)[1] if key.count(":") >= 2 else key
        adapter: TypeAdapter = TypeAdapter(response_type)
        entry = self.provider.get(key)
        if entry is not None and not self.provider.is_stale(entry):
            try:
                value = adapter.validate_python(entry.value)
            except ValueError as e:
                logger.warning("Discarding unreadable cache entry %s: %s", key, e)
                metrics.cache_error("decode")
            else:
                metrics.cache_hit(aggregator)
                return value

        metrics.cache_miss(aggregator)
        value = await producer()
        self.provider.set(key, adapter.dump_python(value, mode="json", by_alias=True))
        return value

    def invalidate(self, org_id: str) -> None:
        self.provider.invalidate(f"{KEY_PREFIX}:*:{org_id}:*")


def get_cache_provider() -> CacheProvider:
    """Redis provider when caching is enabled and Redis answers, else a disabled one."""
    if not settings.CACHE_ENABLED or not settings.REDIS_URL:
        return DisabledCacheProvider()
    try:
        from insights.db.redis_client import get_redis_client

        return KeyValueCacheProvider(get_redis_client())
    except Exception:  # noqa: BLE001
        logger.warning("Query cache disabled (Redis unavailable)")
        return DisabledCacheProvider()
