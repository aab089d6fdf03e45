"""Response caches pluggable into :class:`~cdisc_library_client.transport.Connection`.

The connection consults a cache through two calls only:

        * ``match(request)`` returns a previously stored :class:`ApiResponse`
          or ``None``.
        * ``put(request, response)`` stores a response. The connection calls it
          for HTTP ``200`` answers only.

Either call may return an awaitable, so asynchronous stores work as well.

Provided implementations:
        * :class:`MemoryResponseCache`: in-process dictionary with TTL expiry.
        * :class:`RedisResponseCache`: Redis backed, shared between processes,
          with graceful fallback to the in-memory cache.

Keys are md5 hashes of the request descriptor (URL + headers), so requests
with different API keys or ``Accept`` headers never share an entry.

Example::

        from cdisc_library_client import CdiscLibrary
        from cdisc_library_client.cache import MemoryResponseCache

        library = CdiscLibrary(api_key="...", cache=MemoryResponseCache(default_ttl=600))
"""

from __future__ import annotations

import hashlib
import logging
import os
import pickle
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Union

try:  # pragma: no cover - import guarded
    import redis
except ImportError:  # pragma: no cover - if redis not installed
    redis = None  # type: ignore[assignment]
try:  # pragma: no cover
    import fakeredis
except ImportError:  # pragma: no cover
    fakeredis = None  # type: ignore[assignment]

from .transport import ApiResponse, RequestDescriptor

logger = logging.getLogger(__name__)

CACHE_TYPES = ("none", "memory", "redis")


class ResponseCache(Protocol):
    """Interface consumed by the connection."""

    def match(self, request: RequestDescriptor) -> Any: ...

    def put(self, request: RequestDescriptor, response: ApiResponse) -> Any: ...


def make_key(request: RequestDescriptor) -> str:
    """Deterministic md5 key for a request descriptor."""
    raw = repr((request.url, request.headers, request.binary)).encode()
    return hashlib.md5(raw).hexdigest()


@dataclass
class CacheEntry:
    """Cache entry with TTL."""

    data: Any
    timestamp: float = field(default_factory=time.time)
    ttl: float = 3600.0

    def is_expired(self) -> bool:
        """Check if cache entry has expired."""
        return time.time() - self.timestamp > self.ttl


class MemoryResponseCache:
    """In-memory response cache with per-entry TTL.

    Args:
        default_ttl: Lifetime of an entry in seconds.
        max_entries: Optional capacity; the oldest entry is evicted first.
    """

    def __init__(self, default_ttl: float = 3600.0, max_entries: Optional[int] = None):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._cache: Dict[str, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the value stored under ``key`` unless absent or expired."""
        entry = self._cache.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.is_expired():
            del self._cache[key]
            self.misses += 1
            self.evictions += 1
            return None
        self.hits += 1
        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace a value."""
        if (
            self.max_entries is not None
            and key not in self._cache
            and len(self._cache) >= self.max_entries
        ):
            oldest = min(self._cache, key=lambda k: self._cache[k].timestamp)
            del self._cache[oldest]
            self.evictions += 1
        self._cache[key] = CacheEntry(data=data, ttl=ttl or self.default_ttl)

    def match(self, request: RequestDescriptor) -> Optional[ApiResponse]:
        return self.get(make_key(request))

    def put(self, request: RequestDescriptor, response: ApiResponse) -> None:
        self.set(make_key(request), response)

    def invalidate(self, key: str) -> None:
        """Remove specific entry from cache."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get current cache statistics."""
        total = self.hits + self.misses
        return {
            "cache_size": len(self._cache),
            "default_ttl": self.default_ttl,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.hits / total if total else 0.0,
        }


class RedisResponseCache:
    """Redis backed response cache with automatic fallback.

    Order of backend selection when no explicit client is provided:
        1. Real Redis (``redis`` library + reachable server)
        2. ``fakeredis`` (if installed, or forced with ``CDISC_FORCE_FAKEREDIS=1``)
        3. In-process :class:`MemoryResponseCache` only

    Any Redis error at runtime marks the backend unavailable; from then on the
    in-memory fallback serves all requests.
    """

    def __init__(
        self,
        default_ttl: float = 3600.0,
        redis_url: Optional[str] = None,
        redis_prefix: str = "cdisc:",
        fallback_cache: Optional[MemoryResponseCache] = None,
        redis_client: Any | None = None,
    ) -> None:
        self.default_ttl = default_ttl
        self.redis_prefix = redis_prefix
        self.fallback_cache = fallback_cache or MemoryResponseCache(default_ttl=default_ttl)
        self._redis: Any | None = None
        self._redis_available = False

        if redis_client is not None:
            self._redis = redis_client
            self._redis_available = True
        else:
            self._init_backend(redis_url)

    def _init_backend(self, redis_url: Optional[str]) -> None:
        force_fake = os.getenv("CDISC_FORCE_FAKEREDIS") == "1"
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")

        if not force_fake and redis:
            try:
                self._redis = redis.from_url(url, decode_responses=False)
                self._redis.ping()
                self._redis_available = True
                return
            except Exception as e:
                logger.warning(f"Redis at {url} unavailable, using local cache: {e}")
                self._redis = None
                self._redis_available = False
                return

        if fakeredis:
            self._redis = fakeredis.FakeStrictRedis()
            self._redis_available = True
            return

        self._redis = None
        self._redis_available = False

    @property
    def redis_available(self) -> bool:
        return self._redis_available

    def _make_key(self, request: RequestDescriptor) -> str:
        return f"{self.redis_prefix}{make_key(request)}"

    def _disable(self, error: Exception) -> None:
        logger.warning(f"Redis cache error, falling back to local cache: {error}")
        self._redis_available = False

    def match(self, request: RequestDescriptor) -> Optional[ApiResponse]:
        if not self._redis_available or self._redis is None:
            return self.fallback_cache.match(request)
        try:
            blob = self._redis.get(self._make_key(request))
        except Exception as e:
            self._disable(e)
            return self.fallback_cache.match(request)
        if blob is None:
            return None
        try:
            return pickle.loads(blob)
        except (pickle.UnpicklingError, EOFError, AttributeError, TypeError) as e:
            logger.warning(f"Discarding unreadable cache entry for {request.url}: {e}")
            return None

    def put(self, request: RequestDescriptor, response: ApiResponse) -> None:
        if not self._redis_available or self._redis is None:
            self.fallback_cache.put(request, response)
            return
        try:
            self._redis.setex(
                self._make_key(request), int(self.default_ttl), pickle.dumps(response)
            )
        except Exception as e:
            self._disable(e)
            self.fallback_cache.put(request, response)

    def clear(self) -> None:
        self.fallback_cache.clear()
        if self._redis_available and self._redis is not None:
            try:
                for key in self._redis.scan_iter(match=f"{self.redis_prefix}*"):
                    self._redis.delete(key)
            except Exception as e:
                self._disable(e)

    def get_cache_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "redis_available": self._redis_available,
            "default_ttl": self.default_ttl,
            "fallback_stats": self.fallback_cache.get_cache_stats(),
        }
        if self._redis_available and self._redis is not None:
            try:
                stats["redis_key_count"] = int(self._redis.dbsize())
            except Exception as e:  # pragma: no cover
                self._disable(e)
        return stats


def create_cache(
    cache_type: str = "none",
    default_ttl: float = 3600.0,
    redis_url: Optional[str] = None,
    redis_prefix: str = "cdisc:",
) -> Optional[Union[MemoryResponseCache, RedisResponseCache]]:
    """Build a response cache by name.

    Args:
        cache_type: ``none``, ``memory`` or ``redis``.
        default_ttl: Entry lifetime in seconds.
        redis_url: Redis connection URL (``redis`` only).
        redis_prefix: Key prefix (``redis`` only).

    Raises:
        ValueError: For an unknown cache type.
    """
    cache_type = cache_type.lower()
    if cache_type == "none":
        return None
    if cache_type == "memory":
        return MemoryResponseCache(default_ttl=default_ttl)
    if cache_type == "redis":
        return RedisResponseCache(
            default_ttl=default_ttl, redis_url=redis_url, redis_prefix=redis_prefix
        )
    raise ValueError(f"Unknown cache type: {cache_type!r} (expected one of {CACHE_TYPES})")
