"""Read-through cache for trades, summaries and symbol lists.

The cache is a performance layer only: every failure of the backing store is
logged and treated as a miss, so callers always fall through to the database.
"""

import json
import logging
import re
import threading
import time
from datetime import date, datetime
from typing import Any, Callable, Protocol, TypeVar

import redis
from pydantic import BaseModel

from journal.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def flush_prefix(self, prefix: str) -> None: ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

# Characters with a special meaning in redis MATCH patterns
GLOB_SPECIAL = re.compile(r"([*?\[\]\\^])")


def escape_glob(text: str) -> str:
    """Escape ``text`` so a redis MATCH pattern treats it literally."""
    return GLOB_SPECIAL.sub(r"\\\1", text)


class MemoryCacheBackend:
    """In-process cache with per-key expiry. ``clock`` must be monotonic seconds.

    Expired entries are dropped when read, and swept from the whole map on a
    write at most once every ``sweep_interval`` seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self.sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[key] = (value, now + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def flush_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def _sweep(self, now: float):
        # caller holds the lock
        for key in [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]:
            del self._entries[key]
        self._next_sweep = now + self.sweep_interval

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """redis-py backed cache. Keys are stored under ``{namespace}:``."""

    def __init__(self, client: redis.Redis, namespace: str = "tj"):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "tj") -> "RedisCacheBackend":
        # decode_responses=True so values come back as str
        client = redis.Redis.from_url(url, decode_responses=True, socket_timeout=2)
        return cls(client, namespace)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(self._key(key))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis read failed: {e}") from e

    def set(self, key: str, value: str, ttl: int) -> None:
        try:
            self.client.setex(self._key(key), ttl, value)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis delete failed: {e}") from e

    def flush_prefix(self, prefix: str) -> None:
        try:
            keys = list(self.client.scan_iter(match=f"{escape_glob(self._key(prefix))}*", count=500))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as e:
            raise CacheUnavailableError(f"Redis flush failed: {e}") from e


# ---------------------------------------------------------------------------
# Cache layer
# ---------------------------------------------------------------------------

def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def dump_model(model: BaseModel) -> str:
    # stdlib json keeps inf/nan (profit factor can be inf)
    return json.dumps(model.model_dump(mode="python"), default=_json_default)


class CacheLayer:
    def __init__(
        self,
        backend: CacheBackend,
        trade_ttl: int = 300,
        summary_ttl: int = 60,
        symbols_ttl: int = 300,
    ):
        self.backend = backend
        self.trade_ttl = trade_ttl
        self.summary_ttl = summary_ttl
        self.symbols_ttl = symbols_ttl

    # Keys

    @staticmethod
    def trade_key(user_id: str, trade_id: int) -> str:
        return f"trade:{user_id}:{trade_id}"

    @staticmethod
    def summary_prefix(user_id: str) -> str:
        return f"summary:{user_id}:"

    @classmethod
    def summary_key(cls, user_id: str, range_key: str = "all") -> str:
        return f"{cls.summary_prefix(user_id)}{range_key}"

    @staticmethod
    def symbols_key(user_id: str) -> str:
        return f"symbols:{user_id}"

    # Raw access with fallback

    def _get(self, key: str) -> str | None:
        try:
            return self.backend.get(key)
        except CacheUnavailableError as e:
            logger.warning(f"Cache read failed for {key}, falling back to store: {e}")
            return None

    def _set(self, key: str, value: str, ttl: int):
        try:
            self.backend.set(key, value, ttl)
        except CacheUnavailableError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def get_model(self, key: str, model: type[M]) -> M | None:
        raw = self._get(key)
        if raw is None:
            return None
        try:
            return model.model_validate(json.loads(raw))
        except ValueError as e:
            # Stale shape from an older release; drop it
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def set_model(self, key: str, value: BaseModel, ttl: int):
        self._set(key, dump_model(value), ttl)

    def get_list(self, key: str) -> list | None:
        raw = self._get(key)
        return json.loads(raw) if raw is not None else None

    def set_list(self, key: str, value: list, ttl: int):
        self._set(key, json.dumps(value), ttl)

    # Invalidation

    def invalidate_user(self, user_id: str, trade_id: int | None = None):
        """Drop the trade entry (if given), every summary and the symbols list of a user."""
        if trade_id is not None:
            self._drop(self.backend.delete, self.trade_key(user_id, trade_id))
        self._drop(self.backend.flush_prefix, self.summary_prefix(user_id))
        self._drop(self.backend.delete, self.symbols_key(user_id))

    def _drop(self, action: Callable[[str], None], key: str):
        try:
            action(key)
        except CacheUnavailableError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")


def build_cache(settings) -> CacheLayer:
    """Construct the cache layer configured by ``settings``."""
    if settings.cache_backend == "redis":
        backend: CacheBackend = RedisCacheBackend.from_url(settings.redis_url, settings.cache_namespace)
        logger.info("Using redis cache backend")
    elif settings.cache_backend == "memory":
        backend = MemoryCacheBackend()
    else:
        raise ValueError(f"Unknown cache backend: {settings.cache_backend}")
    return CacheLayer(
        backend,
        trade_ttl=settings.trade_cache_ttl,
        summary_ttl=settings.summary_cache_ttl,
        symbols_ttl=settings.symbols_cache_ttl,
    )
