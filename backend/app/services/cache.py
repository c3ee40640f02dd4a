"""
Cache stores and the backend selector.

REDIS_CACHE_URL set   -> RedisCacheStore (durable, shared between processes)
REDIS_CACHE_URL unset -> MemoryCacheStore (in-process, per worker)

Several comma-separated Redis URLs spread keys across servers by a stable hash
of the key, so every process maps a given key to the same server.
"""

import json
import logging
import threading
import time
import zlib
from collections import OrderedDict
from typing import Any, Callable, Optional, Union

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from app.config import CacheSettings, ConfigurationError

logger = logging.getLogger(__name__)

_MISSING = object()


class MemoryCacheStore:
    """Thread-safe in-process LRU cache with optional per-entry expiry."""

    def __init__(self, max_entries: int = 10_000):
        self.max_entries = max_entries
        self._data: "OrderedDict[str, tuple[Any, Optional[float]]]" = OrderedDict()
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= time.monotonic()

    def read(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return default
            self._data.move_to_end(key)
            return value

    def write(self, key: str, value: Any, expires_in: Optional[float] = None) -> bool:
        expires_at = time.monotonic() + expires_in if expires_in else None
        with self._lock:
            self._data[key] = (value, expires_at)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)
        return True

    def exist(self, key: str) -> bool:
        return self.read(key, _MISSING) is not _MISSING

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def fetch(self, key: str, factory: Callable[[], Any], expires_in: Optional[float] = None) -> Any:
        value = self.read(key, _MISSING)
        if value is _MISSING:
            value = factory()
            self.write(key, value, expires_in=expires_in)
        return value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def describe(self) -> dict:
        return {"store": "memory", "entries": len(self._data)}


class RedisCacheStore:
    """
    JSON-serialising cache backed by one or more Redis servers.

    Timeouts default to 1 second each with a single reconnect attempt; the
    production settings tighten read/write and loosen connect.
    """

    def __init__(
        self,
        urls: Union[str, list[str]],
        connect_timeout: float = 1.0,
        read_timeout: float = 1.0,
        write_timeout: float = 1.0,
        reconnect_attempts: int = 1,
        namespace: Optional[str] = None,
    ):
        self.urls = [urls] if isinstance(urls, str) else list(urls)
        if not self.urls:
            raise ConfigurationError("RedisCacheStore needs at least one Redis URL")
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.reconnect_attempts = reconnect_attempts
        self.namespace = namespace
        # redis-py applies one socket timeout to both reads and writes
        self._clients = [
            redis.Redis.from_url(
                url,
                socket_connect_timeout=connect_timeout,
                socket_timeout=max(read_timeout, write_timeout),
                retry=Retry(NoBackoff(), reconnect_attempts),
                retry_on_error=[redis.ConnectionError, redis.TimeoutError],
            )
            for url in self.urls
        ]

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def client_for(self, key: str) -> redis.Redis:
        if len(self._clients) == 1:
            return self._clients[0]
        index = zlib.crc32(self._key(key).encode("utf-8")) % len(self._clients)
        return self._clients[index]

    def read(self, key: str, default: Any = None) -> Any:
        raw = self.client_for(key).get(self._key(key))
        if raw is None:
            return default
        return json.loads(raw)

    def write(self, key: str, value: Any, expires_in: Optional[float] = None) -> bool:
        # millisecond expiry keeps sub-second values; Redis rejects a zero ttl
        ttl_ms = max(1, round(expires_in * 1000)) if expires_in else None
        return bool(self.client_for(key).set(self._key(key), json.dumps(value), px=ttl_ms))

    def exist(self, key: str) -> bool:
        return bool(self.client_for(key).exists(self._key(key)))

    def delete(self, key: str) -> bool:
        return bool(self.client_for(key).delete(self._key(key)))

    def fetch(self, key: str, factory: Callable[[], Any], expires_in: Optional[float] = None) -> Any:
        value = self.read(key, _MISSING)
        if value is _MISSING:
            value = factory()
            self.write(key, value, expires_in=expires_in)
        return value

    def clear(self) -> None:
        for client in self._clients:
            client.flushdb()

    def describe(self) -> dict:
        return {"store": "redis", "servers": len(self._clients)}


def build_cache_store(settings: CacheSettings) -> Union[RedisCacheStore, MemoryCacheStore]:
    """Pick the cache backend from configuration."""
    if settings.urls:
        logger.info("Using Redis cache store (%d server(s))", len(settings.urls))
        return RedisCacheStore(
            settings.urls,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
            write_timeout=settings.write_timeout,
            reconnect_attempts=settings.reconnect_attempts,
        )
    logger.info("REDIS_CACHE_URL not set; using in-process memory cache store")
    return MemoryCacheStore()
