"""Content cache stores with Redis, SQL or in-memory backends.

Every store is bound to one namespace and honors the same contract:

- get(key): the entry, or None when absent or expired
- upsert(entry): insert-or-replace, last writer wins
- get_recent(limit): unexpired entries, newest first

Backend failures never reach the caller. A failed read is a miss and a
failed write is a no-op, so an unavailable store degrades the service to
"always regenerate".
"""

import copy
import json
import time
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

try:
    import redis.asyncio as redis
    REDIS_AVAILABLE = True
except ImportError:
    redis = None
    REDIS_AVAILABLE = False

from core.config import Settings
from core.exceptions import CacheReadError, CacheWriteError
from core.logging import get_logger, log_cache_operation
from models.cache import CacheEntry

if TYPE_CHECKING:
    from core.database import Database

logger = get_logger(__name__)

Clock = Callable[[], float]


class CacheStore:
    """Namespace-scoped content cache.

    Subclasses implement _read, _write and _recent and may raise anything;
    the public methods own expiry checks and failure handling.
    """

    backend = "abstract"

    def __init__(self, namespace: str, clock: Clock = time.time):
        self.namespace = namespace
        self.clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            entry = await self._read(key)
        except Exception as e:
            error = CacheReadError(str(e))
            logger.warning("Cache read failed, treating as miss", namespace=self.namespace,
                           cache_key=key, backend=self.backend, error=str(error))
            return None

        if entry is None:
            log_cache_operation(logger, "get", key, self.namespace, hit=False)
            return None
        if not entry.is_readable(self.clock()):
            log_cache_operation(logger, "get", key, self.namespace, hit=False, expired=True)
            return None

        log_cache_operation(logger, "get", key, self.namespace, hit=True)
        return entry

    async def upsert(self, entry: CacheEntry) -> bool:
        """Write entry; returns False when the backend rejected the write."""
        try:
            await self._write(entry)
        except Exception as e:
            error = CacheWriteError(str(e))
            logger.warning("Cache write failed, skipping", namespace=self.namespace,
                           cache_key=entry.key, backend=self.backend, error=str(error))
            return False

        log_cache_operation(logger, "upsert", entry.key, self.namespace,
                            status=entry.generation_status)
        return True

    async def get_recent(self, limit: int) -> List[CacheEntry]:
        if limit <= 0:
            return []
        now = self.clock()
        try:
            entries = await self._recent(now, limit)
        except Exception as e:
            error = CacheReadError(str(e))
            logger.warning("Cache recent read failed", namespace=self.namespace,
                           backend=self.backend, error=str(error))
            return []

        fresh = [entry for entry in entries if entry.is_readable(now)]
        fresh.sort(key=lambda entry: entry.created_at, reverse=True)
        return fresh[:limit]

    async def _read(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    async def _write(self, entry: CacheEntry) -> None:
        raise NotImplementedError

    async def _recent(self, now: float, limit: int) -> List[CacheEntry]:
        raise NotImplementedError


class MemoryCacheStore(CacheStore):
    """Process-local store. Used in tests and as a last-resort backend."""

    backend = "memory"

    def __init__(self, namespace: str, clock: Clock = time.time):
        super().__init__(namespace, clock)
        self._entries: Dict[str, CacheEntry] = {}

    async def _read(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        return _clone(entry) if entry else None

    async def _write(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = _clone(entry)

    async def _recent(self, now: float, limit: int) -> List[CacheEntry]:
        return [_clone(entry) for entry in self._entries.values() if entry.expires_at > now]

    def __len__(self) -> int:
        return len(self._entries)


class SQLCacheStore(CacheStore):
    """Store backed by the content_cache table."""

    backend = "sql"

    def __init__(self, namespace: str, database: "Database", clock: Clock = time.time):
        super().__init__(namespace, clock)
        self.database = database

    async def _read(self, key: str) -> Optional[CacheEntry]:
        return await self.database.get_content_entry(self.namespace, key)

    async def _write(self, entry: CacheEntry) -> None:
        await self.database.upsert_content_entry(entry)

    async def _recent(self, now: float, limit: int) -> List[CacheEntry]:
        return await self.database.get_recent_content_entries(self.namespace, now, limit)


class RedisCacheStore(CacheStore):
    """Store backed by Redis.

    Key schema:
        content:{namespace}:{key}     -> STRING (entry JSON, PX = remaining TTL)
        content:{namespace}:recent    -> ZSET {key -> created_at}
    """

    backend = "redis"

    def __init__(self, namespace: str, client, clock: Clock = time.time):
        super().__init__(namespace, clock)
        self.redis = client

    def _entry_key(self, key: str) -> str:
        return f"content:{self.namespace}:{key}"

    @property
    def _recent_key(self) -> str:
        return f"content:{self.namespace}:recent"

    async def _read(self, key: str) -> Optional[CacheEntry]:
        raw = await self.redis.get(self._entry_key(key))
        if not raw:
            return None
        return CacheEntry.from_dict(json.loads(raw))

    async def _write(self, entry: CacheEntry) -> None:
        ttl_ms = int((entry.expires_at - self.clock()) * 1000)
        if ttl_ms <= 0:
            return
        serialized = json.dumps(entry.to_dict(), default=str)
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._entry_key(entry.key), serialized, px=ttl_ms)
            pipe.zadd(self._recent_key, {entry.key: entry.created_at})
            # Index members older than one TTL can no longer have a live entry
            pipe.zremrangebyscore(self._recent_key, "-inf",
                                  self.clock() - (entry.expires_at - entry.created_at))
            await pipe.execute()

    async def _recent(self, now: float, limit: int) -> List[CacheEntry]:
        # The index has no expiry of its own; drop members whose entry is gone.
        keys = await self.redis.zrevrange(self._recent_key, 0, limit * 2 - 1)
        entries = []
        stale = []
        for key in keys:
            if isinstance(key, bytes):
                key = key.decode("utf-8")
            entry = await self._read(key)
            if entry is None:
                stale.append(key)
            else:
                entries.append(entry)
        if stale:
            await self.redis.zrem(self._recent_key, *stale)
        return entries


def _clone(entry: CacheEntry) -> CacheEntry:
    return CacheEntry.from_dict(copy.deepcopy(entry.to_dict()))


class CacheService:
    """Selects a backend at startup and hands out namespace-bound stores.

    Backend selection:
    - Redis: when REDIS_ENABLED=true and the server answers a ping
    - SQL: when Redis is disabled or unavailable and a database is configured
    - Memory: when neither is usable
    """

    def __init__(self, settings: Settings, database: Optional["Database"] = None,
                 clock: Clock = time.time):
        self.settings = settings
        self.database = database
        self.clock = clock
        self.redis = None
        self.use_redis = settings.redis_enabled and REDIS_AVAILABLE
        self.use_sql = not self.use_redis and database is not None
        self._stores: Dict[str, CacheStore] = {}

    @property
    def backend(self) -> str:
        if self.use_redis and self.redis is not None:
            return "redis"
        if self.use_sql:
            return "sql"
        return "memory"

    async def startup(self):
        """Initialize cache connection."""
        if self.use_redis and self.settings.redis_url:
            try:
                self.redis = redis.from_url(
                    self.settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=5,
                    socket_connect_timeout=5,
                    retry_on_timeout=True
                )
                await self.redis.ping()
                logger.info("Redis content cache initialized", url=self.settings.redis_url)

            except Exception as e:
                logger.warning("Redis connection failed, falling back", error=str(e))
                self.use_redis = False
                self.redis = None
                if self.database:
                    self.use_sql = True
        else:
            self.use_redis = False
            self.use_sql = self.database is not None

        # Stores handed out before startup must follow the selected backend
        self._stores.clear()
        logger.info("Content cache backend selected", backend=self.backend,
                    redis_enabled=self.settings.redis_enabled,
                    redis_available=REDIS_AVAILABLE)

    async def shutdown(self):
        """Close cache connections."""
        if self.redis:
            await self.redis.close()
            logger.info("Redis cache connections closed")
        self._stores.clear()

    def store(self, namespace: str) -> CacheStore:
        """Get the store for a content namespace."""
        existing = self._stores.get(namespace)
        if existing is not None:
            return existing

        if self.backend == "redis":
            created = RedisCacheStore(namespace, self.redis, clock=self.clock)
        elif self.backend == "sql":
            created = SQLCacheStore(namespace, self.database, clock=self.clock)
        else:
            created = MemoryCacheStore(namespace, clock=self.clock)

        self._stores[namespace] = created
        return created

    async def ping(self) -> bool:
        """Check the selected backend is reachable."""
        try:
            if self.backend == "redis":
                return bool(await self.redis.ping())
            if self.backend == "sql":
                return await self.database.ping()
            return True
        except Exception:
            return False
