"""
FTGI — Score Cache Layer

The latest FactoryScoreRecord per factory is cached in Redis so score reads
don't hit Neo4j on every request. The store stays the source of truth:
a recompute overwrites the key after a successful persist, while
read-through only fills an empty key (SET NX).

Key Schema:
    ftgi:score:{factory_id}  → record JSON (storage form), TTL FTGI_CACHE_TTL

Redis being down is never fatal: the cache disables itself and every read
falls through to the store.

Dependencies: redis >= 5.0.0
"""
import json
from typing import Optional, Dict, Any

import redis
import structlog

from ftgi.trust.engine import FactoryScoreRecord

logger = structlog.get_logger()

DEFAULT_TTL = 3600  # 1 hour
KEY_PREFIX = "ftgi:score"


def _key(factory_id: int) -> str:
    return f"{KEY_PREFIX}:{factory_id}"


class ScoreCache:
    """
    Redis cache for FTGI score records.

    Usage:
        cache = ScoreCache(settings.REDIS_URL, ttl=settings.CACHE_TTL)

        record = cache.get(factory_id)
        if record is None:
            record = store.get(factory_id)
            cache.set(record)
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", ttl: int = DEFAULT_TTL,
                 client: Optional[redis.Redis] = None):
        self._url = redis_url
        self._ttl = ttl
        self._pool = None
        self._client: Optional[redis.Redis] = client
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _connect(self) -> Optional[redis.Redis]:
        """Lazy connect — only opens connection when first used."""
        if self._client is None:
            try:
                self._pool = redis.ConnectionPool.from_url(
                    self._url,
                    max_connections=20,
                    decode_responses=True,
                    socket_connect_timeout=3,
                    socket_timeout=2,
                    retry_on_timeout=True,
                )
                self._client = redis.Redis(connection_pool=self._pool)
                self._client.ping()
                logger.info("score_cache_connected", url=self._url.split("@")[-1])
            except redis.RedisError as e:
                logger.warning("score_cache_unavailable", error=str(e))
                self._enabled = False
                self._client = None
        return self._client

    def get(self, factory_id: int) -> Optional[FactoryScoreRecord]:
        """Cached record, or None on miss or if Redis is down."""
        if not self._enabled:
            return None

        client = self._connect()
        if not client:
            return None

        try:
            raw = client.get(_key(factory_id))
        except redis.RedisError as e:
            logger.debug("cache_get_error", factory_id=factory_id, error=str(e))
            return None

        if not raw:
            return None
        try:
            record = FactoryScoreRecord.from_storage(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning("cache_entry_corrupt", factory_id=factory_id, error=str(e))
            self.invalidate(factory_id)
            return None
        logger.debug("cache_hit", factory_id=factory_id)
        return record

    def set(self, record: FactoryScoreRecord) -> bool:
        if not self._enabled:
            return False

        client = self._connect()
        if not client:
            return False

        try:
            client.setex(_key(record.factory_id), self._ttl, json.dumps(record.to_storage()))
            logger.debug("cache_set", factory_id=record.factory_id, ttl=self._ttl)
            return True
        except redis.RedisError as e:
            logger.debug("cache_set_error", factory_id=record.factory_id, error=str(e))
            return False

    def add(self, record: FactoryScoreRecord) -> bool:
        """
        Cache only if nothing is cached yet. Read-through uses this so a record
        loaded before a concurrent recompute can't replace the fresh one.
        """
        if not self._enabled:
            return False

        client = self._connect()
        if not client:
            return False

        try:
            added = client.set(_key(record.factory_id), json.dumps(record.to_storage()),
                               ex=self._ttl, nx=True)
            return bool(added)
        except redis.RedisError as e:
            logger.debug("cache_add_error", factory_id=record.factory_id, error=str(e))
            return False

    def invalidate(self, factory_id: int) -> bool:
        """Force-expire a cached record (a signal changed)."""
        if not self._enabled:
            return False

        client = self._connect()
        if not client:
            return False

        try:
            return bool(client.delete(_key(factory_id)))
        except redis.RedisError as e:
            logger.debug("cache_invalidate_error", factory_id=factory_id, error=str(e))
            return False

    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        if not self._enabled:
            return {"enabled": False}

        client = self._connect()
        if not client:
            return {"enabled": False, "connected": False}

        try:
            info = client.info("memory")
            cached = sum(1 for _ in client.scan_iter(match=f"{KEY_PREFIX}:*", count=500))
            return {
                "enabled": True,
                "connected": True,
                "cached_scores": cached,
                "memory_used": info.get("used_memory_human", "?"),
                "ttl": self._ttl,
            }
        except redis.RedisError as e:
            return {"enabled": True, "connected": False, "error": str(e)}

    def close(self):
        """Shutdown cache connections."""
        if self._pool:
            self._pool.disconnect()
            logger.info("score_cache_disconnected")
