"""
Ephemeral TTL store for preview attempts

Redis when reachable; otherwise an in-process cachetools TLRU cache so
previews keep working on a single-node deployment.
"""
import redis
import json
import logging
import math
import threading
import time
import zlib
from typing import Optional, Any, Dict, Callable
from cachetools import TLRUCache
from examcore.config import settings
from examcore.errors import NotFound, StorageUnavailable

logger = logging.getLogger(__name__)

KEY_PREFIX = "preview:"
LOCK_STRIPES = 64


def _expires_at(_key, value: Dict[str, Any], _now) -> float:
    return value["expiresAtTs"]


class PreviewStore:
    """
    Key-value store for preview records with a fixed expiry per record

    Records carry their own `expiresAtTs` (epoch seconds); updates never extend it.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        use_redis: bool = True,
        maxsize: int = 10000,
        timer: Callable[[], float] = time.time,
    ):
        self.timer = timer
        self.redis_client = redis_client
        if self.redis_client is None and use_redis:
            try:
                self.redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True,
                    socket_connect_timeout=5
                )
                # Test connection
                self.redis_client.ping()
                logger.info("Redis connection established for preview store")
            except Exception as e:
                logger.warning(f"Redis connection failed: {str(e)}. Using in-process preview store.")
                self.redis_client = None

        self.memory = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _key(self, preview_id: str) -> str:
        return f"{KEY_PREFIX}{preview_id}"

    def lock(self, preview_id: str) -> threading.Lock:
        """Per-preview mutual exclusion (striped, process-local)"""
        return self._locks[zlib.crc32(preview_id.encode()) % LOCK_STRIPES]

    def create(self, preview_id: str, value: Dict[str, Any], ttl: int) -> None:
        """
        Store a new preview record

        Args:
            preview_id: Generated preview id
            value: JSON-serializable record
            ttl: Time to live in seconds
        """
        value = dict(value, expiresAtTs=self.timer() + ttl)
        if self.redis_client is None:
            self.memory[preview_id] = value
            return

        try:
            self.redis_client.setex(self._key(preview_id), ttl, json.dumps(value))
            logger.info(f"Preview stored: {preview_id} (TTL: {ttl}s)")
        except redis.RedisError as e:
            logger.error(f"Preview store set error: {str(e)}")
            raise StorageUnavailable() from e

    def get(self, preview_id: str) -> Optional[Dict[str, Any]]:
        """Return the record, or None when unknown or expired"""
        if self.redis_client is None:
            value = self.memory.get(preview_id)
        else:
            try:
                raw = self.redis_client.get(self._key(preview_id))
            except redis.RedisError as e:
                logger.error(f"Preview store get error: {str(e)}")
                raise StorageUnavailable() from e
            value = json.loads(raw) if raw else None

        if value is None or value["expiresAtTs"] <= self.timer():
            return None
        return value

    def save(self, preview_id: str, value: Dict[str, Any]) -> None:
        """
        Overwrite an existing record, keeping the expiry it was created with

        Raises:
            NotFound: the record expired before the write landed
        """
        remaining = math.ceil(value["expiresAtTs"] - self.timer())
        if remaining <= 0:
            raise NotFound("Preview not found or expired")

        if self.redis_client is None:
            self.memory[preview_id] = value
            return

        try:
            self.redis_client.setex(self._key(preview_id), remaining, json.dumps(value))
        except redis.RedisError as e:
            logger.error(f"Preview store save error: {str(e)}")
            raise StorageUnavailable() from e

    def delete(self, preview_id: str) -> None:
        if self.redis_client is None:
            self.memory.pop(preview_id, None)
            return

        try:
            self.redis_client.delete(self._key(preview_id))
            logger.info(f"Preview deleted: {preview_id}")
        except redis.RedisError as e:
            logger.error(f"Preview store delete error: {str(e)}")
            raise StorageUnavailable() from e


# Global instance
preview_store = PreviewStore(use_redis=settings.REDIS_ENABLED)
