"""
Redis Blob Store
================

Keeps memory blobs in Redis so that several worker processes can serve
the same sessions. A single SET replaces the whole document, which gives
the same all-or-nothing semantics as the file store.

Usage:
    store = RedisBlobStore(RedisStoreConfig(url="redis://localhost:6379/0"))
    await store.write("memory_abc", blob)
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import redis.asyncio as redis

from .base import BlobStore, StoreBackend, MemoryPersistenceError

logger = logging.getLogger(__name__)


@dataclass
class RedisStoreConfig:
    """Configuration for the Redis blob store."""
    url: str = "redis://localhost:6379/0"
    key_prefix: str = "hades:memory:"
    socket_timeout: int = 5
    socket_connect_timeout: int = 5
    ttl: Optional[int] = None


@dataclass
class StoreMetrics:
    """Blob store counters."""
    reads: int = 0
    writes: int = 0
    deletes: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reads': self.reads,
            'writes': self.writes,
            'deletes': self.deletes,
            'errors': self.errors,
        }


class RedisBlobStore(BlobStore):
    """Blob store backed by ``redis.asyncio``."""

    backend = StoreBackend.REDIS

    def __init__(self, config: Optional[RedisStoreConfig] = None, client: Optional[Any] = None):
        self.config = config or RedisStoreConfig()
        self._client = client
        self._metrics = StoreMetrics()

    def _get_client(self):
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.config.url,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_connect_timeout,
                decode_responses=True,
            )
        return self._client

    def _build_key(self, key: str) -> str:
        return f"{self.config.key_prefix}{key}"

    async def read(self, key: str) -> Optional[str]:
        try:
            value = await self._get_client().get(self._build_key(key))
            self._metrics.reads += 1
        except redis.RedisError as e:
            self._metrics.errors += 1
            raise MemoryPersistenceError(f"Redis read failed for {key}: {e}", original_error=e, key=key)

        if isinstance(value, bytes):
            try:
                value = value.decode("utf-8")
            except UnicodeDecodeError as e:
                self._metrics.errors += 1
                raise MemoryPersistenceError(f"Redis blob {key} is not valid UTF-8: {e}", original_error=e, key=key)
        return value

    async def write(self, key: str, blob: str) -> None:
        try:
            await self._get_client().set(self._build_key(key), blob, ex=self.config.ttl)
            self._metrics.writes += 1
        except redis.RedisError as e:
            self._metrics.errors += 1
            raise MemoryPersistenceError(f"Redis write failed for {key}: {e}", original_error=e, key=key)

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._get_client().delete(self._build_key(key))
            self._metrics.deletes += 1
        except redis.RedisError as e:
            self._metrics.errors += 1
            raise MemoryPersistenceError(f"Redis delete failed for {key}: {e}", original_error=e, key=key)
        return bool(removed)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Redis blob store")

    async def health_check(self) -> Dict[str, Any]:
        try:
            await self._get_client().ping()
            status = "healthy"
        except redis.RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            status = "unhealthy"
        return {"backend": self.backend.value, "status": status, "metrics": self._metrics.to_dict()}

    def get_metrics(self) -> Dict[str, Any]:
        return self._metrics.to_dict()
