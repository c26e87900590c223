"""
Blob Store Factory
==================

Configuration-driven selection of the memory persistence backend.

Usage:
    store = create_blob_store(settings.memory)
"""

from typing import Dict, Optional, Type
import logging

from .base import BlobStore, StoreBackend, DatabaseError
from .file_store import FileBlobStore
from .cache import RedisBlobStore, RedisStoreConfig

logger = logging.getLogger(__name__)


class BlobStoreFactory:
    """Registry of blob store implementations keyed by backend."""

    _registry: Dict[StoreBackend, Type[BlobStore]] = {
        StoreBackend.FILE: FileBlobStore,
        StoreBackend.REDIS: RedisBlobStore,
    }

    @classmethod
    def register_store(cls, backend: StoreBackend, implementation: Type[BlobStore]) -> None:
        cls._registry[backend] = implementation
        logger.info(f"Registered blob store implementation: {backend.value}")

    @classmethod
    def create(cls, memory_config) -> BlobStore:
        """Create a store for a ``MemoryConfig``."""
        try:
            backend = StoreBackend(memory_config.backend)
        except ValueError:
            raise DatabaseError(f"Unsupported memory backend: {memory_config.backend}")

        if backend == StoreBackend.REDIS:
            store = RedisBlobStore(RedisStoreConfig(url=memory_config.redis_url))
        else:
            store = cls._registry[backend](memory_config.persistence_path)

        logger.info(f"Created {backend.value} blob store")
        return store


def create_blob_store(memory_config) -> Optional[BlobStore]:
    """Return a blob store when persistence is enabled, else None."""
    if not memory_config.persistence_enabled:
        return None
    return BlobStoreFactory.create(memory_config)
