"""
Persistence Module
==================

Key/value blob stores used to persist conversation memory.

Quick Start:
    from hadescore.database import FileBlobStore

    store = FileBlobStore("./data")
    await store.write("memory", '{"longTerm": {}, "topicMemories": []}')
    blob = await store.read("memory")
"""

from .base import BlobStore, StoreBackend, DatabaseError, MemoryPersistenceError
from .file_store import FileBlobStore
from .cache import RedisBlobStore, RedisStoreConfig
from .factory import BlobStoreFactory, create_blob_store

__all__ = [
    'BlobStore',
    'StoreBackend',
    'DatabaseError',
    'MemoryPersistenceError',
    'FileBlobStore',
    'RedisBlobStore',
    'RedisStoreConfig',
    'BlobStoreFactory',
    'create_blob_store',
]
