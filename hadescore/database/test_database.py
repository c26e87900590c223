"""
Unit Tests for Database Module
==============================

Test suite for the memory blob stores:
- File store reads, writes, deletes and atomic replacement
- Redis store against a mocked client
- Factory backend selection
"""

from unittest.mock import AsyncMock, patch
from types import SimpleNamespace

import pytest
import redis.asyncio as redis

from hadescore.database.base import DatabaseError, MemoryPersistenceError, StoreBackend
from hadescore.database.cache import RedisBlobStore, RedisStoreConfig
from hadescore.database.factory import BlobStoreFactory, create_blob_store
from hadescore.database.file_store import FileBlobStore


def memory_config(**overrides):
    values = {
        'persistence_enabled': True,
        'persistence_path': './data',
        'backend': 'file',
        'redis_url': 'redis://localhost:6379/0',
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestFileBlobStore:
    """Test the JSON file backend."""

    @pytest.fixture
    def store(self, tmp_path):
        return FileBlobStore(tmp_path / "blobs")

    @pytest.mark.asyncio
    async def test_write_read_delete(self, store):
        assert await store.read("memory") is None

        await store.write("memory", '{"longTerm": {}}')
        assert await store.read("memory") == '{"longTerm": {}}'

        await store.write("memory", '{"longTerm": {"a": 1}}')
        assert await store.read("memory") == '{"longTerm": {"a": 1}}'

        assert await store.delete("memory") is True
        assert await store.delete("memory") is False
        assert await store.read("memory") is None

    def test_keys_are_sanitized(self, store):
        path = store.path_for("../memory/session 1")
        assert path.parent == store.directory
        assert path.name == ".._memory_session_1.json"

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_previous_blob(self, store):
        await store.write("memory", "old")

        with patch("hadescore.database.file_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(MemoryPersistenceError) as exc_info:
                await store.write("memory", "new")

        assert isinstance(exc_info.value.original_error, OSError)
        assert await store.read("memory") == "old"
        assert [p.name for p in store.directory.iterdir()] == ["memory.json"]

    @pytest.mark.asyncio
    async def test_undecodable_blob_is_wrapped(self, store):
        store.directory.mkdir()
        store.path_for("memory").write_bytes(b"\xff\xfe\xfa")

        with pytest.raises(MemoryPersistenceError) as exc_info:
            await store.read("memory")
        assert isinstance(exc_info.value.original_error, UnicodeDecodeError)

    @pytest.mark.asyncio
    async def test_health_check(self, store):
        assert await store.health_check() == {"backend": "file", "status": "healthy"}


class TestRedisBlobStore:
    """Test the Redis backend with a mocked client."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def store(self, client):
        return RedisBlobStore(RedisStoreConfig(key_prefix="test:", ttl=60), client=client)

    @pytest.mark.asyncio
    async def test_write_uses_prefix_and_ttl(self, store, client):
        await store.write("memory", "{}")
        client.set.assert_awaited_once_with("test:memory", "{}", ex=60)
        assert store.get_metrics()['writes'] == 1

    @pytest.mark.asyncio
    async def test_read_decodes_bytes(self, store, client):
        client.get.return_value = b'{"a": 1}'
        assert await store.read("memory") == '{"a": 1}'
        client.get.assert_awaited_once_with("test:memory")

    @pytest.mark.asyncio
    async def test_undecodable_bytes_are_wrapped(self, store, client):
        client.get.return_value = b"\xff\xfe\xfa"

        with pytest.raises(MemoryPersistenceError):
            await store.read("memory")
        assert store.get_metrics()['errors'] == 1

    @pytest.mark.asyncio
    async def test_delete(self, store, client):
        client.delete.return_value = 1
        assert await store.delete("memory") is True
        client.delete.return_value = 0
        assert await store.delete("memory") is False

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, store, client):
        client.set.side_effect = redis.ConnectionError("refused")

        with pytest.raises(MemoryPersistenceError):
            await store.write("memory", "{}")
        assert store.get_metrics()['errors'] == 1

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self, store, client):
        client.ping.side_effect = redis.ConnectionError("refused")
        health = await store.health_check()
        assert health['status'] == "unhealthy"

    @pytest.mark.asyncio
    async def test_close_releases_client(self, store, client):
        await store.close()
        client.aclose.assert_awaited_once()
        assert store._client is None


class TestBlobStoreFactory:
    """Test backend selection from memory settings."""

    def test_disabled_persistence_returns_none(self):
        assert create_blob_store(memory_config(persistence_enabled=False)) is None

    def test_file_backend(self, tmp_path):
        store = create_blob_store(memory_config(persistence_path=str(tmp_path)))
        assert isinstance(store, FileBlobStore)
        assert store.directory == tmp_path

    def test_redis_backend(self):
        store = create_blob_store(memory_config(backend='redis', redis_url='redis://cache:6379/2'))
        assert isinstance(store, RedisBlobStore)
        assert store.backend == StoreBackend.REDIS
        assert store.config.url == 'redis://cache:6379/2'

    def test_unknown_backend(self):
        with pytest.raises(DatabaseError):
            BlobStoreFactory.create(memory_config(backend='sqlite'))
