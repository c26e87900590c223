"""
File Blob Store
===============

Stores each blob as ``<directory>/<key>.json``. Writes go to a temporary
file in the same directory and are moved into place with ``os.replace``
so readers never observe a half-written document.
"""

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union
import logging

from .base import BlobStore, StoreBackend, MemoryPersistenceError

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r'[^A-Za-z0-9_.-]')


class FileBlobStore(BlobStore):
    """Blob store backed by JSON files in a local directory."""

    backend = StoreBackend.FILE

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        safe_key = _SAFE_KEY.sub('_', key) or "memory"
        return self.directory / f"{safe_key}.json"

    async def read(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(self._read_sync, path)
        except OSError as e:
            raise MemoryPersistenceError(f"Failed to read {path}: {e}", original_error=e, key=key)
        except UnicodeDecodeError as e:
            raise MemoryPersistenceError(f"{path} is not valid UTF-8: {e}", original_error=e, key=key)

    async def write(self, key: str, blob: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(self._write_sync, path, blob)
        except OSError as e:
            raise MemoryPersistenceError(f"Failed to write {path}: {e}", original_error=e, key=key)

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise MemoryPersistenceError(f"Failed to delete {path}: {e}", original_error=e, key=key)

    @staticmethod
    def _read_sync(path: Path) -> Optional[str]:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _write_sync(path: Path, blob: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
