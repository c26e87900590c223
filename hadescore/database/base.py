"""
Base classes and interfaces for the persistence layer.

Memory persistence is modelled as a key/value blob store: a whole JSON
document is read or written per key, never partially updated.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for persistence operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None, **kwargs):
        super().__init__(message)
        self.original_error = original_error
        self.metadata = kwargs


class MemoryPersistenceError(DatabaseError):
    """Raised when a memory blob cannot be written or read back."""
    pass


class StoreBackend(Enum):
    """Supported blob store backends."""
    FILE = "file"
    REDIS = "redis"


class BlobStore(ABC):
    """
    Abstract key/value store for whole-document blobs.

    Implementations must make ``write`` atomic: a concurrent ``read``
    sees either the previous blob or the new one, never a mix.
    """

    backend: StoreBackend

    @abstractmethod
    async def read(self, key: str) -> Optional[str]:
        """Return the blob stored under ``key`` or None if absent."""
        pass

    @abstractmethod
    async def write(self, key: str, blob: str) -> None:
        """Replace the blob stored under ``key``."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete ``key``; returns True if something was removed."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        return None

    async def health_check(self) -> Dict[str, Any]:
        """Report store health."""
        return {"backend": self.backend.value, "status": "healthy"}
