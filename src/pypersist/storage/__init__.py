"""Storage backends and the adapter that normalizes them."""

from pypersist.storage.adapter import StorageAdapter, StorageBackend, make_adapter
from pypersist.storage.file import FileStorage
from pypersist.storage.memory import MemoryStorage

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "StorageAdapter",
    "StorageBackend",
    "make_adapter",
]
