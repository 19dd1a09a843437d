"""TTL disk cache: one JSON value per named store, refreshed when stale."""

from .core.cache import CachedValue, CacheStore
from .core.errors import CacheStoreError, LockTimeoutError
from .core.filesystem import DirEntry, FileSystem, LocalFileSystem, MemoryFileSystem
from .core.schemas import DiskCacheOptions
from .disk_cache import from_disk_cache

__all__ = [
    "CacheStore",
    "CachedValue",
    "CacheStoreError",
    "LockTimeoutError",
    "DirEntry",
    "FileSystem",
    "LocalFileSystem",
    "MemoryFileSystem",
    "DiskCacheOptions",
    "from_disk_cache",
]
