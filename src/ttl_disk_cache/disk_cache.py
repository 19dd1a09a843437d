"""Public entry point: memoize a producer's result on disk for max_age seconds."""

from typing import Any, Mapping, Optional, Union

from .core.cache import CacheStore
from .core.filesystem import FileSystem
from .core.schemas import DiskCacheOptions


async def from_disk_cache(
    options: Union[DiskCacheOptions, Mapping[str, Any]],
    *args: Any,
    fs: Optional[FileSystem] = None,
) -> Any:
    """Return the cached value for options.name, refreshing it when stale.

    Args:
        options: name, poll (sync or async producer), max_age (seconds,
            default 3600) and silent
        *args: Passed to the producer as ``poll(*args)``
        fs: Filesystem backend, local disk by default

    Returns:
        The cached or freshly produced value

    Raises:
        pydantic.ValidationError: options are invalid
        CacheStoreError: the poll failed and the store was wiped
    """
    if not isinstance(options, DiskCacheOptions):
        options = DiskCacheOptions(**options)
    store: CacheStore[Any] = CacheStore(options.name, options.max_age, options.silent, fs=fs)
    return await store.poll(options.poll, *args)
