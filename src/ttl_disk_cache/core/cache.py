"""
TTL disk cache holding one JSON value per named store.
Why: memoize slow producers across process restarts without a cache server.

Layout on disk:
    <cache_dir>/<name>/<ms-timestamp>   JSON value written at that time
    <cache_dir>/<name>/.lock            present while a writer holds the store
"""

import asyncio
import inspect
import json
import random
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

from ..config.settings import settings
from .errors import CacheStoreError, LockTimeoutError
from .filesystem import DirEntry, FileSystem, LocalFileSystem
from .logging import get_store_logger
from .metrics import metrics

T = TypeVar("T")

LOCK_FILENAME = ".lock"

_UNSET: Any = object()


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    """A cache hit. Wrapped so a cached None is not mistaken for a miss."""

    value: T


def is_entry_name(name: str) -> bool:
    return name.isascii() and name.isdigit()


class CacheStore(Generic[T]):
    """One named cache slot on disk.

    Holds no data in memory: every call re-reads the store directory, so any
    number of instances (or processes) may share the same name.

    Args:
        name: Store name, used as the directory name under ``cache_dir``
        max_age: Seconds an entry stays fresh
        silent: Suppress all diagnostics, failures included
        fs: Filesystem backend (local disk by default)
        cache_dir: Root holding all stores (``settings.cache.cache_dir`` by default)
        clock: Returns seconds since the epoch; entry names are its value in ms
        lock_timeout: Seconds before a held lock is considered abandoned, or
            None to wait forever
        poll_interval: Upper bound of the random delay between lock checks
    """

    def __init__(
        self,
        name: str,
        max_age: float,
        silent: bool = False,
        *,
        fs: Optional[FileSystem] = None,
        cache_dir: Union[str, Path, None] = None,
        clock: Callable[[], float] = time.time,
        lock_timeout: Optional[float] = _UNSET,
        poll_interval: Optional[float] = None,
    ) -> None:
        self.name = name
        self.max_age = max_age
        self.silent = silent
        self.fs = fs or LocalFileSystem()
        self.clock = clock
        self.lock_timeout = settings.cache.lock_timeout if lock_timeout is _UNSET else lock_timeout
        self.poll_interval = settings.cache.poll_interval if poll_interval is None else poll_interval
        root = Path(cache_dir) if cache_dir is not None else settings.cache.cache_dir
        self.store_directory = root / name
        self.lock_path = self.store_directory / LOCK_FILENAME
        self._log = get_store_logger(__name__, name, silent)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def list_entries(self) -> List[DirEntry]:
        """Return the store's entries, newest first.

        Creates the store directory if needed. Anything whose name is not an
        unsigned integer (the lockfile included) is ignored.
        """
        await self.fs.makedirs(self.store_directory)
        children = await self.fs.list_dir(self.store_directory)
        entries = [e for e in children if is_entry_name(e.name)]
        entries.sort(key=lambda e: int(e.name), reverse=True)
        return entries

    async def find_fresh_entry(self) -> Optional[DirEntry]:
        """Return the newest entry if it is younger than max_age, else None."""
        self._log.info("Reading most recent cache value.")
        entries = await self.list_entries()
        if not entries:
            self._log.info("No caches found.")
            return None

        newest = entries[0]
        age = (self._now_ms() - int(newest.name)) / 1000
        self._log.info(f"Cache found. Age: {age} sec")
        if age < self.max_age:
            return newest
        return None

    async def read(self) -> Optional[CachedValue[T]]:
        entry = await self.find_fresh_entry()
        if entry is None:
            return None
        self._log.info("Valid cache found.")
        raw = await self.fs.read_text(entry.path)
        return CachedValue(json.loads(raw))

    async def _unlink_entry(self, entry: DirEntry) -> None:
        try:
            await self.fs.unlink(entry.path)
        except FileNotFoundError:
            pass  # removed by another caller

    async def prune(self, delete_all: bool) -> None:
        """Delete all entries but the newest, or every entry with delete_all."""
        self._log.info(f"Deleting {'all' if delete_all else 'old'} caches.")
        entries = await self.list_entries()
        doomed = entries if delete_all else entries[1:]
        results = await asyncio.gather(
            *(self._unlink_entry(e) for e in doomed), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def clear(self) -> None:
        await self.prune(delete_all=True)

    async def acquire_lock(self) -> Optional[str]:
        """Create the lockfile and return its token, or None if another writer
        already holds it.

        The token is written into the lockfile, so release_lock never removes
        a lock that was broken and re-taken by someone else.
        """
        token = uuid.uuid4().hex
        acquired = await self.fs.create_exclusive(self.lock_path, token)
        if not acquired:
            return None
        self._log.info("Locking cache store.")
        return token

    async def release_lock(self, token: str) -> None:
        try:
            current = await self.fs.read_text(self.lock_path)
        except FileNotFoundError:
            self._log.warning("Lock was already removed.")
            return
        if current != token:
            self._log.warning("Lock is held by another writer, leaving it in place.")
            return
        self._log.info("Unlocking cache store.")
        try:
            await self.fs.unlink(self.lock_path)
        except FileNotFoundError:
            self._log.warning("Lock was already removed.")

    async def is_locked(self) -> bool:
        return await self.fs.exists(self.lock_path)

    async def lock_age(self) -> float:
        """Seconds since the lockfile was written, 0.0 if there is none."""
        try:
            written = await self.fs.mtime(self.lock_path)
        except FileNotFoundError:
            return 0.0
        return max(0.0, time.time() - written)

    async def await_unlock(self) -> None:
        """Return once the lockfile is gone.

        Checks are spaced by a random delay so waiters do not wake together.
        A lockfile older than lock_timeout is assumed to belong to an
        interrupted writer and is removed. Age is taken from the lockfile
        itself, so a lock that keeps changing hands is never broken.
        """
        if not await self.is_locked():
            return
        self._log.info("Waiting for unlock...")
        while await self.is_locked():
            if self.lock_timeout is not None:
                age = await self.lock_age()
                if age >= self.lock_timeout:
                    await self._break_stale_lock(age)
                    return
            await asyncio.sleep(random.uniform(0, self.poll_interval))

    async def _break_stale_lock(self, age: float) -> None:
        self._log.warning(f"Lock is {age:.1f}s old (timeout {self.lock_timeout}s), removing it.")
        try:
            await self.fs.unlink(self.lock_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise LockTimeoutError(f"Could not clear stale lock {self.lock_path}: {e}") from e

    async def write(self, value: T) -> CachedValue[T]:
        """Persist value as the store's only entry.

        If a fresh entry appeared while the value was being produced or while
        waiting for the lock, that entry wins and nothing is written. Older
        entries are pruned once the new one is on disk.
        """
        cached = await self.read()
        if cached is not None:
            self._log.info("Valid cache found while trying to write. Using that instead.")
            return cached

        serialized = json.dumps(value)

        token = None
        while token is None:
            await self.await_unlock()
            token = await self.acquire_lock()

        try:
            # another writer may have finished while we waited for the lock
            cached = await self.read()
            if cached is not None:
                self._log.info("Valid cache found after locking. Using that instead.")
                return cached
            self._log.info("Writing new cache value.")
            await self.fs.write_text(self.store_directory / str(self._now_ms()), serialized)
            await self.prune(delete_all=False)
        finally:
            await self.release_lock(token)
        return CachedValue(value)

    async def poll(self, producer: Callable[..., Any], *args: Any, **kwargs: Any) -> T:
        """Return the cached value, or produce, store and return a new one.

        The producer may be sync or async. Any failure (storage, decoding or
        the producer itself) wipes the store and is re-raised as
        CacheStoreError.
        """
        start = time.perf_counter()
        try:
            cached = await self.read()
            if cached is not None:
                metrics.record_hit()
                return cached.value

            metrics.record_miss()
            result = producer(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return (await self.write(result)).value
        except Exception as error:
            metrics.record_error()
            self._log.exception("Unrecoverable error. Files may be corrupted. Deleting all caches.")
            try:
                await self.prune(delete_all=True)
            except Exception:
                self._log.exception("Failed to delete caches.")
            raise CacheStoreError(f"Error: {error}") from error
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            metrics.record_latency(duration_ms)
            self._log.info(f"Finished in {duration_ms}ms")
