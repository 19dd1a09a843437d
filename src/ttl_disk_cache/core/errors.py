"""Exceptions raised by cache stores."""


class CacheStoreError(Exception):
    """A poll failed; the store has been wiped."""


class LockTimeoutError(CacheStoreError):
    """A stale lockfile could not be cleared after the lock timeout."""
