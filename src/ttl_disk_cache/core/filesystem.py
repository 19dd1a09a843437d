"""
Async filesystem backends for cache stores.
Why: stores keep all of their state on disk; swapping the backend lets tests
run against memory instead of real storage.
"""

import asyncio
import os
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePath
from typing import Callable, Dict, List, NamedTuple, Set, Union

PathLike = Union[str, PurePath]


class DirEntry(NamedTuple):
    name: str
    path: str


class FileSystem(ABC):
    """The operations a cache store needs from its storage."""

    @abstractmethod
    async def makedirs(self, path: PathLike) -> None:
        """Create a directory and its parents; no-op if it exists."""

    @abstractmethod
    async def list_dir(self, path: PathLike) -> List[DirEntry]:
        """List the direct children of a directory."""

    @abstractmethod
    async def read_text(self, path: PathLike) -> str:
        ...

    @abstractmethod
    async def write_text(self, path: PathLike, text: str) -> None:
        ...

    @abstractmethod
    async def create_exclusive(self, path: PathLike, text: str = "") -> bool:
        """Atomically create a file holding text.

        Returns:
            True if the file was created, False if it already existed
        """

    @abstractmethod
    async def mtime(self, path: PathLike) -> float:
        """Last modification time, in seconds since the epoch."""

    @abstractmethod
    async def unlink(self, path: PathLike) -> None:
        ...

    @abstractmethod
    async def exists(self, path: PathLike) -> bool:
        ...


def _create_exclusive(path: str, text: str, encoding: str) -> bool:
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w", encoding=encoding) as f:
        f.write(text)
    return True


def _write_atomic(path: str, text: str, encoding: str) -> None:
    # readers must never see a half-written entry
    directory, name = os.path.split(path)
    tmp = os.path.join(directory, f".{name}.tmp-{uuid.uuid4().hex}")
    try:
        with open(tmp, "x", encoding=encoding) as f:
            f.write(text)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


class LocalFileSystem(FileSystem):
    """Local disk, with blocking calls run in a worker thread."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    async def makedirs(self, path: PathLike) -> None:
        await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)

    async def list_dir(self, path: PathLike) -> List[DirEntry]:
        def _scan() -> List[DirEntry]:
            with os.scandir(path) as it:
                return [DirEntry(e.name, e.path) for e in it]

        return await asyncio.to_thread(_scan)

    async def read_text(self, path: PathLike) -> str:
        return await asyncio.to_thread(Path(path).read_text, encoding=self.encoding)

    async def write_text(self, path: PathLike, text: str) -> None:
        await asyncio.to_thread(_write_atomic, os.fspath(path), text, self.encoding)

    async def create_exclusive(self, path: PathLike, text: str = "") -> bool:
        return await asyncio.to_thread(_create_exclusive, os.fspath(path), text, self.encoding)

    async def mtime(self, path: PathLike) -> float:
        st = await asyncio.to_thread(os.stat, path)
        return st.st_mtime

    async def unlink(self, path: PathLike) -> None:
        await asyncio.to_thread(Path(path).unlink)

    async def exists(self, path: PathLike) -> bool:
        return await asyncio.to_thread(Path(path).exists)


class MemoryFileSystem(FileSystem):
    """Dict-backed filesystem for tests and throwaway caches.

    Raises the same OSError subclasses as the local backend so callers
    cannot tell the two apart.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self.files: Dict[str, str] = {}
        self.mtimes: Dict[str, float] = {}
        self.dirs: Set[str] = set()

    @staticmethod
    def _key(path: PathLike) -> str:
        return str(PurePath(path))

    def _require_parent(self, key: str) -> None:
        parent = str(PurePath(key).parent)
        if parent not in self.dirs:
            raise FileNotFoundError(f"No such directory: {parent}")

    async def makedirs(self, path: PathLike) -> None:
        p = PurePath(path)
        for d in (p, *p.parents):
            self.dirs.add(str(d))

    async def list_dir(self, path: PathLike) -> List[DirEntry]:
        key = self._key(path)
        if key not in self.dirs:
            raise FileNotFoundError(f"No such directory: {key}")
        children = [
            p for p in (*self.files, *self.dirs)
            if p != key and str(PurePath(p).parent) == key
        ]
        return [DirEntry(PurePath(p).name, p) for p in sorted(children)]

    async def read_text(self, path: PathLike) -> str:
        key = self._key(path)
        if key not in self.files:
            raise FileNotFoundError(f"No such file: {key}")
        return self.files[key]

    async def write_text(self, path: PathLike, text: str) -> None:
        key = self._key(path)
        self._require_parent(key)
        self.files[key] = text
        self.mtimes[key] = self.clock()

    async def create_exclusive(self, path: PathLike, text: str = "") -> bool:
        key = self._key(path)
        self._require_parent(key)
        if key in self.files:
            return False
        self.files[key] = text
        self.mtimes[key] = self.clock()
        return True

    async def mtime(self, path: PathLike) -> float:
        key = self._key(path)
        if key not in self.files:
            raise FileNotFoundError(f"No such file: {key}")
        return self.mtimes[key]

    async def unlink(self, path: PathLike) -> None:
        key = self._key(path)
        if key not in self.files:
            raise FileNotFoundError(f"No such file: {key}")
        del self.files[key]
        self.mtimes.pop(key, None)

    async def exists(self, path: PathLike) -> bool:
        key = self._key(path)
        return key in self.files or key in self.dirs
