"""In-memory keyed store with per-key serialization.

All shared tables (access tokens, link policies) sit on top of ``KeyedStore``
so that the read-check-write sequences the protocol depends on (claim limit
enforcement, PIN failure counting, policy replacement) are serialized per key
in one place instead of at every call site.

Suitable for a single-process deployment only.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class KeyedStore(Generic[T]):
    """Dictionary-backed store exposing get/put/delete and ``mutate``."""

    def __init__(self, name: str = "store"):
        self.name = name
        self._data: Dict[str, T] = {}
        # Locks exist only while some task holds or waits on them.
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key``; use the ``*_unlocked`` accessors inside."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[key] - 1
            if remaining:
                self._lock_users[key] = remaining
            else:
                del self._lock_users[key]
                del self._locks[key]

    async def get(self, key: str) -> Optional[T]:
        return self._data.get(key)

    async def put(self, key: str, value: T) -> None:
        async with self.locked(key):
            self._data[key] = value

    async def delete(self, key: str) -> bool:
        async with self.locked(key):
            return self.delete_unlocked(key)

    def get_unlocked(self, key: str) -> Optional[T]:
        return self._data.get(key)

    def put_unlocked(self, key: str, value: T) -> None:
        self._data[key] = value

    def delete_unlocked(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def mutate(self, key: str, fn: Callable[[Optional[T]], Awaitable[Tuple[Optional[T], R]]]) -> R:
        """Atomically transform the value at ``key``.

        ``fn`` receives the current value (or None) and returns
        ``(new_value, result)``. A ``new_value`` of None deletes the key.
        Values are stored by reference, so ``fn`` should report rejections
        through ``result`` rather than raise after mutating its argument.
        """
        async with self.locked(key):
            current = self._data.get(key)
            new_value, result = await fn(current)
            if new_value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = new_value
            return result

    async def items(self) -> List[Tuple[str, T]]:
        return list(self._data.items())

    async def delete_where(self, predicate: Callable[[T], bool]) -> List[str]:
        """Delete every entry matching ``predicate``; returns removed keys."""
        removed: List[str] = []
        for key, value in list(self._data.items()):
            if not predicate(value):
                continue
            async with self.locked(key):
                current = self._data.get(key)
                if current is not None and predicate(current):
                    del self._data[key]
                    removed.append(key)
        if removed:
            logger.debug("%s: removed %d entries", self.name, len(removed))
        return removed

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


__all__ = ["KeyedStore"]
