# shopreco/utils/locks.py
from __future__ import annotations
from typing import Dict
import asyncio
from contextlib import asynccontextmanager


class KeyedLock:
    """
    One asyncio.Lock per key, created on first use.
    Serializes writers of the same key; different keys never wait on each other.
    """
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        # setdefault is atomic within the event loop (no await in between)
        return self._locks.setdefault(key, asyncio.Lock())

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._lock_for(key)
        async with lock:
            yield

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
