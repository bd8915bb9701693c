"""Per-key async mutual exclusion.

KeyedLock serializes coroutines that share a key (e.g. one user's
progress profile) while letting different keys run concurrently.
Locks are reference-counted and dropped once no holder or waiter
remains, so the registry does not grow with every key ever seen.

Single-process only; cross-process writers are handled by the
optimistic version check in the progress repository.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLock:
    """Usage::

        locks = KeyedLock()
        async with locks.hold("user-1"):
            ...
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._guard = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        async with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            async with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    self._entries.pop(key, None)

    @property
    def active_keys(self) -> list[str]:
        """Keys currently held or awaited."""
        return list(self._entries.keys())
