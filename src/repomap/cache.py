"""Session-scoped artifact cache.

A plain mapping from a stable key (task, node path, optional question) to
whatever the LLM produced for it.  Nothing is evicted; the owning session
calls :meth:`SessionCache.clear` when it ends.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Hashable
from typing import Any


class SessionCache:
    """In-memory cache owned by a single session."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._hits = 0
        self._misses = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def discard(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    async def get_or_create(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[Any]],
        *,
        store_if: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Return the cached value for *key*, awaiting *factory* on a miss.

        *store_if* filters which results are worth keeping (e.g. skip
        placeholder answers so a later call can try again).
        """
        if key in self._entries:
            self._hits += 1
            return self._entries[key]
        self._misses += 1
        value = await factory()
        if store_if is None or store_if(value):
            self._entries[key] = value
        return value

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {"entries": len(self._entries), "hits": self._hits, "misses": self._misses}
