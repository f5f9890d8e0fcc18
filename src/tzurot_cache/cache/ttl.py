"""In-process TTL cache shared by the resolvers.

Entries carry an absolute expiry timestamp. Expiry is enforced lazily on
read and, independently of traffic, by a periodic background sweep that
removes entries nobody reads any more (e.g. users who went inactive).
The sweep only reclaims memory; reads never depend on it having run.

All state is owned by one event loop thread, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

from tzurot_cache.observability.metrics import record_cache_evictions

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value and the monotonic time at which it stops being valid."""

    result: T
    expires_at: float


class TtlCache(Generic[T]):
    """Map from key to value with per-entry expiry.

    Entries are only ever inserted, replaced wholesale, or deleted.

    Example:
        cache: TtlCache[Resolved] = TtlCache("config-cascade", ttl=10.0)
        cache.set("123:none:no-ch", resolved)
        cache.get("123:none:no-ch")  # resolved, until 10s have passed
    """

    def __init__(
        self,
        name: str,
        ttl: float,
        *,
        cleanup_interval: float = 60.0,
        enable_cleanup: bool = True,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._cleanup_enabled = enable_cleanup
        self._cleanup_task: asyncio.Task[None] | None = None

        if enable_cleanup:
            self.ensure_cleanup()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> Iterator[str]:
        """Iterate over a snapshot of the stored keys, expired or not."""
        return iter(list(self._entries))

    def get(self, key: str) -> T | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.result

    def set(self, key: str, result: T) -> None:
        """Insert or replace an entry, expiring ``ttl`` seconds from now."""
        self._entries[key] = CacheEntry(result=result, expires_at=self._clock() + self.ttl)

    def delete(self, key: str) -> bool:
        """Delete a single entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[str], bool]) -> int:
        """Delete every entry whose key matches ``predicate``.

        Returns the number of entries removed.
        """
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        now = self._clock()
        removed = self.delete_where(lambda key: self._entries[key].expires_at <= now)
        if removed:
            record_cache_evictions(self.name, removed)
            logger.debug(
                "Cleaned up expired cache entries",
                extra={"cache": self.name, "removed_count": removed, "remaining": len(self)},
            )
        return removed

    # -------------------------------------------------------------------------
    # Background sweep
    # -------------------------------------------------------------------------

    @property
    def cleanup_running(self) -> bool:
        """True while the background sweep task is scheduled."""
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def ensure_cleanup(self) -> None:
        """Start the background sweep if enabled and not yet running.

        Needs a running event loop. When called outside one (e.g. a resolver
        built at import time), this is a no-op and the next call from inside
        the loop starts the sweep.
        """
        if not self._cleanup_enabled or self.cleanup_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._cleanup_task = loop.create_task(self._cleanup_loop())

    def stop_cleanup(self) -> None:
        """Stop the background sweep (call on shutdown). Idempotent."""
        self._cleanup_enabled = False
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        """Sweep expired entries every ``cleanup_interval`` seconds."""
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.sweep()
