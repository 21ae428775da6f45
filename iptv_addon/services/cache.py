"""
In-process cache for catalog snapshots, remote directories and stream checks.
Provides TTL-based expiry and single-flight population per key.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# Well-known keys
CATALOG_KEY = "catalog"
REMOTE_CHANNELS_KEY = "remote:channels"
REMOTE_STREAMS_KEY = "remote:streams"
VERIFY_PREFIX = "verify:"


def verify_key(url: str) -> str:
    return f"{VERIFY_PREFIX}{url}"


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: Optional[float]  # None = never expires


class CacheStore:
    """
    Key-value store shared by all components.

    Every write replaces the whole value for a key, so a reader sees either
    the previous value or the next one. ``populate`` runs at most one factory
    per key at a time; other callers for the same key wait for its result.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        """Get cached value if not expired."""
        entry = self._live_entry(key)
        return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def set(self, key: str, value: Any, ttl: Optional[float] = None):
        """Set cached value. A ttl of None or 0 means no automatic expiry."""
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def invalidate(self, key: str):
        self._entries.pop(key, None)

    def clear(self):
        self._entries.clear()

    def is_populating(self, key: str) -> bool:
        return key in self._inflight

    async def populate(
        self,
        key: str,
        ttl: Optional[float],
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for ``key``, building it with ``factory`` on a miss.

        Concurrent callers for the same key share one factory invocation. The
        value is stored only once the factory has finished; if it raises,
        nothing is stored and every waiter receives the exception.
        """
        entry = self._live_entry(key)
        if entry is not None:
            return entry.value

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug(f"Waiting for in-flight population of {key}")
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unobserved failure is not logged by asyncio
            future.exception()
            raise
        else:
            self.set(key, value, ttl)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    def stats(self) -> dict:
        """Get cache statistics."""
        live = [key for key in list(self._entries) if self._live_entry(key) is not None]
        return {
            "entries": len(live),
            "verifications": sum(1 for key in live if key.startswith(VERIFY_PREFIX)),
            "inflight": len(self._inflight),
        }
