"""
In-memory TTL cache for gateway reads.

Entries expire passively: a read past ``created_at + ttl`` treats the entry as
absent and drops it. A background sweep task can be started to reclaim entries
nobody reads again. Concurrent ``get_or_fetch`` calls for the same key share one
in-flight fetch.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import Settings


logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl

    def is_live(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class CacheTTL:
    """Per-category lifetimes in seconds."""

    balance: float = 15.0
    pool: float = 10.0
    quote: float = 5.0
    token_metadata: float = 300.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheTTL":
        return cls(
            balance=settings.balance_cache_ttl_seconds,
            pool=settings.pool_cache_ttl_seconds,
            quote=settings.quote_cache_ttl_seconds,
            token_metadata=settings.metadata_cache_ttl_seconds,
        )


class CacheKeys:
    """Key builders. Every key is namespaced by the account, contract or pool it describes."""

    @staticmethod
    def native_balance(address: str) -> str:
        return f"xlm_balance:{address}"

    @staticmethod
    def token_balance(token_id: str, address: str) -> str:
        return f"token_balance:{token_id}:{address}"

    @staticmethod
    def pool_reserves(pool_id: str) -> str:
        return f"pool_reserves:{pool_id}"

    @staticmethod
    def pool_shares(pool_id: str, address: str) -> str:
        return f"pool_shares:{pool_id}:{address}"

    @staticmethod
    def swap_quote(pool_id: str, direction: str, amount_in: int) -> str:
        return f"swap_quote:{pool_id}:{direction}:{amount_in}"

    @staticmethod
    def token_metadata(token_id: str) -> str:
        return f"token_meta:{token_id}"

    @staticmethod
    def pool_scopes(pool_id: str) -> List[str]:
        """Prefixes covering everything derived from a pool's reserves."""
        return [
            f"pool_reserves:{pool_id}",
            f"pool_shares:{pool_id}:",
            f"swap_quote:{pool_id}:",
        ]


class TTLCache:
    """Key-value store with per-entry time-to-live."""

    def __init__(
        self,
        default_ttl: float = 30.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._cache: Dict[str, CacheEntry] = {}
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _lookup(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return _MISSING
        if not entry.is_live(self._clock()):
            del self._cache[key]
            return _MISSING
        return entry.value

    def get(self, key: str) -> Optional[Any]:
        value = self._lookup(key)
        return None if value is _MISSING else value

    def has(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = CacheEntry(value=value, created_at=self._clock(), ttl=ttl)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)
        # A fetch already running for this key must not repopulate it
        self._inflight.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``. Returns the number of entries removed."""
        doomed = [key for key in self._cache if key.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        for key in [k for k in self._inflight if k.startswith(prefix)]:
            del self._inflight[key]
        if doomed:
            logger.debug("cache invalidated %d keys with prefix %s", len(doomed), prefix)
        return len(doomed)

    def clear(self) -> None:
        self._cache.clear()
        self._inflight.clear()

    def ttl_remaining(self, key: str) -> float:
        """Seconds until ``key`` expires, 0 when absent or expired."""
        entry = self._cache.get(key)
        if entry is None:
            return 0.0
        return max(0.0, entry.expires_at - self._clock())

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        keys = [key for key, entry in self._cache.items() if entry.is_live(now)]
        return {"size": len(keys), "keys": keys}

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._cache.items() if not entry.is_live(now)]
        for key in expired:
            del self._cache[key]
        return len(expired)

    async def get_or_fetch(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value for ``key`` or run ``producer`` and cache its result.

        Callers arriving while a fetch for ``key`` is running wait on that fetch
        instead of starting another. A producer failure reaches every waiter and
        nothing is cached.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await producer()
        except asyncio.CancelledError:
            self._release(key, future)
            future.cancel()
            raise
        except Exception as exc:
            self._release(key, future)
            future.set_exception(exc)
            # Mark retrieved so an unawaited future does not log a warning
            future.exception()
            raise

        if self._release(key, future):
            self.set(key, value, ttl)
        future.set_result(value)
        return value

    def _release(self, key: str, future: "asyncio.Future[Any]") -> bool:
        """Drop ``future`` from the in-flight table. False when it was invalidated meanwhile."""
        if self._inflight.get(key) is future:
            del self._inflight[key]
            return True
        return False

    def start_sweeper(self, interval: float) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def _sweep_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            removed = self.sweep_expired()
            if removed:
                logger.debug("cache sweep removed %d expired entries", removed)

    async def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
