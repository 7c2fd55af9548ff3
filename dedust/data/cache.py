"""Short-TTL pool state cache in front of a pool snapshot provider."""

import asyncio
import time
from collections.abc import Callable

import structlog

from ..core.interfaces import PoolSnapshotProvider
from ..core.types import Asset, PoolSnapshot, PoolVariant, canonical_pair

logger = structlog.get_logger(__name__)

PoolKey = tuple[Asset, Asset, PoolVariant]


class PoolStateCache:
    """Async TTL cache of pool snapshots keyed by (asset_x, asset_y, variant).

    "No pool deployed" results are cached like snapshots. Provider errors are
    never cached. Concurrent misses on the same key share one fetch. The cache
    is itself a ``PoolSnapshotProvider``, so consumers need not know about it.
    """

    def __init__(
        self,
        provider: PoolSnapshotProvider,
        ttl_seconds: float = 30.0,
        sweep_interval_seconds: float = 60.0,
        maxsize: int = 1000,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        """Initialize pool state cache.

        Args:
            provider: Pool snapshot provider consulted on a miss
            ttl_seconds: Time to live of an entry in seconds
            sweep_interval_seconds: Interval of the background eviction sweep
            maxsize: Maximum number of cached entries
            now_fn: Optional function to get current timestamp (for testing)
        """
        self.provider = provider
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.maxsize = maxsize
        self._now_fn = now_fn or time.time

        self._entries: dict[PoolKey, tuple[PoolSnapshot | None, float]] = {}
        self._inflight: dict[PoolKey, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self._sweeper: asyncio.Task | None = None

    @staticmethod
    def _key(asset_a: Asset, asset_b: Asset, variant: PoolVariant) -> PoolKey:
        asset_x, asset_y = canonical_pair(asset_a, asset_b)
        return asset_x, asset_y, variant

    def _is_fresh(self, fetched_at: float) -> bool:
        return self._now_fn() - fetched_at <= self.ttl_seconds

    async def get_pool_snapshot(
        self, asset_a: Asset, asset_b: Asset, variant: PoolVariant
    ) -> PoolSnapshot | None:
        """Return a cached snapshot or fetch it from the provider.

        Raises:
            ProviderError: If the provider fetch fails
        """
        key = self._key(asset_a, asset_b, variant)

        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                snapshot, fetched_at = entry
                if self._is_fresh(fetched_at):
                    logger.debug(
                        "Pool cache hit",
                        asset_x=str(key[0]),
                        asset_y=str(key[1]),
                        variant=variant.value,
                    )
                    return snapshot
                del self._entries[key]

            fetch = self._inflight.get(key)
            if fetch is None:
                fetch = asyncio.ensure_future(self._fetch(key))
                self._inflight[key] = fetch

        # shield: one caller timing out must not cancel the shared fetch
        return await asyncio.shield(fetch)

    async def _fetch(self, key: PoolKey) -> PoolSnapshot | None:
        asset_x, asset_y, variant = key
        task = asyncio.current_task()
        try:
            snapshot = await self.provider.get_pool_snapshot(asset_x, asset_y, variant)
        except Exception:
            async with self._lock:
                if self._inflight.get(key) is task:
                    del self._inflight[key]
            raise

        async with self._lock:
            # invalidated while in flight: serve waiters, cache nothing
            if self._inflight.get(key) is not task:
                return snapshot
            del self._inflight[key]
            if key not in self._entries and len(self._entries) >= self.maxsize:
                oldest_key = next(iter(self._entries))
                del self._entries[oldest_key]
            self._entries[key] = (snapshot, self._now_fn())

        logger.debug(
            "Pool state fetched",
            asset_x=str(asset_x),
            asset_y=str(asset_y),
            variant=variant.value,
            found=snapshot is not None,
        )
        return snapshot

    async def invalidate(
        self, asset_a: Asset, asset_b: Asset, variant: PoolVariant
    ) -> None:
        """Drop a pool's entry; a read already in flight will not repopulate it."""
        key = self._key(asset_a, asset_b, variant)
        async with self._lock:
            self._entries.pop(key, None)
            self._inflight.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            self._inflight.clear()
        logger.debug("Pool cache cleared")

    async def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        async with self._lock:
            expired = [
                key
                for key, (_, fetched_at) in self._entries.items()
                if not self._is_fresh(fetched_at)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Cleaned expired pool cache entries", count=len(expired))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            await self.sweep()

    def start(self) -> None:
        """Start the background sweep task."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
            logger.info(
                "Pool cache sweeper started",
                ttl_seconds=self.ttl_seconds,
                sweep_interval_seconds=self.sweep_interval_seconds,
            )

    async def stop(self) -> None:
        """Cancel the background sweep task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("Pool cache sweeper stopped")

    def __len__(self) -> int:
        return len(self._entries)
