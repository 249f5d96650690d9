"""
Ranking cache

A process-local, time-bounded cache of computed per-sport leaderboards.
One instance is constructed at startup and handed to the services that read
or invalidate it.

Reads share a reader/writer lock; inserts, evictions and invalidations take it
exclusively. Nothing awaits I/O while holding the lock. A background task
sweeps expired entries every ``cleanup_interval_seconds`` so memory stays
bounded even when no mutations arrive.
"""

import asyncio
import time
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from rankbot.config import Config
from rankbot.database.models import Sport
from rankbot.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 300
    cleanup_interval_seconds: float = 60
    max_entries: int = 100
    
    def __post_init__(self):
        if self.ttl_seconds <= 0 or self.cleanup_interval_seconds <= 0:
            raise ValueError("Cache TTL and cleanup interval must be positive")
        if self.max_entries <= 0:
            raise ValueError("Cache max_entries must be positive")
    
    @classmethod
    def from_config(cls) -> 'CacheConfig':
        return cls(
            ttl_seconds=Config.RANKING_CACHE_TTL,
            cleanup_interval_seconds=Config.RANKING_CACHE_CLEANUP_INTERVAL,
            max_entries=Config.RANKING_CACHE_MAX_ENTRIES,
        )


@dataclass(frozen=True)
class CacheStats:
    entries: int
    max_entries: int
    hits: int
    misses: int
    evictions: int
    invalidations: int
    running: bool
    
    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total else 0.0


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float
    expires_at: float


class AsyncReadWriteLock:
    """Many concurrent readers or one writer. Waiting writers block new readers."""
    
    def __init__(self):
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
    
    @asynccontextmanager
    async def read(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._waiting_writers == 0)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()
    
    @asynccontextmanager
    async def write(self):
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                # Readers parked behind a cancelled writer must re-check
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class RankingCache:
    """TTL + capacity bounded cache of leaderboards keyed by sport"""
    
    def __init__(self, config: Optional[CacheConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or CacheConfig.from_config()
        self._clock = clock
        self._entries: Dict[Sport, _CacheEntry] = {}
        # Bumped on every invalidation so a recompute that raced with a
        # mutation cannot store its stale result
        self._generations: Dict[Sport, int] = {}
        self._lock = AsyncReadWriteLock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._stopped = False
        
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0
    
    @staticmethod
    def _key(sport) -> Sport:
        return Sport.parse(sport)
    
    async def get(self, sport) -> Optional[Any]:
        """Cached value for a sport, or None if missing or expired"""
        key = self._key(sport)
        async with self._lock.read():
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or entry.expires_at <= now:
                self._misses += 1
                logger.debug(f"Ranking cache miss for {key.value}")
                return None
            self._hits += 1
            logger.debug(f"Ranking cache hit for {key.value}")
            return entry.value
    
    async def generation(self, sport) -> int:
        key = self._key(sport)
        async with self._lock.read():
            return self._generations.get(key, 0)
    
    async def set(self, sport, value: Any, expected_generation: Optional[int] = None) -> bool:
        """
        Store a value for a sport.
        
        When the cache is full, expired entries are dropped first, then the
        oldest ones. If ``expected_generation`` is given and the sport was
        invalidated since it was read, the value is discarded.
        
        Returns:
            True if the value was stored
        """
        key = self._key(sport)
        async with self._lock.write():
            if expected_generation is not None and self._generations.get(key, 0) != expected_generation:
                logger.debug(f"Discarding stale ranking for {key.value}, invalidated during recompute")
                return False
            
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.config.max_entries:
                self._evict_locked(now)
            
            self._entries[key] = _CacheEntry(
                value=value,
                stored_at=now,
                expires_at=now + self.config.ttl_seconds
            )
            return True
    
    def _evict_locked(self, now: float):
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        
        overflow = len(self._entries) - self.config.max_entries + 1
        if overflow > 0:
            oldest = sorted(self._entries, key=lambda k: self._entries[k].stored_at)[:overflow]
            for key in oldest:
                del self._entries[key]
            expired.extend(oldest)
        
        self._evictions += len(expired)
        if expired:
            logger.debug(f"Evicted {len(expired)} ranking cache entries")
    
    async def invalidate(self, sport) -> bool:
        """Drop one sport's entry. Returns True if an entry was present."""
        key = self._key(sport)
        async with self._lock.write():
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._entries.pop(key, None) is not None
            self._invalidations += 1
        logger.debug(f"Invalidated ranking cache for {key.value} (present={removed})")
        return removed
    
    async def clear(self) -> int:
        """Drop every entry. Returns how many were removed."""
        async with self._lock.write():
            for sport in Sport:
                self._generations[sport] = self._generations.get(sport, 0) + 1
            count = len(self._entries)
            self._entries.clear()
            self._invalidations += 1
        logger.info(f"Cleared ranking cache ({count} entries)")
        return count
    
    async def sweep_expired(self) -> int:
        """Remove entries past their TTL. Returns how many were removed."""
        async with self._lock.write():
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired ranking cache entries")
        return len(expired)
    
    async def stats(self) -> CacheStats:
        async with self._lock.read():
            return CacheStats(
                entries=len(self._entries),
                max_entries=self.config.max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                invalidations=self._invalidations,
                running=self.is_running,
            )
    
    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------
    
    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()
    
    @property
    def is_stopped(self) -> bool:
        return self._stopped
    
    def start(self):
        """Schedule the periodic sweep on the running event loop"""
        if self._stopped:
            raise RuntimeError("RankingCache has been stopped and cannot be restarted")
        if self.is_running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="ranking-cache-sweep")
        logger.info(f"Ranking cache sweep started (every {self.config.cleanup_interval_seconds}s)")
    
    async def stop(self):
        """Cancel the sweep task. Only the first call does anything."""
        if self._stopped:
            return
        self._stopped = True
        
        task, self._sweep_task = self._sweep_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        logger.info("Ranking cache sweep stopped")
    
    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.error(f"Ranking cache sweep failed: {e}", exc_info=True)
