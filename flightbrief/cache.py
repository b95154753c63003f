"""
Cache-aside layer for flight lookups.

Provides a time-aware cache in front of the FlightAware client, enabling:
- Immediate answers for repeated lookups within the TTL
- At most one provider call per identifier when many requests miss at once
- Quota gating before any provider call
- An event for the summarizer after every fresh fetch

Design rationale:
Provider calls are billed and quota-limited, and flight status changes on
the scale of minutes, so a 5 minute TTL keeps results fresh enough while
cutting provider traffic. Concurrent misses for the same flight share
one in-flight call (single-flight) instead of each spending quota.

Errors are never cached: the next request after a failure tries again.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from flightbrief.errors import RateLimited
from flightbrief.events import EventChannel, PendingEvent
from flightbrief.ingestion.flightaware_client import FlightAwareClient
from flightbrief.models.tracked_record import TrackedRecord
from flightbrief.quota import QuotaLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Cached record with its insertion time and TTL."""
    record: TrackedRecord
    inserted_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class CacheStore(ABC):
    """Key/value store for cache entries."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Entry for key, or None if absent or expired."""

    @abstractmethod
    def put(self, key: str, record: TrackedRecord, ttl: float) -> CacheEntry:
        """Store (replace) the entry for key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class MemoryCacheStore(CacheStore):
    """
    Thread-safe in-memory cache store.

    Expired entries are removed lazily when read. When the store grows past
    max_entries the oldest 10% are evicted.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry

    def put(self, key: str, record: TrackedRecord, ttl: float) -> CacheEntry:
        entry = CacheEntry(record=record, inserted_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry
            if len(self._entries) > self.max_entries:
                self._evict_oldest()
        return entry

    def _evict_oldest(self) -> None:
        """Remove oldest entries when over capacity."""
        entries = sorted(self._entries.items(), key=lambda x: x[1].inserted_at)
        to_remove = max(1, len(entries) // 10)
        for key, _ in entries[:to_remove]:
            del self._entries[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class _InFlight:
    """Result slot shared by the leader and followers of one fetch."""

    def __init__(self):
        self.done = threading.Event()
        self.record: Optional[TrackedRecord] = None
        self.error: Optional[BaseException] = None


class CacheOrchestrator:
    """
    Cache-aside lookup with single-flight provider calls.

    get_or_fetch() is safe to call from many request threads at once.
    """

    def __init__(
        self,
        client: FlightAwareClient,
        limiter: QuotaLimiter,
        channel: Optional[EventChannel] = None,
        store: Optional[CacheStore] = None,
        ttl_seconds: float = 300,
        on_publish_failure: Optional[Callable[[PendingEvent, Exception], None]] = None,
    ):
        self.client = client
        self.limiter = limiter
        self.channel = channel
        self.store = store if store is not None else MemoryCacheStore()
        self.ttl_seconds = ttl_seconds
        self.on_publish_failure = on_publish_failure

        self._inflight: Dict[str, _InFlight] = {}
        self._inflight_lock = threading.Lock()

        # Statistics
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._shared = 0
        self._upstream_calls = 0
        self._publish_failures = 0

    def get_or_fetch(self, identifier: str) -> TrackedRecord:
        """
        Return the cached record for identifier, fetching it on a miss.

        Raises:
            NotFound, RateLimited, UpstreamError, UpstreamTimeout
        """
        entry = self.store.get(identifier)
        if entry is not None:
            self._count('_hits')
            logger.debug(f'Cache hit for {identifier}')
            return entry.record

        self._count('_misses')

        with self._inflight_lock:
            flight = self._inflight.get(identifier)
            leader = flight is None
            if leader:
                flight = _InFlight()
                self._inflight[identifier] = flight

        if not leader:
            self._count('_shared')
            logger.debug(f'Waiting on in-flight fetch for {identifier}')
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.record

        fresh = False
        try:
            # A previous leader may have filled the cache just before we registered
            entry = self.store.get(identifier)
            if entry is not None:
                flight.record = entry.record
            else:
                flight.record = self._load(identifier)
                fresh = True
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._inflight_lock:
                self._inflight.pop(identifier, None)
            flight.done.set()

        # Published outside the in-flight slot so unrelated lookups never wait on it
        if fresh:
            self._publish(flight.record)
        return flight.record

    def _load(self, identifier: str) -> TrackedRecord:
        """Quota check, provider call and cache write. Leader only."""
        if not self.limiter.allow():
            usage = self.limiter.usage()
            logger.warning(f'Not fetching {identifier}: outbound quota exhausted ({usage})')
            raise RateLimited(f'FlightAware quota exhausted. {usage}')

        logger.info(f'Cache miss for {identifier}, fetching from FlightAware')
        self._count('_upstream_calls')
        record = self.client.fetch(identifier)

        self.store.put(identifier, record, self.ttl_seconds)
        return record

    def _publish(self, record: TrackedRecord) -> None:
        """Hand the record to the summarizer. Failures never reach the caller."""
        if self.channel is None:
            return
        event = PendingEvent.for_record(record)
        try:
            self.channel.publish(event)
        except Exception as e:
            self._count('_publish_failures')
            logger.error(f'Failed to publish event for {record.identifier}: {e}')
            if self.on_publish_failure is not None:
                try:
                    self.on_publish_failure(event, e)
                except Exception as hook_error:
                    logger.error(f'Publish failure hook raised: {hook_error}')

    def _count(self, attr: str) -> None:
        with self._stats_lock:
            setattr(self, attr, getattr(self, attr) + 1)

    def invalidate(self, identifier: str) -> None:
        """Remove specific entry from cache."""
        self.store.delete(identifier)

    def clear(self) -> None:
        """Clear entire cache."""
        self.store.clear()

    @property
    def stats(self) -> dict:
        """Get cache statistics."""
        with self._stats_lock:
            lookups = self._hits + self._misses
            return {
                'entries': len(self.store),
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / lookups if lookups > 0 else 0,
                'shared_fetches': self._shared,
                'upstream_calls': self._upstream_calls,
                'publish_failures': self._publish_failures,
                'ttl_seconds': self.ttl_seconds,
            }
