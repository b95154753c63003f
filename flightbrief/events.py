"""
Event handoff between ingestion and summarization.

Every fresh provider fetch produces a PendingEvent. Summarizer workers
consume events independently of request handling, so a slow or
rate-limited summarization provider never delays a flight lookup.

Delivery is at-least-once: an event stays in flight until it is acked,
and a nack, or requeue_unacked() when a new worker pool starts, puts it back
on the queue. Consumers must therefore be idempotent.
"""

import logging
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, Tuple

from flightbrief.errors import EventPublishError
from flightbrief.models.tracked_record import TrackedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingEvent:
    """Snapshot of a freshly fetched record, queued for summarization."""
    identifier: str
    record: TrackedRecord
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_record(cls, record: TrackedRecord) -> 'PendingEvent':
        return cls(identifier=record.identifier, record=record)

    def to_dict(self) -> dict:
        return {
            'event_id': self.event_id,
            'identifier': self.identifier,
            'published_at': self.published_at.isoformat(),
            'record': self.record.to_dict(),
        }


class EventChannel(ABC):
    """Producer/consumer contract for PendingEvents."""

    @abstractmethod
    def publish(self, event: PendingEvent) -> None:
        """Hand an event over without blocking. Raises EventPublishError."""

    @abstractmethod
    def consume(self) -> Iterator[PendingEvent]:
        """Lazy, unordered stream of events. Runs until the channel closes."""

    @abstractmethod
    def ack(self, event: PendingEvent) -> None:
        """Mark an event as processed."""

    @abstractmethod
    def nack(self, event: PendingEvent) -> None:
        """Give an event back for redelivery."""


class QueueEventChannel(EventChannel):
    """
    In-process bounded queue with broker-style redelivery.

    Tracks each delivered event until it is acked. A nacked event is
    requeued until it has been delivered max_deliveries times, after which
    it is dropped and logged; there is no dead-letter store.
    """

    def __init__(
        self,
        maxsize: int = 1000,
        max_deliveries: int = 3,
        poll_interval: float = 0.5,
    ):
        self._queue: 'queue.Queue[PendingEvent]' = queue.Queue(maxsize=maxsize)
        self.max_deliveries = max_deliveries
        self.poll_interval = poll_interval

        # event_id -> (event, deliveries so far)
        self._in_flight: Dict[str, Tuple[PendingEvent, int]] = {}
        self._deliveries: Dict[str, int] = {}
        self._lock = threading.Lock()
        self._closed = threading.Event()

        # Statistics
        self._published = 0
        self._delivered = 0
        self._acked = 0
        self._redelivered = 0
        self._dropped = 0

    def publish(self, event: PendingEvent) -> None:
        if self._closed.is_set():
            raise EventPublishError('event channel is closed')
        try:
            self._queue.put_nowait(event)
        except queue.Full as e:
            raise EventPublishError(f'event queue full ({self._queue.maxsize} pending)') from e

        with self._lock:
            self._published += 1
        logger.debug(f'Published event {event.event_id} for {event.identifier}')

    def consume(self) -> Iterator[PendingEvent]:
        while not self._closed.is_set():
            try:
                event = self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            with self._lock:
                deliveries = self._deliveries.get(event.event_id, 0) + 1
                self._deliveries[event.event_id] = deliveries
                self._in_flight[event.event_id] = (event, deliveries)
                self._delivered += 1
            yield event

    def ack(self, event: PendingEvent) -> None:
        with self._lock:
            if self._in_flight.pop(event.event_id, None) is None:
                logger.debug(f'Ack for unknown event {event.event_id}')
                return
            self._deliveries.pop(event.event_id, None)
            self._acked += 1

    def nack(self, event: PendingEvent) -> None:
        with self._lock:
            entry = self._in_flight.pop(event.event_id, None)
            if entry is None:
                logger.debug(f'Nack for unknown event {event.event_id}')
                return
            _, deliveries = entry
            if deliveries >= self.max_deliveries:
                self._deliveries.pop(event.event_id, None)
                self._dropped += 1
                logger.error(
                    f'Dropping event {event.event_id} for {event.identifier} '
                    f'after {deliveries} deliveries'
                )
                return

        self._requeue(event)

    def requeue_unacked(self) -> int:
        """Redeliver everything still in flight. Called when workers start."""
        with self._lock:
            pending = [event for event, _ in self._in_flight.values()]
            self._in_flight.clear()
        for event in pending:
            self._requeue(event)
        if pending:
            logger.warning(f'Requeued {len(pending)} unacknowledged events')
        return len(pending)

    def _requeue(self, event: PendingEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self._dropped += 1
                self._deliveries.pop(event.event_id, None)
            logger.error(f'Queue full, could not redeliver event {event.event_id} for {event.identifier}')
            return
        with self._lock:
            self._redelivered += 1

    def close(self) -> None:
        """Stop all consume() iterators. Further publishes fail."""
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'published': self._published,
                'delivered': self._delivered,
                'acked': self._acked,
                'redelivered': self._redelivered,
                'dropped': self._dropped,
                'pending': self._queue.qsize(),
                'in_flight': len(self._in_flight),
            }
