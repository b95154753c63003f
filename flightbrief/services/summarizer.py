"""
Summarization workers - turn flight events into stored summaries.

Each consumed event runs through a small state machine:

    RECEIVED -> GENERATING -> SUCCEEDED
                           -> RETRY_SCHEDULED -> GENERATING ...
                           -> FAILED

Retryable failures (quota denial, provider 429, 5xx, timeouts) are retried
with BackoffPolicy until max_attempts is reached. FAILED only ends this
delivery: the worker nacks the event and the channel decides whether to
deliver it again.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from flightbrief.errors import FetchError, RateLimited
from flightbrief.events import EventChannel, PendingEvent
from flightbrief.models import FlightSummary
from flightbrief.quota import QuotaLimiter
from flightbrief.services.backoff import BackoffPolicy
from flightbrief.services.openai_client import OpenAIClient
from flightbrief.services.summary_store import SummaryStore

logger = logging.getLogger(__name__)


class SummaryState(str, Enum):
    """Processing state of one event delivery."""
    RECEIVED = 'received'
    GENERATING = 'generating'
    RETRY_SCHEDULED = 'retry_scheduled'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


@dataclass
class SummaryOutcome:
    """Result of processing one delivery."""
    event: PendingEvent
    state: SummaryState = SummaryState.RECEIVED
    attempts: int = 0
    transitions: List[SummaryState] = field(default_factory=lambda: [SummaryState.RECEIVED])
    delays: List[float] = field(default_factory=list)
    summary: Optional[FlightSummary] = None
    error: Optional[Exception] = None

    def move(self, state: SummaryState) -> None:
        logger.debug(f'{self.event.identifier}: {self.state.value} -> {state.value}')
        self.state = state
        self.transitions.append(state)

    @property
    def succeeded(self) -> bool:
        return self.state is SummaryState.SUCCEEDED


class RetryingSummarizer:
    """
    Generates and stores the summary for one event, retrying as needed.

    Stateless between events; one instance can be shared by all workers.
    """

    def __init__(
        self,
        client: OpenAIClient,
        limiter: QuotaLimiter,
        store: SummaryStore,
        backoff: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.limiter = limiter
        self.store = store
        self.backoff = backoff if backoff is not None else BackoffPolicy()
        self._sleep = sleep

        self._lock = threading.Lock()
        self._succeeded = 0
        self._failed = 0
        self._retries = 0

    def process(self, event: PendingEvent) -> SummaryOutcome:
        """Run one delivery of an event to SUCCEEDED or FAILED."""
        outcome = SummaryOutcome(event=event)
        record = event.record

        while True:
            outcome.attempts += 1
            outcome.move(SummaryState.GENERATING)

            try:
                text = self._generate(event)
            except FetchError as e:
                outcome.error = e
                if not e.retryable:
                    logger.error(f'Summary for {record.ident} failed, not retrying: {e}')
                    return self._finish(outcome, SummaryState.FAILED)
                if not self.backoff.should_retry(outcome.attempts):
                    logger.error(
                        f'Summary for {record.ident} failed after {outcome.attempts} attempts: {e}'
                    )
                    return self._finish(outcome, SummaryState.FAILED)

                delay = self.backoff.delay(outcome.attempts, getattr(e, 'retry_after', None))
                outcome.delays.append(delay)
                outcome.move(SummaryState.RETRY_SCHEDULED)
                with self._lock:
                    self._retries += 1
                logger.warning(
                    f'Summary attempt {outcome.attempts}/{self.backoff.max_attempts} for '
                    f'{record.ident} failed ({type(e).__name__}), retrying in {delay:.1f}s'
                )
                self._sleep(delay)
                continue

            try:
                result = self.store.upsert(
                    record.identifier,
                    record.ident,
                    text,
                    source_fetched_at=record.fetched_at,
                )
            except SQLAlchemyError as e:
                outcome.error = e
                logger.error(f'Failed to save summary for {record.identifier}: {e}')
                return self._finish(outcome, SummaryState.FAILED)

            outcome.summary = result.summary
            outcome.error = None
            action = 'skipped (stale)' if result.skipped else ('created' if result.created else 'updated')
            logger.info(f'Summary for {record.ident} ({record.identifier}) {action}')
            return self._finish(outcome, SummaryState.SUCCEEDED)

    def _generate(self, event: PendingEvent) -> str:
        if not self.limiter.allow():
            raise RateLimited(f'Summary quota exhausted. {self.limiter.usage()}')
        return self.client.summarize(event.record)

    def _finish(self, outcome: SummaryOutcome, state: SummaryState) -> SummaryOutcome:
        outcome.move(state)
        with self._lock:
            if state is SummaryState.SUCCEEDED:
                self._succeeded += 1
            else:
                self._failed += 1
        return outcome

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                'succeeded': self._succeeded,
                'failed': self._failed,
                'retries': self._retries,
            }


class SummarizerWorkerPool:
    """
    Background threads draining the event channel.

    Acks events that were summarized, nacks the rest so the channel can
    redeliver them.
    """

    def __init__(
        self,
        channel: EventChannel,
        summarizer: RetryingSummarizer,
        workers: int = 2,
    ):
        self.channel = channel
        self.summarizer = summarizer
        self.worker_count = workers

        self._threads: List[threading.Thread] = []
        self._running = False
        self._processed = 0
        self._errors = 0
        self._lock = threading.Lock()

    def _run(self) -> None:
        for event in self.channel.consume():
            try:
                outcome = self.summarizer.process(event)
            except Exception as e:
                with self._lock:
                    self._errors += 1
                logger.error(f'Summarizer crashed on event {event.event_id}: {e}', exc_info=True)
                self.channel.nack(event)
                continue

            with self._lock:
                self._processed += 1
            if outcome.succeeded:
                self.channel.ack(event)
            else:
                self.channel.nack(event)

            if not self._running:
                break

    def start(self) -> None:
        """
        Start worker threads.

        Events left unacked by earlier consumers of the channel are put back
        on the queue first. A pool cannot be restarted after stop(), since
        stopping closes the channel.
        """
        if self._running:
            logger.warning('Summarizer workers already running')
            return
        if getattr(self.channel, 'closed', False):
            raise RuntimeError('Cannot start summarizer workers on a closed event channel')

        requeue = getattr(self.channel, 'requeue_unacked', None)
        if requeue is not None:
            requeue()

        self._running = True
        self._threads = [
            threading.Thread(target=self._run, name=f'summarizer-{i}', daemon=True)
            for i in range(self.worker_count)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f'Started {self.worker_count} summarizer workers')

    def stop(self, timeout: float = 5.0) -> None:
        """Stop workers. Closing the channel ends their consume loops."""
        self._running = False
        close = getattr(self.channel, 'close', None)
        if close is not None:
            close()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info('Summarizer workers stopped')

    @property
    def stats(self) -> dict:
        with self._lock:
            counters = {'processed': self._processed, 'errors': self._errors}
        return {
            'running': self._running,
            'workers': self.worker_count,
            **counters,
            **self.summarizer.stats,
        }
