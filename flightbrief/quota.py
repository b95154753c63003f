"""
Multi-window quota limiter for outbound provider calls.

Both providers bill per request, so every outbound call is gated by a
set of fixed windows (per minute, per hour, per day). A call is allowed
only if it fits in every window; when it does not, nothing is counted.

Counters live behind a QuotaStore so they can be shared or replaced in
tests. If the store itself fails, the limiter lets the call through and
logs it (fail-open).
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from flightbrief.config import QuotaConfig

logger = logging.getLogger(__name__)

# Log a warning once a window is this full
USAGE_WARNING_RATIO = 0.8


@dataclass(frozen=True)
class WindowLimit:
    """Static definition of one window."""
    name: str
    duration: float  # seconds
    ceiling: int


@dataclass
class QuotaWindow:
    """Current state of one window."""
    name: str
    duration: float
    ceiling: int
    count: int = 0
    window_start: float = 0.0

    def is_elapsed(self, now: float) -> bool:
        return now - self.window_start >= self.duration


@dataclass(frozen=True)
class UsageSnapshot:
    """Read-only view of window usage: name -> (used, ceiling)."""
    windows: Tuple[Tuple[str, int, int], ...]

    def get(self, name: str) -> Optional[Tuple[int, int]]:
        for window_name, used, ceiling in self.windows:
            if window_name == name:
                return used, ceiling
        return None

    def to_dict(self) -> Dict[str, dict]:
        return {
            name: {'used': used, 'limit': ceiling}
            for name, used, ceiling in self.windows
        }

    def __str__(self) -> str:
        parts = [f'{name}={used}/{ceiling}' for name, used, ceiling in self.windows]
        return 'Usage: ' + ', '.join(parts)


class QuotaStore(ABC):
    """Backing store for window counters."""

    @abstractmethod
    def acquire(self, namespace: str, limits: Sequence[WindowLimit], now: float) -> bool:
        """
        Count one request in every window, or in none.

        Returns False without changing any counter if any window would
        go over its ceiling.
        """

    @abstractmethod
    def snapshot(self, namespace: str, limits: Sequence[WindowLimit], now: float) -> List[QuotaWindow]:
        """Current window states. Must not modify counters."""


class MemoryQuotaStore(QuotaStore):
    """
    Thread-safe in-process counter store.

    A single lock covers the check and the increments of all windows, which
    is what makes acquire() all-or-nothing under concurrent callers.
    """

    def __init__(self):
        self._windows: Dict[Tuple[str, str], QuotaWindow] = {}
        self._lock = threading.Lock()

    def _window(self, namespace: str, limit: WindowLimit, now: float) -> QuotaWindow:
        key = (namespace, limit.name)
        window = self._windows.get(key)
        if window is None:
            window = QuotaWindow(limit.name, limit.duration, limit.ceiling, 0, now)
            self._windows[key] = window
        elif window.is_elapsed(now):
            # Reset, never decrement
            window.count = 0
            window.window_start = now
        return window

    def acquire(self, namespace: str, limits: Sequence[WindowLimit], now: float) -> bool:
        with self._lock:
            windows = [self._window(namespace, limit, now) for limit in limits]
            for window in windows:
                if window.count + 1 > window.ceiling:
                    return False
            for window in windows:
                window.count += 1
            return True

    def snapshot(self, namespace: str, limits: Sequence[WindowLimit], now: float) -> List[QuotaWindow]:
        result = []
        with self._lock:
            for limit in limits:
                window = self._windows.get((namespace, limit.name))
                if window is None or window.is_elapsed(now):
                    result.append(QuotaWindow(limit.name, limit.duration, limit.ceiling, 0, now))
                else:
                    result.append(QuotaWindow(
                        window.name, window.duration, window.ceiling,
                        window.count, window.window_start,
                    ))
        return result

    def reset(self, namespace: Optional[str] = None) -> None:
        """Drop counters (all, or one namespace)."""
        with self._lock:
            if namespace is None:
                self._windows.clear()
            else:
                for key in [k for k in self._windows if k[0] == namespace]:
                    del self._windows[key]


class QuotaLimiter:
    """
    Decides whether an outbound call may be made.

    One instance per provider; instances sharing a store must use
    different namespaces.
    """

    def __init__(
        self,
        namespace: str,
        limits: Sequence[WindowLimit],
        store: Optional[QuotaStore] = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.namespace = namespace
        # Ascending granularity
        self.limits = sorted(limits, key=lambda limit: limit.duration)
        self.store = store if store is not None else MemoryQuotaStore()
        self.enabled = enabled
        self._clock = clock

        self._allowed = 0
        self._denied = 0
        self._fail_open = 0
        self._stats_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        namespace: str,
        quota: QuotaConfig,
        store: Optional[QuotaStore] = None,
    ) -> 'QuotaLimiter':
        limits = [WindowLimit(name, seconds, ceiling) for name, seconds, ceiling in quota.windows()]
        limiter = cls(namespace, limits, store=store, enabled=quota.enabled)
        logger.info(
            f'Quota limiter {namespace}: '
            + ', '.join(f'{l.ceiling}/{l.name}' for l in limiter.limits)
            + f' (enabled={quota.enabled})'
        )
        return limiter

    def allow(self) -> bool:
        """Count this call against every window, or deny it."""
        if not self.enabled:
            return True

        now = self._clock()
        try:
            allowed = self.store.acquire(self.namespace, self.limits, now)
        except Exception as e:
            with self._stats_lock:
                self._fail_open += 1
            logger.error(f'Quota check for {self.namespace} failed, allowing request: {e}')
            return True

        with self._stats_lock:
            if allowed:
                self._allowed += 1
            else:
                self._denied += 1

        if not allowed:
            logger.warning(f'Quota exceeded for {self.namespace}: {self.usage()}')
            return False

        self._warn_if_near_limit(now)
        return True

    def _warn_if_near_limit(self, now: float) -> None:
        try:
            windows = self.store.snapshot(self.namespace, self.limits, now)
        except Exception as e:
            logger.debug(f'Skipping usage warning for {self.namespace}: {e}')
            return
        for window in windows:
            if window.ceiling and window.count >= window.ceiling * USAGE_WARNING_RATIO:
                logger.warning(
                    f'{self.namespace} usage at {int(window.count * 100 / window.ceiling)}%: '
                    f'{window.count}/{window.ceiling} calls in {window.name} window'
                )

    def usage(self) -> UsageSnapshot:
        """(used, ceiling) per window, smallest window first."""
        try:
            windows = self.store.snapshot(self.namespace, self.limits, self._clock())
        except Exception as e:
            logger.error(f'Failed to read quota usage for {self.namespace}: {e}')
            return UsageSnapshot(tuple((l.name, 0, l.ceiling) for l in self.limits))
        return UsageSnapshot(tuple((w.name, w.count, w.ceiling) for w in windows))

    @property
    def stats(self) -> dict:
        with self._stats_lock:
            counters = {
                'allowed': self._allowed,
                'denied': self._denied,
                'fail_open': self._fail_open,
            }
        return {
            'namespace': self.namespace,
            'enabled': self.enabled,
            'usage': self.usage().to_dict(),
            **counters,
        }

    @property
    def fail_open_count(self) -> int:
        with self._stats_lock:
            return self._fail_open
