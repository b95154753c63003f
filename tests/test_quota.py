"""Tests for the multi-window quota limiter."""

import threading

import pytest

from flightbrief.config import QuotaConfig
from flightbrief.quota import MemoryQuotaStore, QuotaLimiter, QuotaStore, WindowLimit


class BrokenStore(QuotaStore):
    """Counter backend that is down."""

    def acquire(self, namespace, limits, now):
        raise ConnectionError('counter backend unavailable')

    def snapshot(self, namespace, limits, now):
        raise ConnectionError('counter backend unavailable')


def make_limiter(clock, minute=2, hour=100, day=1000, **kwargs) -> QuotaLimiter:
    limits = [
        WindowLimit('day', 86400, day),
        WindowLimit('minute', 60, minute),
        WindowLimit('hour', 3600, hour),
    ]
    return QuotaLimiter('test', limits, clock=clock, **kwargs)


class TestAllow:
    """Tests for allow()."""

    def test_allows_up_to_ceiling(self, clock):
        """Calls are allowed until the smallest window is full."""
        limiter = make_limiter(clock, minute=2)
        assert limiter.allow() is True
        assert limiter.allow() is True
        assert limiter.allow() is False

    def test_windows_checked_smallest_first(self, clock):
        """Limits are ordered by duration regardless of definition order."""
        limiter = make_limiter(clock)
        assert [l.name for l in limiter.limits] == ['minute', 'hour', 'day']

    def test_denial_does_not_increment_any_window(self, clock):
        """A denied call leaves every counter untouched."""
        limiter = make_limiter(clock, minute=2, hour=100)
        limiter.allow()
        limiter.allow()
        limiter.allow()
        limiter.allow()

        usage = limiter.usage()
        assert usage.get('minute') == (2, 2)
        assert usage.get('hour') == (2, 100)
        assert usage.get('day') == (2, 1000)

    def test_larger_window_denies_all_or_nothing(self, clock):
        """When the hour window is full the minute window is not charged."""
        limiter = make_limiter(clock, minute=10, hour=1)
        assert limiter.allow() is True
        assert limiter.allow() is False
        assert limiter.usage().get('minute') == (1, 10)

    def test_window_resets_after_elapsing(self, clock):
        """A full minute window accepts calls again once the minute has passed."""
        limiter = make_limiter(clock, minute=1)
        assert limiter.allow() is True
        assert limiter.allow() is False

        clock.advance(60)
        assert limiter.allow() is True
        assert limiter.usage().get('minute') == (1, 1)
        assert limiter.usage().get('hour') == (2, 100)

    def test_zero_ceiling_always_denies(self, clock):
        """A ceiling of zero never allows a call."""
        limiter = make_limiter(clock, minute=0)
        assert limiter.allow() is False
        clock.advance(3600)
        assert limiter.allow() is False

    def test_disabled_limiter_allows_without_counting(self, clock):
        """A disabled limiter never touches its counters."""
        limiter = make_limiter(clock, minute=0, enabled=False)
        for _ in range(5):
            assert limiter.allow() is True
        assert limiter.usage().get('minute') == (0, 0)

    def test_fails_open_on_store_error(self, clock):
        """Store failures let the call through and are counted."""
        limiter = make_limiter(clock, minute=0, store=BrokenStore())
        assert limiter.allow() is True
        assert limiter.fail_open_count == 1

    def test_concurrent_callers_never_exceed_ceiling(self, clock):
        """Exactly `ceiling` calls are allowed under parallel load."""
        limiter = make_limiter(clock, minute=25)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                allowed = limiter.allow()
                with lock:
                    results.append(allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 25
        assert limiter.usage().get('minute') == (25, 25)


class TestUsage:
    """Tests for usage()."""

    def test_usage_does_not_mutate(self, clock):
        """Reading usage repeatedly has no effect on counters."""
        limiter = make_limiter(clock, minute=3)
        limiter.allow()
        for _ in range(5):
            limiter.usage()
        assert limiter.usage().get('minute') == (1, 3)

    def test_elapsed_window_reports_zero(self, clock):
        """A window past its duration reports zero without being reset."""
        limiter = make_limiter(clock, minute=3)
        limiter.allow()
        clock.advance(61)
        assert limiter.usage().get('minute') == (0, 3)
        assert limiter.usage().get('hour') == (1, 100)

    def test_usage_on_store_error_reports_zero(self, clock):
        """Unreadable counters are reported as unused."""
        limiter = make_limiter(clock, store=BrokenStore())
        assert limiter.usage().get('minute') == (0, 2)

    def test_snapshot_string(self, clock):
        """String form lists every window."""
        limiter = make_limiter(clock, minute=2)
        limiter.allow()
        assert str(limiter.usage()) == 'Usage: minute=1/2, hour=1/100, day=1/1000'


class TestSharedStore:
    """Limiters sharing one store."""

    def test_namespaces_are_independent(self, clock):
        """Each namespace has its own counters."""
        store = MemoryQuotaStore()
        limits = [WindowLimit('minute', 60, 1)]
        a = QuotaLimiter('a', limits, store=store, clock=clock)
        b = QuotaLimiter('b', limits, store=store, clock=clock)

        assert a.allow() is True
        assert a.allow() is False
        assert b.allow() is True

    def test_reset_namespace(self, clock):
        """reset() clears only the given namespace."""
        store = MemoryQuotaStore()
        limits = [WindowLimit('minute', 60, 1)]
        a = QuotaLimiter('a', limits, store=store, clock=clock)
        b = QuotaLimiter('b', limits, store=store, clock=clock)
        a.allow()
        b.allow()

        store.reset('a')
        assert a.usage().get('minute') == (0, 1)
        assert b.usage().get('minute') == (1, 1)


def test_from_config_builds_three_windows():
    """QuotaConfig maps onto minute/hour/day windows."""
    limiter = QuotaLimiter.from_config('flightaware', QuotaConfig(10, 200, 300))
    assert [(l.name, l.duration, l.ceiling) for l in limiter.limits] == [
        ('minute', 60, 10),
        ('hour', 3600, 200),
        ('day', 86400, 300),
    ]
    assert limiter.enabled is True


@pytest.mark.parametrize('ceiling', [1, 3, 7])
def test_count_never_exceeds_ceiling(clock, ceiling):
    """No sequence of calls pushes a counter past its ceiling."""
    limiter = make_limiter(clock, minute=ceiling)
    for _ in range(ceiling * 3):
        limiter.allow()
    used, limit = limiter.usage().get('minute')
    assert used == limit == ceiling


def test_keeps_injected_store(clock):
    store = MemoryQuotaStore()
    limiter = QuotaLimiter('a', [WindowLimit('minute', 60, 1)], store=store, clock=clock)
    assert limiter.store is store
