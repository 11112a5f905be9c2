"""
Tests for RestMock Chaos Middleware

Tests fault injection including:
- Process-wide latency and failure rate
- Route-level latency ranges and failure rates
- Weighted random statuses
- Retry simulation by attempt count and by time
- Retry window eviction
"""

import random
from unittest.mock import Mock

import pytest

from restmock.config import RouteChaosConfig
from restmock.mock.chaos import ChaosMiddleware, RetryTracker
from restmock.mock.errors import ChaosFailure
from restmock.mock.matcher import Route


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def route_with(**chaos):
    return Route('GET', '/api/users', None, kind='crud', chaos=RouteChaosConfig(**chaos))


class TestGlobalChaos:
    """Test process-wide latency and failure rate."""

    def test_latency_sleeps(self):
        """Test configured latency is passed to sleep in seconds."""
        sleep = Mock()
        ChaosMiddleware(latency_ms=250, sleep=sleep).apply_latency()

        sleep.assert_called_once_with(0.25)

    def test_no_latency_no_sleep(self):
        sleep = Mock()
        ChaosMiddleware(sleep=sleep).apply_latency()

        sleep.assert_not_called()

    def test_fail_rate_one_always_fails(self):
        """Test rate 1.0 fails every time."""
        chaos = ChaosMiddleware(fail_rate=1.0)

        for _ in range(20):
            with pytest.raises(ChaosFailure) as exc_info:
                chaos.maybe_fail()
            assert exc_info.value.status == 500
            assert exc_info.value.code == 'chaos'

    def test_fail_rate_zero_never_fails(self):
        chaos = ChaosMiddleware(fail_rate=0.0)

        for _ in range(20):
            chaos.maybe_fail()

    def test_fail_rate_uses_rng(self):
        """Test the draw is compared against the rate."""
        rng = Mock()
        rng.random.return_value = 0.3
        chaos = ChaosMiddleware(fail_rate=0.5, rng=rng)

        with pytest.raises(ChaosFailure):
            chaos.maybe_fail()

        rng.random.return_value = 0.7
        chaos.maybe_fail()


class TestRouteChaos:
    """Test route-level overrides."""

    def test_route_without_chaos_is_untouched(self):
        sleep = Mock()
        ChaosMiddleware(sleep=sleep).apply_route(Route('GET', '/x', None))

        sleep.assert_not_called()

    def test_fixed_route_latency(self):
        sleep = Mock()
        ChaosMiddleware(sleep=sleep).apply_route(route_with(latency_ms=100))

        sleep.assert_called_once_with(0.1)

    def test_random_latency_range_wins(self):
        """Test the random range overrides the fixed delay and stays in bounds."""
        sleep = Mock()
        chaos = ChaosMiddleware(sleep=sleep, rng=random.Random(7))
        route = route_with(latency_ms=5000, random_latency_min_ms=10, random_latency_max_ms=20)

        for _ in range(30):
            chaos.apply_route(route)

        delays = [call.args[0] for call in sleep.call_args_list]
        assert len(delays) == 30
        assert all(0.01 <= d <= 0.02 for d in delays)

    def test_route_failure_rate(self):
        with pytest.raises(ChaosFailure) as exc_info:
            ChaosMiddleware().apply_route(route_with(failure_rate=1.0))

        assert exc_info.value.extra['route'] == 'GET /api/users'

    def test_random_error_status(self):
        """Test a selected error status becomes a chaos failure with that status."""
        with pytest.raises(ChaosFailure) as exc_info:
            ChaosMiddleware().apply_route(route_with(random_statuses=[429]))

        assert exc_info.value.status == 429
        assert exc_info.value.code == 'chaos'

    def test_random_success_status_proceeds(self):
        """Test a status below 400 lets the request through."""
        ChaosMiddleware().apply_route(route_with(random_statuses=[200]))

    def test_weighted_statuses(self):
        """Test a zero weight is never selected."""
        chaos = ChaosMiddleware(rng=random.Random(1))
        config = RouteChaosConfig(random_statuses=[500, 503], random_status_weights=[0, 1])

        selected = {chaos._select_status(config) for _ in range(100)}

        assert selected == {503}

    def test_equal_weights_by_default(self):
        chaos = ChaosMiddleware(rng=random.Random(3))
        config = RouteChaosConfig(random_statuses=[500, 502, 503])

        selected = {chaos._select_status(config) for _ in range(300)}

        assert selected == {500, 502, 503}


class TestRetrySimulation:
    """Test success-after-retries and success-after-seconds."""

    def test_success_after_retries(self):
        """Test the first N attempts fail with 503."""
        chaos = ChaosMiddleware(tracker=RetryTracker(time_func=FakeClock()))
        route = route_with(success_after_retries=2)

        for attempt in (1, 2):
            with pytest.raises(ChaosFailure) as exc_info:
                chaos.apply_route(route)
            error = exc_info.value
            assert error.status == 503
            assert error.code == 'retry_simulation'
            assert error.extra['attempt'] == attempt
            assert error.headers['Retry-After'] == '1'

        chaos.apply_route(route)
        chaos.apply_route(route)

    def test_success_after_seconds(self):
        """Test attempts fail until the delay since the first attempt has passed."""
        clock = FakeClock()
        chaos = ChaosMiddleware(tracker=RetryTracker(time_func=clock))
        route = route_with(success_after_seconds=10)

        with pytest.raises(ChaosFailure) as exc_info:
            chaos.apply_route(route)
        assert exc_info.value.headers['Retry-After'] == '10'

        clock.now += 4
        with pytest.raises(ChaosFailure) as exc_info:
            chaos.apply_route(route)
        assert exc_info.value.headers['Retry-After'] == '6'

        clock.now += 6
        chaos.apply_route(route)

    def test_counters_are_per_route(self):
        chaos = ChaosMiddleware(tracker=RetryTracker(time_func=FakeClock()))
        first = route_with(success_after_retries=1)
        second = Route('GET', '/api/orders', None, chaos=RouteChaosConfig(success_after_retries=1))

        with pytest.raises(ChaosFailure):
            chaos.apply_route(first)
        with pytest.raises(ChaosFailure):
            chaos.apply_route(second)
        chaos.apply_route(first)

    def test_window_expiry_resets_counter(self):
        """Test an elapsed window starts the route over."""
        clock = FakeClock()
        chaos = ChaosMiddleware(tracker=RetryTracker(time_func=clock))
        route = route_with(success_after_retries=1, max_retry_window=60)

        with pytest.raises(ChaosFailure):
            chaos.apply_route(route)
        chaos.apply_route(route)

        clock.now += 61
        with pytest.raises(ChaosFailure):
            chaos.apply_route(route)


class TestRetryTracker:
    """Test the attempt counter map."""

    def test_record_attempt(self):
        clock = FakeClock()
        tracker = RetryTracker(time_func=clock)

        assert tracker.record_attempt('k', 300) == (1, 0.0)
        clock.now += 2.5
        assert tracker.record_attempt('k', 300) == (2, 2.5)

    def test_evict_expired(self):
        clock = FakeClock()
        tracker = RetryTracker(time_func=clock)
        tracker.record_attempt('short', 10)
        tracker.record_attempt('long', 100)

        clock.now += 50
        tracker.evict_expired()

        assert len(tracker) == 1

    def test_reset(self):
        tracker = RetryTracker(time_func=FakeClock())
        tracker.record_attempt('k', 10)
        tracker.reset()

        assert len(tracker) == 0
