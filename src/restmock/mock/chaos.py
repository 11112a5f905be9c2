"""
RestMock Chaos Middleware

Perturbs the timing and outcome of requests to exercise client resilience.

Features:
- Process-wide artificial latency and random failure rate
- Per-route latency (fixed or random range) and failure rate overrides
- Weighted random status codes
- Retry simulation: succeed only after N attempts and/or N seconds

Chaos decisions are not seeded; tests needing determinism inject their own
random.Random and time function.
"""

import logging
import math
import random as random_module
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..config import RouteChaosConfig
from .errors import ChaosFailure

logger = logging.getLogger("restmock.mock")


@dataclass
class RetryState:
    """Attempt counter for one route key."""

    attempts: int
    first_attempt: float
    window_seconds: float


class RetryTracker:
    """
    Thread-safe attempt counters keyed by route identity.

    Entries whose window has elapsed since the first attempt are evicted
    explicitly on every access, which resets the route's counter to zero.
    """

    def __init__(self, time_func: Optional[Callable[[], float]] = None):
        """
        Initialize the tracker.

        Args:
            time_func: Clock used for windows (default: time.monotonic)
        """
        self._time_func = time_func if time_func is not None else time.monotonic
        self._lock = threading.Lock()
        self._states: Dict[str, RetryState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def record_attempt(self, key: str, window_seconds: float) -> Tuple[int, float]:
        """
        Count one attempt against a route.

        Args:
            key: Route identity
            window_seconds: Tracking window for a fresh entry

        Returns:
            (attempt number including this one, seconds since first attempt)
        """
        with self._lock:
            now = self._time_func()
            self._evict_expired(now)

            state = self._states.get(key)
            if state is None:
                state = RetryState(attempts=0, first_attempt=now, window_seconds=window_seconds)
                self._states[key] = state

            state.attempts += 1
            return state.attempts, now - state.first_attempt

    def evict_expired(self):
        """Drop every entry whose tracking window has elapsed."""
        with self._lock:
            self._evict_expired(self._time_func())

    def _evict_expired(self, now: float):
        expired = [
            key for key, state in self._states.items()
            if now - state.first_attempt >= state.window_seconds
        ]
        for key in expired:
            del self._states[key]

    def reset(self):
        with self._lock:
            self._states.clear()


class ChaosMiddleware:
    """
    Latency and failure injection applied by the engine around routing.

    Example:
        chaos = ChaosMiddleware(latency_ms=100, fail_rate=0.1)
        chaos.apply_latency()
        chaos.maybe_fail()          # raises ChaosFailure 10% of the time
        chaos.apply_route(route)    # route-level overrides, if configured
    """

    def __init__(
        self,
        latency_ms: int = 0,
        fail_rate: float = 0.0,
        tracker: Optional[RetryTracker] = None,
        rng: Optional[random_module.Random] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        """
        Initialize the middleware.

        Args:
            latency_ms: Process-wide delay applied to every request
            fail_rate: Process-wide failure probability (0.0 to 1.0)
            tracker: Retry counters shared across requests
            rng: Random source (default: new Random instance)
            sleep: Blocking sleep function (default: time.sleep)
        """
        self.latency_ms = latency_ms
        self.fail_rate = fail_rate
        self.tracker = tracker if tracker is not None else RetryTracker()
        self._rng = rng if rng is not None else random_module.Random()
        self._sleep = sleep if sleep is not None else time.sleep

    def apply_latency(self):
        """Block the handling thread for the configured process-wide delay."""
        if self.latency_ms > 0:
            self._sleep(self.latency_ms / 1000)

    def maybe_fail(self):
        """
        Abort the request with probability fail_rate.

        Raises:
            ChaosFailure: When the random draw falls under the failure rate
        """
        if self._should_trigger(self.fail_rate):
            logger.info(f"Chaos failure triggered (rate {self.fail_rate})")
            raise ChaosFailure("Chaos failure injected")

    def apply_route(self, route):
        """
        Apply a route's chaos overrides: latency, failure rate, random
        status, then retry simulation.

        Raises:
            ChaosFailure: When any stage decides the request fails
        """
        chaos: Optional[RouteChaosConfig] = route.chaos
        if chaos is None:
            return

        delay_ms = self._route_delay_ms(chaos)
        if delay_ms > 0:
            self._sleep(delay_ms / 1000)

        if self._should_trigger(chaos.failure_rate):
            logger.info(f"Chaos failure triggered for {route.key}")
            raise ChaosFailure("Chaos failure injected", extra={'route': route.key})

        if chaos.random_statuses:
            status = self._select_status(chaos)
            if status >= 400:
                logger.info(f"Chaos status {status} selected for {route.key}")
                raise ChaosFailure(
                    f"Chaos status {status} injected",
                    status=status,
                    extra={'route': route.key}
                )

        if chaos.success_after_retries > 0 or chaos.success_after_seconds > 0:
            self._simulate_retry(route.key, chaos)

    def _should_trigger(self, rate: float) -> bool:
        if rate <= 0:
            return False
        return self._rng.random() < rate

    def _route_delay_ms(self, chaos: RouteChaosConfig) -> int:
        # Random range takes precedence over the fixed delay
        if chaos.random_latency_max_ms > 0:
            low = min(chaos.random_latency_min_ms, chaos.random_latency_max_ms)
            return self._rng.randint(low, chaos.random_latency_max_ms)
        return chaos.latency_ms

    def _select_status(self, chaos: RouteChaosConfig) -> int:
        """Weighted choice from the configured statuses (equal weights when none)."""
        statuses = chaos.random_statuses
        weights = chaos.random_status_weights or [1.0] * len(statuses)

        total_weight = sum(w for w in weights if w > 0)
        if total_weight <= 0:
            return statuses[0]

        roll = self._rng.random() * total_weight
        threshold = 0.0
        for status, weight in zip(statuses, weights):
            if weight <= 0:
                continue
            threshold += weight
            if roll < threshold:
                return status
        return statuses[-1]

    def _simulate_retry(self, key: str, chaos: RouteChaosConfig):
        attempt, elapsed = self.tracker.record_attempt(key, chaos.max_retry_window)

        waiting_for_attempts = attempt <= chaos.success_after_retries
        waiting_for_time = elapsed < chaos.success_after_seconds
        if not (waiting_for_attempts or waiting_for_time):
            return

        retry_after = 1
        if waiting_for_time:
            retry_after = max(1, math.ceil(chaos.success_after_seconds - elapsed))

        raise ChaosFailure(
            "Simulated transient failure, retry later",
            status=503,
            code="retry_simulation",
            extra={'route': key, 'attempt': attempt},
            headers={'Retry-After': str(retry_after)}
        )
