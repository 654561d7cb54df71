"""
Reconnection Policy

Bounded reconnection for the admin event connection. The policy counts
consecutive failures, decides whether another attempt is allowed, and
computes the backoff before it:

    delay(n) = min(base * 2 ** (n - 1) + jitter, max_delay)
    jitter   = uniform(0, jitter_factor * base * 2 ** (n - 1))

A failure is any transition into RECONNECT_WAIT that counts toward the
limit. The counter resets whenever a message is parsed successfully.
"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional


class BackoffStrategy(Enum):
    """Delay growth between attempts."""
    FIXED = auto()
    EXPONENTIAL = auto()
    EXPONENTIAL_JITTER = auto()


@dataclass
class ReconnectMetrics:
    total_failures: int = 0
    resets: int = 0
    total_delay_seconds: float = 0.0


class ReconnectPolicy:
    """
    Tracks consecutive connection failures against a limit.

    Example:
        policy = ReconnectPolicy(limit=10)
        policy.record_failure()
        if policy.exhausted:
            close()
        else:
            wait(policy.next_delay())
    """

    def __init__(
        self,
        limit: int = 10,
        enabled: bool = True,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL_JITTER,
        jitter_factor: float = 0.5,
        rng: Optional[Callable[[float, float], float]] = None,
    ):
        if limit < 0:
            raise ValueError(f"reconnect limit must be >= 0, got {limit}")
        self.limit = limit
        self.enabled = enabled
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.backoff_strategy = backoff_strategy
        self.jitter_factor = jitter_factor
        self._uniform = rng or random.uniform
        self._failures = 0
        self._metrics = ReconnectMetrics()
        self._lock = threading.Lock()

    @property
    def failures(self) -> int:
        """Consecutive failures since the last reset."""
        with self._lock:
            return self._failures

    @property
    def exhausted(self) -> bool:
        """True once no further attempt is allowed."""
        with self._lock:
            if not self.enabled:
                return self._failures > 0
            return self._failures > self.limit

    @property
    def metrics(self) -> ReconnectMetrics:
        with self._lock:
            return ReconnectMetrics(
                total_failures=self._metrics.total_failures,
                resets=self._metrics.resets,
                total_delay_seconds=self._metrics.total_delay_seconds,
            )

    def record_failure(self) -> int:
        """Count one failure and return the consecutive count."""
        with self._lock:
            self._failures += 1
            self._metrics.total_failures += 1
            return self._failures

    def reset(self) -> None:
        with self._lock:
            if self._failures:
                self._metrics.resets += 1
            self._failures = 0

    def next_delay(self) -> float:
        """Delay before the next attempt, based on the current failure count."""
        with self._lock:
            attempt = min(max(self._failures, 1), 32)
            delay = self._calculate_delay(attempt)
            self._metrics.total_delay_seconds += delay
            return delay

    def _calculate_delay(self, attempt: int) -> float:
        base = self.base_delay_seconds

        if self.backoff_strategy == BackoffStrategy.FIXED:
            delay = base
        elif self.backoff_strategy == BackoffStrategy.EXPONENTIAL:
            delay = base * (2 ** (attempt - 1))
        else:
            exp_delay = base * (2 ** (attempt - 1))
            delay = exp_delay + self._uniform(0, self.jitter_factor * exp_delay)

        return min(delay, self.max_delay_seconds)
