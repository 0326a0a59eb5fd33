"""
Dependency injection interfaces for improved testability.

Time and randomness are passed into the breaker, rate limiter, caches and
backoff code instead of being read from module globals, so tests can drive
them deterministically.
"""

import random
import time
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...

    def current_time_ms(self) -> int:
        """Get current time in milliseconds."""
        ...


@runtime_checkable
class RandomProvider(Protocol):
    """Protocol for random number generation."""

    def random(self) -> float:
        """Generate random float between 0.0 and 1.0."""
        ...

    def uniform(self, a: float, b: float) -> float:
        """Generate random float between a and b."""
        ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        return time.time()

    def current_time_ms(self) -> int:
        return int(time.time() * 1000)


class SystemRandomProvider:
    """Production random provider with its own generator instance."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def uniform(self, a: float, b: float) -> float:
        return self._rng.uniform(a, b)


class DeterministicTimeProvider:
    """Deterministic time provider for tests."""

    def __init__(self, start_time: float = 1700000000.0):
        self._current_time = start_time

    def current_timestamp(self) -> float:
        return self._current_time

    def current_time_ms(self) -> int:
        return int(self._current_time * 1000)

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current time to specific timestamp."""
        self._current_time = timestamp


class DeterministicRandomProvider:
    """Random provider that always returns a fixed fraction of the range."""

    def __init__(self, fraction: float = 0.0):
        self._fraction = fraction

    def random(self) -> float:
        return self._fraction

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self._fraction
