"""Tests for dependency injection interfaces."""

import time

from flash_arbitrage.interfaces import (
    DeterministicRandomProvider,
    DeterministicTimeProvider,
    RandomProvider,
    SystemRandomProvider,
    SystemTimeProvider,
    TimeProvider,
)


def test_system_time_provider():
    """Test SystemTimeProvider."""
    provider = SystemTimeProvider()

    ts1 = provider.current_timestamp()
    time.sleep(0.01)
    ts2 = provider.current_timestamp()
    assert ts2 > ts1

    ms = provider.current_time_ms()
    assert isinstance(ms, int)
    assert ms > 0


def test_system_random_provider():
    """Test SystemRandomProvider is reproducible with a seed."""
    first = SystemRandomProvider(seed=42)
    second = SystemRandomProvider(seed=42)

    values = [first.random() for _ in range(5)]
    assert values == [second.random() for _ in range(5)]
    assert all(0.0 <= v < 1.0 for v in values)

    value = first.uniform(1.0, 2.0)
    assert 1.0 <= value <= 2.0


def test_deterministic_time_provider():
    """Test DeterministicTimeProvider."""
    provider = DeterministicTimeProvider(start_time=1000.0)
    assert provider.current_timestamp() == 1000.0
    assert provider.current_time_ms() == 1_000_000

    provider.advance_time(5.5)
    assert provider.current_timestamp() == 1005.5

    provider.set_time(2000.0)
    assert provider.current_timestamp() == 2000.0


def test_deterministic_random_provider():
    """Test DeterministicRandomProvider returns a fixed fraction."""
    provider = DeterministicRandomProvider(fraction=0.5)
    assert provider.random() == 0.5
    assert provider.uniform(0.0, 10.0) == 5.0

    assert DeterministicRandomProvider().uniform(3.0, 9.0) == 3.0


def test_protocol_compliance():
    """Test that providers satisfy the runtime-checkable protocols."""
    assert isinstance(SystemTimeProvider(), TimeProvider)
    assert isinstance(DeterministicTimeProvider(), TimeProvider)
    assert isinstance(SystemRandomProvider(), RandomProvider)
    assert isinstance(DeterministicRandomProvider(), RandomProvider)
